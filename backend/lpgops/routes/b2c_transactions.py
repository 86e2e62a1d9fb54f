# Overview: Flask API routes for B2C transactions; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..services import b2c_transaction_service
from ..validation import ValidationError, NotFoundError, ConflictError
from ..decorators import require_actor


b2c_transactions_bp = Blueprint("b2c_transactions", __name__, url_prefix="/api/b2c-transactions")


@b2c_transactions_bp.post("/")
@require_actor
def create_b2c_transaction_route():
    try:
        data = request.get_json() or {}
        customer_id = data.get("customer_id")

        if not customer_id:
            return jsonify({"error": "customer_id required"}), 400
        if not data.get("date"):
            return jsonify({"error": "date required"}), 400

        txn = b2c_transaction_service.record_b2c_transaction(
            customer_id=customer_id,
            date=data["date"],
            time=data.get("time"),
            gas_items=data.get("gas_items") or [],
            security_items=data.get("security_items") or [],
            accessory_items=data.get("accessory_items") or [],
            delivery_charges_cents=data.get("delivery_charges_cents", 0),
            delivery_cost_cents=data.get("delivery_cost_cents", 0),
            payment_method=data.get("payment_method") or "CASH",
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )

        return jsonify({"transaction": txn.to_dict(include_items=True)}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to record B2C transaction")
        return jsonify({"error": "Internal server error"}), 500


@b2c_transactions_bp.get("/<int:transaction_id>")
def get_b2c_transaction_route(transaction_id: int):
    try:
        txn = b2c_transaction_service.get_b2c_transaction(transaction_id)
        return jsonify({"transaction": txn.to_dict(include_items=True)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@b2c_transactions_bp.post("/<int:transaction_id>/void")
@require_actor
def void_b2c_transaction_route(transaction_id: int):
    try:
        data = request.get_json(silent=True) or {}
        outcome = b2c_transaction_service.reverse_b2c_transaction(
            transaction_id,
            actor_id=g.actor_id,
            reason=data.get("reason"),
        )
        return jsonify(outcome.to_dict()), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to void B2C transaction")
        return jsonify({"error": "Internal server error"}), 500
