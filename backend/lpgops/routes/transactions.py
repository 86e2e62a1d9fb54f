# Overview: Flask API routes for B2B ledger transactions; parses input and returns JSON responses.

"""B2B transaction API routes"""

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..services import transaction_service
from ..validation import ValidationError, NotFoundError, ConflictError
from ..decorators import require_actor


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("/")
@require_actor
def create_transaction_route():
    """
    Record a B2B transaction.

    Body: transaction_type, customer_id, date, time, gas_items,
    accessory_items, total_amount_cents, paid_amount_cents,
    payment_method, payment_reference, notes
    """
    try:
        data = request.get_json() or {}
        customer_id = data.get("customer_id")

        if not customer_id:
            return jsonify({"error": "customer_id required"}), 400
        if not data.get("transaction_type"):
            return jsonify({"error": "transaction_type required"}), 400
        if not data.get("date"):
            return jsonify({"error": "date required"}), 400

        txn = transaction_service.record_transaction(
            transaction_type=data["transaction_type"],
            customer_id=customer_id,
            date=data["date"],
            time=data.get("time"),
            gas_items=data.get("gas_items") or [],
            accessory_items=data.get("accessory_items") or [],
            total_amount_cents=data.get("total_amount_cents"),
            paid_amount_cents=data.get("paid_amount_cents"),
            payment_method=data.get("payment_method"),
            payment_reference=data.get("payment_reference"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )

        return jsonify({"transaction": txn.to_dict(include_items=True)}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/")
def list_transactions_route():
    customer_id = request.args.get("customer_id", type=int)
    include_voided = request.args.get("include_voided", "true").lower() != "false"

    transactions = transaction_service.list_transactions(customer_id=customer_id, include_voided=include_voided)
    return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        return jsonify({"transaction": txn.to_dict(include_items=True)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@transactions_bp.post("/<int:transaction_id>/void")
@require_actor
def void_transaction_route(transaction_id: int):
    """
    Void a transaction and reverse its ledger and inventory effects.

    Body (optional): reason
    Returns warnings for cylinders that could not be located.
    """
    try:
        data = request.get_json(silent=True) or {}
        outcome = transaction_service.reverse_transaction(
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
        current_app.logger.exception("Failed to void transaction")
        return jsonify({"error": "Internal server error"}), 500
