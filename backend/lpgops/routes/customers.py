# Overview: Flask API routes for B2B and B2C customers, ledger statements and cylinder dues.

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..services import customer_service, ledger_service
from ..validation import ValidationError, NotFoundError, ConflictError
from ..decorators import require_actor


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("/b2b")
@require_actor
def create_customer_route():
    try:
        customer = customer_service.create_customer(request.get_json() or {}, actor_id=g.actor_id)
        return jsonify({"customer": customer.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/b2b/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
        return jsonify({"customer": customer.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.delete("/b2b/<int:customer_id>")
@require_actor
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(customer_id)
        return jsonify({"deleted": True}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409


@customers_bp.get("/b2b/<int:customer_id>/ledger")
def customer_ledger_route(customer_id: int):
    """
    Statement with running balance.

    Query params:
        include_voided: "true" to list voided transactions (they do not
            move the running balance)
    """
    include_voided = request.args.get("include_voided", "false").lower() == "true"
    try:
        return jsonify(ledger_service.customer_ledger(customer_id, include_voided=include_voided)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.get("/b2b/<int:customer_id>/cylinder-dues")
def cylinder_dues_route(customer_id: int):
    try:
        return jsonify(customer_service.cylinder_dues(customer_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.post("/b2c")
@require_actor
def create_b2c_customer_route():
    try:
        customer = customer_service.create_b2c_customer(request.get_json() or {})
        return jsonify({"customer": customer.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create B2C customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/b2c/<int:customer_id>")
def get_b2c_customer_route(customer_id: int):
    try:
        return jsonify({"customer": customer_service.b2c_customer_summary(customer_id)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
