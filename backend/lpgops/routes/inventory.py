# Overview: Flask API routes for cylinder and accessory stock.

from flask import Blueprint, request, jsonify
from flask import current_app

from ..services import inventory_service
from ..validation import ValidationError, ConflictError
from ..decorators import require_actor


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/cylinders/stats")
def cylinder_stats_route():
    """Cylinder counts per type and status."""
    counts = inventory_service.cylinder_counts()
    totals = {cyl_type: sum(by_status.values()) for cyl_type, by_status in counts.items()}
    return jsonify({"by_type": counts, "totals": totals}), 200


@inventory_bp.get("/cylinders/audit")
def cylinder_audit_route():
    problems = inventory_service.audit_cylinder_holdings()
    return jsonify({"problems": problems, "count": len(problems)}), 200


@inventory_bp.post("/cylinders")
@require_actor
def create_cylinder_route():
    try:
        cylinder = inventory_service.add_cylinder(request.get_json() or {})
        return jsonify({"cylinder": cylinder.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create cylinder")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/products")
@require_actor
def create_product_route():
    try:
        product = inventory_service.add_product(request.get_json() or {})
        return jsonify({"product": product.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/custom-items")
@require_actor
def create_custom_item_route():
    try:
        item = inventory_service.add_custom_item(request.get_json() or {})
        return jsonify({"custom_item": item.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create custom item")
        return jsonify({"error": "Internal server error"}), 500
