# Overview: B2B / B2C customer registration and read views.

from __future__ import annotations

from typing import Optional

from ..extensions import db
from ..models import B2CCustomer, B2CCylinderHolding, Customer, Transaction
from ..constants import CYLINDER_DISPLAY_NAMES, DUE_COUNTER_FIELDS
from ..validation import ConflictError, NotFoundError, ValidationError, coerce_int, coerce_optional_str
from .inventory_service import cylinders_held_by


def _required_name(value) -> str:
    name = coerce_optional_str(value)
    if not name:
        raise ValidationError("name is required")
    return name


def create_customer(data: dict, actor_id: Optional[int] = None) -> Customer:
    """Register a B2B customer with an empty ledger."""
    customer = Customer(
        name=_required_name(data.get("name")),
        contact_person=coerce_optional_str(data.get("contact_person")),
        email=coerce_optional_str(data.get("email")),
        phone=coerce_optional_str(data.get("phone"), max_length=32),
        address=coerce_optional_str(data.get("address"), max_length=2000),
        credit_limit_cents=coerce_int(data.get("credit_limit_cents"), "credit_limit_cents", default=0),
        payment_terms_days=coerce_int(data.get("payment_terms_days"), "payment_terms_days", default=30),
        updated_by=actor_id,
    )
    db.session.add(customer)
    db.session.commit()
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def delete_customer(customer_id: int) -> None:
    """Only customers with no transactions on record can be removed."""
    customer = get_customer(customer_id)
    has_transactions = db.session.query(Transaction.id).filter_by(customer_id=customer_id).first() is not None
    if has_transactions:
        raise ConflictError("Customer has transactions on record and cannot be deleted")
    db.session.delete(customer)
    db.session.commit()


def cylinder_dues(customer_id: int) -> dict:
    """Due counters next to the cylinders physically recorded as with the customer."""
    customer = get_customer(customer_id)
    held = cylinders_held_by(customer)
    dues = []
    for cyl_type, field_name in DUE_COUNTER_FIELDS.items():
        dues.append({
            "cylinder_type": cyl_type.value,
            "display_name": CYLINDER_DISPLAY_NAMES[cyl_type],
            "due": getattr(customer, field_name) or 0,
            "held": held.get(cyl_type.value, 0),
        })
    return {"customer_id": customer.id, "dues": dues}


# =============================================================================
# B2C
# =============================================================================

def create_b2c_customer(data: dict) -> B2CCustomer:
    customer = B2CCustomer(
        name=_required_name(data.get("name")),
        phone=coerce_optional_str(data.get("phone"), max_length=32),
        address=coerce_optional_str(data.get("address"), max_length=2000),
    )
    db.session.add(customer)
    db.session.commit()
    return customer


def get_b2c_customer(customer_id: int) -> B2CCustomer:
    customer = db.session.get(B2CCustomer, customer_id)
    if not customer:
        raise NotFoundError(f"B2C customer {customer_id} not found")
    return customer


def b2c_customer_summary(customer_id: int) -> dict:
    """Customer row plus open and returned security holdings."""
    customer = get_b2c_customer(customer_id)
    holdings = (
        db.session.query(B2CCylinderHolding)
        .filter_by(customer_id=customer_id)
        .order_by(B2CCylinderHolding.issue_date, B2CCylinderHolding.id)
        .all()
    )
    open_by_type: dict = {}
    for holding in holdings:
        if not holding.is_returned:
            open_by_type[holding.cylinder_type] = open_by_type.get(holding.cylinder_type, 0) + holding.quantity

    return {
        **customer.to_dict(),
        "holdings": [h.to_dict() for h in holdings],
        "open_holdings_by_type": open_by_type,
    }
