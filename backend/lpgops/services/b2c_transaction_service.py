# Overview: B2C transaction recorder and reverser (gas, security deposits/returns, accessories).

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from flask import current_app
from sqlalchemy import and_, case, or_

from ..extensions import db
from ..models import (
    B2CAccessoryItem,
    B2CCustomer,
    B2CCylinderHolding,
    B2CGasItem,
    B2CSecurityItem,
    B2CTransaction,
)
from ..constants import (
    PAYMENT_METHODS,
    SECURITY_RETURN_DEDUCTION_RATE,
    CylinderType,
    parse_cylinder_type,
)
from ..time_utils import combine_date_time, day_bounds, parse_business_date
from ..validation import (
    AlreadyVoidedError,
    ConflictError,
    InventoryReconciliationWarning,
    NotFoundError,
    ValidationError,
    coerce_int,
    coerce_optional_str,
)
from .bill_sequence_service import SERIES_B2C, next_bill_number
from .concurrency import lock_for_update, lock_row, run_with_retry
from .inventory_service import (
    collect_cylinders,
    deduct_accessory_stock,
    issue_cylinders,
    release_cylinders_to_store,
    restore_accessory_stock,
    restore_returned_cylinders,
)
from .transaction_service import ReversalOutcome, mark_voided, settle_reversal_warnings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class B2CLineInput:
    quantity: int
    price_per_item_cents: int
    cylinder_type: Optional[CylinderType] = None
    item_name: Optional[str] = None
    cost_price_cents: int = 0
    is_return: bool = False


def compute_security_deduction(refund_per_item_cents: int, quantity: int, rate: float = SECURITY_RETURN_DEDUCTION_RATE) -> int:
    """
    Amount kept on a security return.

    The refund is (1 - rate) of the original deposit, so the deduction per
    item is refund / (1 - rate) * rate, rounded half-up to the cent.
    """
    rate_d = Decimal(str(rate))
    per_item = Decimal(refund_per_item_cents) / (Decimal(1) - rate_d) * rate_d
    return int(per_item.quantize(Decimal("1"), rounding=ROUND_HALF_UP)) * quantity


def _parse_line(raw: Any, kind: str, index: int) -> B2CLineInput:
    if not isinstance(raw, dict):
        raise ValidationError(f"{kind}[{index}] must be an object")

    cyl_type = None
    item_name = None
    if kind == "accessory_items":
        item_name = coerce_optional_str(raw.get("item_name"))
        if not item_name:
            raise ValidationError(f"{kind}[{index}].item_name is required")
    else:
        try:
            cyl_type = parse_cylinder_type(raw.get("cylinder_type"))
        except ValueError:
            raise ValidationError(f"{kind}[{index}].cylinder_type is invalid: {raw.get('cylinder_type')!r}")

    return B2CLineInput(
        quantity=coerce_int(raw.get("quantity"), f"{kind}[{index}].quantity", minimum=1),
        price_per_item_cents=coerce_int(raw.get("price_per_item_cents"), f"{kind}[{index}].price_per_item_cents", default=0),
        cylinder_type=cyl_type,
        item_name=item_name,
        cost_price_cents=coerce_int(raw.get("cost_price_cents"), f"{kind}[{index}].cost_price_cents", default=0),
        is_return=bool(raw.get("is_return", False)),
    )


# =============================================================================
# HOLDINGS
# =============================================================================

def _open_holding(customer: B2CCustomer, txn: B2CTransaction, line: B2CLineInput) -> B2CCylinderHolding:
    holding = B2CCylinderHolding(
        customer_id=customer.id,
        transaction_id=txn.id,
        cylinder_type=line.cylinder_type.value,
        quantity=line.quantity,
        security_amount_cents=line.price_per_item_cents,
        issue_date=txn.transaction_date,
    )
    db.session.add(holding)
    return holding


def _close_holdings(customer: B2CCustomer, txn: B2CTransaction, line: B2CLineInput) -> int:
    """
    Mark the oldest open holdings returned (FIFO by issue date). A holding
    larger than the remaining return quantity is split so the returned part
    gets its own row. Returns the quantity matched to holdings.
    """
    holdings = (
        lock_for_update(
            db.session.query(B2CCylinderHolding).filter_by(
                customer_id=customer.id,
                cylinder_type=line.cylinder_type.value,
                is_returned=False,
            )
        )
        .order_by(B2CCylinderHolding.issue_date, B2CCylinderHolding.id)
        .all()
    )

    remaining = line.quantity
    for holding in holdings:
        if remaining <= 0:
            break
        returned_qty = min(remaining, holding.quantity)
        if returned_qty < holding.quantity:
            holding.quantity -= returned_qty
            holding = B2CCylinderHolding(
                customer_id=holding.customer_id,
                transaction_id=holding.transaction_id,
                cylinder_type=holding.cylinder_type,
                quantity=returned_qty,
                security_amount_cents=holding.security_amount_cents,
                issue_date=holding.issue_date,
            )
            db.session.add(holding)

        holding.is_returned = True
        holding.return_date = txn.transaction_date
        holding.return_transaction_id = txn.id
        holding.return_deduction_cents = int(
            (Decimal(holding.security_amount_cents) * Decimal(str(SECURITY_RETURN_DEDUCTION_RATE)))
            .quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        ) * returned_qty
        remaining -= returned_qty

    if remaining > 0:
        logger.warning(
            "%s: %s %s cylinder(s) returned without an open security holding",
            txn.bill_sno, remaining, line.cylinder_type.value,
        )
    return line.quantity - remaining


def _reopen_holdings(txn: B2CTransaction, item: B2CSecurityItem) -> int:
    """
    Undo a security return. Holdings stamped with this return are reopened
    first; older rows without the stamp are matched on customer, type and a
    same-day return date. A matched row larger than what is left to reopen
    is split, the same way _close_holdings splits on return.
    """
    start, end = day_bounds(txn.transaction_date)
    holdings = (
        lock_for_update(
            db.session.query(B2CCylinderHolding).filter(
                B2CCylinderHolding.customer_id == txn.customer_id,
                B2CCylinderHolding.cylinder_type == item.cylinder_type,
                B2CCylinderHolding.is_returned.is_(True),
                or_(
                    B2CCylinderHolding.return_transaction_id == txn.id,
                    and_(
                        B2CCylinderHolding.return_transaction_id.is_(None),
                        B2CCylinderHolding.return_date.between(start, end),
                    ),
                ),
            )
        )
        .order_by(
            case((B2CCylinderHolding.return_transaction_id == txn.id, 0), else_=1),
            B2CCylinderHolding.id,
        )
        .all()
    )

    remaining = item.quantity
    for holding in holdings:
        if remaining <= 0:
            break
        reopened_qty = min(remaining, holding.quantity)
        if reopened_qty < holding.quantity:
            # The rest of the row belongs to another return and stays closed
            deduction_per_unit = (holding.return_deduction_cents or 0) // holding.quantity
            holding.quantity -= reopened_qty
            holding.return_deduction_cents = deduction_per_unit * holding.quantity
            db.session.add(B2CCylinderHolding(
                customer_id=holding.customer_id,
                transaction_id=holding.transaction_id,
                cylinder_type=holding.cylinder_type,
                quantity=reopened_qty,
                security_amount_cents=holding.security_amount_cents,
                issue_date=holding.issue_date,
                is_returned=False,
            ))
        else:
            holding.is_returned = False
            holding.return_date = None
            holding.return_deduction_cents = 0
            holding.return_transaction_id = None
        remaining -= reopened_qty
    return item.quantity - remaining


# =============================================================================
# RECORDER
# =============================================================================

def record_b2c_transaction(
    *,
    customer_id: int,
    date,
    time=None,
    gas_items: Optional[list] = None,
    security_items: Optional[list] = None,
    accessory_items: Optional[list] = None,
    delivery_charges_cents: int = 0,
    delivery_cost_cents: int = 0,
    payment_method: str = "CASH",
    notes: Optional[str] = None,
    actor_id: Optional[int],
) -> B2CTransaction:
    """
    Record one B2C sale.

    Security deposits open holdings and issue FULL cylinders to the
    customer; security returns close holdings (keeping the 25% deduction)
    and take the cylinders back as EMPTY. Gas refills move no cylinders.

    Raises:
        ValidationError: bad input or insufficient stock
        NotFoundError: unknown customer
    """
    try:
        business_date = parse_business_date(date)
        business_time = combine_date_time(business_date, time)
    except ValueError as exc:
        raise ValidationError(f"Invalid date/time: {exc}")

    gas_lines = [_parse_line(raw, "gas_items", i) for i, raw in enumerate(gas_items or [])]
    security_lines = [_parse_line(raw, "security_items", i) for i, raw in enumerate(security_items or [])]
    accessory_lines = [_parse_line(raw, "accessory_items", i) for i, raw in enumerate(accessory_items or [])]
    if not (gas_lines or security_lines or accessory_lines):
        raise ValidationError("At least one item is required")

    delivery_charges = coerce_int(delivery_charges_cents, "delivery_charges_cents", default=0)
    delivery_cost = coerce_int(delivery_cost_cents, "delivery_cost_cents", default=0)
    payment_method = (coerce_optional_str(payment_method, max_length=32) or "CASH").upper()
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
    notes = coerce_optional_str(notes, max_length=2000)

    gas_total = sum(l.quantity * l.price_per_item_cents for l in gas_lines)
    security_total = sum(l.quantity * l.price_per_item_cents for l in security_lines)
    accessory_total = sum(l.quantity * l.price_per_item_cents for l in accessory_lines)
    gas_cost = sum(l.quantity * l.cost_price_cents for l in gas_lines)
    accessory_cost = sum(l.quantity * l.cost_price_cents for l in accessory_lines)
    security_profit = sum(
        compute_security_deduction(l.price_per_item_cents, l.quantity)
        for l in security_lines if l.is_return
    )

    total = gas_total + security_total + accessory_total
    total_cost = gas_cost + accessory_cost
    actual_profit = (
        (gas_total - gas_cost)
        + (accessory_total - accessory_cost)
        + (delivery_charges - delivery_cost)
        + security_profit
    )

    def _op():
        customer = lock_row(B2CCustomer, customer_id)
        if not customer:
            raise NotFoundError(f"Customer {customer_id} not found")

        bill_sno = next_bill_number(
            series=SERIES_B2C,
            prefix=current_app.config.get("B2C_BILL_PREFIX", "B2C-"),
            sequence_date=business_date,
            pad=current_app.config.get("BILL_SEQUENCE_PAD", 4),
        )

        txn = B2CTransaction(
            bill_sno=bill_sno,
            customer_id=customer.id,
            transaction_date=business_date,
            transaction_time=business_time,
            total_amount_cents=total,
            delivery_charges_cents=delivery_charges,
            delivery_cost_cents=delivery_cost,
            final_amount_cents=total + delivery_charges,
            total_cost_cents=total_cost,
            actual_profit_cents=actual_profit,
            payment_method=payment_method,
            notes=notes,
            created_by=actor_id,
        )
        db.session.add(txn)
        db.session.flush()

        for line in gas_lines:
            db.session.add(B2CGasItem(
                transaction_id=txn.id,
                cylinder_type=line.cylinder_type.value,
                quantity=line.quantity,
                price_per_item_cents=line.price_per_item_cents,
                total_price_cents=line.quantity * line.price_per_item_cents,
                cost_price_cents=line.cost_price_cents,
                total_cost_cents=line.quantity * line.cost_price_cents,
                profit_margin_cents=line.quantity * (line.price_per_item_cents - line.cost_price_cents),
            ))

        returned_seen = 0
        for line in security_lines:
            db.session.add(B2CSecurityItem(
                transaction_id=txn.id,
                cylinder_type=line.cylinder_type.value,
                quantity=line.quantity,
                price_per_item_cents=line.price_per_item_cents,
                total_price_cents=line.quantity * line.price_per_item_cents,
                is_return=line.is_return,
                deduction_rate=SECURITY_RETURN_DEDUCTION_RATE if line.is_return else 0,
            ))
            if line.is_return:
                _close_holdings(customer, txn, line)
                collect_cylinders(line.cylinder_type, line.quantity, customer, bill_sno=bill_sno, code_offset=returned_seen)
                returned_seen += line.quantity
            else:
                _open_holding(customer, txn, line)
                issue_cylinders(line.cylinder_type, line.quantity, customer)

        for line in accessory_lines:
            accessory = B2CAccessoryItem(
                transaction_id=txn.id,
                item_name=line.item_name,
                quantity=line.quantity,
                price_per_item_cents=line.price_per_item_cents,
                total_price_cents=line.quantity * line.price_per_item_cents,
                cost_price_cents=line.cost_price_cents,
                total_cost_cents=line.quantity * line.cost_price_cents,
                profit_margin_cents=line.quantity * (line.price_per_item_cents - line.cost_price_cents),
            )
            ref = deduct_accessory_stock(None, line.item_name, line.quantity)
            if ref is not None:
                accessory.stock_source = ref.kind
                accessory.stock_item_id = ref.row.id
            db.session.add(accessory)

        customer.total_profit_cents = (customer.total_profit_cents or 0) + actual_profit

        db.session.commit()
        logger.info(
            "Recorded B2C %s for customer %s: final=%s profit=%s",
            bill_sno, customer.id, total + delivery_charges, actual_profit,
        )
        return txn

    return run_with_retry(_op, description="record B2C sale")


# =============================================================================
# REVERSER
# =============================================================================

def _cylinder_shortfall(txn: B2CTransaction, item: B2CSecurityItem, found: int, direction: str):
    if found >= item.quantity:
        return None
    return InventoryReconciliationWarning(
        f"{txn.bill_sno}: expected {item.quantity} {item.cylinder_type} cylinder(s) to move {direction}, found {found}",
        cylinder_type=item.cylinder_type,
        expected=item.quantity,
        found=found,
    )


def reverse_b2c_transaction(transaction_id: int, *, actor_id: Optional[int], reason: Optional[str] = None) -> ReversalOutcome:
    """
    Void a B2C transaction and undo its profit, holding and inventory effects.

    Raises:
        NotFoundError: unknown transaction
        AlreadyVoidedError: already voided
        ConflictError: a deposit whose cylinders were already returned
        InventoryReconciliationError: strict mode and cylinders missing
    """
    def _op():
        txn = db.session.get(B2CTransaction, transaction_id)
        if not txn:
            raise NotFoundError(f"B2C transaction {transaction_id} not found")
        if txn.voided:
            raise AlreadyVoidedError("Transaction is already voided")

        mark_voided(B2CTransaction, txn.id, actor_id=actor_id, reason=reason)

        customer = lock_row(B2CCustomer, txn.customer_id)
        if not customer:
            raise NotFoundError(f"Customer {txn.customer_id} not found")

        customer.total_profit_cents = max(0, (customer.total_profit_cents or 0) - (txn.actual_profit_cents or 0))

        warnings = []
        deposit_holdings = db.session.query(B2CCylinderHolding).filter_by(transaction_id=txn.id).all()
        if any(h.is_returned for h in deposit_holdings):
            raise ConflictError(
                f"Cylinders deposited on {txn.bill_sno} have already been returned; void the return first"
            )
        for holding in deposit_holdings:
            db.session.delete(holding)

        for item in txn.security_items:
            if item.is_return:
                reopened = _reopen_holdings(txn, item)
                if reopened < item.quantity:
                    logger.warning("%s: reopened %s of %s holdings", txn.bill_sno, reopened, item.quantity)
                found = restore_returned_cylinders(item.cylinder_type, item.quantity, customer, bill_sno=txn.bill_sno)
                warning = _cylinder_shortfall(txn, item, found, "back to the customer")
            else:
                found = release_cylinders_to_store(item.cylinder_type, item.quantity, customer)
                warning = _cylinder_shortfall(txn, item, found, "back to the store")
            if warning:
                warnings.append(warning)

        for item in txn.accessory_items:
            restore_accessory_stock(item.stock_source, item.stock_item_id, item.quantity)

        settle_reversal_warnings(txn.bill_sno, warnings)

        db.session.commit()
        logger.info(
            "Voided B2C %s for customer %s by user %s: profit_change=%s warnings=%s",
            txn.bill_sno, customer.id, actor_id, -(txn.actual_profit_cents or 0), len(warnings),
        )
        return ReversalOutcome(transaction=txn, warnings=warnings)

    return run_with_retry(_op, description=f"void B2C transaction {transaction_id}")


def get_b2c_transaction(transaction_id: int) -> B2CTransaction:
    txn = db.session.get(B2CTransaction, transaction_id)
    if not txn:
        raise NotFoundError(f"B2C transaction {transaction_id} not found")
    return txn
