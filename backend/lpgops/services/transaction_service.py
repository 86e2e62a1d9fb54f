# Overview: B2B transaction recorder and reverser; the ledger engine's write path.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Customer, Product, Transaction, TransactionItem
from ..constants import (
    BUYBACK_RATE,
    CYLINDER_DISPLAY_NAMES,
    DEFAULT_VOID_REASON,
    PAYMENT_METHODS,
    RETURNED_CONDITION_EMPTY,
    CylinderType,
    TransactionType,
    parse_cylinder_type,
    parse_transaction_type,
)
from ..time_utils import combine_date_time, parse_business_date, utcnow
from ..validation import (
    AlreadyVoidedError,
    InventoryReconciliationError,
    InventoryReconciliationWarning,
    NotFoundError,
    ValidationError,
    coerce_float,
    coerce_int,
    coerce_optional_str,
)
from .bill_sequence_service import SERIES_B2B, next_bill_number
from .concurrency import lock_row, run_with_retry
from .inventory_service import (
    create_returned_cylinders,
    deduct_accessory_stock,
    release_cylinders_to_store,
    restore_accessory_stock,
    restore_returned_cylinders,
)
from .ledger_service import (
    apply_delta_to_customer,
    compute_buyback_price,
    compute_sale_settlement,
    recorded_delta,
    store_applied_delta,
    transaction_delta,
)

"""
Recording & reversal rules

- One call = one DB transaction. Every side effect (header, items, customer
  ledger, inventory) commits together or not at all.
- Headers and items are append-only; reversal only marks the header voided.
- Voiding is a compare-and-set on voided=false, so of two concurrent
  reversals exactly one applies its inverse effects.
- Inventory reversal is best-effort; shortfalls become warnings unless
  STRICT_INVENTORY_REVERSAL is set.
"""

logger = logging.getLogger(__name__)


# Types whose only line is a synthetic one carrying the amount
_AMOUNT_ONLY_TYPES = {
    TransactionType.PAYMENT: "Payment",
    TransactionType.ADJUSTMENT: "Adjustment",
    TransactionType.CREDIT_NOTE: "Credit Note",
}


# =============================================================================
# INPUT PARSING (no DB access; everything here raises before any write)
# =============================================================================

@dataclass(frozen=True)
class GasLineInput:
    cylinder_type: CylinderType
    delivered: int = 0
    empty_returned: int = 0
    price_per_item_cents: int = 0
    remaining_kg: Optional[float] = None
    original_sold_price_cents: Optional[int] = None


@dataclass(frozen=True)
class AccessoryLineInput:
    product_id: Optional[int]
    product_name: Optional[str]
    quantity: int
    price_per_item_cents: int = 0


def _parse_gas_line(raw: Any, index: int) -> GasLineInput:
    if isinstance(raw, GasLineInput):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError(f"gas_items[{index}] must be an object")

    try:
        cyl_type = parse_cylinder_type(raw.get("cylinder_type"))
    except ValueError:
        raise ValidationError(f"gas_items[{index}].cylinder_type is invalid: {raw.get('cylinder_type')!r}")

    original = raw.get("original_sold_price_cents")
    return GasLineInput(
        cylinder_type=cyl_type,
        delivered=coerce_int(raw.get("delivered"), f"gas_items[{index}].delivered", default=0),
        empty_returned=coerce_int(raw.get("empty_returned"), f"gas_items[{index}].empty_returned", default=0),
        price_per_item_cents=coerce_int(raw.get("price_per_item_cents"), f"gas_items[{index}].price_per_item_cents", default=0),
        remaining_kg=coerce_float(raw.get("remaining_kg"), f"gas_items[{index}].remaining_kg"),
        original_sold_price_cents=(
            None if original is None
            else coerce_int(original, f"gas_items[{index}].original_sold_price_cents")
        ),
    )


def _parse_accessory_line(raw: Any, index: int) -> AccessoryLineInput:
    if isinstance(raw, AccessoryLineInput):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError(f"accessory_items[{index}] must be an object")

    product_id = raw.get("product_id")
    line = AccessoryLineInput(
        product_id=None if product_id in (None, "") else coerce_int(product_id, f"accessory_items[{index}].product_id", minimum=1),
        product_name=coerce_optional_str(raw.get("product_name")),
        quantity=coerce_int(raw.get("quantity"), f"accessory_items[{index}].quantity", default=0),
        price_per_item_cents=coerce_int(raw.get("price_per_item_cents"), f"accessory_items[{index}].price_per_item_cents", default=0),
    )
    if line.product_id is None and not line.product_name:
        raise ValidationError(f"accessory_items[{index}] needs product_id or product_name")
    return line


def _has_quantity(gas_lines: Iterable[GasLineInput], accessory_lines: Iterable[AccessoryLineInput]) -> bool:
    return any(g.delivered > 0 or g.empty_returned > 0 for g in gas_lines) or any(a.quantity > 0 for a in accessory_lines)


# =============================================================================
# ITEM BUILDING
# =============================================================================

def _gas_items(transaction_type: TransactionType, line: GasLineInput) -> list[dict]:
    """Item column values for one gas line; a SALE line may yield two items."""
    display = CYLINDER_DISPLAY_NAMES[line.cylinder_type]
    items = []

    if transaction_type == TransactionType.SALE:
        if line.delivered > 0:
            items.append({
                "product_name": display,
                "cylinder_type": line.cylinder_type.value,
                "quantity": line.delivered,
                "price_per_item_cents": line.price_per_item_cents,
                "total_price_cents": line.delivered * line.price_per_item_cents,
            })
        if line.empty_returned > 0:
            items.append({
                "product_name": f"{display} (Empty Return)",
                "cylinder_type": line.cylinder_type.value,
                "quantity": line.empty_returned,
                "price_per_item_cents": 0,
                "total_price_cents": 0,
                "returned_condition": RETURNED_CONDITION_EMPTY,
            })
        return items

    # BUYBACK / RETURN_EMPTY: the customer hands cylinders back
    quantity = line.empty_returned or line.delivered
    if quantity <= 0:
        return items

    item = {
        "product_name": display,
        "cylinder_type": line.cylinder_type.value,
        "quantity": quantity,
        "price_per_item_cents": line.price_per_item_cents,
        "total_price_cents": quantity * line.price_per_item_cents,
        "returned_condition": RETURNED_CONDITION_EMPTY,
    }

    if transaction_type == TransactionType.BUYBACK:
        item["product_name"] = f"{display} (Buyback)"
        if line.original_sold_price_cents is not None and line.remaining_kg is not None:
            per_item, total = compute_buyback_price(
                line.original_sold_price_cents,
                line.cylinder_type,
                line.remaining_kg,
                quantity,
            )
            item.update({
                "price_per_item_cents": per_item,
                "total_price_cents": total,
                "remaining_kg": line.remaining_kg,
                "original_sold_price_cents": line.original_sold_price_cents,
                "buyback_rate": BUYBACK_RATE,
                "buyback_price_per_item_cents": per_item,
                "buyback_total_cents": total,
            })
    items.append(item)
    return items


def _with_known_product(values: dict) -> dict:
    """Drop a product_id that matches no row; fill a missing name from the product."""
    if "product_id" not in values:
        return values
    product_id = values["product_id"]
    product = db.session.get(Product, product_id) if product_id else None
    name = values.get("product_name") or (product.name if product else None)
    if not name:
        raise NotFoundError(f"Product {product_id} not found")
    return {**values, "product_id": product.id if product else None, "product_name": name}


# =============================================================================
# INVENTORY DISPATCH
# =============================================================================

def _create_returned_rows(txn: Transaction) -> None:
    created = 0
    for item in txn.items:
        if item.is_returned_cylinder and item.quantity > 0:
            create_returned_cylinders(item.cylinder_type, item.quantity, bill_sno=txn.bill_sno, code_offset=created)
            created += item.quantity


def _sale_inventory(txn: Transaction, customer: Customer) -> None:
    # Delivered cylinders are tracked by due counters, not cylinder status
    for item in txn.items:
        if item.cylinder_type is None and item.quantity > 0:
            ref = deduct_accessory_stock(item.product_id, item.product_name, item.quantity)
            if ref is not None:
                item.product_id = ref.row.id if ref.kind == "product" else None
                item.stock_source = ref.kind
                item.stock_item_id = ref.row.id
    _create_returned_rows(txn)


def _returned_inventory(txn: Transaction, customer: Customer) -> None:
    _create_returned_rows(txn)


def _no_inventory(txn: Transaction, customer: Customer) -> None:
    return None


def _shortfall(txn: Transaction, item: TransactionItem, found: int) -> Optional[InventoryReconciliationWarning]:
    if found >= item.quantity:
        return None
    return InventoryReconciliationWarning(
        f"{txn.bill_sno}: expected {item.quantity} {item.cylinder_type} cylinder(s) to move back "
        f"to the customer, found {found}",
        cylinder_type=item.cylinder_type,
        expected=item.quantity,
        found=found,
    )


def _reverse_returned_rows(txn: Transaction, customer: Customer) -> list:
    warnings = []
    for item in txn.items:
        if not item.is_returned_cylinder or item.quantity <= 0:
            continue
        found = restore_returned_cylinders(item.cylinder_type, item.quantity, customer, bill_sno=txn.bill_sno)
        warning = _shortfall(txn, item, found)
        if warning:
            warnings.append(warning)
    return warnings


def _reverse_sale_inventory(txn: Transaction, customer: Customer) -> list:
    for item in txn.items:
        if item.quantity <= 0:
            continue
        if item.cylinder_type is None:
            restore_accessory_stock(item.stock_source, item.stock_item_id, item.quantity)
        elif not item.is_returned_cylinder:
            # The sale never moved cylinder rows, so a shortfall here is not a discrepancy
            released = release_cylinders_to_store(item.cylinder_type, item.quantity, customer)
            logger.debug("%s: released %s of %s %s cylinder(s) to store", txn.bill_sno, released, item.quantity, item.cylinder_type)
    return _reverse_returned_rows(txn, customer)


def _no_inventory_reversal(txn: Transaction, customer: Customer) -> list:
    return []


_INVENTORY_EFFECT = {
    TransactionType.SALE: _sale_inventory,
    TransactionType.PAYMENT: _no_inventory,
    TransactionType.BUYBACK: _returned_inventory,
    TransactionType.RETURN_EMPTY: _returned_inventory,
    TransactionType.ADJUSTMENT: _no_inventory,
    TransactionType.CREDIT_NOTE: _no_inventory,
}

_INVENTORY_REVERSAL = {
    TransactionType.SALE: _reverse_sale_inventory,
    TransactionType.PAYMENT: _no_inventory_reversal,
    TransactionType.BUYBACK: _reverse_returned_rows,
    TransactionType.RETURN_EMPTY: _reverse_returned_rows,
    TransactionType.ADJUSTMENT: _no_inventory_reversal,
    TransactionType.CREDIT_NOTE: _no_inventory_reversal,
}

for _table_name, _table in (("_INVENTORY_EFFECT", _INVENTORY_EFFECT), ("_INVENTORY_REVERSAL", _INVENTORY_REVERSAL)):
    _missing = set(TransactionType) - set(_table)
    if _missing:
        raise RuntimeError(f"{_table_name} has no rule for: {sorted(t.value for t in _missing)}")


# =============================================================================
# RECORDER
# =============================================================================

def record_transaction(
    *,
    transaction_type,
    customer_id: int,
    date,
    time=None,
    gas_items: Optional[list] = None,
    accessory_items: Optional[list] = None,
    total_amount_cents: Optional[int] = None,
    paid_amount_cents: Optional[int] = None,
    payment_method: Optional[str] = None,
    payment_reference: Optional[str] = None,
    notes: Optional[str] = None,
    actor_id: Optional[int],
) -> Transaction:
    """
    Record one B2B transaction and apply its ledger and inventory effects.

    Args:
        transaction_type: TransactionType member or its string value
        customer_id: B2B customer
        date: business date (date, datetime or ISO string)
        time: "HH:MM", ISO timestamp, or None for now
        gas_items: dicts with cylinder_type, delivered, empty_returned,
            price_per_item_cents and, for BUYBACK, remaining_kg,
            original_sold_price_cents (paid back at the fixed BUYBACK_RATE)
        accessory_items: dicts with product_id, product_name, quantity,
            price_per_item_cents (SALE only)
        total_amount_cents: defaults to the sum of line totals; required
            and positive for PAYMENT / ADJUSTMENT / CREDIT_NOTE
        paid_amount_cents: SALE only; the rest goes on the ledger

    Returns:
        The committed Transaction header

    Raises:
        ValidationError: bad input or insufficient accessory stock
        NotFoundError: unknown customer
    """
    try:
        txn_type = parse_transaction_type(transaction_type)
    except ValueError:
        raise ValidationError(f"Invalid transaction type: {transaction_type!r}")

    try:
        business_date = parse_business_date(date)
        business_time = combine_date_time(business_date, time)
    except ValueError as exc:
        raise ValidationError(f"Invalid date/time: {exc}")

    gas_lines = [_parse_gas_line(raw, i) for i, raw in enumerate(gas_items or [])]
    accessory_lines = [_parse_accessory_line(raw, i) for i, raw in enumerate(accessory_items or [])]

    total_override = None if total_amount_cents is None else coerce_int(total_amount_cents, "total_amount_cents")
    paid = None if paid_amount_cents is None else coerce_int(paid_amount_cents, "paid_amount_cents")
    payment_method = coerce_optional_str(payment_method, max_length=32)
    if payment_method is not None:
        payment_method = payment_method.upper()
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
    payment_reference = coerce_optional_str(payment_reference, max_length=128)
    notes = coerce_optional_str(notes, max_length=2000)

    if paid is not None and txn_type != TransactionType.SALE:
        raise ValidationError("paid_amount_cents only applies to SALE transactions")

    if txn_type in _AMOUNT_ONLY_TYPES:
        if gas_lines or accessory_lines:
            raise ValidationError(f"{txn_type.value} transactions do not carry line items")
        if not total_override:
            raise ValidationError(f"{txn_type.value} requires a positive total_amount_cents")
        item_values = [{
            "product_name": _AMOUNT_ONLY_TYPES[txn_type],
            "quantity": 1,
            "price_per_item_cents": total_override,
            "total_price_cents": total_override,
        }]
    else:
        if accessory_lines and txn_type != TransactionType.SALE:
            raise ValidationError("Accessory items are only allowed on SALE transactions")
        if not _has_quantity(gas_lines, accessory_lines):
            raise ValidationError("At least one line item with a positive quantity is required")
        item_values = [values for line in gas_lines for values in _gas_items(txn_type, line)]
        for line in accessory_lines:
            if line.quantity <= 0:
                continue
            item_values.append({
                "product_id": line.product_id,
                "product_name": line.product_name,
                "quantity": line.quantity,
                "price_per_item_cents": line.price_per_item_cents,
                "total_price_cents": line.quantity * line.price_per_item_cents,
            })

    total = total_override if total_override is not None else sum(v["total_price_cents"] for v in item_values)

    if txn_type == TransactionType.SALE:
        paid, unpaid, payment_status = compute_sale_settlement(total, paid)
    else:
        unpaid, payment_status = None, None

    def _op():
        customer = lock_row(Customer, customer_id)
        if not customer:
            raise NotFoundError(f"Customer {customer_id} not found")

        bill_sno = next_bill_number(
            series=SERIES_B2B,
            prefix=current_app.config.get("B2B_BILL_PREFIX", "B2B-"),
            sequence_date=business_date,
            pad=current_app.config.get("BILL_SEQUENCE_PAD", 4),
        )

        txn = Transaction(
            transaction_type=txn_type.value,
            bill_sno=bill_sno,
            customer_id=customer.id,
            transaction_date=business_date,
            transaction_time=business_time,
            total_amount_cents=total,
            paid_amount_cents=paid,
            unpaid_amount_cents=unpaid,
            payment_status=payment_status,
            payment_method=payment_method,
            payment_reference=payment_reference,
            notes=notes,
            created_by=actor_id,
        )
        db.session.add(txn)
        db.session.flush()

        for values in item_values:
            txn.items.append(TransactionItem(transaction_id=txn.id, **_with_known_product(values)))
        db.session.flush()

        _INVENTORY_EFFECT[txn_type](txn, customer)

        applied = apply_delta_to_customer(customer, transaction_delta(txn), actor_id)
        store_applied_delta(txn, applied)

        db.session.commit()
        logger.info(
            "Recorded %s %s for customer %s: total=%s balance_change=%s",
            txn_type.value, bill_sno, customer.id, total, applied.balance_cents,
        )
        return txn

    return run_with_retry(_op, description=f"record {txn_type.value}")


# =============================================================================
# REVERSER
# =============================================================================

@dataclass
class ReversalOutcome:
    transaction: Any
    warnings: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "transaction": self.transaction.to_dict(include_items=True),
            "warnings": [w.to_dict() for w in self.warnings],
        }


def mark_voided(model, transaction_id: int, *, actor_id: Optional[int], reason: Optional[str]) -> None:
    """
    Compare-and-set: only one caller can flip voided from false to true.
    Loaded instances are not synchronized; they pick up the flag on commit.
    """
    result = db.session.execute(
        update(model)
        .where(model.id == transaction_id, model.voided.is_(False))
        .values(
            voided=True,
            voided_by=actor_id,
            voided_at=utcnow(),
            void_reason=coerce_optional_str(reason) or DEFAULT_VOID_REASON,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyVoidedError("Transaction is already voided")


def settle_reversal_warnings(bill_sno: str, warnings: list) -> None:
    """Log shortfalls; in strict mode turn them into a failure."""
    for warning in warnings:
        logger.warning("Inventory reconciliation: %s", warning)
    if warnings and current_app.config.get("STRICT_INVENTORY_REVERSAL"):
        raise InventoryReconciliationError(
            f"Reversal of {bill_sno} could not locate all cylinders: "
            + "; ".join(str(w) for w in warnings)
        )


def reverse_transaction(transaction_id: int, *, actor_id: Optional[int], reason: Optional[str] = None) -> ReversalOutcome:
    """
    Void a B2B transaction and undo its ledger and inventory effects.

    Raises:
        NotFoundError: unknown transaction
        AlreadyVoidedError: already voided (including by a concurrent call)
        InventoryReconciliationError: strict mode and cylinders missing
    """
    def _op():
        txn = db.session.get(Transaction, transaction_id)
        if not txn:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if txn.voided:
            raise AlreadyVoidedError("Transaction is already voided")

        mark_voided(Transaction, txn.id, actor_id=actor_id, reason=reason)

        customer = lock_row(Customer, txn.customer_id)
        if not customer:
            raise NotFoundError(f"Customer {txn.customer_id} not found")

        delta = recorded_delta(txn).inverted()
        apply_delta_to_customer(customer, delta, actor_id)

        warnings = _INVENTORY_REVERSAL[parse_transaction_type(txn.transaction_type)](txn, customer)
        settle_reversal_warnings(txn.bill_sno, warnings)

        db.session.commit()
        logger.info(
            "Voided %s %s for customer %s by user %s: balance_change=%s warnings=%s",
            txn.transaction_type, txn.bill_sno, customer.id, actor_id, delta.balance_cents, len(warnings),
        )
        return ReversalOutcome(transaction=txn, warnings=warnings)

    return run_with_retry(_op, description=f"void transaction {transaction_id}")


# =============================================================================
# READS
# =============================================================================

def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if not txn:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return txn


def list_transactions(customer_id: Optional[int] = None, include_voided: bool = True, limit: int = 100) -> list[Transaction]:
    query = db.session.query(Transaction)
    if customer_id is not None:
        query = query.filter_by(customer_id=customer_id)
    if not include_voided:
        query = query.filter_by(voided=False)
    return query.order_by(Transaction.id.desc()).limit(limit).all()
