# Overview: Ledger balance calculator; pure delta arithmetic plus the replay projection.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from ..extensions import db
from ..models import Customer, Transaction
from ..constants import (
    BUYBACK_RATE,
    CYLINDER_CAPACITY_KG,
    DUE_CHANGE_FIELDS,
    DUE_COUNTER_FIELDS,
    CylinderType,
    PaymentStatus,
    TransactionType,
    parse_cylinder_type,
    parse_transaction_type,
)
from ..validation import NotFoundError, ValidationError

"""
Ledger Invariants (authoritative)

- newBalance = oldBalance + delta.balance_cents, per the table below.
- Due counters never go negative: every write is max(0, counter + change).
- Reversal applies the negation of the change actually applied when the
  transaction was recorded (stored on the header after clamping), so a
  counter that was clamped is not over-restored.
- Stored scalars are a cache; replay_customer_ledger() rebuilds them from
  the non-voided transaction log in business order.

    SALE          balance += unpaid (or total)   due += delivered, -= returned
    PAYMENT       balance -= total               -
    BUYBACK       balance -= total               due -= returned
    RETURN_EMPTY  -                              due -= returned
    ADJUSTMENT    balance -= total               -
    CREDIT_NOTE   balance -= total               -
"""

logger = logging.getLogger(__name__)


# Balance direction per transaction type
_BALANCE_SIGN = {
    TransactionType.SALE: 1,
    TransactionType.PAYMENT: -1,
    TransactionType.BUYBACK: -1,
    TransactionType.RETURN_EMPTY: 0,
    TransactionType.ADJUSTMENT: -1,
    TransactionType.CREDIT_NOTE: -1,
}

# How cylinder lines move the due counters
_DUE_RULE = {
    TransactionType.SALE: "delivered_and_returned",
    TransactionType.PAYMENT: None,
    TransactionType.BUYBACK: "returned_only",
    TransactionType.RETURN_EMPTY: "returned_only",
    TransactionType.ADJUSTMENT: None,
    TransactionType.CREDIT_NOTE: None,
}

for _table_name, _table in (("_BALANCE_SIGN", _BALANCE_SIGN), ("_DUE_RULE", _DUE_RULE)):
    _missing = set(TransactionType) - set(_table)
    if _missing:
        raise RuntimeError(f"{_table_name} has no rule for: {sorted(t.value for t in _missing)}")


@dataclass(frozen=True)
class LedgerLine:
    """The part of a line item the calculator cares about."""
    cylinder_type: Optional[CylinderType]
    quantity: int
    returned: bool = False


@dataclass(frozen=True)
class LedgerDelta:
    balance_cents: int = 0
    due: dict = field(default_factory=dict)  # CylinderType -> signed change

    def inverted(self) -> "LedgerDelta":
        return LedgerDelta(
            balance_cents=-self.balance_cents,
            due={cyl_type: -change for cyl_type, change in self.due.items()},
        )


@dataclass
class LedgerSnapshot:
    balance_cents: int = 0
    due: dict = field(default_factory=lambda: {cyl_type: 0 for cyl_type in CylinderType})

    @classmethod
    def from_customer(cls, customer: Customer) -> "LedgerSnapshot":
        return cls(
            balance_cents=customer.ledger_balance_cents or 0,
            due={cyl_type: getattr(customer, field_name) or 0 for cyl_type, field_name in DUE_COUNTER_FIELDS.items()},
        )

    def apply(self, delta: LedgerDelta) -> "LedgerSnapshot":
        """Return a new snapshot with the delta applied and counters clamped at 0."""
        due = dict(self.due)
        for cyl_type, change in delta.due.items():
            due[cyl_type] = max(0, due.get(cyl_type, 0) + change)
        return LedgerSnapshot(balance_cents=self.balance_cents + delta.balance_cents, due=due)

    def change_from(self, before: "LedgerSnapshot") -> LedgerDelta:
        """The delta that actually took `before` to this snapshot."""
        return LedgerDelta(
            balance_cents=self.balance_cents - before.balance_cents,
            due={cyl_type: count - before.due.get(cyl_type, 0) for cyl_type, count in self.due.items()},
        )

    def to_dict(self) -> dict:
        return {
            "ledger_balance_cents": self.balance_cents,
            **{DUE_COUNTER_FIELDS[cyl_type]: count for cyl_type, count in self.due.items()},
        }


# =============================================================================
# PURE CALCULATIONS
# =============================================================================

def compute_delta(transaction_type, ledger_amount_cents: int, lines: Iterable[LedgerLine]) -> LedgerDelta:
    """
    Forward effect of one transaction on a customer's ledger.

    ledger_amount_cents is the unsigned amount the transaction carries on
    the ledger (the unpaid part of a SALE, the total otherwise).
    """
    transaction_type = parse_transaction_type(transaction_type)
    balance = _BALANCE_SIGN[transaction_type] * int(ledger_amount_cents or 0)

    due: dict = {}
    rule = _DUE_RULE[transaction_type]
    if rule is not None:
        for line in lines:
            if line.cylinder_type is None or line.quantity <= 0:
                continue
            if rule == "delivered_and_returned" and not line.returned:
                change = line.quantity
            else:
                change = -line.quantity
            due[line.cylinder_type] = due.get(line.cylinder_type, 0) + change

    return LedgerDelta(balance_cents=balance, due=due)


def compute_buyback_price(
    original_sold_price_cents: int,
    cylinder_type,
    remaining_kg: float,
    quantity: int,
    rate: float = BUYBACK_RATE,
) -> tuple[int, int]:
    """
    Buyback price for partially used cylinders.

    per_item = original_sold_price * (remaining_kg / capacity) * rate,
    rounded half-up to the cent; total = per_item * quantity.
    """
    cylinder_type = parse_cylinder_type(cylinder_type)
    capacity = Decimal(str(CYLINDER_CAPACITY_KG[cylinder_type]))
    remaining = Decimal(str(remaining_kg))
    if remaining > capacity:
        raise ValidationError(
            f"remaining_kg {remaining_kg} exceeds {cylinder_type.value} capacity of {capacity}kg"
        )

    per_item = Decimal(original_sold_price_cents) * (remaining / capacity) * Decimal(str(rate))
    per_item_cents = int(per_item.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return per_item_cents, per_item_cents * quantity


def compute_sale_settlement(total_cents: int, paid_cents: Optional[int]) -> tuple[Optional[int], Optional[int], Optional[str]]:
    """
    (paid, unpaid, payment_status) for a SALE. All None when no payment
    information was supplied, in which case the full total goes on ledger.
    """
    if paid_cents is None:
        return None, None, None
    unpaid = max(0, total_cents - paid_cents)
    if paid_cents <= 0:
        status = PaymentStatus.UNPAID.value
    elif paid_cents >= total_cents:
        status = PaymentStatus.FULLY_PAID.value
    else:
        status = PaymentStatus.PARTIAL.value
    return paid_cents, unpaid, status


def lines_for_transaction(transaction: Transaction) -> list[LedgerLine]:
    lines = []
    for item in transaction.items:
        cyl_type = parse_cylinder_type(item.cylinder_type) if item.cylinder_type else None
        lines.append(LedgerLine(cylinder_type=cyl_type, quantity=item.quantity or 0, returned=item.is_returned_cylinder))
    return lines


def transaction_delta(transaction: Transaction) -> LedgerDelta:
    return compute_delta(transaction.transaction_type, transaction.ledger_amount_cents(), lines_for_transaction(transaction))


def recorded_delta(transaction: Transaction) -> LedgerDelta:
    """
    The change this transaction actually made to the customer when it was
    recorded. Balance never clamps, so it is recomputed; due changes come
    from the header. Rows without stored changes fall back to the computed
    delta.
    """
    computed = transaction_delta(transaction)
    stored = {cyl_type: getattr(transaction, field_name) for cyl_type, field_name in DUE_CHANGE_FIELDS.items()}
    if any(change is None for change in stored.values()):
        return computed
    return LedgerDelta(balance_cents=computed.balance_cents, due=stored)


# =============================================================================
# CUSTOMER WRITES (caller owns the DB transaction)
# =============================================================================

def apply_delta_to_customer(customer: Customer, delta: LedgerDelta, actor_id: int | None = None) -> LedgerDelta:
    """
    Write snapshot(customer).apply(delta) back onto the customer row.

    Returns the change actually applied. It differs from `delta` wherever a
    due counter was clamped at zero.
    """
    before = LedgerSnapshot.from_customer(customer)
    new_state = before.apply(delta)
    customer.ledger_balance_cents = new_state.balance_cents
    for cyl_type, field_name in DUE_COUNTER_FIELDS.items():
        setattr(customer, field_name, new_state.due[cyl_type])
    customer.updated_by = actor_id
    return new_state.change_from(before)


def store_applied_delta(transaction: Transaction, applied: LedgerDelta) -> None:
    for cyl_type, field_name in DUE_CHANGE_FIELDS.items():
        setattr(transaction, field_name, applied.due.get(cyl_type, 0))


# =============================================================================
# PROJECTION / RECONCILIATION
# =============================================================================

_RECORDING_ORDER = (Transaction.transaction_date, Transaction.transaction_time, Transaction.id)


def _customer_or_404(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def replay_customer_ledger(customer_id: int) -> LedgerSnapshot:
    """Fold every non-voided transaction, in (date, time, id) order, from zero."""
    _customer_or_404(customer_id)
    transactions = (
        db.session.query(Transaction)
        .filter_by(customer_id=customer_id, voided=False)
        .order_by(*_RECORDING_ORDER)
        .all()
    )
    state = LedgerSnapshot()
    for txn in transactions:
        state = state.apply(transaction_delta(txn))
    return state


def reconcile_customer_ledger(customer_id: int, *, fix: bool = False, actor_id: int | None = None) -> dict:
    """
    Compare stored balance/due counters with the replayed projection.

    With fix=True the stored values are overwritten by the projection.
    """
    customer = _customer_or_404(customer_id)
    stored = LedgerSnapshot.from_customer(customer).to_dict()
    expected_state = replay_customer_ledger(customer_id)
    expected = expected_state.to_dict()

    differences = {
        key: {"stored": stored[key], "expected": expected[key]}
        for key in expected
        if stored[key] != expected[key]
    }

    if differences and fix:
        customer.ledger_balance_cents = expected_state.balance_cents
        for cyl_type, field_name in DUE_COUNTER_FIELDS.items():
            setattr(customer, field_name, expected_state.due[cyl_type])
        customer.updated_by = actor_id
        db.session.commit()
        logger.warning("Customer %s ledger rewritten from replay: %s", customer_id, differences)

    return {
        "customer_id": customer_id,
        "consistent": not differences,
        "differences": differences,
        "fixed": bool(differences and fix),
    }


def customer_ledger(customer_id: int, include_voided: bool = False) -> dict:
    """
    Statement view: transactions in business order with a running balance.
    Voided rows (when included) do not move the running balance.
    """
    customer = _customer_or_404(customer_id)
    query = db.session.query(Transaction).filter_by(customer_id=customer_id)
    if not include_voided:
        query = query.filter_by(voided=False)

    state = LedgerSnapshot()
    entries = []
    for txn in query.order_by(*_RECORDING_ORDER).all():
        if not txn.voided:
            delta = transaction_delta(txn)
            state = state.apply(delta)
            change = delta.balance_cents
        else:
            change = 0
        entries.append({
            "transaction": txn.to_dict(),
            "balance_change_cents": change,
            "running_balance_cents": state.balance_cents,
        })

    return {
        "customer": customer.to_dict(),
        "entries": entries,
        "closing_balance_cents": state.balance_cents,
    }
