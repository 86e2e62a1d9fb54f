from __future__ import annotations

from ..extensions import db
from lpgops.time_utils import to_utc_z


class Transaction(db.Model):
    """
    B2B ledger transaction (one business event).

    APPEND-ONLY: created once by the recorder. The only later mutation is
    void marking by the reverser; voided rows are retained for audit.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("bill_sno", name="uq_transactions_bill_sno"),
        db.Index("ix_transactions_customer_date", "customer_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    bill_sno = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Business time
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    transaction_time = db.Column(db.DateTime(timezone=True), nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)

    # SALE only: amount settled at sale time; the ledger carries the rest
    paid_amount_cents = db.Column(db.Integer, nullable=True)
    unpaid_amount_cents = db.Column(db.Integer, nullable=True)
    payment_status = db.Column(db.String(16), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    # Due counter change actually applied at recording time, after clamping
    # at zero. Reversal undoes these; null on rows that predate them.
    domestic_118kg_due_change = db.Column(db.Integer, nullable=True)
    standard_15kg_due_change = db.Column(db.Integer, nullable=True)
    commercial_454kg_due_change = db.Column(db.Integer, nullable=True)

    payment_reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Void audit trail
    voided = db.Column(db.Boolean, nullable=False, default=False, index=True)
    voided_by = db.Column(db.Integer, nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("transactions", lazy=True))
    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        order_by="TransactionItem.id",
    )

    def ledger_amount_cents(self) -> int:
        """Amount this transaction moved the ledger balance by (unsigned)."""
        if self.unpaid_amount_cents is not None:
            return self.unpaid_amount_cents
        return self.total_amount_cents

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "transaction_type": self.transaction_type,
            "bill_sno": self.bill_sno,
            "customer_id": self.customer_id,
            "date": to_utc_z(self.transaction_date),
            "time": to_utc_z(self.transaction_time),
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "unpaid_amount_cents": self.unpaid_amount_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "voided": self.voided,
            "voided_by": self.voided_by,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "domestic_118kg_due_change": self.domestic_118kg_due_change,
            "standard_15kg_due_change": self.standard_15kg_due_change,
            "commercial_454kg_due_change": self.commercial_454kg_due_change,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransactionItem(db.Model):
    """
    One line of a B2B transaction.

    total_price_cents == quantity * price_per_item_cents at creation, except
    buyback lines where it equals buyback_total_cents. Never recomputed.
    """
    __tablename__ = "transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)

    # Null for accessory lines
    cylinder_type = db.Column(db.String(32), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_per_item_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False)

    # "EMPTY" marks a cylinder returned by the customer on this line
    returned_condition = db.Column(db.String(16), nullable=True)

    # Buyback only
    remaining_kg = db.Column(db.Float, nullable=True)
    original_sold_price_cents = db.Column(db.Integer, nullable=True)
    buyback_rate = db.Column(db.Float, nullable=True)
    buyback_price_per_item_cents = db.Column(db.Integer, nullable=True)
    buyback_total_cents = db.Column(db.Integer, nullable=True)

    # Accessory lines: the stock row this line was deducted from, if any
    stock_source = db.Column(db.String(16), nullable=True)
    stock_item_id = db.Column(db.Integer, nullable=True)

    product = db.relationship("Product")

    @property
    def is_returned_cylinder(self) -> bool:
        return self.cylinder_type is not None and self.returned_condition == "EMPTY"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "cylinder_type": self.cylinder_type,
            "quantity": self.quantity,
            "price_per_item_cents": self.price_per_item_cents,
            "total_price_cents": self.total_price_cents,
            "returned_condition": self.returned_condition,
            "remaining_kg": self.remaining_kg,
            "original_sold_price_cents": self.original_sold_price_cents,
            "buyback_rate": self.buyback_rate,
            "buyback_price_per_item_cents": self.buyback_price_per_item_cents,
            "buyback_total_cents": self.buyback_total_cents,
            "stock_source": self.stock_source,
            "stock_item_id": self.stock_item_id,
        }


class BillSequence(db.Model):
    """
    Atomic per-day bill counters, one row per (series, calendar day).

    WHY: Bill numbers must be unique without retry-on-collision; the
    increment-or-create is a single atomic upsert on this row.
    """
    __tablename__ = "bill_sequences"
    __table_args__ = (
        db.UniqueConstraint("series", "sequence_date", name="uq_bill_sequences_series_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    series = db.Column(db.String(16), nullable=False)
    sequence_date = db.Column(db.Date, nullable=False, index=True)
    last_number = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "series": self.series,
            "sequence_date": self.sequence_date.isoformat() if self.sequence_date else None,
            "last_number": self.last_number,
            "updated_at": to_utc_z(self.updated_at),
        }
