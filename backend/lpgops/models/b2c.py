from __future__ import annotations

from ..extensions import db
from lpgops.time_utils import to_utc_z


class B2CTransaction(db.Model):
    """
    B2C sale document: gas refills, security deposits/returns and
    accessories in one bill. Same append-only / void-only rules as B2B.
    """
    __tablename__ = "b2c_transactions"
    __table_args__ = (
        db.UniqueConstraint("bill_sno", name="uq_b2c_transactions_bill_sno"),
        db.Index("ix_b2c_transactions_customer_date", "customer_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bill_sno = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("b2c_customers.id"), nullable=False, index=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    transaction_time = db.Column(db.DateTime(timezone=True), nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    delivery_charges_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    actual_profit_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=False, default="CASH")

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    voided = db.Column(db.Boolean, nullable=False, default=False, index=True)
    voided_by = db.Column(db.Integer, nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    customer = db.relationship("B2CCustomer", backref=db.backref("transactions", lazy=True))
    gas_items = db.relationship("B2CGasItem", backref="transaction", lazy=True, order_by="B2CGasItem.id")
    security_items = db.relationship("B2CSecurityItem", backref="transaction", lazy=True, order_by="B2CSecurityItem.id")
    accessory_items = db.relationship("B2CAccessoryItem", backref="transaction", lazy=True, order_by="B2CAccessoryItem.id")

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "bill_sno": self.bill_sno,
            "customer_id": self.customer_id,
            "date": to_utc_z(self.transaction_date),
            "time": to_utc_z(self.transaction_time),
            "total_amount_cents": self.total_amount_cents,
            "delivery_charges_cents": self.delivery_charges_cents,
            "delivery_cost_cents": self.delivery_cost_cents,
            "final_amount_cents": self.final_amount_cents,
            "total_cost_cents": self.total_cost_cents,
            "actual_profit_cents": self.actual_profit_cents,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "voided": self.voided,
            "voided_by": self.voided_by,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
        }
        if include_items:
            data["gas_items"] = [item.to_dict() for item in self.gas_items]
            data["security_items"] = [item.to_dict() for item in self.security_items]
            data["accessory_items"] = [item.to_dict() for item in self.accessory_items]
        return data


class B2CGasItem(db.Model):
    """Gas refill line (no physical cylinder movement)."""
    __tablename__ = "b2c_gas_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("b2c_transactions.id"), nullable=False, index=True)
    cylinder_type = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price_per_item_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_margin_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "cylinder_type": self.cylinder_type,
            "quantity": self.quantity,
            "price_per_item_cents": self.price_per_item_cents,
            "total_price_cents": self.total_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "total_cost_cents": self.total_cost_cents,
            "profit_margin_cents": self.profit_margin_cents,
        }


class B2CSecurityItem(db.Model):
    """
    Security deposit (is_return=False) or security refund (is_return=True).
    Refund lines carry the price actually paid back, i.e. 75% of the deposit.
    """
    __tablename__ = "b2c_security_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("b2c_transactions.id"), nullable=False, index=True)
    cylinder_type = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price_per_item_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    is_return = db.Column(db.Boolean, nullable=False, default=False)
    deduction_rate = db.Column(db.Float, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "cylinder_type": self.cylinder_type,
            "quantity": self.quantity,
            "price_per_item_cents": self.price_per_item_cents,
            "total_price_cents": self.total_price_cents,
            "is_return": self.is_return,
            "deduction_rate": self.deduction_rate,
        }


class B2CAccessoryItem(db.Model):
    __tablename__ = "b2c_accessory_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("b2c_transactions.id"), nullable=False, index=True)
    item_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price_per_item_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_margin_cents = db.Column(db.Integer, nullable=False, default=0)
    # The stock row this line was deducted from, if any
    stock_source = db.Column(db.String(16), nullable=True)
    stock_item_id = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "price_per_item_cents": self.price_per_item_cents,
            "total_price_cents": self.total_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "total_cost_cents": self.total_cost_cents,
            "profit_margin_cents": self.profit_margin_cents,
            "stock_source": self.stock_source,
            "stock_item_id": self.stock_item_id,
        }
