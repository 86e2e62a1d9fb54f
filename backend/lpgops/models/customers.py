from __future__ import annotations

from ..extensions import db
from lpgops.constants import DUE_COUNTER_FIELDS
from lpgops.time_utils import to_utc_z


class Customer(db.Model):
    """
    B2B customer with a running ledger.

    ledger_balance_cents is signed: positive means the customer owes money.
    The three due counters count cylinders of each type currently out with
    the customer. Only the transaction recorder/reverser writes them.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        db.CheckConstraint("domestic_118kg_due >= 0", name="ck_customers_domestic_due_non_negative"),
        db.CheckConstraint("standard_15kg_due >= 0", name="ck_customers_standard_due_non_negative"),
        db.CheckConstraint("commercial_454kg_due >= 0", name="ck_customers_commercial_due_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_terms_days = db.Column(db.Integer, nullable=False, default=30)

    ledger_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    domestic_118kg_due = db.Column(db.Integer, nullable=False, default=0)
    standard_15kg_due = db.Column(db.Integer, nullable=False, default=0)
    commercial_454kg_due = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    updated_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def due_counters(self) -> dict:
        return {cyl_type.value: getattr(self, field) or 0 for cyl_type, field in DUE_COUNTER_FIELDS.items()}

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} balance_cents={self.ledger_balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "credit_limit_cents": self.credit_limit_cents,
            "payment_terms_days": self.payment_terms_days,
            "ledger_balance_cents": self.ledger_balance_cents,
            "domestic_118kg_due": self.domestic_118kg_due,
            "standard_15kg_due": self.standard_15kg_due,
            "commercial_454kg_due": self.commercial_454kg_due,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class B2CCustomer(db.Model):
    """
    Walk-in / household customer.

    Cylinder possession is not a scalar counter here: it lives in
    B2CCylinderHolding rows, one per security deposit.
    """
    __tablename__ = "b2c_customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    # Cumulative margin earned from this customer
    total_profit_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "total_profit_cents": self.total_profit_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class B2CCylinderHolding(db.Model):
    """
    Customer X holds N cylinders of type T since issue_date.

    Created on a security deposit, flagged returned (never deleted) on a
    security return. Only the reversal of the deposit itself deletes it.
    """
    __tablename__ = "b2c_cylinder_holdings"
    __table_args__ = (
        db.Index("ix_b2c_holdings_customer_type_returned", "customer_id", "cylinder_type", "is_returned"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("b2c_customers.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("b2c_transactions.id"), nullable=True, index=True)

    cylinder_type = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    security_amount_cents = db.Column(db.Integer, nullable=False)
    issue_date = db.Column(db.DateTime(timezone=True), nullable=False)

    is_returned = db.Column(db.Boolean, nullable=False, default=False)
    return_date = db.Column(db.DateTime(timezone=True), nullable=True)
    return_deduction_cents = db.Column(db.Integer, nullable=False, default=0)
    return_transaction_id = db.Column(db.Integer, db.ForeignKey("b2c_transactions.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("B2CCustomer", backref=db.backref("cylinder_holdings", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "transaction_id": self.transaction_id,
            "cylinder_type": self.cylinder_type,
            "quantity": self.quantity,
            "security_amount_cents": self.security_amount_cents,
            "issue_date": to_utc_z(self.issue_date),
            "is_returned": self.is_returned,
            "return_date": to_utc_z(self.return_date) if self.return_date else None,
            "return_deduction_cents": self.return_deduction_cents,
            "return_transaction_id": self.return_transaction_id,
        }
