from __future__ import annotations

from ..extensions import db
from lpgops.time_utils import to_utc_z


class Cylinder(db.Model):
    """
    Physical cylinder asset.

    HOLDER: held_by_customer_id / held_by_b2c_customer_id name the customer
    currently holding a WITH_CUSTOMER cylinder. `location` stays as display
    text; rows created before the holder columns existed are matched on it.
    A cylinder is WITH_CUSTOMER for at most one customer (checked by
    `flask ledger audit-cylinders`, not enforced at write time).
    """
    __tablename__ = "cylinders"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_cylinders_code"),
        db.Index("ix_cylinders_type_status", "cylinder_type", "current_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    cylinder_type = db.Column(db.String(32), nullable=False)
    capacity_kg = db.Column(db.Float, nullable=False)

    current_status = db.Column(db.String(16), nullable=False, default="FULL", index=True)
    location = db.Column(db.String(255), nullable=True)

    held_by_customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    held_by_b2c_customer_id = db.Column(db.Integer, db.ForeignKey("b2c_customers.id"), nullable=True, index=True)

    # Bill number of the return that emptied or created this row
    returned_via_bill_sno = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Cylinder id={self.id} code={self.code!r} type={self.cylinder_type} status={self.current_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "cylinder_type": self.cylinder_type,
            "capacity_kg": self.capacity_kg,
            "current_status": self.current_status,
            "location": self.location,
            "held_by_customer_id": self.held_by_customer_id,
            "held_by_b2c_customer_id": self.held_by_b2c_customer_id,
            "returned_via_bill_sno": self.returned_via_bill_sno,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """Accessory / equipment stock sold alongside gas."""
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "stock_quantity": self.stock_quantity,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
        }


class CustomItem(db.Model):
    """
    Vendor-purchased accessory stock keyed by category name + item type
    (e.g. name="Regulator", item_type="High Pressure").
    """
    __tablename__ = "custom_items"
    __table_args__ = (
        db.Index("ix_custom_items_name_type", "name", "item_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    item_type = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    cost_per_piece_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "item_type": self.item_type,
            "quantity": self.quantity,
            "cost_per_piece_cents": self.cost_per_piece_cents,
            "total_cost_cents": self.total_cost_cents,
            "is_active": self.is_active,
        }
