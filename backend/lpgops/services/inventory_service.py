# Overview: Inventory adjuster; moves cylinders between statuses and adjusts accessory stock.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import and_, case, func, or_

from ..extensions import db
from ..models import B2CCustomer, Customer, CustomItem, Cylinder, Product
from ..constants import (
    CYLINDER_CAPACITY_KG,
    LOCATION_READY_FOR_REFILL,
    LOCATION_READY_FOR_SALE,
    LOCATION_RETURNED_FROM_CUSTOMER,
    RETURNED_EMPTY_LOCATIONS,
    CylinderStatus,
    CylinderType,
    b2c_customer_location,
    customer_location,
    parse_cylinder_type,
)
from ..validation import (
    ConflictError,
    InsufficientStockError,
    ValidationError,
    coerce_int,
    coerce_optional_str,
)
from .concurrency import lock_for_update

"""
Inventory rules

- Movement and stock helpers never commit; callers own the DB transaction.
  Only the registration functions at the bottom commit.
- Cylinder movements are best-effort lookups: functions return how many
  rows they moved and leave shortfall policy to the caller.
- Accessory deductions are strict: insufficient stock raises.
- Accessory stock is resolved in one fixed order (Product by id, CustomItem
  by "Category - Type", Product by name). The line records the row it was
  deducted from; reversal restores that row and nothing else.
"""

logger = logging.getLogger(__name__)

Holder = Union[Customer, B2CCustomer]


# =============================================================================
# CYLINDER HOLDER MATCHING
# =============================================================================

def _holder_filter(holder: Holder):
    """Cylinders held by this customer: explicit FK, or legacy location text."""
    no_holder = and_(Cylinder.held_by_customer_id.is_(None), Cylinder.held_by_b2c_customer_id.is_(None))
    if isinstance(holder, B2CCustomer):
        return or_(
            Cylinder.held_by_b2c_customer_id == holder.id,
            and_(no_holder, Cylinder.location.contains(b2c_customer_location(holder.name))),
        )
    return or_(
        Cylinder.held_by_customer_id == holder.id,
        and_(no_holder, Cylinder.location.contains(holder.name)),
    )


def _assign_to_holder(cylinder: Cylinder, holder: Holder) -> None:
    cylinder.current_status = CylinderStatus.WITH_CUSTOMER.value
    if isinstance(holder, B2CCustomer):
        cylinder.location = b2c_customer_location(holder.name)
        cylinder.held_by_b2c_customer_id = holder.id
        cylinder.held_by_customer_id = None
    else:
        cylinder.location = customer_location(holder.name)
        cylinder.held_by_customer_id = holder.id
        cylinder.held_by_b2c_customer_id = None


def _clear_holder(cylinder: Cylinder, status: CylinderStatus, location: str) -> None:
    cylinder.current_status = status.value
    cylinder.location = location
    cylinder.held_by_customer_id = None
    cylinder.held_by_b2c_customer_id = None


# =============================================================================
# CYLINDER MOVEMENTS
# =============================================================================

def create_returned_cylinders(
    cylinder_type,
    quantity: int,
    *,
    bill_sno: str,
    location: str = LOCATION_RETURNED_FROM_CUSTOMER,
    code_offset: int = 0,
) -> list[Cylinder]:
    """
    Create one EMPTY cylinder row per returned unit.

    Codes are derived from the bill number, which is unique, so concurrent
    returns never collide on Cylinder.code.
    """
    cyl_type = parse_cylinder_type(cylinder_type)
    created = []
    for i in range(quantity):
        cylinder = Cylinder(
            code=f"RET-{bill_sno}-{code_offset + i + 1:03d}",
            cylinder_type=cyl_type.value,
            capacity_kg=CYLINDER_CAPACITY_KG[cyl_type],
            current_status=CylinderStatus.EMPTY.value,
            location=location,
            returned_via_bill_sno=bill_sno,
        )
        db.session.add(cylinder)
        created.append(cylinder)
    db.session.flush()
    return created


def issue_cylinders(cylinder_type, quantity: int, holder: Holder) -> list[Cylinder]:
    """FULL -> WITH_CUSTOMER. Raises InsufficientStockError if stock is short."""
    cyl_type = parse_cylinder_type(cylinder_type)
    available = (
        lock_for_update(
            db.session.query(Cylinder).filter(
                Cylinder.cylinder_type == cyl_type.value,
                Cylinder.current_status == CylinderStatus.FULL.value,
            )
        )
        .order_by(Cylinder.id)
        .limit(quantity)
        .all()
    )
    if len(available) < quantity:
        raise InsufficientStockError(
            f"Insufficient inventory: Only {len(available)} {cyl_type.value} cylinders available, "
            f"but {quantity} requested"
        )
    for cylinder in available:
        _assign_to_holder(cylinder, holder)
    db.session.flush()
    return available


def collect_cylinders(
    cylinder_type, quantity: int, holder: Holder, *, bill_sno: str, code_offset: int = 0
) -> tuple[int, int]:
    """
    WITH_CUSTOMER (held by holder) -> EMPTY at the refill bay. Units the
    customer hands back that we have no record of are created as new rows.

    Returns (updated, created).
    """
    cyl_type = parse_cylinder_type(cylinder_type)
    held = (
        lock_for_update(
            db.session.query(Cylinder).filter(
                Cylinder.cylinder_type == cyl_type.value,
                Cylinder.current_status == CylinderStatus.WITH_CUSTOMER.value,
                _holder_filter(holder),
            )
        )
        .order_by(Cylinder.id)
        .limit(quantity)
        .all()
    )
    for cylinder in held:
        _clear_holder(cylinder, CylinderStatus.EMPTY, LOCATION_READY_FOR_REFILL)
        cylinder.returned_via_bill_sno = bill_sno

    missing = quantity - len(held)
    if missing > 0:
        create_returned_cylinders(
            cyl_type, missing, bill_sno=bill_sno, location=LOCATION_READY_FOR_REFILL, code_offset=code_offset + len(held)
        )
    db.session.flush()
    return len(held), max(0, missing)


def release_cylinders_to_store(cylinder_type, quantity: int, holder: Holder) -> int:
    """
    Reverse an issue: up to `quantity` cylinders held by holder go back to
    FULL at "Store - Ready for Sale". Returns how many were moved.
    """
    cyl_type = parse_cylinder_type(cylinder_type)
    held = (
        lock_for_update(
            db.session.query(Cylinder).filter(
                Cylinder.cylinder_type == cyl_type.value,
                Cylinder.current_status == CylinderStatus.WITH_CUSTOMER.value,
                _holder_filter(holder),
            )
        )
        .order_by(Cylinder.updated_at.desc(), Cylinder.id.desc())
        .limit(quantity)
        .all()
    )
    for cylinder in held:
        _clear_holder(cylinder, CylinderStatus.FULL, LOCATION_READY_FOR_SALE)
    db.session.flush()
    return len(held)


def restore_returned_cylinders(cylinder_type, quantity: int, holder: Holder, *, bill_sno: Optional[str] = None) -> int:
    """
    Reverse a return: up to `quantity` EMPTY cylinders go back to the
    customer. Rows emptied/created by `bill_sno` are taken first.
    Returns how many were moved.
    """
    cyl_type = parse_cylinder_type(cylinder_type)
    query = db.session.query(Cylinder).filter(
        Cylinder.cylinder_type == cyl_type.value,
        Cylinder.current_status == CylinderStatus.EMPTY.value,
        Cylinder.location.in_(RETURNED_EMPTY_LOCATIONS),
    )
    if bill_sno:
        order = [case((Cylinder.returned_via_bill_sno == bill_sno, 0), else_=1), Cylinder.id.desc()]
    else:
        order = [Cylinder.updated_at.desc(), Cylinder.id.desc()]

    empties = lock_for_update(query).order_by(*order).limit(quantity).all()
    for cylinder in empties:
        _assign_to_holder(cylinder, holder)
        cylinder.returned_via_bill_sno = None
    db.session.flush()
    return len(empties)


def cylinder_counts() -> dict:
    """{cylinder_type: {status: count}} across the whole fleet."""
    rows = (
        db.session.query(Cylinder.cylinder_type, Cylinder.current_status, func.count(Cylinder.id))
        .group_by(Cylinder.cylinder_type, Cylinder.current_status)
        .all()
    )
    counts = {cyl_type.value: {status.value: 0 for status in CylinderStatus} for cyl_type in CylinderType}
    for cyl_type, status, count in rows:
        counts.setdefault(cyl_type, {})[status] = count
    return counts


def cylinders_held_by(holder: Holder) -> dict:
    """{cylinder_type: count} of WITH_CUSTOMER cylinders held by holder."""
    rows = (
        db.session.query(Cylinder.cylinder_type, func.count(Cylinder.id))
        .filter(
            Cylinder.current_status == CylinderStatus.WITH_CUSTOMER.value,
            _holder_filter(holder),
        )
        .group_by(Cylinder.cylinder_type)
        .all()
    )
    return {cyl_type: count for cyl_type, count in rows}


def audit_cylinder_holdings() -> list[dict]:
    """
    Report cylinders whose holder bookkeeping is inconsistent:
    - WITH_CUSTOMER with no holder reference
    - any other status still referencing a holder
    - held by both a B2B and a B2C customer
    - location text naming someone other than the holder
    """
    problems = []
    for cylinder in db.session.query(Cylinder).order_by(Cylinder.id).all():
        with_customer = cylinder.current_status == CylinderStatus.WITH_CUSTOMER.value
        has_b2b = cylinder.held_by_customer_id is not None
        has_b2c = cylinder.held_by_b2c_customer_id is not None

        if has_b2b and has_b2c:
            problem = "held by two customers"
        elif with_customer and not (has_b2b or has_b2c):
            problem = "WITH_CUSTOMER without holder"
        elif not with_customer and (has_b2b or has_b2c):
            problem = f"{cylinder.current_status} but still has holder"
        elif has_b2b:
            holder = db.session.get(Customer, cylinder.held_by_customer_id)
            expected = customer_location(holder.name if holder else None)
            problem = None if cylinder.location == expected else f"location {cylinder.location!r} != {expected!r}"
        elif has_b2c:
            holder = db.session.get(B2CCustomer, cylinder.held_by_b2c_customer_id)
            expected = b2c_customer_location(holder.name if holder else None)
            problem = None if cylinder.location == expected else f"location {cylinder.location!r} != {expected!r}"
        else:
            problem = None

        if problem:
            problems.append({"cylinder": cylinder.to_dict(), "problem": problem})
    return problems


# =============================================================================
# ACCESSORY STOCK
# =============================================================================

@dataclass(frozen=True)
class StockRef:
    kind: str  # "product" or "custom_item"
    row: Union[Product, CustomItem]

    @property
    def on_hand(self) -> int:
        if self.kind == "product":
            return self.row.stock_quantity or 0
        return self.row.quantity or 0


def split_accessory_name(name: str) -> tuple[str, str]:
    """"Regulator - High Pressure" -> ("Regulator", "High Pressure")."""
    parts = [p.strip() for p in (name or "").split(" - ", 1)]
    category = parts[0] if parts else ""
    item_type = parts[1] if len(parts) > 1 and parts[1] else category
    return category, item_type


def resolve_accessory_stock(product_id: Optional[int], name: Optional[str]) -> Optional[StockRef]:
    if product_id:
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product:
            return StockRef("product", product)

    if not name:
        return None

    category, item_type = split_accessory_name(name)
    custom_item = lock_for_update(
        db.session.query(CustomItem).filter_by(name=category, item_type=item_type, is_active=True)
    ).first()
    if custom_item:
        return StockRef("custom_item", custom_item)

    for candidate in (name, category):
        if not candidate:
            continue
        product = (
            lock_for_update(db.session.query(Product).filter(Product.name.ilike(f"%{candidate}%")))
            .order_by(Product.id)
            .first()
        )
        if product:
            return StockRef("product", product)
    return None


def _set_stock(ref: StockRef, new_quantity: int) -> None:
    if ref.kind == "product":
        ref.row.stock_quantity = new_quantity
    else:
        ref.row.quantity = new_quantity
        ref.row.total_cost_cents = new_quantity * (ref.row.cost_per_piece_cents or 0)


def deduct_accessory_stock(product_id: Optional[int], name: Optional[str], quantity: int) -> Optional[StockRef]:
    """
    Decrement stock for a sold accessory. Returns the row used, or None when
    no stock row matches (logged, not fatal).
    """
    ref = resolve_accessory_stock(product_id, name)
    if ref is None:
        logger.warning("No inventory row for accessory %r (product_id=%s); stock not deducted", name, product_id)
        return None
    if ref.on_hand < quantity:
        raise InsufficientStockError(
            f"Insufficient {name or ref.row.name} inventory: Only {ref.on_hand} available, but {quantity} requested"
        )
    _set_stock(ref, ref.on_hand - quantity)
    db.session.flush()
    return ref


_STOCK_MODELS = {"product": Product, "custom_item": CustomItem}


def restore_accessory_stock(stock_source: Optional[str], stock_item_id: Optional[int], quantity: int) -> Optional[StockRef]:
    """
    Increment stock when a sale is reversed, on the exact row the sale
    deducted from. A line that deducted nothing (no source) restores nothing.
    """
    if stock_source is None or stock_item_id is None:
        return None
    model = _STOCK_MODELS.get(stock_source)
    if model is None:
        raise ValidationError(f"Unknown stock source: {stock_source!r}")
    row = lock_for_update(db.session.query(model).filter_by(id=stock_item_id)).first()
    if row is None:
        logger.warning("Stock row %s %s no longer exists - manual adjustment may be needed", stock_source, stock_item_id)
        return None
    ref = StockRef(stock_source, row)
    _set_stock(ref, ref.on_hand + quantity)
    db.session.flush()
    return ref


# =============================================================================
# STOCK REGISTRATION
# =============================================================================

def add_cylinder(data: dict) -> Cylinder:
    """Register a physical cylinder (FULL at the sale bay unless told otherwise)."""
    code = coerce_optional_str(data.get("code"), max_length=32)
    if not code:
        raise ValidationError("code is required")
    try:
        cyl_type = parse_cylinder_type(data.get("cylinder_type"))
    except ValueError:
        raise ValidationError(f"Invalid cylinder_type: {data.get('cylinder_type')!r}")
    try:
        status = CylinderStatus(str(data.get("current_status") or CylinderStatus.FULL.value).upper())
    except ValueError:
        raise ValidationError(f"Invalid current_status: {data.get('current_status')!r}")
    if status == CylinderStatus.WITH_CUSTOMER:
        raise ValidationError("Cylinders are issued to customers through transactions")

    if db.session.query(Cylinder.id).filter_by(code=code).first():
        raise ConflictError(f"Cylinder code {code} already exists")

    cylinder = Cylinder(
        code=code,
        cylinder_type=cyl_type.value,
        capacity_kg=CYLINDER_CAPACITY_KG[cyl_type],
        current_status=status.value,
        location=coerce_optional_str(data.get("location")) or LOCATION_READY_FOR_SALE,
    )
    db.session.add(cylinder)
    db.session.commit()
    return cylinder


def add_product(data: dict) -> Product:
    sku = coerce_optional_str(data.get("sku"), max_length=64)
    name = coerce_optional_str(data.get("name"))
    if not sku or not name:
        raise ValidationError("sku and name are required")
    if db.session.query(Product.id).filter_by(sku=sku).first():
        raise ConflictError(f"Product SKU {sku} already exists")

    product = Product(
        sku=sku,
        name=name,
        stock_quantity=coerce_int(data.get("stock_quantity"), "stock_quantity", default=0),
        price_cents=coerce_int(data.get("price_cents"), "price_cents", default=0),
    )
    db.session.add(product)
    db.session.commit()
    return product


def add_custom_item(data: dict) -> CustomItem:
    name = coerce_optional_str(data.get("name"))
    item_type = coerce_optional_str(data.get("item_type")) or name
    if not name:
        raise ValidationError("name is required")

    quantity = coerce_int(data.get("quantity"), "quantity", default=0)
    cost = coerce_int(data.get("cost_per_piece_cents"), "cost_per_piece_cents", default=0)
    item = CustomItem(
        name=name,
        item_type=item_type,
        quantity=quantity,
        cost_per_piece_cents=cost,
        total_cost_cents=quantity * cost,
    )
    db.session.add(item)
    db.session.commit()
    return item
