# Overview: Pytest coverage for cylinder movements, accessory stock resolution and holder audit.

import pytest
from lpgops.models import Cylinder
from lpgops.constants import (
    CylinderType,
    LOCATION_READY_FOR_REFILL,
    LOCATION_READY_FOR_SALE,
    customer_location,
)
from lpgops.services.inventory_service import (
    audit_cylinder_holdings,
    collect_cylinders,
    cylinder_counts,
    cylinders_held_by,
    deduct_accessory_stock,
    issue_cylinders,
    release_cylinders_to_store,
    resolve_accessory_stock,
    restore_accessory_stock,
    split_accessory_name,
)
from lpgops.validation import InsufficientStockError, ValidationError


COMMERCIAL = CylinderType.COMMERCIAL_45_4KG.value


class TestCylinderMovements:

    def test_issue_then_release(self, db_session, customer, full_cylinders):
        issued = issue_cylinders(COMMERCIAL, 2, customer)
        db_session.commit()

        assert {c.held_by_customer_id for c in issued} == {customer.id}
        assert {c.location for c in issued} == {customer_location(customer.name)}
        assert cylinders_held_by(customer) == {COMMERCIAL: 2}

        assert release_cylinders_to_store(COMMERCIAL, 5, customer) == 2
        db_session.commit()

        assert cylinders_held_by(customer) == {}
        assert cylinder_counts()[COMMERCIAL]["FULL"] == 5

    def test_issue_more_than_stock(self, db_session, customer, full_cylinders):
        with pytest.raises(InsufficientStockError):
            issue_cylinders(COMMERCIAL, 6, customer)

    def test_holders_do_not_leak(self, db_session, customer, other_customer, full_cylinders):
        issue_cylinders(COMMERCIAL, 1, customer)
        db_session.commit()

        assert release_cylinders_to_store(COMMERCIAL, 1, other_customer) == 0

    def test_legacy_location_match(self, db_session, customer):
        """Rows without a holder id are matched on the location text."""
        db_session.add(Cylinder(
            code="OLD-1",
            cylinder_type=COMMERCIAL,
            capacity_kg=45.4,
            current_status="WITH_CUSTOMER",
            location=customer_location(customer.name),
        ))
        db_session.commit()

        assert cylinders_held_by(customer) == {COMMERCIAL: 1}
        updated, created = collect_cylinders(COMMERCIAL, 2, customer, bill_sno="B2B-202610190009")
        db_session.commit()

        assert (updated, created) == (1, 1)
        old = db_session.query(Cylinder).filter_by(code="OLD-1").one()
        assert old.current_status == "EMPTY"
        assert old.location == LOCATION_READY_FOR_REFILL
        assert db_session.query(Cylinder).filter_by(code="RET-B2B-202610190009-002").count() == 1


class TestAccessoryStock:

    def test_split_name(self):
        assert split_accessory_name("Regulator - High Pressure") == ("Regulator", "High Pressure")
        assert split_accessory_name("Hose") == ("Hose", "Hose")

    def test_product_id_wins(self, db_session, regulator, custom_stove):
        ref = resolve_accessory_stock(regulator.id, "Stove - Double Burner")
        assert ref.kind == "product"
        assert ref.row.id == regulator.id

    def test_custom_item_before_product_name(self, db_session, regulator, custom_stove):
        ref = resolve_accessory_stock(None, "Stove - Double Burner")
        assert ref.kind == "custom_item"

    def test_product_name_fallback(self, db_session, regulator):
        ref = resolve_accessory_stock(None, "regulator")
        assert ref.kind == "product"
        assert ref.on_hand == 10

    def test_unmatched_accessory_is_not_fatal(self, db_session):
        assert deduct_accessory_stock(None, "Gas Lighter", 1) is None
        assert restore_accessory_stock(None, None, 1) is None

    def test_deduct_and_restore(self, db_session, regulator):
        ref = deduct_accessory_stock(regulator.id, None, 4)
        restore_accessory_stock(ref.kind, ref.row.id, 1)
        db_session.commit()
        db_session.refresh(regulator)

        assert regulator.stock_quantity == 7

    def test_deduct_beyond_stock(self, db_session, regulator):
        with pytest.raises(InsufficientStockError):
            deduct_accessory_stock(regulator.id, None, 11)

    def test_restore_goes_to_the_recorded_row(self, db_session, regulator, custom_stove):
        ref = restore_accessory_stock("custom_item", custom_stove.id, 2)
        db_session.commit()
        db_session.refresh(custom_stove)
        db_session.refresh(regulator)

        assert ref.row is custom_stove
        assert custom_stove.quantity == 6
        assert custom_stove.total_cost_cents == 12000
        assert regulator.stock_quantity == 10

    def test_restore_to_a_deleted_row_is_not_fatal(self, db_session):
        assert restore_accessory_stock("product", 99999, 1) is None

    def test_restore_unknown_source(self, db_session):
        with pytest.raises(ValidationError):
            restore_accessory_stock("warehouse", 1, 1)


class TestHolderAudit:

    def test_clean_fleet(self, db_session, customer, full_cylinders):
        issue_cylinders(COMMERCIAL, 1, customer)
        db_session.commit()
        assert audit_cylinder_holdings() == []

    def test_problems_reported(self, db_session, customer, b2c_customer, full_cylinders):
        two_holders, stale_holder, wrong_location = full_cylinders[:3]
        two_holders.current_status = "WITH_CUSTOMER"
        two_holders.held_by_customer_id = customer.id
        two_holders.held_by_b2c_customer_id = b2c_customer.id
        stale_holder.held_by_customer_id = customer.id
        wrong_location.current_status = "WITH_CUSTOMER"
        wrong_location.held_by_customer_id = customer.id
        wrong_location.location = LOCATION_READY_FOR_SALE
        db_session.commit()

        problems = {p["cylinder"]["code"]: p["problem"] for p in audit_cylinder_holdings()}

        assert problems[two_holders.code] == "held by two customers"
        assert problems[stale_holder.code] == "FULL but still has holder"
        assert problems[wrong_location.code].startswith("location ")
        assert len(problems) == 3
