# Overview: Pytest coverage for B2B transaction recording and reversal.

"""
B2B Recorder / Reverser Tests

Every test checks the ledger, the physical inventory and the append-only
log together, since a transaction must move all three or none.
"""

import pytest
from lpgops.extensions import db
from lpgops.models import Cylinder, Product, Transaction, TransactionItem
from lpgops.constants import CylinderType, TransactionType, LOCATION_RETURNED_FROM_CUSTOMER, customer_location
from lpgops.services.ledger_service import customer_ledger, reconcile_customer_ledger
from lpgops.services.transaction_service import (
    get_transaction,
    list_transactions,
    record_transaction,
    reverse_transaction,
)
from lpgops.validation import (
    AlreadyVoidedError,
    InsufficientStockError,
    InventoryReconciliationError,
    NotFoundError,
    ValidationError,
)


DOMESTIC = CylinderType.DOMESTIC_11_8KG.value
STANDARD = CylinderType.STANDARD_15KG.value
COMMERCIAL = CylinderType.COMMERCIAL_45_4KG.value

LEDGER_FIELDS = ("ledger_balance_cents", "domestic_118kg_due", "standard_15kg_due", "commercial_454kg_due")


def record_sale(customer, actor_id, *, delivered=2, empty_returned=0, accessories=None, **kwargs):
    return record_transaction(
        transaction_type="SALE",
        customer_id=customer.id,
        date="2026-10-19",
        time="09:30",
        gas_items=[{
            "cylinder_type": DOMESTIC,
            "delivered": delivered,
            "empty_returned": empty_returned,
            "price_per_item_cents": 5000,
        }],
        accessory_items=accessories or [],
        actor_id=actor_id,
        **kwargs,
    )


def returned_empties(bill_sno):
    return db.session.query(Cylinder).filter_by(returned_via_bill_sno=bill_sno).all()


class TestRecordSale:

    def test_sale_moves_balance_dues_and_stock(self, db_session, customer, regulator, actor_id):
        txn = record_sale(
            customer, actor_id,
            accessories=[{"product_id": regulator.id, "quantity": 1, "price_per_item_cents": 1500}],
        )
        db_session.refresh(customer)
        db_session.refresh(regulator)

        assert txn.bill_sno == "B2B-202610190001"
        assert txn.total_amount_cents == 11500
        assert txn.created_by == actor_id
        assert customer.ledger_balance_cents == 11500
        assert customer.domestic_118kg_due == 2
        assert regulator.stock_quantity == 9
        assert [i.product_name for i in txn.items] == ["Domestic (11.8kg)", "Standard Regulator"]

    def test_sale_with_empty_return_nets_dues(self, db_session, customer, actor_id):
        txn = record_sale(customer, actor_id, delivered=3, empty_returned=1)
        db_session.refresh(customer)

        assert customer.domestic_118kg_due == 2
        assert customer.ledger_balance_cents == 15000

        empty_line = txn.items[1]
        assert empty_line.product_name == "Domestic (11.8kg) (Empty Return)"
        assert empty_line.total_price_cents == 0

        empties = returned_empties(txn.bill_sno)
        assert len(empties) == 1
        assert empties[0].current_status == "EMPTY"
        assert empties[0].location == LOCATION_RETURNED_FROM_CUSTOMER
        assert empties[0].code == f"RET-{txn.bill_sno}-001"

    def test_partial_payment_puts_only_the_unpaid_part_on_ledger(self, db_session, customer, actor_id):
        txn = record_sale(customer, actor_id, paid_amount_cents=4000, payment_method="cash")
        db_session.refresh(customer)

        assert txn.unpaid_amount_cents == 6000
        assert txn.payment_status == "PARTIAL"
        assert txn.payment_method == "CASH"
        assert customer.ledger_balance_cents == 6000

    def test_accessory_resolved_from_custom_items(self, db_session, customer, custom_stove, actor_id):
        txn = record_sale(
            customer, actor_id, delivered=0,
            accessories=[{"product_name": "Stove - Double Burner", "quantity": 2, "price_per_item_cents": 3000}],
        )
        db_session.refresh(custom_stove)

        assert custom_stove.quantity == 2
        assert custom_stove.total_cost_cents == 4000
        assert txn.items[0].product_id is None
        assert (txn.items[0].stock_source, txn.items[0].stock_item_id) == ("custom_item", custom_stove.id)

    def test_unstocked_accessory_records_no_stock_source(self, db_session, customer, actor_id):
        txn = record_sale(
            customer, actor_id, delivered=0,
            accessories=[{"product_name": "Gas Pipe", "quantity": 2, "price_per_item_cents": 800}],
        )

        assert txn.total_amount_cents == 1600
        assert txn.items[0].stock_source is None
        assert txn.items[0].stock_item_id is None

    def test_insufficient_stock_rolls_everything_back(self, db_session, customer, regulator, actor_id):
        with pytest.raises(InsufficientStockError):
            record_sale(
                customer, actor_id,
                accessories=[{"product_id": regulator.id, "quantity": 11, "price_per_item_cents": 1500}],
            )
        db_session.refresh(customer)
        db_session.refresh(regulator)

        assert db_session.query(Transaction).count() == 0
        assert db_session.query(TransactionItem).count() == 0
        assert customer.ledger_balance_cents == 0
        assert customer.domestic_118kg_due == 0
        assert regulator.stock_quantity == 10

    def test_bill_numbers_increment_per_day(self, db_session, customer, actor_id):
        first = record_sale(customer, actor_id)
        second = record_sale(customer, actor_id)
        next_day = record_transaction(
            transaction_type="PAYMENT",
            customer_id=customer.id,
            date="2026-10-20",
            total_amount_cents=100,
            actor_id=actor_id,
        )

        assert first.bill_sno == "B2B-202610190001"
        assert second.bill_sno == "B2B-202610190002"
        assert next_day.bill_sno == "B2B-202610200001"


class TestRecordOtherTypes:

    def test_payment_leaves_dues_alone(self, db_session, customer, actor_id):
        record_sale(customer, actor_id)
        payment = record_transaction(
            transaction_type="PAYMENT",
            customer_id=customer.id,
            date="2026-10-19",
            total_amount_cents=4000,
            payment_method="BANK_TRANSFER",
            payment_reference="TRX-881",
            actor_id=actor_id,
        )
        db_session.refresh(customer)

        assert customer.ledger_balance_cents == 6000
        assert customer.domestic_118kg_due == 2
        assert [(i.product_name, i.total_price_cents) for i in payment.items] == [("Payment", 4000)]

    def test_return_empty_decrements_due_and_creates_one_empty(self, db_session, customer, actor_id):
        record_sale(customer, actor_id, delivered=3)
        before = db_session.query(Cylinder).count()

        txn = record_transaction(
            transaction_type="RETURN_EMPTY",
            customer_id=customer.id,
            date="2026-10-19",
            gas_items=[{"cylinder_type": DOMESTIC, "empty_returned": 1}],
            actor_id=actor_id,
        )
        db_session.refresh(customer)

        assert customer.domestic_118kg_due == 2
        assert customer.ledger_balance_cents == 15000
        assert db_session.query(Cylinder).count() == before + 1
        assert len(returned_empties(txn.bill_sno)) == 1

    def test_buyback_prices_partial_cylinders(self, db_session, customer, actor_id):
        record_transaction(
            transaction_type="SALE",
            customer_id=customer.id,
            date="2026-10-19",
            gas_items=[{"cylinder_type": DOMESTIC, "delivered": 1, "price_per_item_cents": 500000}],
            actor_id=actor_id,
        )
        txn = record_transaction(
            transaction_type="BUYBACK",
            customer_id=customer.id,
            date="2026-10-19",
            gas_items=[{
                "cylinder_type": DOMESTIC,
                "empty_returned": 1,
                "original_sold_price_cents": 500000,
                "remaining_kg": 5,
            }],
            actor_id=actor_id,
        )
        db_session.refresh(customer)

        item = txn.items[0]
        assert item.buyback_total_cents == 127119
        assert item.buyback_rate == 0.6
        assert txn.total_amount_cents == 127119
        assert customer.ledger_balance_cents == 500000 - 127119
        assert customer.domestic_118kg_due == 0

    def test_buyback_rate_cannot_be_raised_by_the_caller(self, db_session, customer, actor_id):
        txn = record_transaction(
            transaction_type="BUYBACK",
            customer_id=customer.id,
            date="2026-10-19",
            gas_items=[{
                "cylinder_type": DOMESTIC,
                "empty_returned": 1,
                "original_sold_price_cents": 500000,
                "remaining_kg": 5,
                "buyback_rate": 1.5,
            }],
            actor_id=actor_id,
        )

        item = txn.items[0]
        assert item.buyback_rate == 0.6
        assert item.buyback_total_cents == 127119
        assert txn.total_amount_cents == 127119

    def test_adjustment_and_credit_note_reduce_balance(self, db_session, customer, actor_id):
        record_sale(customer, actor_id)
        for txn_type in ("ADJUSTMENT", "CREDIT_NOTE"):
            record_transaction(
                transaction_type=txn_type,
                customer_id=customer.id,
                date="2026-10-19",
                total_amount_cents=1000,
                actor_id=actor_id,
            )
        db_session.refresh(customer)

        assert customer.ledger_balance_cents == 8000


class TestRecordValidation:

    @pytest.mark.parametrize("kwargs", [
        {"transaction_type": "REFUND", "gas_items": [{"cylinder_type": DOMESTIC, "delivered": 1}]},
        {"transaction_type": "SALE", "gas_items": [{"cylinder_type": "PROPANE_5KG", "delivered": 1}]},
        {"transaction_type": "SALE", "gas_items": [{"cylinder_type": DOMESTIC, "delivered": 1.5}]},
        {"transaction_type": "SALE", "gas_items": [{"cylinder_type": DOMESTIC, "delivered": -1}]},
        {"transaction_type": "SALE", "gas_items": []},
        {"transaction_type": "PAYMENT"},
        {"transaction_type": "PAYMENT", "total_amount_cents": 100,
         "gas_items": [{"cylinder_type": DOMESTIC, "delivered": 1}]},
        {"transaction_type": "RETURN_EMPTY", "accessory_items": [{"product_name": "Hose", "quantity": 1}]},
        {"transaction_type": "PAYMENT", "total_amount_cents": 100, "paid_amount_cents": 100},
        {"transaction_type": "PAYMENT", "total_amount_cents": 100, "payment_method": "BARTER"},
    ])
    def test_rejected_before_any_write(self, db_session, customer, actor_id, kwargs):
        with pytest.raises(ValidationError):
            record_transaction(customer_id=customer.id, date="2026-10-19", actor_id=actor_id, **kwargs)
        assert db_session.query(Transaction).count() == 0

    def test_bad_date(self, db_session, customer, actor_id):
        with pytest.raises(ValidationError):
            record_transaction(
                transaction_type="PAYMENT", customer_id=customer.id, date="19/10/2026",
                total_amount_cents=100, actor_id=actor_id,
            )

    def test_unknown_customer(self, db_session, actor_id):
        with pytest.raises(NotFoundError):
            record_transaction(
                transaction_type="PAYMENT", customer_id=99999, date="2026-10-19",
                total_amount_cents=100, actor_id=actor_id,
            )


class TestReverse:

    def test_sale_reversal_restores_everything(self, db_session, customer, regulator, actor_id):
        txn = record_sale(
            customer, actor_id,
            accessories=[{"product_id": regulator.id, "quantity": 1, "price_per_item_cents": 1500}],
        )

        outcome = reverse_transaction(txn.id, actor_id=actor_id, reason="Entered twice")
        db_session.refresh(customer)
        db_session.refresh(regulator)

        assert outcome.warnings == []
        assert outcome.transaction.voided is True
        assert outcome.transaction.voided_by == actor_id
        assert outcome.transaction.void_reason == "Entered twice"
        assert customer.ledger_balance_cents == 0
        assert customer.domestic_118kg_due == 0
        assert regulator.stock_quantity == 10

    def test_void_keeps_the_rows(self, db_session, customer, actor_id):
        txn = record_sale(customer, actor_id)
        reverse_transaction(txn.id, actor_id=actor_id)

        kept = get_transaction(txn.id)
        assert kept.voided is True
        assert kept.void_reason == "Transaction reversed by admin"
        assert len(kept.items) == 1
        assert [t.id for t in list_transactions(customer_id=customer.id)] == [txn.id]
        assert list_transactions(customer_id=customer.id, include_voided=False) == []

    def test_double_void_rejected(self, db_session, customer, actor_id):
        txn = record_sale(customer, actor_id)
        reverse_transaction(txn.id, actor_id=actor_id)

        with pytest.raises(AlreadyVoidedError):
            reverse_transaction(txn.id, actor_id=actor_id)

        db_session.refresh(customer)
        assert customer.ledger_balance_cents == 0

    def test_unknown_transaction(self, db_session, actor_id):
        with pytest.raises(NotFoundError):
            reverse_transaction(99999, actor_id=actor_id)

    def test_return_reversal_gives_the_empty_back(self, db_session, customer, actor_id):
        record_sale(customer, actor_id, delivered=3)
        txn = record_transaction(
            transaction_type="RETURN_EMPTY",
            customer_id=customer.id,
            date="2026-10-19",
            gas_items=[{"cylinder_type": DOMESTIC, "empty_returned": 1}],
            actor_id=actor_id,
        )
        cylinder = returned_empties(txn.bill_sno)[0]

        outcome = reverse_transaction(txn.id, actor_id=actor_id)
        db_session.refresh(customer)
        db_session.refresh(cylinder)

        assert outcome.warnings == []
        assert customer.domestic_118kg_due == 3
        assert cylinder.current_status == "WITH_CUSTOMER"
        assert cylinder.held_by_customer_id == customer.id
        assert cylinder.location == customer_location(customer.name)
        assert cylinder.returned_via_bill_sno is None

    def test_missing_empty_becomes_a_warning(self, db_session, customer, actor_id):
        record_sale(customer, actor_id, delivered=2)
        txn = record_transaction(
            transaction_type="RETURN_EMPTY",
            customer_id=customer.id,
            date="2026-10-19",
            gas_items=[{"cylinder_type": DOMESTIC, "empty_returned": 1}],
            actor_id=actor_id,
        )
        cylinder = returned_empties(txn.bill_sno)[0]
        cylinder.current_status = "FULL"
        cylinder.location = "Store - Ready for Sale"
        db_session.commit()

        outcome = reverse_transaction(txn.id, actor_id=actor_id)
        db_session.refresh(customer)

        assert len(outcome.warnings) == 1
        warning = outcome.warnings[0]
        assert (warning.cylinder_type, warning.expected, warning.found) == (DOMESTIC, 1, 0)
        assert outcome.to_dict()["warnings"][0]["expected"] == 1
        assert customer.domestic_118kg_due == 2
        assert get_transaction(txn.id).voided is True

    def test_strict_mode_fails_and_rolls_back(self, app, db_session, customer, actor_id):
        record_sale(customer, actor_id, delivered=2)
        txn = record_transaction(
            transaction_type="RETURN_EMPTY",
            customer_id=customer.id,
            date="2026-10-19",
            gas_items=[{"cylinder_type": DOMESTIC, "empty_returned": 1}],
            actor_id=actor_id,
        )
        cylinder = returned_empties(txn.bill_sno)[0]
        cylinder.current_status = "MAINTENANCE"
        db_session.commit()

        app.config["STRICT_INVENTORY_REVERSAL"] = True
        with pytest.raises(InventoryReconciliationError):
            reverse_transaction(txn.id, actor_id=actor_id)

        db_session.refresh(customer)
        assert get_transaction(txn.id).voided is False
        assert customer.domestic_118kg_due == 1

    def test_buyback_reversal_restores_balance_and_due(self, db_session, customer, actor_id):
        record_sale(customer, actor_id, delivered=2)
        buyback = record_transaction(
            transaction_type="BUYBACK",
            customer_id=customer.id,
            date="2026-10-19",
            gas_items=[{"cylinder_type": DOMESTIC, "empty_returned": 2, "price_per_item_cents": 1000}],
            actor_id=actor_id,
        )
        db_session.refresh(customer)
        assert customer.ledger_balance_cents == 8000
        assert customer.domestic_118kg_due == 0

        outcome = reverse_transaction(buyback.id, actor_id=actor_id)
        db_session.refresh(customer)

        assert outcome.warnings == []
        assert customer.ledger_balance_cents == 10000
        assert customer.domestic_118kg_due == 2

    def test_return_from_zero_due_reverses_to_zero(self, db_session, customer, actor_id):
        """The due counter clamped at zero on recording, so reversal has nothing to give back."""
        txn = record_transaction(
            transaction_type="RETURN_EMPTY",
            customer_id=customer.id,
            date="2026-10-19",
            gas_items=[{"cylinder_type": DOMESTIC, "empty_returned": 1}],
            actor_id=actor_id,
        )
        db_session.refresh(customer)
        assert customer.domestic_118kg_due == 0
        assert txn.domestic_118kg_due_change == 0

        reverse_transaction(txn.id, actor_id=actor_id)
        db_session.refresh(customer)

        assert customer.domestic_118kg_due == 0
        assert reconcile_customer_ledger(customer.id)["consistent"] is True

    def test_sale_returning_more_than_delivered_reverses_to_zero(self, db_session, customer, actor_id):
        txn = record_sale(customer, actor_id, delivered=1, empty_returned=3)
        db_session.refresh(customer)
        assert customer.domestic_118kg_due == 0
        assert txn.to_dict()["domestic_118kg_due_change"] == 0

        reverse_transaction(txn.id, actor_id=actor_id)
        db_session.refresh(customer)

        assert customer.domestic_118kg_due == 0
        assert customer.ledger_balance_cents == 0
        assert reconcile_customer_ledger(customer.id)["consistent"] is True

    def test_unstocked_accessory_is_not_restored(self, db_session, customer, actor_id):
        """Stock registered after the sale was never deducted, so reversal leaves it alone."""
        txn = record_sale(
            customer, actor_id, delivered=0,
            accessories=[{"product_name": "Gas Pipe", "quantity": 2, "price_per_item_cents": 800}],
        )
        pipe = Product(sku="PIPE-1M", name="Gas Pipe", stock_quantity=5, price_cents=800)
        db_session.add(pipe)
        db_session.commit()

        reverse_transaction(txn.id, actor_id=actor_id)
        db_session.refresh(pipe)

        assert pipe.stock_quantity == 5

    def test_accessory_restored_to_the_row_it_came_from(self, db_session, customer, custom_stove, actor_id):
        txn = record_sale(
            customer, actor_id, delivered=0,
            accessories=[{"product_name": "Stove - Double Burner", "quantity": 2, "price_per_item_cents": 3000}],
        )
        # Looking the name up again would now land on the product
        custom_stove.is_active = False
        decoy = Product(sku="STOVE-DB", name="Stove - Double Burner", stock_quantity=1, price_cents=3000)
        db_session.add(decoy)
        db_session.commit()

        reverse_transaction(txn.id, actor_id=actor_id)
        db_session.refresh(custom_stove)
        db_session.refresh(decoy)

        assert custom_stove.quantity == 4
        assert decoy.stock_quantity == 1


# One representative call per transaction type
REVERSIBLE_CASES = {
    "SALE": {
        "gas_items": [
            {"cylinder_type": DOMESTIC, "delivered": 1, "empty_returned": 3, "price_per_item_cents": 5000},
            {"cylinder_type": COMMERCIAL, "delivered": 2, "price_per_item_cents": 9000},
        ],
        "paid_amount_cents": 2000,
    },
    "PAYMENT": {"total_amount_cents": 2500},
    "BUYBACK": {"gas_items": [{"cylinder_type": DOMESTIC, "empty_returned": 2, "price_per_item_cents": 1000}]},
    "RETURN_EMPTY": {"gas_items": [
        {"cylinder_type": DOMESTIC, "empty_returned": 2},
        {"cylinder_type": STANDARD, "empty_returned": 1},
    ]},
    "ADJUSTMENT": {"total_amount_cents": 700},
    "CREDIT_NOTE": {"total_amount_cents": 1200},
}


def ledger_state(customer):
    return {name: getattr(customer, name) for name in LEDGER_FIELDS}


class TestReversalUndoesRecording:
    """Applying a transaction and then voiding it leaves the customer where it started."""

    def test_every_type_has_a_case(self):
        assert set(REVERSIBLE_CASES) == {t.value for t in TransactionType}

    @pytest.mark.parametrize("starting", [
        pytest.param((0, 0, 0, 0), id="nothing-owed"),
        pytest.param((30000, 3, 1, 2), id="owing"),
    ])
    @pytest.mark.parametrize("txn_type", sorted(REVERSIBLE_CASES))
    def test_apply_then_reverse(self, db_session, customer, actor_id, txn_type, starting):
        starting = dict(zip(LEDGER_FIELDS, starting))
        for name, value in starting.items():
            setattr(customer, name, value)
        db_session.commit()

        txn = record_transaction(
            transaction_type=txn_type,
            customer_id=customer.id,
            date="2026-10-19",
            actor_id=actor_id,
            **REVERSIBLE_CASES[txn_type],
        )
        reverse_transaction(txn.id, actor_id=actor_id)
        db_session.refresh(customer)

        assert ledger_state(customer) == starting

    def test_mixed_sequence_with_voids_matches_replay(self, db_session, customer, actor_id):
        def record(txn_type, time, **kwargs):
            return record_transaction(
                transaction_type=txn_type,
                customer_id=customer.id,
                date="2026-10-19",
                time=time,
                actor_id=actor_id,
                **kwargs,
            )

        record("SALE", "08:00", gas_items=[{"cylinder_type": DOMESTIC, "delivered": 3, "price_per_item_cents": 5000}])
        payment = record("PAYMENT", "09:00", total_amount_cents=4000)
        returned = record("RETURN_EMPTY", "10:00", gas_items=[{"cylinder_type": DOMESTIC, "empty_returned": 1}])
        record("BUYBACK", "11:00", gas_items=[{"cylinder_type": DOMESTIC, "empty_returned": 1, "price_per_item_cents": 1000}])
        reverse_transaction(payment.id, actor_id=actor_id)
        record("ADJUSTMENT", "12:00", total_amount_cents=500)
        reverse_transaction(returned.id, actor_id=actor_id)
        record("RETURN_EMPTY", "13:00", gas_items=[{"cylinder_type": COMMERCIAL, "empty_returned": 2}])
        db_session.refresh(customer)

        assert ledger_state(customer) == {
            "ledger_balance_cents": 15000 - 1000 - 500,
            "domestic_118kg_due": 2,
            "standard_15kg_due": 0,
            "commercial_454kg_due": 0,
        }
        assert customer_ledger(customer.id)["closing_balance_cents"] == customer.ledger_balance_cents
        assert reconcile_customer_ledger(customer.id)["consistent"] is True
