# Overview: Closed vocabularies shared by models and services.

from __future__ import annotations

from enum import Enum


class TransactionType(str, Enum):
    SALE = "SALE"
    PAYMENT = "PAYMENT"
    BUYBACK = "BUYBACK"
    RETURN_EMPTY = "RETURN_EMPTY"
    ADJUSTMENT = "ADJUSTMENT"
    CREDIT_NOTE = "CREDIT_NOTE"


class CylinderType(str, Enum):
    DOMESTIC_11_8KG = "DOMESTIC_11_8KG"
    STANDARD_15KG = "STANDARD_15KG"
    COMMERCIAL_45_4KG = "COMMERCIAL_45_4KG"


class CylinderStatus(str, Enum):
    FULL = "FULL"
    EMPTY = "EMPTY"
    WITH_CUSTOMER = "WITH_CUSTOMER"
    MAINTENANCE = "MAINTENANCE"
    RETIRED = "RETIRED"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    FULLY_PAID = "FULLY_PAID"


PAYMENT_METHODS = ("CASH", "CARD", "BANK_TRANSFER", "CHEQUE", "CREDIT")

# Nominal gas capacity per cylinder type, in kg
CYLINDER_CAPACITY_KG = {
    CylinderType.DOMESTIC_11_8KG: 11.8,
    CylinderType.STANDARD_15KG: 15.0,
    CylinderType.COMMERCIAL_45_4KG: 45.4,
}

# B2B customer column holding the due counter for each type
DUE_COUNTER_FIELDS = {
    CylinderType.DOMESTIC_11_8KG: "domestic_118kg_due",
    CylinderType.STANDARD_15KG: "standard_15kg_due",
    CylinderType.COMMERCIAL_45_4KG: "commercial_454kg_due",
}

# Transaction column holding the due change applied at recording time
DUE_CHANGE_FIELDS = {
    CylinderType.DOMESTIC_11_8KG: "domestic_118kg_due_change",
    CylinderType.STANDARD_15KG: "standard_15kg_due_change",
    CylinderType.COMMERCIAL_45_4KG: "commercial_454kg_due_change",
}

CYLINDER_DISPLAY_NAMES = {
    CylinderType.DOMESTIC_11_8KG: "Domestic (11.8kg)",
    CylinderType.STANDARD_15KG: "Standard (15kg)",
    CylinderType.COMMERCIAL_45_4KG: "Commercial (45.4kg)",
}

BUYBACK_RATE = 0.6
SECURITY_RETURN_DEDUCTION_RATE = 0.25

# Cylinder locations written by the ledger engine
LOCATION_READY_FOR_SALE = "Store - Ready for Sale"
LOCATION_READY_FOR_REFILL = "Store - Ready for Refill"
LOCATION_RETURNED_FROM_CUSTOMER = "Returned from Customer"
RETURNED_EMPTY_LOCATIONS = (LOCATION_RETURNED_FROM_CUSTOMER, LOCATION_READY_FOR_REFILL)

RETURNED_CONDITION_EMPTY = "EMPTY"
DEFAULT_VOID_REASON = "Transaction reversed by admin"


def customer_location(name: str | None) -> str:
    return f"Customer: {name or 'Unknown'}"


def b2c_customer_location(name: str | None) -> str:
    return f"B2C Customer: {name or 'B2C Customer'}"


def parse_cylinder_type(value) -> CylinderType:
    """Raises ValueError for anything outside the closed set."""
    if isinstance(value, CylinderType):
        return value
    return CylinderType(str(value).strip().upper())


def parse_transaction_type(value) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    return TransactionType(str(value).strip().upper())
