from .customers import Customer, B2CCustomer, B2CCylinderHolding
from .inventory import Cylinder, Product, CustomItem
from .transactions import Transaction, TransactionItem, BillSequence
from .b2c import B2CTransaction, B2CGasItem, B2CSecurityItem, B2CAccessoryItem

__all__ = [
    'Customer', 'B2CCustomer', 'B2CCylinderHolding',
    'Cylinder', 'Product', 'CustomItem',
    'Transaction', 'TransactionItem', 'BillSequence',
    'B2CTransaction', 'B2CGasItem', 'B2CSecurityItem', 'B2CAccessoryItem',
]
