from .catalog import Category, Product
from .inventory import InventoryLedgerEntry, Supplier, Purchase, PurchaseItem
from .sales import DiningTable, Order, OrderItem, Payment, DaySession
from .customers import Customer, CreditTransaction
from .expenses import Expense

__all__ = [
    'Category', 'Product',
    'InventoryLedgerEntry', 'Supplier', 'Purchase', 'PurchaseItem',
    'DiningTable', 'Order', 'OrderItem', 'Payment', 'DaySession',
    'Customer', 'CreditTransaction',
    'Expense',
]
