from .tenancy import Store
from .catalog import Supplier, Product
from .ledger import StockLedgerEntry, LedgerRefType
from .purchasing import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus, QUOTABLE_STATUSES
from .orders import CustomerOrder, CustomerOrderItem, CustomerOrderStatus, PaymentMethod
from .documents import DocumentSequence
from .audit import AuditEvent

__all__ = [
    'Store',
    'Supplier', 'Product',
    'StockLedgerEntry', 'LedgerRefType',
    'PurchaseOrder', 'PurchaseOrderItem', 'PurchaseOrderStatus', 'QUOTABLE_STATUSES',
    'CustomerOrder', 'CustomerOrderItem', 'CustomerOrderStatus', 'PaymentMethod',
    'DocumentSequence',
    'AuditEvent',
]
