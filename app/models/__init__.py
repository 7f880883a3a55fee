"""Models package - exports all SQLAlchemy models."""
from app.models.tenant import Tenant, new_tenant_id
from app.models.warehouse import Warehouse
from app.models.product import Product
from app.models.product_component import ProductComponent
from app.models.warehouse_stock import WarehouseStock
from app.models.cash_register import CashRegister, CashRegisterStatus
from app.models.cash_transaction import (
    CashTransaction, CashTransactionType, POSITIVE_TYPES, NEGATIVE_TYPES,
    sale_reference, cancel_reference
)
from app.models.sale import Sale, SaleStatus
from app.models.sale_item import SaleItem
from app.models.sale_payment import SalePayment, PaymentMethod, normalize_payment_method
from app.models.audit_log import AuditLog, AuditAction

__all__ = [
    'Tenant', 'new_tenant_id', 'Warehouse',
    # Inventory
    'Product', 'ProductComponent', 'WarehouseStock',
    # Cash
    'CashRegister', 'CashRegisterStatus',
    'CashTransaction', 'CashTransactionType', 'POSITIVE_TYPES', 'NEGATIVE_TYPES',
    'sale_reference', 'cancel_reference',
    # Sales
    'Sale', 'SaleStatus', 'SaleItem', 'SalePayment', 'PaymentMethod', 'normalize_payment_method',
    'AuditLog', 'AuditAction',
]
