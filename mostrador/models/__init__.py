"""Models package - exports all SQLAlchemy models."""
# SaaS Core Models
from mostrador.models.app_user import AppUser
from mostrador.models.tenant import Tenant
from mostrador.models.user_tenant import UserTenant, UserRole
from mostrador.models.plan import Plan, PlanFeature
from mostrador.models.subscription import Subscription

# Catalog / stock
from mostrador.models.product import Product
from mostrador.models.product_stock import ProductStock
from mostrador.models.product_variant import ProductVariant
from mostrador.models.stock_move import StockMove, StockMoveType, StockReferenceType
from mostrador.models.stock_move_line import StockMoveLine

# Customers / credit accounts
from mostrador.models.customer import Customer, CustomerStatus
from mostrador.models.customer_payment import CustomerPayment, CustomerPaymentKind

# Sales
from mostrador.models.sale import (
    Sale, SaleStatus, DiscountType, PaymentMethod, payment_bucket
)
from mostrador.models.sale_line import SaleLine
from mostrador.models.sale_payment import SalePayment
from mostrador.models.refund import Refund, RefundItem, RefundType

# Cash
from mostrador.models.cash_register import CashRegister, CashRegisterStatus
from mostrador.models.cash_movement import CashMovement, CashMovementType, CashMovementReference

from mostrador.models.audit_log import AuditLog, AuditAction

__all__ = [
    # SaaS Core
    'Tenant', 'AppUser', 'UserTenant', 'UserRole', 'Plan', 'PlanFeature', 'Subscription',
    # Catalog / stock
    'Product', 'ProductStock', 'ProductVariant',
    'StockMove', 'StockMoveType', 'StockReferenceType', 'StockMoveLine',
    # Customers
    'Customer', 'CustomerStatus', 'CustomerPayment', 'CustomerPaymentKind',
    # Sales
    'Sale', 'SaleStatus', 'DiscountType', 'PaymentMethod', 'payment_bucket',
    'SaleLine', 'SalePayment', 'Refund', 'RefundItem', 'RefundType',
    # Cash
    'CashRegister', 'CashRegisterStatus', 'CashMovement', 'CashMovementType', 'CashMovementReference',
    'AuditLog', 'AuditAction',
]
