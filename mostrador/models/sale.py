"""Sale model."""
import enum
from sqlalchemy import (
    Column, String, Boolean, Numeric, DateTime, Enum, ForeignKey, Integer, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from mostrador.database import Base, IdType, utcnow


class SaleStatus(enum.Enum):
    """Sale status enum."""
    COMPLETADO = 'COMPLETADO'
    PENDIENTE = 'PENDIENTE'
    ANULADO = 'ANULADO'
    REEMBOLSADO = 'REEMBOLSADO'
    PARCIALMENTE_REEMBOLSADO = 'PARCIALMENTE_REEMBOLSADO'


class DiscountType(enum.Enum):
    """How the sale discount is expressed."""
    PERCENTAGE = 'PERCENTAGE'
    FIXED = 'FIXED'


class PaymentMethod(str, enum.Enum):
    """Payment methods accepted at the counter."""
    EFECTIVO = 'EFECTIVO'
    TARJETA_DEBITO = 'TARJETA_DEBITO'
    TARJETA_CREDITO = 'TARJETA_CREDITO'
    TRANSFERENCIA = 'TRANSFERENCIA'
    QR = 'QR'
    CUENTA_CORRIENTE = 'CUENTA_CORRIENTE'
    MIXTO = 'MIXTO'
    OTRO = 'OTRO'


# Reconciliation buckets
CASH_METHODS = frozenset({'EFECTIVO'})
CARD_METHODS = frozenset({'TARJETA_DEBITO', 'TARJETA_CREDITO'})
TRANSFER_METHODS = frozenset({'TRANSFERENCIA', 'QR'})


def payment_bucket(method):
    """
    Map a payment method to its shift-summary bucket.

    Returns one of 'cash', 'card', 'transfer' or 'other'.
    """
    method = method.value if isinstance(method, PaymentMethod) else (method or '')
    method = method.upper()
    if method in CASH_METHODS:
        return 'cash'
    if method in CARD_METHODS:
        return 'card'
    if method in TRANSFER_METHODS:
        return 'transfer'
    return 'other'


class Sale(Base):
    """Sale (venta confirmada)."""

    __tablename__ = 'sale'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=False)
    ticket_number = Column(Integer, nullable=False)
    datetime = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    subtotal = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_type = Column(Enum(DiscountType, name='discount_type'), nullable=False, default=DiscountType.FIXED)
    total = Column(Numeric(12, 2), nullable=False)

    payment_method = Column(String(20), nullable=False)
    has_mixed_payment = Column(Boolean, nullable=False, default=False)
    status = Column(Enum(SaleStatus, name='sale_status'), nullable=False, default=SaleStatus.COMPLETADO)
    notes = Column(String(500), nullable=True)

    customer_id = Column(IdType, ForeignKey('customer.id'), nullable=True)
    cash_register_id = Column(IdType, ForeignKey('cash_register.id'), nullable=True, index=True)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    cancel_reason = Column(String(500), nullable=True)

    # Relationships
    tenant = relationship('Tenant')
    user = relationship('AppUser', foreign_keys=[user_id])
    customer = relationship('Customer', back_populates='sales')
    cash_register = relationship('CashRegister', back_populates='sales')
    lines = relationship('SaleLine', back_populates='sale', cascade='all, delete-orphan', order_by='SaleLine.id')
    payments = relationship('SalePayment', back_populates='sale', cascade='all, delete-orphan',
                            order_by='SalePayment.id')
    refunds = relationship('Refund', back_populates='sale', order_by='Refund.id')

    __table_args__ = (
        UniqueConstraint('user_id', 'ticket_number', name='uq_sale_user_ticket'),
        Index('ix_sale_tenant_datetime', 'tenant_id', 'datetime'),
    )

    @property
    def is_on_account(self):
        return self.payment_method == PaymentMethod.CUENTA_CORRIENTE.value

    @property
    def refunded_amount(self):
        """Sum of every refund registered against this sale."""
        return sum((r.refund_amount for r in self.refunds), 0)

    def __repr__(self):
        return f"<Sale(id={self.id}, ticket={self.ticket_number}, total={self.total}, status={self.status.value})>"
