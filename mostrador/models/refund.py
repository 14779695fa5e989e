"""Refund models (devoluciones)."""
import enum
from sqlalchemy import Column, String, Text, Boolean, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from mostrador.database import Base, IdType, utcnow


class RefundType(enum.Enum):
    TOTAL = 'TOTAL'
    PARCIAL = 'PARCIAL'


class Refund(Base):
    """Refund of a committed sale, total or partial."""

    __tablename__ = 'refund'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, index=True)
    sale_id = Column(IdType, ForeignKey('sale.id'), nullable=False, index=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=False)
    cash_register_id = Column(IdType, ForeignKey('cash_register.id'), nullable=True, index=True)
    type = Column(Enum(RefundType, name='refund_type'), nullable=False)
    reason = Column(String(255), nullable=False)
    refund_amount = Column(Numeric(12, 2), nullable=False)
    refund_method = Column(String(20), nullable=False)  # Money label used by shift summaries
    restock_items = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    sale = relationship('Sale', back_populates='refunds')
    user = relationship('AppUser')
    cash_register = relationship('CashRegister', back_populates='refunds')
    items = relationship('RefundItem', back_populates='refund', cascade='all, delete-orphan',
                         order_by='RefundItem.id')

    def __repr__(self):
        return f"<Refund(id={self.id}, sale_id={self.sale_id}, amount={self.refund_amount})>"


class RefundItem(Base):
    """Line of a refund, pointing at the sale line being returned."""

    __tablename__ = 'refund_item'

    id = Column(IdType, primary_key=True, autoincrement=True)
    refund_id = Column(IdType, ForeignKey('refund.id', ondelete='CASCADE'), nullable=False, index=True)
    sale_line_id = Column(IdType, ForeignKey('sale_line.id'), nullable=False, index=True)
    product_id = Column(IdType, ForeignKey('product.id'), nullable=False)
    variant_id = Column(IdType, ForeignKey('product_variant.id'), nullable=True)
    qty = Column(Numeric(12, 2), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)

    # Relationships
    refund = relationship('Refund', back_populates='items')
    sale_line = relationship('SaleLine')
    product = relationship('Product')

    def __repr__(self):
        return f"<RefundItem(id={self.id}, sale_line_id={self.sale_line_id}, qty={self.qty})>"
