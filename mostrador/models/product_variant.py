"""Product Variant model (talle, color, presentación)."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mostrador.database import Base, IdType


class ProductVariant(Base):
    """Variant of a product with its own quantity on hand."""

    __tablename__ = 'product_variant'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, index=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    sku = Column(String(80), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    sale_price = Column(Numeric(12, 2), nullable=True)  # NULL = product price
    stock_qty = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    product = relationship('Product', back_populates='variants')

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, product_id={self.product_id}, stock_qty={self.stock_qty})>"
