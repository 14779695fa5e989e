"""Product model."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mostrador.database import Base, IdType


class Product(Base):
    """
    Sellable product.

    A product without variants keeps its quantity in the 1:1 ProductStock row.
    A product with variants delegates quantity tracking to each ProductVariant.
    """

    __tablename__ = 'product'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, index=True)
    sku = Column(String(80), nullable=True)
    barcode = Column(String(80), nullable=True)
    name = Column(String(200), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    sale_price = Column(Numeric(12, 2), nullable=False)
    cost = Column(Numeric(12, 2), nullable=False, default=0, server_default='0.00')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    stock = relationship('ProductStock', uselist=False, back_populates='product', cascade='all, delete-orphan')
    variants = relationship('ProductVariant', back_populates='product', cascade='all, delete-orphan',
                            order_by='ProductVariant.id')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"
