"""Sale Line model."""
from sqlalchemy import Column, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from mostrador.database import Base, IdType


class SaleLine(Base):
    """Sale Line (detalle de venta)."""

    __tablename__ = 'sale_line'

    id = Column(IdType, primary_key=True, autoincrement=True)
    sale_id = Column(IdType, ForeignKey('sale.id'), nullable=False, index=True)
    product_id = Column(IdType, ForeignKey('product.id'), nullable=False)
    variant_id = Column(IdType, ForeignKey('product_variant.id'), nullable=True)
    qty = Column(Numeric(12, 2), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)

    # Relationships
    sale = relationship('Sale', back_populates='lines')
    product = relationship('Product')
    variant = relationship('ProductVariant')

    def __repr__(self):
        return f"<SaleLine(id={self.id}, product_id={self.product_id}, qty={self.qty})>"
