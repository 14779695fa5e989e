"""Stock Move Line model."""
from sqlalchemy import Column, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from mostrador.database import Base, IdType


class StockMoveLine(Base):
    """Stock Move Line (detalle de movimiento de stock)."""

    __tablename__ = 'stock_move_line'

    id = Column(IdType, primary_key=True, autoincrement=True)
    stock_move_id = Column(IdType, ForeignKey('stock_move.id'), nullable=False, index=True)
    product_id = Column(IdType, ForeignKey('product.id'), nullable=False)
    variant_id = Column(IdType, ForeignKey('product_variant.id'), nullable=True)
    qty = Column(Numeric(12, 2), nullable=False)
    unit_cost = Column(Numeric(12, 2), nullable=True)

    # Relationships
    stock_move = relationship('StockMove', back_populates='lines')
    product = relationship('Product')

    def __repr__(self):
        return f"<StockMoveLine(id={self.id}, product_id={self.product_id}, qty={self.qty})>"
