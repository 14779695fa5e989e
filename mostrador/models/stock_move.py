"""Stock Move model."""
import enum
from sqlalchemy import Column, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from mostrador.database import Base, IdType, utcnow


class StockMoveType(enum.Enum):
    """Stock move type enum."""
    IN = "IN"
    OUT = "OUT"


class StockReferenceType(enum.Enum):
    """Stock move reference type enum."""
    SALE = "SALE"
    REFUND = "REFUND"
    SALE_CANCEL = "SALE_CANCEL"


class StockMove(Base):
    """Stock Move (movimiento de stock)."""

    __tablename__ = 'stock_move'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    type = Column(Enum(StockMoveType, name='stock_move_type'), nullable=False)
    reference_type = Column(Enum(StockReferenceType, name='stock_ref_type'), nullable=False)
    reference_id = Column(IdType, nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    tenant = relationship('Tenant')
    lines = relationship('StockMoveLine', back_populates='stock_move', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<StockMove(id={self.id}, type={self.type.value}, reference_type={self.reference_type.value})>"
