"""Cash Movement model - append-only record of cash-affecting events."""
import enum
from sqlalchemy import Column, String, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from mostrador.database import Base, IdType, utcnow


class CashMovementType(enum.Enum):
    """Cash movement kinds."""
    APERTURA = 'APERTURA'  # Shift open
    INGRESO = 'INGRESO'    # Sale proceeds or manual income
    EGRESO = 'EGRESO'      # Manual expense or cancelled sale
    SALIDA = 'SALIDA'      # Refund paid out
    CIERRE = 'CIERRE'      # Shift close


class CashMovementReference(enum.Enum):
    """What the movement points at."""
    CASH_REGISTER = 'CASH_REGISTER'
    SALE = 'SALE'
    REFUND = 'REFUND'
    MANUAL = 'MANUAL'


class CashMovement(Base):
    """Cash Movement (movimiento de caja). Never updated or deleted."""

    __tablename__ = 'cash_movement'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=False)
    cash_register_id = Column(IdType, ForeignKey('cash_register.id'), nullable=True, index=True)
    type = Column(Enum(CashMovementType, name='cash_movement_type'), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(500), nullable=False)
    reference_type = Column(Enum(CashMovementReference, name='cash_movement_ref'), nullable=False,
                            default=CashMovementReference.MANUAL)
    reference_id = Column(IdType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    cash_register = relationship('CashRegister', back_populates='movements')
    user = relationship('AppUser')

    def __repr__(self):
        return f"<CashMovement(id={self.id}, type={self.type.value}, amount={self.amount})>"
