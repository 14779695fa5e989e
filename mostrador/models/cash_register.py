"""Cash Register model - one operator's cash shift (turno de caja)."""
import enum
from sqlalchemy import (
    Column, Boolean, Integer, Numeric, Text, DateTime, Enum, ForeignKey, Index, text
)
from sqlalchemy.orm import relationship
from mostrador.database import Base, IdType, utcnow


class CashRegisterStatus(enum.Enum):
    """Shift lifecycle. CLOSED is terminal."""
    OPEN = 'OPEN'
    CLOSED = 'CLOSED'


class CashRegister(Base):
    """
    Cash shift owned by one operator.

    Closing columns stay NULL while the shift is OPEN; they are written
    exactly once by the close action.
    """

    __tablename__ = 'cash_register'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=False, index=True)
    status = Column(Enum(CashRegisterStatus, name='cash_register_status'), nullable=False,
                    default=CashRegisterStatus.OPEN)

    opened_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    opening_amount = Column(Numeric(12, 2), nullable=False)
    opening_notes = Column(Text, nullable=True)

    # Set on close
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closing_amount = Column(Numeric(12, 2), nullable=True)
    expected_amount = Column(Numeric(12, 2), nullable=True)
    difference = Column(Numeric(12, 2), nullable=True)
    total_sales = Column(Numeric(12, 2), nullable=True)
    total_cash = Column(Numeric(12, 2), nullable=True)
    total_card = Column(Numeric(12, 2), nullable=True)
    total_transfer = Column(Numeric(12, 2), nullable=True)
    total_other = Column(Numeric(12, 2), nullable=True)
    total_refunds = Column(Numeric(12, 2), nullable=True)
    gross_sales = Column(Numeric(12, 2), nullable=True)
    net_sales = Column(Numeric(12, 2), nullable=True)
    invoiced_total = Column(Numeric(12, 2), nullable=True)
    non_invoiced_total = Column(Numeric(12, 2), nullable=True)
    sales_count = Column(Integer, nullable=True)
    refunds_count = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    requires_authorization = Column(Boolean, nullable=False, default=False)

    # Relationships
    user = relationship('AppUser')
    sales = relationship('Sale', back_populates='cash_register')
    refunds = relationship('Refund', back_populates='cash_register')
    movements = relationship('CashMovement', back_populates='cash_register', order_by='CashMovement.id')

    __table_args__ = (
        # At most one OPEN shift per operator and tenant
        Index(
            'uq_cash_register_open_per_user', 'tenant_id', 'user_id',
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
    )

    @property
    def is_open(self):
        return self.status == CashRegisterStatus.OPEN

    @property
    def closing_number(self):
        """Human closing number, e.g. CJ-000042."""
        return f"CJ-{self.id:06d}" if self.id else None

    def __repr__(self):
        return f"<CashRegister(id={self.id}, user_id={self.user_id}, status={self.status.value})>"
