"""Customer model with credit account (cuenta corriente)."""
import enum
from sqlalchemy import Column, String, Text, Numeric, DateTime, ForeignKey, Boolean, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mostrador.database import Base, IdType


class CustomerStatus(enum.Enum):
    """Credit account status."""
    ACTIVE = 'ACTIVE'
    DELINQUENT = 'DELINQUENT'
    INACTIVE = 'INACTIVE'
    BLOCKED = 'BLOCKED'


class Customer(Base):
    """Customer (cliente)."""

    __tablename__ = 'customer'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    tax_id = Column(String(50), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    # Cuenta corriente
    status = Column(Enum(CustomerStatus, name='customer_status'), nullable=False, default=CustomerStatus.ACTIVE)
    credit_limit = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    current_debt = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    last_purchase_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    sales = relationship('Sale', back_populates='customer')
    payments = relationship('CustomerPayment', back_populates='customer', order_by='CustomerPayment.id')

    @property
    def available_credit(self):
        """Credit left before the limit is reached (never negative)."""
        remaining = (self.credit_limit or 0) - (self.current_debt or 0)
        return remaining if remaining > 0 else 0

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}', debt={self.current_debt})>"
