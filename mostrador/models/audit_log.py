"""
Audit Log model for tracking money, stock and shift events.
"""
import enum
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from mostrador.database import Base, IdType, utcnow


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    # Sales
    SALE_CREATED = "SALE_CREATED"
    SALE_CANCELLED = "SALE_CANCELLED"
    REFUND_CREATED = "REFUND_CREATED"

    # Credit accounts
    CUSTOMER_DEBT_CHANGED = "CUSTOMER_DEBT_CHANGED"
    CUSTOMER_STATUS_CHANGED = "CUSTOMER_STATUS_CHANGED"
    CUSTOMER_PAYMENT = "CUSTOMER_PAYMENT"
    CUSTOMER_CREDIT_LIMIT_CHANGED = "CUSTOMER_CREDIT_LIMIT_CHANGED"

    # Cash
    CASH_REGISTER_OPENED = "CASH_REGISTER_OPENED"
    CASH_REGISTER_CLOSED = "CASH_REGISTER_CLOSED"
    CASH_MOVEMENT_CREATED = "CASH_MOVEMENT_CREATED"


class AuditLog(Base):
    """
    Audit log for tracking user actions.
    Multi-tenant: filtered by tenant_id.
    """
    __tablename__ = 'audit_log'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(IdType, ForeignKey('app_user.id'), nullable=False)
    action = Column(SQLEnum(AuditAction, name='audit_action'), nullable=False, index=True)
    resource_type = Column(String(50))  # e.g. 'sale', 'customer', 'cash_register'
    resource_id = Column(IdType)
    details = Column(Text)  # JSON
    ip_address = Column(String(45))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    # Relationships
    tenant = relationship('Tenant')
    user = relationship('AppUser')

    def __repr__(self):
        return f"<AuditLog {self.action.value} by user {self.user_id} at {self.created_at}>"
