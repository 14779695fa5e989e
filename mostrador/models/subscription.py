"""
Subscription model - which plan a tenant is on.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship, backref
from sqlalchemy.sql import func
from mostrador.database import Base, IdType


class Subscription(Base):
    """
    Tenant subscription plan and status.

    Relationship: One-to-One with Tenant
    """
    __tablename__ = 'tenant_subscriptions'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('tenant.id', ondelete='CASCADE'), nullable=False, unique=True)
    plan_id = Column(IdType, ForeignKey('plans.id'), nullable=True)
    status = Column(String(20), nullable=False, default='active')
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    # Use backref to avoid circular import in Tenant model
    tenant = relationship('Tenant', backref=backref('subscription', uselist=False))
    plan = relationship('Plan', back_populates='subscriptions')

    __table_args__ = (
        CheckConstraint("status IN ('trial', 'active', 'past_due', 'canceled')", name='check_status'),
    )

    def __repr__(self):
        return f'<Subscription tenant_id={self.tenant_id} plan_id={self.plan_id} status={self.status}>'

    @property
    def is_active(self):
        """Check if subscription is active (trial or paid)."""
        return self.status in ('trial', 'active')
