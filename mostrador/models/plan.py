"""
Plan and PlanFeature models.

A plan is a subscription tier; its features are key/value rows that the
plan access gate reads (e.g. ``max_monthly_sales = 500``,
``module_cash = true``).
"""
from decimal import Decimal, InvalidOperation
from sqlalchemy import Column, String, Numeric, Boolean, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mostrador.database import Base, IdType


class Plan(Base):
    """
    Subscription plan definition.

    Relationship: One-to-Many with PlanFeature, One-to-Many with Subscription
    """
    __tablename__ = 'plans'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=False, unique=True)
    description = Column(Text)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    features = relationship('PlanFeature', back_populates='plan', cascade='all, delete-orphan', lazy='joined')
    subscriptions = relationship('Subscription', back_populates='plan')

    def __repr__(self):
        return f'<Plan id={self.id} code={self.code}>'

    def features_dict(self):
        """Active features as ``{feature_key: feature_value}``."""
        return {f.feature_key: f.feature_value for f in self.features if f.is_active}


class PlanFeature(Base):
    """
    Feature/permission associated with a subscription plan.

    Relationship: Many-to-One with Plan
    """
    __tablename__ = 'plan_features'

    id = Column(IdType, primary_key=True, autoincrement=True)
    plan_id = Column(IdType, ForeignKey('plans.id', ondelete='CASCADE'), nullable=False)
    feature_key = Column(String(100), nullable=False)
    feature_value = Column(Text)
    is_active = Column(Boolean, default=True)

    # Relationships
    plan = relationship('Plan', back_populates='features')

    def __repr__(self):
        return f'<PlanFeature plan_id={self.plan_id} key={self.feature_key} value={self.feature_value}>'

    @property
    def numeric_value(self):
        """Get feature value as number (None if not numeric)."""
        try:
            return Decimal(self.feature_value)
        except (InvalidOperation, TypeError):
            return None
