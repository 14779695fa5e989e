"""
Plan feature gate (SUBSCRIPTIONS_V1).

Yes/no checks against the tenant's plan, run before the sale core. Features
are read through ``PlanFeatureCache``; a subscription change invalidates the
tenant's entry.
"""
import logging
from datetime import datetime, timezone
from functools import wraps
from typing import Dict, Any, Optional

from flask import current_app, g
from sqlalchemy import func

from mostrador.database import get_session
from mostrador.exceptions import NotFoundError, PlanLimitError
from mostrador.models import Plan, Subscription, Sale, SaleStatus
from mostrador.services.cache_service import get_cache
from mostrador.utils.numeric import to_decimal

logger = logging.getLogger(__name__)

MONTHLY_SALES_FEATURE = 'max_monthly_sales'


def _load_features(session, tenant_id: int) -> Dict[str, Any]:
    subscription = session.query(Subscription).filter(Subscription.tenant_id == tenant_id).first()
    if not subscription or not subscription.plan or not subscription.is_active:
        return {}
    return subscription.plan.features_dict()


def get_plan_features(session, tenant_id: int) -> Dict[str, Any]:
    """Active features of the tenant's plan as ``{key: value}`` (empty without a plan)."""
    return get_cache().memoize(tenant_id, lambda: _load_features(session, tenant_id))


def has_feature(session, tenant_id: int, feature_key: str) -> bool:
    """True if the tenant's plan includes ``feature_key`` with a truthy value."""
    value = get_plan_features(session, tenant_id).get(feature_key)
    if value is None:
        return False
    return str(value).strip().lower() not in ('', '0', 'false', 'no')


def check_limit(session, tenant_id: int, feature_key: str, current: int) -> Dict[str, Any]:
    """
    Check usage against a numeric plan limit.

    A missing or non-numeric limit means unlimited.

    Returns:
        ``{'allowed': bool, 'current': int, 'limit': int | None}``
    """
    raw = get_plan_features(session, tenant_id).get(feature_key)
    limit = to_decimal(raw, default=None) if raw is not None else None
    if limit is None:
        return {'allowed': True, 'current': current, 'limit': None}
    return {'allowed': current < limit, 'current': current, 'limit': int(limit)}


def count_monthly_sales(session, tenant_id: int, now: Optional[datetime] = None) -> int:
    """Sales of the current calendar month (UTC), cancelled ones excluded."""
    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return session.query(func.count(Sale.id)).filter(
        Sale.tenant_id == tenant_id,
        Sale.datetime >= month_start,
        Sale.status != SaleStatus.ANULADO
    ).scalar() or 0


def change_subscription_plan(session, tenant_id: int, plan_id: int) -> Subscription:
    """Move the tenant to ``plan_id`` and drop its cached features."""
    plan = session.query(Plan).filter(Plan.id == plan_id).first()
    if not plan:
        raise NotFoundError('Plan no encontrado', payload={'plan_id': plan_id})

    subscription = session.query(Subscription).filter(Subscription.tenant_id == tenant_id).first()
    if subscription is None:
        subscription = Subscription(tenant_id=tenant_id, status='active')
        session.add(subscription)
    subscription.plan_id = plan.id

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise

    get_cache().invalidate(tenant_id)
    logger.info(f"[PLAN] Tenant {tenant_id} moved to plan {plan.code}")
    return subscription


def enforce_monthly_sales_limit(f):
    """
    Decorator: veto sale creation once the plan's monthly quota is used up.

    Usage:
        @enforce_monthly_sales_limit
        def create():
            ...

    Skipped entirely when ``PLAN_LIMITS_ENABLED`` is off.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_app.config.get('PLAN_LIMITS_ENABLED', False):
            return f(*args, **kwargs)

        session = get_session()
        current = count_monthly_sales(session, g.tenant_id)
        result = check_limit(session, g.tenant_id, MONTHLY_SALES_FEATURE, current)
        if not result['allowed']:
            logger.warning(
                f"[PLAN] Tenant {g.tenant_id} reached monthly sales limit "
                f"({result['current']}/{result['limit']})"
            )
            raise PlanLimitError(
                'Alcanzaste el límite de ventas mensuales de tu plan',
                current=result['current'],
                limit=result['limit']
            )
        return f(*args, **kwargs)

    return decorated_function
