"""
Integration tests for the plan feature gate.
"""

import pytest
from decimal import Decimal

from mostrador.exceptions import NotFoundError
from mostrador.models import Plan, PlanFeature, Subscription
from mostrador.services import cache_service, plan_access_service
from mostrador.services.cache_service import PlanFeatureCache


class DictRedis:
    """In-memory stand-in for the Redis commands the cache issues."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, key):
        self.store.pop(key, None)


def _plan(session, code, **features):
    plan = Plan(name=code.title(), code=code, price=Decimal('0'))
    for key, value in features.items():
        plan.features.append(PlanFeature(feature_key=key, feature_value=value))
    session.add(plan)
    session.commit()
    return plan


def _subscribe(session, tenant, plan, status='active'):
    session.add(Subscription(tenant_id=tenant.id, plan_id=plan.id, status=status))
    session.commit()


def _cart(product):
    return {
        'payment_method': 'EFECTIVO',
        'items': [{'product_id': product.id, 'quantity': 1, 'unit_price': str(product.sale_price)}],
    }


@pytest.fixture
def redis_cache(monkeypatch):
    cache = PlanFeatureCache(client=DictRedis())
    monkeypatch.setattr(cache_service, '_cache', cache)
    return cache


class TestFeatures:

    def test_no_subscription_means_no_features(self, session, tenant1):
        assert plan_access_service.get_plan_features(session, tenant1.id) == {}
        assert plan_access_service.has_feature(session, tenant1.id, 'module_cash') is False

    def test_has_feature(self, session, tenant1):
        _subscribe(session, tenant1, _plan(session, 'pro', module_cash='true', module_quotes='false'))

        assert plan_access_service.has_feature(session, tenant1.id, 'module_cash') is True
        assert plan_access_service.has_feature(session, tenant1.id, 'module_quotes') is False

    def test_cancelled_subscription_has_no_features(self, session, tenant1):
        _subscribe(session, tenant1, _plan(session, 'pro', module_cash='true'), status='canceled')
        assert plan_access_service.has_feature(session, tenant1.id, 'module_cash') is False

    def test_check_limit(self, session, tenant1):
        _subscribe(session, tenant1, _plan(session, 'basic', max_monthly_sales='100'))

        assert plan_access_service.check_limit(session, tenant1.id, 'max_monthly_sales', 99) == {
            'allowed': True, 'current': 99, 'limit': 100
        }
        assert plan_access_service.check_limit(session, tenant1.id, 'max_monthly_sales', 100)['allowed'] is False

    def test_missing_limit_is_unlimited(self, session, tenant1):
        _subscribe(session, tenant1, _plan(session, 'free', max_monthly_sales='ilimitado'))
        result = plan_access_service.check_limit(session, tenant1.id, 'max_monthly_sales', 10 ** 6)
        assert result == {'allowed': True, 'current': 10 ** 6, 'limit': None}


class TestPlanChange:

    def test_change_invalidates_cached_features(self, session, tenant1, redis_cache):
        basic = _plan(session, 'basic', max_monthly_sales='10')
        pro = _plan(session, 'pro', max_monthly_sales='1000')
        _subscribe(session, tenant1, basic)

        assert plan_access_service.get_plan_features(session, tenant1.id) == {'max_monthly_sales': '10'}
        assert redis_cache.get(tenant1.id) == {'max_monthly_sales': '10'}

        plan_access_service.change_subscription_plan(session, tenant1.id, pro.id)

        assert redis_cache.get(tenant1.id) is None
        assert plan_access_service.get_plan_features(session, tenant1.id) == {'max_monthly_sales': '1000'}

    def test_first_subscription_is_created(self, session, tenant1):
        plan = _plan(session, 'basic')
        subscription = plan_access_service.change_subscription_plan(session, tenant1.id, plan.id)
        assert subscription.plan_id == plan.id
        assert subscription.status == 'active'

    def test_unknown_plan(self, session, tenant1):
        with pytest.raises(NotFoundError):
            plan_access_service.change_subscription_plan(session, tenant1.id, 999)


class TestMonthlySalesLimit:

    def test_limit_enforced_when_enabled(self, app, monkeypatch, authenticated_client, session,
                                         tenant1, product_tenant1):
        monkeypatch.setitem(app.config, 'PLAN_LIMITS_ENABLED', True)
        _subscribe(session, tenant1, _plan(session, 'mini', max_monthly_sales='2'))

        for _ in range(2):
            assert authenticated_client.post('/sales/', json=_cart(product_tenant1)).status_code == 201

        response = authenticated_client.post('/sales/', json=_cart(product_tenant1))
        assert response.status_code == 402
        data = response.get_json()
        assert data['code'] == 'PLAN_LIMIT'
        assert data['current'] == 2
        assert data['limit'] == 2

    def test_cancelled_sales_do_not_count(self, app, monkeypatch, authenticated_client, session,
                                          tenant1, product_tenant1):
        monkeypatch.setitem(app.config, 'PLAN_LIMITS_ENABLED', True)
        _subscribe(session, tenant1, _plan(session, 'mini', max_monthly_sales='1'))

        sale_id = authenticated_client.post('/sales/', json=_cart(product_tenant1)).get_json()['id']
        authenticated_client.post(f'/sales/{sale_id}/cancel', json={'reason': 'Error de carga'})

        assert plan_access_service.count_monthly_sales(session, tenant1.id) == 0
        assert authenticated_client.post('/sales/', json=_cart(product_tenant1)).status_code == 201

    def test_limit_ignored_when_disabled(self, authenticated_client, session, tenant1, product_tenant1):
        _subscribe(session, tenant1, _plan(session, 'mini', max_monthly_sales='0'))
        assert authenticated_client.post('/sales/', json=_cart(product_tenant1)).status_code == 201
