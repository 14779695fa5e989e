import pytest
from decimal import Decimal
import uuid

from mostrador import create_app
from mostrador.database import create_all, drop_all, get_session
from mostrador.models import (
    Tenant, AppUser, UserTenant, Product, ProductStock, ProductVariant,
    Customer, CustomerStatus
)
from mostrador.schemas import load
from mostrador.schemas.cash import CashOpen
from mostrador.schemas.sales import SaleCreate
from mostrador.services import cash_register_service, sales_service


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite unless TEST_DATABASE_URL is set)."""
    app = create_app('config.TestingConfig')
    # Keep one app context for the whole run so request teardown does not
    # detach the objects created by fixtures
    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema per test."""
    create_all()
    session = get_session()
    yield session
    session.rollback()
    session.remove()
    drop_all()


def _make_tenant(session, label):
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(slug=f'test-{label}-{suffix}', name=f'Test {label} {suffix}', active=True)
    session.add(tenant)
    session.commit()
    return tenant


def _make_user(session, tenant, label, role='OWNER'):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(email=f'{label}-{suffix}@test.com', full_name=label.title(), active=True)
    user.set_password('password123')
    session.add(user)
    session.flush()
    session.add(UserTenant(user_id=user.id, tenant_id=tenant.id, role=role, active=True))
    session.commit()
    return user


@pytest.fixture(scope='function')
def tenant1(session):
    """Create first test tenant."""
    return _make_tenant(session, 'tenant-1')


@pytest.fixture(scope='function')
def tenant2(session):
    """Create second test tenant for isolation tests."""
    return _make_tenant(session, 'tenant-2')


@pytest.fixture(scope='function')
def user1(session, tenant1):
    """OWNER of tenant1."""
    return _make_user(session, tenant1, 'user1')


@pytest.fixture(scope='function')
def user2(session, tenant2):
    """OWNER of tenant2."""
    return _make_user(session, tenant2, 'user2')


@pytest.fixture(scope='function')
def staff1(session, tenant1):
    """STAFF operator of tenant1."""
    return _make_user(session, tenant1, 'staff1', role='STAFF')


@pytest.fixture(scope='function')
def make_product(session):
    """Factory: product with a stock row."""
    def _make(tenant, name='Producto', price='100.00', stock='50', active=True, cost='60.00'):
        product = Product(
            tenant_id=tenant.id,
            name=name,
            sku=f'SKU-{uuid.uuid4().hex[:6]}',
            sale_price=Decimal(price),
            cost=Decimal(cost),
            active=active
        )
        session.add(product)
        session.flush()
        session.add(ProductStock(product_id=product.id, on_hand_qty=Decimal(stock)))
        session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product_tenant1(make_product, tenant1):
    return make_product(tenant1, name='Product T1', price='100.00', stock='50')


@pytest.fixture(scope='function')
def product_tenant2(make_product, tenant2):
    return make_product(tenant2, name='Product T2', price='200.00', stock='20')


@pytest.fixture(scope='function')
def variant_tenant1(session, make_product, tenant1):
    """Product 'Remera' with one variant 'Talle M' (stock 5)."""
    product = make_product(tenant1, name='Remera', price='300.00', stock='0')
    variant = ProductVariant(
        tenant_id=tenant1.id,
        product_id=product.id,
        name='Talle M',
        stock_qty=Decimal('5'),
        active=True
    )
    session.add(variant)
    session.commit()
    return variant


@pytest.fixture(scope='function')
def customer_tenant1(session, tenant1):
    """Customer with credit limit 1000 and debt 800."""
    customer = Customer(
        tenant_id=tenant1.id,
        name='Cliente Cuenta Corriente',
        status=CustomerStatus.ACTIVE,
        credit_limit=Decimal('1000.00'),
        current_debt=Decimal('800.00')
    )
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def open_register(session, tenant1, user1):
    """OPEN shift of user1 with 1000 opening cash."""
    data = load(CashOpen, {'opening_amount': '1000'})
    return cash_register_service.open_cash_register(session, tenant1.id, user1.id, data)


@pytest.fixture(scope='function')
def sell(session):
    """Commit a sale from a plain payload dict."""
    def _sell(tenant, user, payload):
        return sales_service.create_sale(session, tenant.id, user.id, load(SaleCreate, payload))
    return _sell


@pytest.fixture(scope='function')
def authenticated_client(client, user1, tenant1):
    """Create authenticated client for tenant1."""
    with client.session_transaction() as sess:
        sess['user_id'] = user1.id
        sess['tenant_id'] = tenant1.id
    return client


@pytest.fixture(scope='function')
def staff_client(client, staff1, tenant1):
    """Authenticated client for a STAFF operator of tenant1."""
    with client.session_transaction() as sess:
        sess['user_id'] = staff1.id
        sess['tenant_id'] = tenant1.id
    return client
