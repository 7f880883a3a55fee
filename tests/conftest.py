import pytest
from decimal import Decimal
import uuid

from app import create_app
from app.database import create_all, drop_all, get_session
from app.models import Tenant, Warehouse, Product, ProductComponent
from app.services.cash_register_service import open_cash_register
from app.services.sales_service import create_sale
from app.services.stock_service import adjust_stock


USER1_ID = 1
USER2_ID = 2


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    app.config['TESTING'] = True
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session on a fresh schema."""
    create_all()
    session = get_session()
    yield session
    session.rollback()
    session.remove()
    drop_all()


@pytest.fixture(scope='function')
def tenant1(session):
    """Create first test tenant."""
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(slug=f'test-tenant-1-{suffix}', name=f'Test Tenant 1 {suffix}', active=True)
    session.add(tenant)
    session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant2(session):
    """Create second test tenant for isolation tests."""
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(slug=f'test-tenant-2-{suffix}', name=f'Test Tenant 2 {suffix}', active=True)
    session.add(tenant)
    session.commit()
    return tenant


@pytest.fixture(scope='function')
def warehouse1(session, tenant1):
    warehouse = Warehouse(tenant_id=tenant1.id, name='Sucursal Centro')
    session.add(warehouse)
    session.commit()
    return warehouse


@pytest.fixture(scope='function')
def warehouse2(session, tenant2):
    warehouse = Warehouse(tenant_id=tenant2.id, name='Sucursal Norte')
    session.add(warehouse)
    session.commit()
    return warehouse


def _product(session, tenant_id, name, sku, price, **kwargs):
    product = Product(tenant_id=tenant_id, name=name, sku=sku, price=Decimal(price), **kwargs)
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(session, tenant1, warehouse1):
    """Simple product sold by weight, 10 kg in warehouse1."""
    product = _product(session, tenant1.id, 'Harina', 'A-001', '10.00',
                       unit_type='kg', allow_decimals=True, cost=Decimal('6.00'))
    adjust_stock(session, tenant1.id, product.id, warehouse1.id, Decimal('10'))
    return product


@pytest.fixture(scope='function')
def product_b(session, tenant1, warehouse1):
    """Simple product sold by weight, 10 kg in warehouse1."""
    product = _product(session, tenant1.id, 'Azúcar', 'B-001', '4.00',
                       unit_type='kg', allow_decimals=True, cost=Decimal('2.50'))
    adjust_stock(session, tenant1.id, product.id, warehouse1.id, Decimal('10'))
    return product


@pytest.fixture(scope='function')
def product_piece(session, tenant1, warehouse1):
    """Simple product sold by piece, 5 units in warehouse1."""
    product = _product(session, tenant1.id, 'Molde', 'P-001', '299.00')
    adjust_stock(session, tenant1.id, product.id, warehouse1.id, Decimal('5'))
    return product


@pytest.fixture(scope='function')
def composite(session, tenant1, product_a, product_b):
    """Composite product: 2 x product_a + 0.5 x product_b."""
    product = _product(session, tenant1.id, 'Kit repostería', 'KIT-001', '50.00',
                       is_composite=True, allow_decimals=True, stock=Decimal('7'))
    session.add_all([
        ProductComponent(tenant_id=tenant1.id, parent_product_id=product.id,
                         component_product_id=product_a.id, quantity=Decimal('2'),
                         cost=Decimal('6.00')),
        ProductComponent(tenant_id=tenant1.id, parent_product_id=product.id,
                         component_product_id=product_b.id, quantity=Decimal('0.5'),
                         cost=Decimal('2.50')),
    ])
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_tenant2(session, tenant2, warehouse2):
    product = _product(session, tenant2.id, 'Producto T2', 'A-001', '20.00')
    adjust_stock(session, tenant2.id, product.id, warehouse2.id, Decimal('20'))
    return product


@pytest.fixture(scope='function')
def register1(session, tenant1, warehouse1):
    """Open register in warehouse1 with a 1000.00 float."""
    return open_cash_register(session, tenant1.id, USER1_ID, warehouse1.id, Decimal('1000.00'))


@pytest.fixture(scope='function')
def make_sale(session, tenant1, warehouse1):
    """Factory: register a tenant1 sale in warehouse1."""
    def _make_sale(items, payments, cash_register_id=None, **kwargs):
        return create_sale(
            session, tenant1.id, USER1_ID, warehouse1.id, items, payments,
            cash_register_id=cash_register_id, **kwargs
        )
    return _make_sale


@pytest.fixture(scope='function')
def authenticated_client(client, tenant1):
    """Client with tenant1 and USER1 in the Flask session."""
    # Read the id before session_transaction(): its temporary request context
    # tears down and removes the scoped DB session, detaching tenant1.
    tenant_id = tenant1.id
    with client.session_transaction() as sess:
        sess['user_id'] = USER1_ID
        sess['tenant_id'] = tenant_id
    return client
