import pytest
from decimal import Decimal
import os

# Tests run against in-memory SQLite with the cache off, unless overridden
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('CACHE_ENABLED', 'false')
os.environ.setdefault('FLASK_DEBUG', '0')

from fulfillment import create_app
from fulfillment.database import get_session, create_schema, drop_schema
from fulfillment.models import Product, ProductVariant, Driver, StoreSettings, ShippingTier
from fulfillment.repositories import InMemoryStore, InMemoryUnitOfWork
from fulfillment.services.cache_service import CacheService
from fulfillment.services.settings_service import SettingsService


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.Config')
    app.config['TESTING'] = True
    return app


@pytest.fixture(scope='function')
def client(app, session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema per test; yields the scoped session."""
    create_schema()
    session = get_session()
    yield session
    session.rollback()
    session.remove()
    drop_schema()


# ---------------------------------------------------------------------------
# In-memory fixtures for service tests
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def uow(store):
    return InMemoryUnitOfWork(store)


@pytest.fixture
def settings_service(uow):
    return SettingsService(uow, CacheService())


def make_product(**overrides):
    values = {
        'name': 'Camiseta',
        'price': Decimal('10.00'),
        'stock': 10,
        'active': True,
        'weight_kg': Decimal('0.300'),
        'pickup_enabled': False,
    }
    values.update(overrides)
    return Product(**values)


def make_driver(**overrides):
    values = {
        'user_id': 'user-1',
        'full_name': 'Driver One',
        'phone': '+59899111222',
        'active': True,
        'is_tracking': True,
    }
    values.update(overrides)
    return Driver(**values)


@pytest.fixture
def product(store):
    return store.add_product(make_product())


@pytest.fixture
def variant_product(store):
    product = make_product(name='Buzo', price=Decimal('20.00'), stock=0)
    product.variants = [
        ProductVariant(size='M', color='Negro', sku='BZ-M-N', stock=3, price_adjustment=Decimal('2.50')),
        ProductVariant(size='L', color='Negro', sku='BZ-L-N', stock=0, active=False),
    ]
    return store.add_product(product)


@pytest.fixture
def driver(store):
    return store.add_driver(make_driver())


@pytest.fixture
def store_settings(store):
    """Store at Montevideo with the default fees."""
    store.settings = StoreSettings(
        store_name='Tienda Test',
        store_latitude=-34.9011,
        store_longitude=-56.1645,
        delivery_base_fee=Decimal('5'),
        delivery_per_km=Decimal('1.5'),
        delivery_max_km=Decimal('4'),
    )
    store.tiers = [
        ShippingTier(max_weight_kg=Decimal('2.0'), price=Decimal('300'), dimensions='40x30x20'),
        ShippingTier(max_weight_kg=Decimal('1.0'), price=Decimal('200'), dimensions='30x20x10'),
    ]
    return store.settings


def order_request(items, method='local', latitude=-34.9011, longitude=-56.1645, **customer):
    """Checkout body as the storefront sends it."""
    customer_values = {'name': 'Ana', 'phone': '+59899000111', 'address': 'Av. Italia 1234'}
    customer_values.update(customer)
    return {
        'items': items,
        'customer': customer_values,
        'delivery': {
            'latitude': latitude,
            'longitude': longitude,
            'distance': 0,
            'shipping_method': method,
        },
        'notes': 'Tocar timbre',
    }


# ---------------------------------------------------------------------------
# Database fixtures for API tests (return ids; requests close the session)
# ---------------------------------------------------------------------------

STORE_LAT = -34.9011
STORE_LON = -56.1645


@pytest.fixture
def db_settings(session):
    settings = StoreSettings(
        store_name='Tienda Test',
        store_latitude=STORE_LAT,
        store_longitude=STORE_LON,
        delivery_base_fee=Decimal('5'),
        delivery_per_km=Decimal('1.5'),
        delivery_max_km=Decimal('4'),
        fx_rate=Decimal('8'),
    )
    session.add(settings)
    session.add_all([
        ShippingTier(max_weight_kg=Decimal('2.0'), price=Decimal('300')),
        ShippingTier(max_weight_kg=Decimal('1.0'), price=Decimal('200')),
    ])
    session.commit()
    return settings.id


@pytest.fixture
def db_product(session):
    product = make_product()
    session.add(product)
    session.commit()
    return product.id


@pytest.fixture
def db_driver(session):
    driver = make_driver()
    session.add(driver)
    session.commit()
    return driver.id
