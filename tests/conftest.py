import pytest
from decimal import Decimal

from sarisari import create_app
from sarisari.database import LedgerStore, get_store
from sarisari.models import InventoryBatch, Product
from sarisari.services import PosServices


@pytest.fixture(scope='function')
def database_uri(tmp_path):
    """File-backed SQLite database, fresh for each test."""
    return f"sqlite:///{tmp_path / 'pos.db'}"


@pytest.fixture(scope='function')
def store(database_uri):
    """Ledger Store with the schema created."""
    store = LedgerStore(database_uri, timeout_seconds=5)
    store.create_all()
    yield store
    store.dispose()


@pytest.fixture(scope='function')
def services(store):
    """Every POS component wired around the test store, 12% tax."""
    return PosServices(store, tax_rate=Decimal('0.12'))


@pytest.fixture(scope='function')
def make_product(store):
    """
    Factory for products.

    batches: optional list of (quantity, expiry_date) tuples; when given,
    stock_quantity defaults to their sum so the product starts in sync.
    """
    counter = {'n': 0}

    def _make(name=None, unit_price='100.00', stock=None, barcode=None, store_id=None,
              low_stock_threshold=10, batches=None):
        counter['n'] += 1
        if stock is None:
            stock = sum(q for q, _ in batches) if batches else 10
        with store.transaction() as session:
            product = Product(
                name=name or f"Product {counter['n']}",
                barcode=barcode,
                unit_price=Decimal(unit_price),
                stock_quantity=stock,
                low_stock_threshold=low_stock_threshold,
                store_id=store_id,
            )
            session.add(product)
            session.flush()
            for quantity, expiry in batches or []:
                session.add(InventoryBatch(
                    product_id=product.id,
                    quantity=quantity,
                    expiry_date=expiry,
                    store_id=store_id,
                ))
        return product

    return _make


@pytest.fixture(scope='function')
def stock_of(store):
    """Read a product's current stock straight from the database."""
    def _stock_of(product_id):
        with store.transaction() as session:
            return session.get(Product, product_id).stock_quantity
    return _stock_of


@pytest.fixture(scope='function')
def count_rows(store):
    """Count rows of a model."""
    from sqlalchemy import func, select

    def _count(model):
        with store.transaction() as session:
            return session.execute(select(func.count()).select_from(model)).scalar_one()
    return _count


@pytest.fixture(scope='function')
def app(database_uri, store):
    """Create application instance for testing, sharing the test database."""
    app = create_app('config.Config', test_config={
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': database_uri,
        'SENTRY_DSN': None,
    })
    yield app
    get_store(app).dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def cashier_headers():
    return {'X-User-Id': '7', 'X-User-Role': 'cashier'}


@pytest.fixture
def admin_headers():
    return {'X-User-Id': '1', 'X-User-Role': 'admin'}
