"""
Pytest fixtures for tableside backend tests.

Provides the application on an in-memory database, a per-test table wipe,
tenant ids, catalog products and a deterministic payment gateway.
"""

import pytest

from tableside import create_app
from tableside.extensions import db
from tableside.services import entity_store
from tableside.services.gateway import GatewayResponse, PaymentGateway, processing_fee
from tableside.validation import AttributeValue


ORG_A = "org-acme"
ORG_B = "org-beta"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ORDER_TAX_RATE': '0.08',
        'GATEWAY_SIMULATION_DELAY': 0.0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.extensions.pop("payment_gateway", None)
        app.extensions.pop("recommendation_engine", None)


@pytest.fixture(scope='function')
def org_a(db_session):
    """Organization A (first tenant)."""
    return ORG_A


@pytest.fixture(scope='function')
def org_b(db_session):
    """Organization B (second tenant)."""
    return ORG_B


def make_product(org_id: str, name: str, code: str, price: str, *, category: str = "tea", prep: int = 4):
    """Create an active product entity with base_price / category / preparation_time."""
    product = entity_store.create_entity(org_id, "product", name, code)
    entity_store.set_attributes_batch(
        product.id,
        {
            "base_price": AttributeValue.number(price),
            "category": AttributeValue.text(category),
            "preparation_time": AttributeValue.number(prep),
        },
    )
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def earl_grey(db_session, org_a):
    """Product priced 4.50 in Organization A."""
    return make_product(org_a, "Earl Grey Tea", "TEA-EARL", "4.50")


@pytest.fixture(scope='function')
def signature_latte(db_session, org_a):
    """Product priced 10.00 in Organization A."""
    return make_product(org_a, "Signature Latte", "LAT-SIG", "10.00", category="latte", prep=6)


class FixedGateway(PaymentGateway):
    """Gateway that always approves (or always declines) and records its calls."""

    name = "fixed"

    def __init__(self, approve: bool = True):
        self.approve = approve
        self.calls = []

    def charge(self, *, amount, currency, payment_method, risk_level, reference):
        self.calls.append({
            "amount": amount,
            "currency": currency,
            "payment_method": payment_method,
            "risk_level": risk_level,
            "reference": reference,
        })
        if self.approve:
            return GatewayResponse(
                success=True,
                gateway=self.name,
                transaction_id="txn_fixed000001",
                authorization_code="AUTH000001",
                processing_fee=processing_fee(amount),
                processed_at="2026-01-01T12:00:00",
            )
        return GatewayResponse(
            success=False,
            gateway=self.name,
            error="Payment declined by issuing bank",
            error_code="card_declined",
            processed_at="2026-01-01T12:00:00",
        )


@pytest.fixture(scope='function')
def approving_gateway():
    return FixedGateway(approve=True)


@pytest.fixture(scope='function')
def declining_gateway():
    return FixedGateway(approve=False)


@pytest.fixture(scope='function')
def feed_events(app, org_a):
    """Collect committed transaction events for Organization A."""
    from tableside.services import transaction_store

    events = []
    subscription = transaction_store.subscribe(org_a, events.append)
    yield events
    subscription.unsubscribe()


@pytest.fixture(scope='function')
def product_factory(db_session):
    """Factory fixture: product_factory(org_id, name, code, price, ...)."""
    return make_product
