"""
Pytest fixtures for RestoFlow backend tests.

Provides test database setup, two tenant restaurants with staff, catalog
and order factories, a recording realtime publisher and the test client.
"""

from datetime import timedelta

import pytest

from restoflow import create_app
from restoflow.extensions import db
from restoflow.models import DiningTable, Order, OrderItem, Payment, Product, Restaurant, Stock, Subscription
from restoflow.services.auth_service import create_user
from restoflow.services.realtime_service import RealtimePublisher
from restoflow.time_utils import utcnow


CRON_SECRET = "test-cron-secret"
PASSWORD = "Password123"


class RecordingPublisher(RealtimePublisher):
    """Keeps published events in memory."""

    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)

    def clear(self):
        self.events.clear()


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'CRON_SECRET': CRON_SECRET,
            'BILLING_WEBHOOK_SECRET': None,
            'REALTIME_BROADCAST_URL': None,
            'CANCEL_ORDER_ON_PAYMENT_FAILURE': True,
        },
        publisher=RecordingPublisher(),
    )

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


@pytest.fixture(scope='function')
def publisher(app):
    """The app's recording publisher, emptied for each test."""
    recorder = app.extensions["realtime_publisher"]
    recorder.clear()
    return recorder


@pytest.fixture(scope='function')
def restaurant_a(db_session):
    """Restaurant A (first tenant)."""
    restaurant = Restaurant(name="Chez Mama", slug="chez-mama", is_active=True)
    db_session.add(restaurant)
    db_session.commit()
    return restaurant


@pytest.fixture(scope='function')
def restaurant_b(db_session):
    """Restaurant B (second tenant)."""
    restaurant = Restaurant(name="Le Jardin", slug="le-jardin", is_active=True)
    db_session.add(restaurant)
    db_session.commit()
    return restaurant


@pytest.fixture(scope='function')
def table_a(db_session, restaurant_a):
    table = DiningTable(restaurant_id=restaurant_a.id, number=1)
    db_session.add(table)
    db_session.commit()
    return table


@pytest.fixture(scope='function')
def owner_a(db_session, restaurant_a):
    return create_user("owner@chez-mama.cm", PASSWORD, restaurant_id=restaurant_a.id, role="owner")


@pytest.fixture(scope='function')
def kitchen_a(db_session, restaurant_a):
    return create_user("kitchen@chez-mama.cm", PASSWORD, restaurant_id=restaurant_a.id, role="kitchen")


@pytest.fixture(scope='function')
def owner_b(db_session, restaurant_b):
    return create_user("owner@le-jardin.cm", PASSWORD, restaurant_id=restaurant_b.id, role="owner")


@pytest.fixture(scope='function')
def superadmin(db_session):
    return create_user("ops@restoflow.app", PASSWORD, is_superadmin=True, role="owner")


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory: make_product(restaurant, quantity=10) creates a stock-tracked good.

    quantity=None creates a product without stock tracking.
    """
    def _make(restaurant, *, name="Poulet DG", price=5000, quantity=10, is_available=True, product_type="good"):
        product = Product(
            restaurant_id=restaurant.id,
            name=name,
            price=price,
            product_type=product_type,
            has_stock=quantity is not None,
            is_available=is_available,
        )
        db_session.add(product)
        db_session.flush()
        if quantity is not None:
            db_session.add(Stock(restaurant_id=restaurant.id, product_id=product.id, quantity=quantity))
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_order(db_session):
    """
    Factory: make_order(restaurant, [(product, qty), ...], status="pending").

    created_at/updated_at may be backdated with age=timedelta(...).
    """
    counter = {"n": 0}

    def _make(restaurant, lines=(), *, status="pending", age=None, is_archived=False):
        counter["n"] += 1
        stamp = utcnow() - (age or timedelta(0))
        order = Order(
            restaurant_id=restaurant.id,
            order_number=f"CMD-TEST-{counter['n']:04d}",
            status=status,
            is_archived=is_archived,
            created_at=stamp,
            updated_at=stamp,
        )
        total = 0
        for product, qty in lines:
            order.items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=qty,
                unit_price=product.price,
            ))
            total += product.price * qty
        order.total_amount = total
        db_session.add(order)
        db_session.commit()
        return order

    return _make


@pytest.fixture(scope='function')
def make_payment(db_session):
    def _make(order, *, amount=None, method="mobile_money", status="pending", transaction_id=None):
        payment = Payment(
            order_id=order.id,
            amount=order.total_amount if amount is None else amount,
            method=method,
            status=status,
            transaction_id=transaction_id,
        )
        db_session.add(payment)
        db_session.commit()
        return payment

    return _make


@pytest.fixture(scope='function')
def make_subscription(db_session):
    def _make(restaurant, *, status="trial", plan="starter", trial_ends_at=None, current_period_end=None):
        now = utcnow()
        subscription = Subscription(
            restaurant_id=restaurant.id,
            plan=plan,
            status=status,
            trial_starts_at=now - timedelta(days=14),
            trial_ends_at=trial_ends_at or now + timedelta(days=7),
            current_period_end=current_period_end,
            monthly_price=15000,
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return _make


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def cron_headers(secret: str = CRON_SECRET) -> dict:
    return {'Authorization': f'Bearer {secret}'}


@pytest.fixture(scope='function')
def login(client):
    """login(user) -> Authorization headers for a fresh session."""
    def _login(user, password: str = PASSWORD) -> dict:
        token = get_auth_token(client, user.email, password)
        assert token, f"login failed for {user.email}"
        return auth_headers(token)

    return _login


@pytest.fixture(scope='function')
def cron_auth():
    """Authorization headers carrying the cron secret."""
    return cron_headers()
