# tests/conftest.py
"""
Pytest configuration and shared fixtures.

The application reads its configuration at import time, so the database URL
and logging toggles are pinned here before anything from ``storefront`` is
imported.
"""

import os
import shutil
import tempfile
from decimal import Decimal
from uuid import uuid4

import pytest

_TEST_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'storefront_test.db')}"
os.environ["STRUCTURED_LOGS_ENABLED"] = "false"
os.environ["NOTIFIER_KEEPALIVE_SECONDS"] = "1"
os.environ["SECRET_KEY"] = "test-secret"

from werkzeug.security import generate_password_hash  # noqa: E402

from storefront.auth import Principal  # noqa: E402
from storefront.database import Base, SessionLocal, engine, init_database  # noqa: E402
from storefront.models import Coupon, Product, User, UserRole  # noqa: E402
from storefront.observability.metrics import reset_metrics  # noqa: E402
from storefront.services.notification_service import RealtimeNotifier  # noqa: E402
from storefront.main import app as flask_app  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def test_db():
    """Create the schema once for the whole session."""
    assert init_database()
    yield engine
    engine.dispose()
    shutil.rmtree(_TEST_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def clean_state(test_db):
    """Every test starts from empty tables, metrics and notifier sessions."""
    with test_db.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())
    reset_metrics()
    RealtimeNotifier().reset()
    yield
    RealtimeNotifier().reset()


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def make_user(db_session):
    def _make(role=UserRole.USER.value, name=None, address=None, password="secret123"):
        suffix = uuid4().hex[:8]
        user = User(
            name=name or f"Test User {suffix}",
            email=f"user_{suffix}@example.com",
            passwordHash=generate_password_hash(password),
            role=role,
            address=address,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def customer(make_user):
    return make_user(address={"street": "1 Market St", "city": "Springfield", "country": "US"})


@pytest.fixture
def admin(make_user):
    return make_user(role=UserRole.ADMIN.value, name="Test Admin")


@pytest.fixture
def make_product(db_session):
    def _make(name="Widget", price="10.00", stock=10, discount=0, is_active=True, category="Gadgets"):
        product = Product(
            name=name,
            description=f"{name} for testing purposes",
            category=category,
            price=Decimal(str(price)),
            discount=Decimal(str(discount)),
            images=[],
            stock=stock,
            quantity="1 unit",
            isActive=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def make_coupon(db_session):
    def _make(code="SAVE10", discount=10, **fields):
        coupon = Coupon(
            code=code,
            discountPercentage=Decimal(str(discount)),
            description=fields.pop("description", "Test coupon"),
            isActive=fields.pop("isActive", True),
            minPurchaseAmount=Decimal(str(fields.pop("minPurchaseAmount", 0))),
            usedCount=fields.pop("usedCount", 0),
            **fields,
        )
        db_session.add(coupon)
        db_session.commit()
        return coupon

    return _make


@pytest.fixture
def principal_for():
    return Principal.from_user


@pytest.fixture
def app():
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login():
    def _login(client, user):
        with client.session_transaction() as session:
            session["user_id"] = user.userID
        return client

    return _login
