"""
Pytest configuration and fixtures for testing.
Uses in-memory SQLite database for fast, isolated tests.
"""
import os
from decimal import Decimal

import pytest

# Set testing environment before importing app
os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"

from fastapi.testclient import TestClient

from core import config as core_config
from core.db import Database
from main import create_app
from models.customer import Customer
from models.product import Product
from models.user import User
from security.password import hash_password
from security import jwt as jwt_utils
from services import email as email_service


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.TESTING = True
    core_config.settings.EMAIL_USE_CELERY = False
    core_config.settings.ALLOW_OVERSELL = False
    core_config.settings.BAKERY_EMAIL = "kitchen@example.com"
    yield


@pytest.fixture()
def database():
    database = Database("sqlite+pysqlite:///:memory:")
    database.create_all()
    yield database
    database.drop_all()
    database.dispose()


@pytest.fixture()
def db(database):
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def mock_email_send(monkeypatch):
    sent = []

    def _fake_send(to_email: str, subject: str, body: str) -> None:
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _fake_send)
    return sent


@pytest.fixture()
def client(database):
    with TestClient(create_app(database)) as c:
        yield c


@pytest.fixture
def make_product(db):
    def _make(name="Croissant", price="3.50", stock=10, **kwargs):
        product = Product(name=name, price=Decimal(price), stock_quantity=stock, **kwargs)
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def customer(db):
    customer = Customer(
        first_name="Ada",
        last_name="Baker",
        email="ada@example.com",
        phone="555-0100",
        address="1 Flour Lane",
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


def _make_user(db, email, role):
    user = User(
        full_name="Test Staff",
        email=email,
        password_hash=hash_password("testpass123"),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def staff_user(db):
    return _make_user(db, "staff@example.com", "staff")


@pytest.fixture
def admin_user(db):
    return _make_user(db, "admin@example.com", "admin")


@pytest.fixture
def auth_headers(staff_user):
    """Return authorization headers for a staff member."""
    token = jwt_utils.create_access_token(str(staff_user.id), staff_user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user):
    token = jwt_utils.create_access_token(str(admin_user.id), admin_user.role)
    return {"Authorization": f"Bearer {token}"}
