import os

os.environ.setdefault("OTEL_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.db import database
from storefront.main import app
from storefront.models.product import Product
from storefront.models.user import User, UserRole
from storefront.services.access import Admin, Customer
from storefront.services.auth import create_access_token


@pytest.fixture
def engine(tmp_path):
    # File-backed so concurrent sessions get separate connections
    engine = database.init_database(f"sqlite:///{tmp_path / 'storefront.db'}")
    database.create_tables()
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client(engine):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def make_user(db):
    def _make_user(username="alice", role=UserRole.CUSTOMER):
        user = User(username=username, email=f"{username}@example.com", role=role)
        db.add(user)
        db.commit()
        return user.id
    return _make_user


@pytest.fixture
def make_product(db):
    def _make_product(price="100", stock=5, name="T-shirt", image_url=None):
        product = Product(name=name, price=Decimal(price), stock=stock, image_url=image_url)
        db.add(product)
        db.commit()
        return product.id
    return _make_product


@pytest.fixture
def customer(make_user):
    return Customer(user_id=make_user("alice"), username="alice")


@pytest.fixture
def other_customer(make_user):
    return Customer(user_id=make_user("bob"), username="bob")


@pytest.fixture
def admin(make_user):
    return Admin(user_id=make_user("root", role=UserRole.ADMIN), username="root")


def bearer(viewer):
    role = UserRole.ADMIN.value if viewer.is_admin else UserRole.CUSTOMER.value
    token = create_access_token({"sub": viewer.username, "user_id": viewer.user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


def stock_of(product_id):
    session = database.SessionLocal()
    try:
        return session.get(Product, product_id).stock
    finally:
        session.close()
