import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import accounts
import database
from auth import create_access_token
from main import app
from models import Order, OrderItem, Product


@pytest.fixture(autouse=True)
def fresh_db(tmp_path):
    database.configure(f"sqlite:///{tmp_path / 'store.db'}")
    database.init_db()
    yield
    app.dependency_overrides.clear()
    database.engine.dispose()


@pytest.fixture
def client():
    # Not used as a context manager, so the startup seed does not run.
    return TestClient(app)


@pytest.fixture
def make_user():
    def _make(email="ana@example.com", password="secret1", role="user", name="Ana"):
        with database.SessionLocal() as db:
            return accounts.register_user(db, name, email, password, role=role).id
    return _make


@pytest.fixture
def make_product():
    def _make(**overrides):
        data = {
            "name": "Kit Estimulación Cognitiva",
            "description": "Juegos de memoria y atención",
            "price": Decimal("100.00"),
            "image_url": "https://example.com/kit.jpg",
            "type": "physical",
            "age_range": "3-8",
            "category": "Estimulación Cognitiva",
            "stock": 10,
        }
        data.update(overrides)
        with database.SessionLocal() as db:
            product = Product(**data)
            db.add(product)
            db.commit()
            return product.id
    return _make


@pytest.fixture
def headers_for():
    def _headers(user_id):
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return _headers


@pytest.fixture
def admin_headers(make_user, headers_for):
    return headers_for(make_user(email="admin@example.com", role="admin", name="Admin"))


@pytest.fixture
def stock_of():
    def _stock(product_id):
        with database.SessionLocal() as db:
            return db.get(Product, product_id).stock
    return _stock


@pytest.fixture
def row_counts():
    def _counts():
        with database.SessionLocal() as db:
            return db.query(Order).count(), db.query(OrderItem).count()
    return _counts
