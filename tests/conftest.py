import os
from decimal import Decimal
from typing import Generator

# Keep the app's own engine off disk; tests bind their own in-memory engine below
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from foodapp import config, crud, schemas
from foodapp.cart import Cart, CartStore
from foodapp.db import Base, enable_sqlite_foreign_keys
from foodapp.main import app, get_db


@pytest.fixture(scope="function")
def db_session() -> Generator:
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    enable_sqlite_foreign_keys(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture(autouse=True)
def strict_transitions():
    # Deterministic starting mode; some tests flip it
    config.set_strict_transitions(True)
    yield
    config.set_strict_transitions(True)


@pytest.fixture(scope="function")
def client(db_session):
    # Override dependency to use the same session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    app.state.carts = CartStore()
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_user(db, username, role="customer", password="secret123"):
    return crud.create_user(db, schemas.UserCreate(
        username=username,
        email=f"{username}@example.com",
        password=password,
        full_name=username.title(),
        phone="012-3456789",
        role=role,
    ))


@pytest.fixture
def customer(db_session):
    return make_user(db_session, "alice")


@pytest.fixture
def other_customer(db_session):
    return make_user(db_session, "mallory")


@pytest.fixture
def admin(db_session):
    return make_user(db_session, "boss", role="admin", password="adminpass")


@pytest.fixture
def menu(db_session):
    """Category 'Mains' with A (10.00), B (5.00), and an unavailable C (7.00)."""
    mains = crud.create_category(db_session, schemas.CategoryCreate(name="Mains", sort_order=1))
    a = crud.create_menu_item(db_session, schemas.MenuItemCreate(
        category_id=mains.id, name="Nasi Lemak", price=Decimal("10.00"), is_featured=True))
    b = crud.create_menu_item(db_session, schemas.MenuItemCreate(
        category_id=mains.id, name="Roti Canai", price=Decimal("5.00"), ingredients="flour, ghee"))
    c = crud.create_menu_item(db_session, schemas.MenuItemCreate(
        category_id=mains.id, name="Satay", price=Decimal("7.00")))
    crud.toggle_menu_item_availability(db_session, c.id)
    return {"category": mains, "a": a, "b": b, "c": c}


@pytest.fixture
def details():
    return schemas.CheckoutRequest(
        delivery_address="12 Jalan Ampang, Kuala Lumpur",
        phone="012-3456789",
        notes="Extra sambal",
        payment_method="cash",
    )


@pytest.fixture
def full_cart(db_session, menu):
    cart = Cart()
    assert cart.add(db_session, menu["a"].id, 2)
    assert cart.add(db_session, menu["b"].id, 1)
    return cart


def login(client, username, password="secret123"):
    r = client.post("/auth/login", json={"login": username, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def customer_headers(client, customer):
    return login(client, customer.username)


@pytest.fixture
def admin_headers(client, admin):
    return login(client, admin.username, "adminpass")


def count_rows(db, model):
    return db.query(model).count()
