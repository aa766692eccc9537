"""Pytest fixtures: per-test SQLite database for fast, isolated tests."""
import os

os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["OAUTH_SERVER_URL"] = ""
os.environ["OWNER_OPEN_ID"] = "owner-open-id"

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.services import identity, storage

# Import all models so they register with Base.metadata
from app.models.user import User                  # noqa: F401
from app.models.product import Product            # noqa: F401
from app.models.group_order import GroupOrder     # noqa: F401
from app.models.order_item import OrderItem       # noqa: F401

SQLITE_URL = "sqlite:///./test.db"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session for direct setup and assertions."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_engine):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers: users are created straight in the DB, then "logged in" by cookie
# ---------------------------------------------------------------------------
def create_test_user(db, name: str = "Test User", role: str = "user", open_id: str = None) -> User:
    """Helper: upsert a user and return the ORM row."""
    return storage.upsert_user(
        db,
        open_id or f"oid-{name.lower().replace(' ', '-')}",
        name=name,
        email=f"{name.lower().replace(' ', '.')}@example.com",
        login_method="test",
        role=role,
    )


def login(client: TestClient, user: User) -> None:
    """Helper: attach a valid session cookie for ``user`` to the client."""
    token = identity.create_session_token(settings, user.open_id, user.name or "")
    client.cookies.set(settings.SESSION_COOKIE_NAME, token)


def logout(client: TestClient) -> None:
    client.cookies.clear()


def create_product(client: TestClient, name: str = "Arepa", price: int = 3000) -> dict:
    """Helper: POST /api/products as the currently logged-in admin, return the listed row."""
    resp = client.post("/api/products/", json={"name": name, "price": price})
    assert resp.status_code == 201, resp.text
    listed = [p for p in client.get("/api/products/").json() if p["name"] == name]
    assert listed, f"{name} not listed after create"
    return listed[-1]


def open_group_order(client: TestClient, delivery_cost: int = 0) -> dict:
    """Helper: POST /api/group-orders as the logged-in admin, return the active order."""
    resp = client.post("/api/group-orders/", json={"delivery_cost": delivery_cost})
    assert resp.status_code == 201, resp.text
    active = client.get("/api/group-orders/active").json()
    assert active is not None
    return active
