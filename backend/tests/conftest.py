# backend/tests/conftest.py
"""
Shared fixtures for the motoserve test suite.

Every test gets its own in-memory SQLite database. Services commit for real
against it, so there is no outer transaction to roll back; the engine is
simply thrown away afterwards.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from motoserve.api.dependencies.database import get_db
from motoserve.core import booking_lock
from motoserve.core.config import settings
from motoserve.core.enums import RoleName
from motoserve.core.principal import Actor
from motoserve.core.ulid_helper import generate_ulid
from motoserve.database import Base
from motoserve.events.publisher import EventBus
from motoserve.main import app
from motoserve.models import Booking, BookingStatus, CancellationRecord, Worker

# Import models so Base.metadata is populated for create_all.
import motoserve.models  # noqa: F401

# Mid-month, so month-boundary tests opt in explicitly.
FIXED_NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _in_process_locks(monkeypatch):
    """Keep booking locks in-process so tests never reach for Redis."""
    monkeypatch.setattr(settings, "redis_url", None)
    monkeypatch.setattr(booking_lock, "_SYNC_REDIS", None)
    yield


@pytest.fixture(autouse=True)
def _isolated_event_bus():
    EventBus.clear()
    yield
    EventBus.clear()


@pytest.fixture
def published_events():
    """Every event published on the bus during the test, in order."""
    events = []
    EventBus.register(events.append)
    return events


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def shop_id() -> str:
    return generate_ulid()


@pytest.fixture
def customer_id() -> str:
    return generate_ulid()


@pytest.fixture
def make_worker(db, shop_id):
    def _make(**overrides) -> Worker:
        data = {
            "id": generate_ulid(),
            "shop_id": shop_id,
            "name": "Test Worker",
            "rating": 4.5,
            "is_available": True,
            "response_time_minutes": 20,
        }
        data.update(overrides)
        if not data["is_available"]:
            data.setdefault("unavailable_reason", "off shift")
        worker = Worker(**data)
        db.add(worker)
        db.commit()
        return worker

    return _make


@pytest.fixture
def make_booking(db, shop_id, customer_id, now):
    def _make(**overrides) -> Booking:
        data = {
            "id": generate_ulid(),
            "customer_id": customer_id,
            "shop_id": shop_id,
            "service_id": generate_ulid(),
            "base_cost": Decimal("1000.00"),
            "status": BookingStatus.CREATED.value,
            "scheduled_at": now + timedelta(hours=3),
            "created_at": now - timedelta(days=1),
        }
        data.update(overrides)
        if isinstance(data["status"], BookingStatus):
            data["status"] = data["status"].value
        booking = Booking(**data)
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def make_cancellation_record(db, customer_id, now, make_booking):
    """A prior cancellation on a separate (already cancelled) booking."""

    def _make(cancelled_at=None, **overrides) -> CancellationRecord:
        owner_id = overrides.pop("customer_id", customer_id)
        booking = make_booking(status=BookingStatus.CANCELLED, customer_id=owner_id)
        data = {
            "customer_id": owner_id,
            "booking_id": booking.id,
            "cancelled_at": cancelled_at or now - timedelta(days=2),
            "tokens_deducted": 1,
            "refund_amount": Decimal("0"),
            "refund_percentage": 0,
            "reason": "Change of plans",
        }
        data.update(overrides)
        record = CancellationRecord(**data)
        db.add(record)
        db.commit()
        return record

    return _make


# Actors


@pytest.fixture
def customer(customer_id) -> Actor:
    return Actor(id=customer_id, role=RoleName.CUSTOMER)


@pytest.fixture
def admin() -> Actor:
    return Actor(id=generate_ulid(), role=RoleName.ADMIN)


@pytest.fixture
def owner(shop_id) -> Actor:
    return Actor(id=generate_ulid(), role=RoleName.OWNER, shop_id=shop_id)


def worker_actor(worker: Worker) -> Actor:
    return Actor(id=worker.id, role=RoleName.WORKER)


@pytest.fixture
def as_worker():
    return worker_actor


# HTTP


@pytest.fixture
def client(db):
    """TestClient whose requests share the test's session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def actor_headers(actor: Actor) -> dict:
    headers = {"X-Actor-Id": actor.id, "X-Actor-Role": actor.role.value}
    if actor.shop_id:
        headers["X-Actor-Shop-Id"] = actor.shop_id
    return headers


@pytest.fixture
def headers_for():
    return actor_headers
