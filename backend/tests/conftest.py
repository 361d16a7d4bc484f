"""Shared test fixtures: SQLite database per test, model factories, fake payment gateway."""
import os
import tempfile
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import pytest

# Settings are read at import time, so the environment must be set before importing app.
_DB_DIR = tempfile.mkdtemp(prefix="parking-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["STRIPE_SECRET_KEY"] = ""

from fastapi.testclient import TestClient  # noqa: E402

import app.models  # noqa: E402,F401
from app.core.clock import utcnow  # noqa: E402
from app.core.constants import OwnerStatus, Role, VehicleType  # noqa: E402
from app.core.errors import PaymentError  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import SessionLocal, engine  # noqa: E402
from app.models.owner import Owner  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services import booking_service, slot_registry  # noqa: E402
from app.services.notifications import bus  # noqa: E402
from app.services.payments import ChargeResult, get_payment_gateway  # noqa: E402

PASSWORD = "secret123"


class FakeGateway:
    """Records charges; set fail=True (or error=<exception>) to simulate provider failure."""

    def __init__(self) -> None:
        self.calls: list[tuple[Decimal, str, str, str]] = []
        self.fail = False
        self.error: Exception | None = None

    def create_charge(self, amount, currency, booking_id, user_id):
        self.calls.append((amount, currency, booking_id, user_id))
        if self.error is not None:
            raise self.error
        if self.fail:
            raise PaymentError("card declined")
        return ChargeResult(reference=f"pi_test_{len(self.calls)}", client_secret="secret_test")


def hours_from_now(start_in: int, hours: int):
    """(start, end) on whole hours, start_in hours from now."""
    base = utcnow().replace(minute=0, second=0, microsecond=0)
    start = base + timedelta(hours=start_in)
    return start, start + timedelta(hours=hours)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(db):
    def _make(username: str = "driver", role: Role = Role.USER) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash=hash_password(PASSWORD),
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_owner(db, make_user):
    """Owner account with a business profile (approved by default)."""

    def _make(username: str = "owner", status: OwnerStatus = OwnerStatus.APPROVED) -> User:
        user = make_user(username, Role.OWNER)
        db.add(
            Owner(
                user_id=user.id,
                business_name=f"{username} Parking",
                address="1 Marine Drive",
                city="Mumbai",
                phone="9999999999",
                status=status,
                approved_at=utcnow() if status == OwnerStatus.APPROVED else None,
            )
        )
        db.commit()
        return user

    return _make


@pytest.fixture
def make_slot(db):
    def _make(owner_user: User, **overrides):
        attrs = {
            "name": "Nariman Point P1",
            "address": "12 Nariman Point",
            "city": "Mumbai",
            "vehicle_type": VehicleType.FOUR_WHEELER.value,
            "slot_type": "covered",
            "price_per_hour": "50.00",
            "description": "Basement level",
        }
        attrs.update(overrides)
        return slot_registry.create_slot(db, owner_user, attrs)

    return _make


@pytest.fixture
def book(db):
    """Pending booking for user on slot, start_in hours from now, lasting hours."""

    def _book(user: User, slot, start_in: int = 2, hours: int = 3):
        start, end = hours_from_now(start_in, hours)
        return booking_service.request_booking(db, user, slot.id, start, end, hours)

    return _book


@pytest.fixture
def admin(make_user):
    return make_user("admin", Role.ADMIN)


@pytest.fixture
def owner(make_owner):
    return make_owner("owner")


@pytest.fixture
def driver(make_user):
    return make_user("driver")


@pytest.fixture
def slot(make_slot, owner):
    return make_slot(owner)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def inbox():
    """listen(user_id) -> list that collects payloads pushed to that user."""
    unsubscribers = []

    def listen(user_id: str) -> list:
        received: list = []
        unsubscribers.append(bus.subscribe(user_id, received.append))
        return received

    yield listen
    for unsubscribe in unsubscribers:
        unsubscribe()


@pytest.fixture
def client(db, gateway):
    from app.main import app

    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """login(username) -> Authorization headers for a user created with PASSWORD."""

    def _login(username: str) -> dict[str, str]:
        resp = client.post("/api/auth/login", json={"email": f"{username}@example.com", "password": PASSWORD})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    return _login
