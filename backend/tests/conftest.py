"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import energy_alerts.models  # noqa: F401
from energy_alerts.core import database as db_module
from energy_alerts.core.database import Base, get_db
from energy_alerts.models.device import Device
from energy_alerts.models.home import Home
from energy_alerts.models.usage_reading import UsageReading

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

DEFAULT_OWNER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

# A Wednesday, mid-afternoon UTC
DEFAULT_NOW = datetime(2024, 1, 17, 14, 30, tzinfo=UTC)


class FakeClock:
    """Settable clock for simulated time."""

    def __init__(self, now: datetime = DEFAULT_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def test_session_factory():
    return _TestSessionLocal


@pytest.fixture
def db_session():
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def owner_id():
    return DEFAULT_OWNER_ID


@pytest.fixture
def home(db_session):
    h = Home(owner_id=DEFAULT_OWNER_ID, name="Main House")
    db_session.add(h)
    db_session.commit()
    db_session.refresh(h)
    return h


@pytest.fixture
def device(db_session, home):
    d = Device(home_id=home.id, name="Heat Pump", device_type="hvac")
    db_session.add(d)
    db_session.commit()
    db_session.refresh(d)
    return d


def add_reading(
    db,
    device: Device,
    kwh: str | Decimal,
    timestamp: datetime,
    cost: str | Decimal | None = None,
) -> UsageReading:
    reading = UsageReading(
        home_id=device.home_id,
        device_id=device.id,
        kwh=Decimal(str(kwh)),
        cost=Decimal(str(cost)) if cost is not None else None,
        timestamp=timestamp,
    )
    db.add(reading)
    db.commit()
    return reading
