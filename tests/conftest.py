"""
Shared test fixtures.

Each test gets its own file-backed SQLite database (via aiosqlite) so tests
run without Docker / PostgreSQL / Redis, and so concurrent claims can use
separate connections against the same data.
"""

from datetime import datetime
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domain.entities import Actor, RiderIdentity
from src.domain.enums import UserRole, VehicleStatus
from src.infrastructure.database import Base, build_engine
from src.infrastructure.models import UserModel, VehicleModel
from src.services.rides import RideLifecycleService

# Monday 2026-10-19, before the service window opens
MONDAY_MORNING = datetime(2026, 10, 19, 7, 0)
TUESDAY_10AM = datetime(2026, 10, 20, 10, 0)

OFFICE_ID = 1
DRIVER_A_ID = 2
DRIVER_B_ID = 3
DRIVER_OFF_DUTY_ID = 4
VAN_ID = 1
VAN_IN_SHOP_ID = 2

OFFICE = Actor(role=UserRole.OFFICE, user_id=OFFICE_ID)
DRIVER_A = Actor(role=UserRole.DRIVER, user_id=DRIVER_A_ID)
DRIVER_B = Actor(role=UserRole.DRIVER, user_id=DRIVER_B_ID)
RIDER_EMAIL = "casey@campus.edu"
RIDER = Actor(role=UserRole.RIDER, email=RIDER_EMAIL)
CASEY = RiderIdentity(name="Casey Rider", email=RIDER_EMAIL, phone="555-0100")


class FixedClock:
    """Clock whose time only moves when a test moves it."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.fail = fail

    def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        self.sent.append((event_type, payload))
        if self.fail:
            raise RuntimeError("mail server down")

    def types(self) -> list[str]:
        return [event_type for event_type, _ in self.sent]


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rideops.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_sessionmaker(test_engine, expire_on_commit=False)() as session:
        session.add_all(
            [
                UserModel(name="Olive Office", email="office@campus.edu", role=UserRole.OFFICE, active=True),
                UserModel(name="Dana Driver", email="dana@campus.edu", role=UserRole.DRIVER, active=True),
                UserModel(name="Blake Driver", email="blake@campus.edu", role=UserRole.DRIVER, active=True),
                UserModel(name="Owen Offduty", email="owen@campus.edu", role=UserRole.DRIVER, active=False),
                VehicleModel(name="Van 1", capacity=6, wheelchair_accessible=True),
                VehicleModel(name="Van 2", capacity=6, status=VehicleStatus.MAINTENANCE),
            ]
        )
        await session.commit()

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(MONDAY_MORNING)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(db_session, notifier, clock) -> RideLifecycleService:
    return RideLifecycleService(db_session, notifier, clock)


# ── Helpers ───────────────────────────────────────────────────────────


async def request_ride(service: RideLifecycleService, when: datetime = TUESDAY_10AM, rider=CASEY, actor=RIDER):
    return await service.request_ride("Main Library", "Health Center", when, rider, actor)


async def approved_ride(service: RideLifecycleService, **kwargs):
    ride = await request_ride(service, **kwargs)
    return await service.approve_ride(ride.id, OFFICE)


async def arrived_ride(service: RideLifecycleService, driver: Actor = DRIVER_A, **kwargs):
    ride = await approved_ride(service, **kwargs)
    await service.claim_ride(ride.id, driver)
    await service.mark_on_the_way(ride.id, driver, vehicle_id=VAN_ID)
    return await service.mark_arrived(ride.id, driver)
