"""
Pytest fixtures for test database, client, and authentication.

Every test gets its own file-backed SQLite database, so concurrent sessions
really contend for the same rows the way they do on PostgreSQL.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./tourbook-test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("BACKGROUND_TASKS_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-bytes-for-hs256")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tourbook.api.deps import get_checkout_gateway, get_storage
from tourbook.core.security import create_access_token
from tourbook.db.base import Base
from tourbook.db.session import get_db
from tourbook.domain.booking_state import PaymentMethod
from tourbook.main import app
from tourbook.models.booking import Booking
from tourbook.models.tour import Tour
from tourbook.models.user import ROLE_ADMIN, User
from tourbook.services.admin_service import verify_payment
from tourbook.services.confirmation_service import confirm_booking
from tourbook.services.interfaces import CheckoutEvent, CheckoutGateway, ObjectStorage
from tourbook.services.reservation_service import reserve


class FakeStorage(ObjectStorage):
    def __init__(self):
        self.released: list[str] = []

    def get_url(self, ref: Optional[str]) -> Optional[str]:
        return f"https://files.test/{ref}" if ref else None

    async def release(self, ref: str) -> None:
        self.released.append(ref)


class FakeGateway(CheckoutGateway):
    """Records checkout sessions and hands back whatever event a test queues."""

    def __init__(self):
        self.sessions: list[dict] = []
        self.next_event: Optional[CheckoutEvent] = None

    async def create_checkout_session(self, booking_id, title, unit_amount, quantity) -> str:
        self.sessions.append(
            {"booking_id": booking_id, "title": title, "unit_amount": unit_amount, "quantity": quantity}
        )
        return f"https://checkout.test/{booking_id}"

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> CheckoutEvent:
        if signature != "valid" or self.next_event is None:
            raise ValueError("Invalid signature")
        return self.next_event


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a fresh database file, yield a session factory, then dispose."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def storage() -> FakeStorage:
    return FakeStorage()


@pytest_asyncio.fixture
async def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, storage, gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with one committed-or-rolled-back session per request, like production."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_checkout_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(session: AsyncSession, identifier: str, email: str, name: str, role: str = "customer") -> User:
    user = User(token_identifier=identifier, email=email, name=name, role=role)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


def auth_headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user.token_identifier})}"}


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, "idp|customer-1", "sara@example.com", "Sara")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, "idp|customer-2", "omar@example.com", "Omar")


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, "idp|admin-1", "admin@example.com", "Admin", role=ROLE_ADMIN)


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    """Authorization headers with Bearer token."""
    return auth_headers_for(test_user)


@pytest_asyncio.fixture
async def other_headers(other_user: User) -> dict:
    return auth_headers_for(other_user)


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict:
    return auth_headers_for(admin_user)


async def make_tour(session: AsyncSession, capacity: int = 10, price: int = 25000, **kwargs) -> Tour:
    tour = Tour(
        title=kwargs.pop("title", "Old Town Walk"),
        description=kwargs.pop("description", "A guided walk"),
        price=price,
        start_date=kwargs.pop("start_date", datetime.now(timezone.utc) + timedelta(days=30)),
        capacity=capacity,
        booked_count=kwargs.pop("booked_count", 0),
        gallery_image_ids=kwargs.pop("gallery_image_ids", []),
        **kwargs,
    )
    session.add(tour)
    await session.commit()
    await session.refresh(tour)
    return tour


@pytest_asyncio.fixture
async def test_tour(db_session: AsyncSession) -> Tour:
    """A tour with 10 seats a month from now."""
    return await make_tour(db_session, capacity=10)


@pytest_asyncio.fixture
async def single_seat_tour(db_session: AsyncSession) -> Tour:
    return await make_tour(db_session, capacity=1, title="Private Desert Drive")


async def pending_booking(session: AsyncSession, user: User, tour: Tour, tickets: int = 2) -> Booking:
    """Reserve and submit a bank transfer, leaving the booking in the review queue."""
    booking, _ = await reserve(session, user, tour.id, tickets)
    booking = await confirm_booking(
        session,
        booking.id,
        user,
        payment_method=PaymentMethod.TRANSFER,
        contact_number="+966500000000",
        proof_ref="uploads/receipt.jpg",
        refund_details="IBAN SA00",
    )
    await session.commit()
    return booking


async def confirmed_booking(session: AsyncSession, user: User, tour: Tour, tickets: int = 2) -> Booking:
    booking = await pending_booking(session, user, tour, tickets)
    booking = await verify_payment(session, booking.id, approve=True)
    await session.commit()
    return booking
