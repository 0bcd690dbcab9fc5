"""
Shared fixtures: a throwaway SQLite database per test, a recording
notification dispatcher and factories for companies and orders in any status.
"""
from __future__ import annotations

import itertools
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import rental_api.db.models  # noqa: F401  (registers tables on Base.metadata)
from rental_api.core.settings import AppSettings
from rental_api.db.base import Base
from rental_api.db.models.orders import Company, Order, OrderItem
from rental_api.domain.enums import NotificationType, OrderStatus

PMG_EMAIL = "pmg@example.com"
A2_EMAIL = "a2@example.com"
CLIENT_EMAIL = "client@example.com"


class RecordingDispatcher:
    """Stands in for NotificationDispatcher; remembers what would have been queued."""

    def __init__(self) -> None:
        self.sent: List[Tuple[NotificationType, UUID]] = []
        self.record_ids: List[Optional[UUID]] = []

    def dispatch(self, notification_type: NotificationType, order_id: UUID, record_id: Optional[UUID] = None) -> None:
        self.sent.append((notification_type, order_id))
        self.record_ids.append(record_id)

    def types(self) -> List[NotificationType]:
        return [t for t, _ in self.sent]


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        RUN_MIGRATIONS_ON_STARTUP=False,
        START_NOTIFICATION_WORKER=False,
        NOTIFICATION_MAX_ATTEMPTS=3,
        NOTIFICATION_TIMEOUT_SECONDS=1.0,
        NOTIFICATION_BACKOFF_MIN_SECONDS=0,
        NOTIFICATION_BACKOFF_MAX_SECONDS=0,
        NOTIFICATION_WEBHOOK_URL=None,
        PMG_NOTIFICATION_EMAILS=[PMG_EMAIL],
        A2_NOTIFICATION_EMAILS=[A2_EMAIL],
    )


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def actor_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_company(session):
    counter = itertools.count(1)

    async def _make(**fields) -> Company:
        company = Company(name=fields.pop("name", f"Company {next(counter)}"), **fields)
        session.add(company)
        await session.commit()
        return company

    return _make


@pytest.fixture
def make_order(session, make_company):
    """
    Insert an order directly in the given status.

    items: (quantity, asset_id) pairs; every unit has a volume of 1.
    """
    counter = itertools.count(1)

    async def _make(
        status: OrderStatus = OrderStatus.DRAFT,
        items: Iterable[Tuple[int, Optional[UUID]]] = ((10, None),),
        company: Optional[Company] = None,
        **fields,
    ) -> Order:
        company = company or await make_company()
        order = Order(
            order_code=f"ORD-TEST-{next(counter):04d}",
            company_id=company.id,
            created_by=uuid4(),
            status=status,
            contact_email=fields.pop("contact_email", CLIENT_EMAIL),
            **fields,
        )
        session.add(order)
        await session.flush()
        session.add_all(
            [
                OrderItem(
                    order_id=order.id,
                    description=f"Item {i}",
                    quantity=quantity,
                    asset_id=asset_id,
                    volume=Decimal("1"),
                )
                for i, (quantity, asset_id) in enumerate(items)
            ]
        )
        await session.commit()
        return order

    return _make
