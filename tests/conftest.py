"""Pytest fixtures for testing."""
from collections.abc import AsyncGenerator, Awaitable, Callable
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.change_feed import LocalChangeFeed
from core.config import Settings
from core.permission_cache import PermissionCache
from core.pricing import PricingPolicy
from db.session import create_engine, create_session_factory, create_tables
from models.product import Product
from models.user import User
from services.business_logic_service import BusinessLogicService
from services.notification_service import NotificationClient
from services.search_index import SearchIndexClient
from services.session_validator import SessionValidator
from services.subscription_manager import SubscriptionManager

CUSTOMER_ID = "customer-1"
ADMIN_ID = "admin-1"


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """
    Settings pointing at a file-backed SQLite database.

    A file (not :memory:) so each session gets its own connection, which is what
    concurrent transactions need.
    """
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        redis_enabled=False,
        jwt_secret="test-secret",
        local_storage_dir=tmp_path / "local",
    )


@pytest.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create an async engine with all tables."""
    engine = create_engine(settings)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by services under test."""
    return create_session_factory(async_engine)


@pytest.fixture
def clock() -> FakeClock:
    """Controllable clock for TTL tests."""
    return FakeClock()


@pytest.fixture
def permission_cache(clock: FakeClock) -> PermissionCache:
    """Permission cache with the default TTL and the fake clock."""
    return PermissionCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def change_feed() -> LocalChangeFeed:
    """In-process change feed."""
    return LocalChangeFeed()


@pytest.fixture
def subscriptions(change_feed: LocalChangeFeed) -> SubscriptionManager:
    """Subscription manager over the local change feed."""
    return SubscriptionManager(change_feed)


@pytest.fixture
def validator(
    session_factory: async_sessionmaker[AsyncSession],
    permission_cache: PermissionCache,
    subscriptions: SubscriptionManager,
) -> SessionValidator:
    """Session validator wired to the test database."""
    return SessionValidator(session_factory, permission_cache, subscriptions)


@pytest.fixture
def business(
    session_factory: async_sessionmaker[AsyncSession],
    validator: SessionValidator,
    change_feed: LocalChangeFeed,
) -> BusinessLogicService:
    """Business service with side-effect endpoints disabled."""
    return BusinessLogicService(
        session_factory,
        validator,
        change_feed,
        SearchIndexClient(""),
        NotificationClient(""),
        PricingPolicy(),
    )


@pytest.fixture
def make_user(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[User]]:
    """Factory inserting a user document."""

    async def _make_user(
        uid: str,
        role: str = "customer",
        suspended: bool = False,
        deactivated: bool = False,
    ) -> User:
        user = User(
            uid=uid,
            email=f"{uid}@example.com",
            role=role,
            suspended=suspended,
            deactivated=deactivated,
        )
        async with session_factory() as db, db.begin():
            db.add(user)
        return user

    return _make_user


@pytest.fixture
def make_product(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[Product]]:
    """Factory inserting a catalog product."""

    async def _make_product(
        product_id: str,
        price: str = "100.00",
        quantity_available: int = 10,
        active: bool = True,
        name: str | None = None,
    ) -> Product:
        product = Product(
            id=product_id,
            name=name or f"Product {product_id}",
            description="A product",
            category="general",
            price=Decimal(price),
            quantity_available=quantity_available,
            active=active,
        )
        async with session_factory() as db, db.begin():
            db.add(product)
        return product

    return _make_product


@pytest.fixture
async def customer(make_user: Callable[..., Awaitable[User]]) -> User:
    """An active customer."""
    return await make_user(CUSTOMER_ID, role="customer")


@pytest.fixture
async def admin(make_user: Callable[..., Awaitable[User]]) -> User:
    """An active admin."""
    return await make_user(ADMIN_ID, role="admin")


@pytest.fixture
def read_product(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[str], Awaitable[Product | None]]:
    """Fresh read of a product row."""

    async def _read_product(product_id: str) -> Product | None:
        async with session_factory() as db:
            return await db.get(Product, product_id, populate_existing=True)

    return _read_product
