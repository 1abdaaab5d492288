"""Tests for the Storefront composition root."""
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.change_feed import LocalChangeFeed
from core.config import Settings
from models.product import Product
from models.user import User
from schemas.order import ShippingInfo
from schemas.token import TokenMetadata
from services.exceptions import (
    PermissionDeniedError,
    SessionExpiredError,
    TransactionFailureError,
    UnauthenticatedError,
    ValidationError,
)
from services.storefront import Storefront, connect_change_feed

MakeProduct = Callable[..., Awaitable[Product]]


def _token(subject_id: str, authenticated_ago: timedelta = timedelta(minutes=5)) -> TokenMetadata:
    return TokenMetadata(subject_id=subject_id, auth_time=datetime.now(UTC) - authenticated_ago)


@pytest.fixture
def storefront_feed() -> LocalChangeFeed:
    return LocalChangeFeed()


@pytest.fixture
def storefront(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    storefront_feed: LocalChangeFeed,
    clock,
) -> Storefront:
    return Storefront(settings, session_factory, storefront_feed, clock=clock)


class TestSignInOut:
    """Subject-scoped state is created on sign-in and fully cleared on sign-out."""

    async def test__sign_in__loads_state_and_subscribes(
        self, storefront: Storefront, customer: User,
    ) -> None:
        await storefront.sign_in(_token(customer.uid))

        assert storefront.subject_id == customer.uid
        assert sorted(storefront.subscriptions.active_keys) == [
            f"carts/{customer.uid}",
            f"users/{customer.uid}",
            f"wishlists/{customer.uid}",
        ]
        assert storefront.cart.items == []
        assert storefront.wishlist.items == []

    async def test__sign_out__clears_everything(
        self, storefront: Storefront, customer: User,
    ) -> None:
        await storefront.sign_in(_token(customer.uid))
        await storefront.cart.add_item(customer.uid, {"id": "p1", "name": "Mug", "price": "8"}, 1)

        storefront.sign_out()

        assert storefront.subject_id is None
        assert storefront.subscriptions.active_keys == []
        assert len(storefront.permission_cache) == 0
        assert storefront.cart.items == []
        assert storefront.cart.user_id is None
        assert not storefront.settings.cart_storage_path.exists()
        with pytest.raises(UnauthenticatedError):
            storefront.validator.validate_session_freshness(customer.uid)

    async def test__sign_in__other_subject_signs_out_previous(
        self, storefront: Storefront, customer: User, make_user,
    ) -> None:
        await make_user("customer-2")
        await storefront.sign_in(_token(customer.uid))
        await storefront.cart.add_item(customer.uid, {"id": "p1", "name": "Mug", "price": "8"}, 1)

        await storefront.sign_in(_token("customer-2"))

        assert storefront.subject_id == "customer-2"
        assert storefront.cart.items == []
        assert all(key.endswith("/customer-2") for key in storefront.subscriptions.active_keys)
        assert storefront.permission_cache.get_snapshot(customer.uid) is None

    async def test__role_push__invalidates_cached_verdict(
        self,
        storefront: Storefront,
        storefront_feed: LocalChangeFeed,
        admin: User,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await storefront.sign_in(_token(admin.uid))
        await storefront.validator.check_role(admin.uid, "admin")

        async with session_factory() as db, db.begin():
            user = await db.get(User, admin.uid)
            user.role = "customer"
        await storefront_feed.publish(f"users/{admin.uid}", {"role": "customer"})

        with pytest.raises(PermissionDeniedError):
            await storefront.validator.check_role(admin.uid, "admin")


class TestCheckout:
    """Checkout places the order for the current cart and empties it."""

    async def test__checkout__places_order_and_clears_cart(
        self,
        storefront: Storefront,
        customer: User,
        make_product: MakeProduct,
        read_product,
    ) -> None:
        await make_product("p1", price="100.00", quantity_available=4)
        await storefront.sign_in(_token(customer.uid))
        await storefront.cart.add_item(
            customer.uid, await storefront.business.get_product("p1"), 2,
        )
        expected_total = storefront.cart.get_grand_total()

        result = await storefront.checkout(ShippingInfo(address="1 Main St"))

        assert result.order.total == expected_total
        assert result.order.total == Decimal("266.00")
        assert storefront.cart.items == []
        assert (await read_product("p1")).quantity_available == 2

    async def test__checkout__cart_clear_failure_still_returns_order(
        self,
        storefront: Storefront,
        customer: User,
        make_product: MakeProduct,
        read_product,
    ) -> None:
        await make_product("p1", price="100.00", quantity_available=4)
        await storefront.sign_in(_token(customer.uid))
        await storefront.cart.add_item(customer.uid, {"id": "p1", "name": "x", "price": "100"}, 1)

        with patch.object(
            storefront.business,
            "clear_cart",
            new_callable=AsyncMock,
            side_effect=TransactionFailureError("boom"),
        ):
            result = await storefront.checkout(ShippingInfo(address="1 Main St"))

        cart_clear = result.side_effects[-1]
        assert cart_clear.name == "cart_clear"
        assert cart_clear.succeeded is False
        assert not result.side_effects_ok
        assert [order.id for order in await storefront.business.list_orders(customer.uid)] == [
            result.order.id,
        ]
        assert (await read_product("p1")).quantity_available == 3

    async def test__checkout__stale_login_rejected(
        self, storefront: Storefront, customer: User, make_product: MakeProduct,
    ) -> None:
        await make_product("p1")
        await storefront.sign_in(_token(customer.uid, timedelta(hours=30)))
        await storefront.cart.add_item(customer.uid, {"id": "p1", "name": "x", "price": "100"}, 1)

        with pytest.raises(SessionExpiredError):
            await storefront.checkout(ShippingInfo(address="1 Main St"))

        assert storefront.cart.get_item_quantity("p1") == 1

    async def test__checkout__failed_order_keeps_cart(
        self, storefront: Storefront, customer: User, make_product: MakeProduct,
    ) -> None:
        await make_product("p1")
        await storefront.sign_in(_token(customer.uid))
        await storefront.cart.add_item(customer.uid, {"id": "p1", "name": "x", "price": "100"}, 1)

        with pytest.raises(ValidationError):
            await storefront.checkout(ShippingInfo(address=""))

        assert storefront.cart.get_item_quantity("p1") == 1

    async def test__checkout__signed_out(self, storefront: Storefront) -> None:
        with pytest.raises(UnauthenticatedError):
            await storefront.checkout(ShippingInfo(address="1 Main St"))


class TestConnectChangeFeed:
    """Tests for change feed selection at startup."""

    async def test__connect_change_feed__redis_disabled(self, settings: Settings) -> None:
        feed, redis_client = await connect_change_feed(settings)

        assert isinstance(feed, LocalChangeFeed)
        assert redis_client is None

    async def test__connect_change_feed__falls_back_when_unreachable(self, settings: Settings) -> None:
        settings.redis_enabled = True

        with (
            patch("services.storefront.RedisClient.connect", new_callable=AsyncMock),
            patch(
                "services.storefront.RedisClient.is_connected",
                new_callable=lambda: property(lambda self: False),
            ),
        ):
            feed, redis_client = await connect_change_feed(settings)

        assert isinstance(feed, LocalChangeFeed)
        assert redis_client is not None
