"""
Composition root for one signed-in subject.

Builds the permission cache, validator, subscription manager, stores and business
service once at process start and hands them out by reference. Subject switches go
through sign_out(), which clears all subject-scoped state before the next sign_in().
"""
import logging
import time
from collections.abc import Callable
from datetime import timedelta

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.change_feed import ChangeFeed, LocalChangeFeed, RedisChangeFeed
from core.config import Settings
from core.local_storage import LocalStorage
from core.permission_cache import PermissionCache
from core.pricing import PricingPolicy
from core.redis import RedisClient
from schemas.order import OrderCreate, OrderItemIn, ShippingInfo
from schemas.results import OrderResult
from schemas.token import TokenMetadata
from services.business_logic_service import BusinessLogicService
from services.exceptions import UnauthenticatedError
from services.notification_service import NotificationClient
from services.search_index import SearchIndexClient
from services.session_validator import SessionValidator
from services.side_effects import run_side_effect
from services.state_store import CartStore, WishlistStore
from services.subscription_manager import SubscriptionManager

logger = logging.getLogger(__name__)


async def connect_change_feed(settings: Settings) -> tuple[ChangeFeed, RedisClient | None]:
    """
    Connect the change feed used for snapshot pushes.

    Falls back to the in-process feed when Redis is disabled or unreachable; pushes
    then only reach subscribers in this process.
    """
    if not settings.redis_enabled:
        return LocalChangeFeed(), None
    redis_client = RedisClient(
        url=settings.redis_url,
        enabled=settings.redis_enabled,
        pool_size=settings.redis_pool_size,
    )
    await redis_client.connect()
    if not redis_client.is_connected:
        logger.warning("change_feed_fallback reason=redis_unavailable")
        return LocalChangeFeed(), redis_client
    return RedisChangeFeed(redis_client), redis_client


class Storefront:
    """Owns every subject-scoped service and the current subject identity."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        change_feed: ChangeFeed,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.subscriptions = SubscriptionManager(change_feed)
        self.permission_cache = PermissionCache(settings.permission_cache_ttl, clock)
        self.validator = SessionValidator(
            session_factory, self.permission_cache, self.subscriptions,
        )
        self.pricing = PricingPolicy.from_settings(settings)
        self.business = BusinessLogicService(
            session_factory,
            self.validator,
            change_feed,
            SearchIndexClient(
                settings.search_index_url,
                api_key=settings.search_index_api_key,
                http_client=http_client,
                timeout=settings.side_effect_timeout,
            ),
            NotificationClient(
                settings.notification_url,
                http_client=http_client,
                timeout=settings.side_effect_timeout,
            ),
            self.pricing,
        )
        self.cart = CartStore(
            self.business,
            self.validator,
            self.subscriptions,
            LocalStorage(settings.cart_storage_path),
            self.pricing,
        )
        self.wishlist = WishlistStore(
            self.business,
            self.validator,
            self.subscriptions,
            LocalStorage(settings.wishlist_storage_path),
        )
        self.subject_id: str | None = None

    async def sign_in(self, token: TokenMetadata) -> None:
        """
        Make the token's subject current and load its state.

        A different subject that was signed in is signed out first so none of its
        cart, cache entries or subscriptions leak into the new session.
        """
        if self.subject_id is not None and self.subject_id != token.subject_id:
            self.sign_out()
        self.subject_id = token.subject_id
        self.validator.remember_token(token)
        self.validator.watch_role_changes(token.subject_id)
        await self.cart.load(token.subject_id)
        await self.wishlist.load(token.subject_id)
        logger.info("subject_signed_in subject_id=%s", token.subject_id)

    def sign_out(self) -> None:
        """
        Clear all subject-scoped state. Synchronous.

        Subscriptions are cancelled before the cache is cleared so no push can be
        applied after this returns.
        """
        subject_id = self.subject_id
        self.subscriptions.unsubscribe_all()
        self.validator.invalidate(subject_id)
        if subject_id is not None:
            self.validator.forget_token(subject_id)
        self.cart.reset()
        self.wishlist.reset()
        self.subject_id = None
        logger.info("subject_signed_out subject_id=%s", subject_id)

    async def checkout(self, shipping: ShippingInfo) -> OrderResult:
        """
        Place an order for the current cart, then empty the cart.

        Checkout is a sensitive action, so the session must also be fresh. Once the
        order is committed, emptying the cart is best effort: a failure is reported in
        the result's side effects and the committed order is still returned.
        """
        if self.subject_id is None:
            raise UnauthenticatedError()
        self.validator.validate_session_freshness(
            self.subject_id, timedelta(seconds=self.settings.session_max_age),
        )
        order = OrderCreate(
            items=[OrderItemIn(id=item.id, quantity=item.quantity) for item in self.cart.items],
            shipping=shipping,
        )
        result = await self.business.process_order(self.subject_id, order)
        result.side_effects.append(
            await run_side_effect("cart_clear", self.cart.clear(self.subject_id)),
        )
        return result
