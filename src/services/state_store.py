"""
Client-side cart and wishlist state kept in sync with the system of record.

State changes only through two authoritative paths:
- the result of a write made through BusinessLogicService;
- a full snapshot pushed by the live subscription.

Local state is never mutated speculatively. Every snapshot carries the document
version; a snapshot whose version is not newer than what was already applied is
dropped, so a late push cannot roll the state back and the same write is never
applied twice.
"""
import logging
from collections.abc import Awaitable
from decimal import Decimal
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from core.change_feed import Snapshot
from core.local_storage import LocalStorage
from core.pricing import PricingPolicy
from schemas.cart import CartItem, CartSnapshot, WishlistItem, WishlistSnapshot
from services.business_logic_service import BusinessLogicService
from services.exceptions import StorefrontError
from services.session_validator import SessionValidator
from services.subscription_manager import SubscriptionManager

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", CartItem, WishlistItem)
SnapshotT = TypeVar("SnapshotT", CartSnapshot, WishlistSnapshot)


class SyncedItemStore(Generic[ItemT, SnapshotT]):
    """Shared load/subscribe/persist behaviour of the cart and wishlist stores."""

    collection: str = ""
    snapshot_type: type[SnapshotT]

    def __init__(
        self,
        service: BusinessLogicService,
        validator: SessionValidator,
        subscriptions: SubscriptionManager,
        storage: LocalStorage,
    ) -> None:
        self._service = service
        self._validator = validator
        self._subscriptions = subscriptions
        self._storage = storage

        self.items: list[ItemT] = []
        self.loading = False
        self.error: str | None = None
        self.provisional = False
        self.user_id: str | None = None
        self._version = 0

        self._restore()

    @property
    def version(self) -> int:
        """Version of the last applied authoritative snapshot."""
        return self._version

    def resource_key(self, user_id: str) -> str:
        """Subscription key of the user's document."""
        return f"{self.collection}/{user_id}"

    # -------------------------------------------------------------------------
    # Load and subscription
    # -------------------------------------------------------------------------

    async def load(self, user_id: str | None) -> None:
        """
        Populate state for the user and start the live subscription.

        No-op without a user. The subscription is opened before the one-time read so
        no write can fall between the two; the read result and the pushes go through
        the same version check. Repeated or concurrent loads keep a single
        subscription because SubscriptionManager replaces the previous one.
        """
        if not user_id:
            return
        if self.user_id is not None and self.user_id != user_id:
            self.reset()
        self.user_id = user_id
        self.loading = True
        try:
            await self._validator.validate_active_session(user_id)
            self.subscribe(user_id)
            snapshot = await self._read(user_id)
        except StorefrontError as e:
            self.error = str(e)
            self.loading = False
            raise
        self._apply(snapshot, source="load")
        self.loading = False

    def subscribe(self, user_id: str) -> None:
        """(Re)open the live subscription for the user's document."""
        self._subscriptions.subscribe(
            self.resource_key(user_id), self._on_push, self._on_push_error,
        )

    def unsubscribe(self) -> None:
        """Stop receiving pushes. Synchronous."""
        if self.user_id is not None:
            self._subscriptions.unsubscribe(self.resource_key(self.user_id))

    @property
    def subscribed(self) -> bool:
        """Whether a live subscription exists for the current user."""
        return self.user_id is not None and self._subscriptions.is_active(
            self.resource_key(self.user_id),
        )

    def _on_push(self, snapshot: Snapshot) -> None:
        if snapshot is None:
            # Document absent: an empty resource, not an error. The applied version is
            # kept so an older snapshot still in flight cannot bring the items back.
            self._adopt([], self._version, source="push")
            return
        self._apply(self.snapshot_type.model_validate(snapshot), source="push")

    def _on_push_error(self, error: BaseException) -> None:
        # Not retried here: re-subscribing on a permission error would loop forever.
        logger.warning("%s_subscription_error user_id=%s error=%s", self.collection, self.user_id, error)
        self.error = str(error)
        self.loading = False

    # -------------------------------------------------------------------------
    # Authoritative writes
    # -------------------------------------------------------------------------

    async def _write(self, operation: Awaitable[SnapshotT]) -> None:
        """Await an authoritative write and adopt its result."""
        try:
            snapshot = await operation
        except StorefrontError as e:
            self.error = str(e)
            raise
        self._apply(snapshot, source="write")

    def _apply(self, snapshot: SnapshotT, source: str) -> None:
        if self._version and snapshot.version <= self._version:
            logger.debug(
                "%s_snapshot_ignored source=%s version=%s applied=%s",
                self.collection,
                source,
                snapshot.version,
                self._version,
            )
            return
        self._adopt(list(snapshot.items), snapshot.version, source)

    def _adopt(self, items: list[ItemT], version: int, source: str) -> None:
        self.items = items
        self._version = version
        self.provisional = False
        self.loading = False
        if source == "push":
            self.error = None
        self._persist()

    async def _read(self, user_id: str) -> SnapshotT:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist(self) -> None:
        try:
            self._storage.save({
                "user_id": self.user_id,
                "version": self._version,
                "items": [item.model_dump(mode="json") for item in self.items],
            })
        except OSError as e:
            logger.warning("%s_persist_failed error=%s", self.collection, e)

    def _restore(self) -> None:
        data = self._storage.load()
        if not data:
            return
        try:
            snapshot = self.snapshot_type.model_validate(
                {"items": data.get("items", []), "version": data.get("version", 0)},
            )
        except ValueError as e:
            logger.warning("%s_restore_failed error=%s", self.collection, e)
            return
        self.items = list(snapshot.items)
        self.user_id = data.get("user_id")
        # Restored state is provisional: the first load or push overwrites it
        # regardless of version.
        self._version = 0
        self.provisional = True

    def reset(self) -> None:
        """Drop all state for the current user, including the subscription and saved copy."""
        self.unsubscribe()
        self.items = []
        self._version = 0
        self.loading = False
        self.error = None
        self.provisional = False
        self.user_id = None
        self._storage.clear()

    def clear_error(self) -> None:
        """Reset the error slot."""
        self.error = None


class CartStore(SyncedItemStore[CartItem, CartSnapshot]):
    """The signed-in subject's cart with derived totals."""

    collection = "carts"
    snapshot_type = CartSnapshot

    def __init__(
        self,
        service: BusinessLogicService,
        validator: SessionValidator,
        subscriptions: SubscriptionManager,
        storage: LocalStorage,
        pricing: PricingPolicy | None = None,
    ) -> None:
        super().__init__(service, validator, subscriptions, storage)
        self._pricing = pricing or service.pricing

    async def _read(self, user_id: str) -> CartSnapshot:
        return await self._service.get_cart(user_id)

    async def add_item(
        self,
        user_id: str | None,
        product: BaseModel | dict[str, Any],
        quantity: int = 1,
    ) -> None:
        """Add a product through the service and adopt the resulting cart."""
        await self._write(self._service.add_to_cart(user_id, product, quantity))

    async def update_quantity(self, user_id: str | None, product_id: str, quantity: int) -> None:
        """Change a line's quantity; zero or less is the same as remove_item."""
        if quantity <= 0:
            await self.remove_item(user_id, product_id)
            return
        await self._write(self._service.update_cart_quantity(user_id, product_id, quantity))

    async def remove_item(self, user_id: str | None, product_id: str) -> None:
        """Remove a line through the service and adopt the resulting cart."""
        await self._write(self._service.remove_from_cart(user_id, product_id))

    async def clear(self, user_id: str | None) -> None:
        """Empty the cart through the service and adopt the result."""
        await self._write(self._service.clear_cart(user_id))

    # Derived values - pure functions of self.items

    def get_item_quantity(self, product_id: str) -> int:
        """Quantity of the product in the cart (0 when absent)."""
        return next((item.quantity for item in self.items if item.id == product_id), 0)

    def get_total_items(self) -> int:
        """Number of units across all lines."""
        return sum(item.quantity for item in self.items)

    def get_total_price(self) -> Decimal:
        """Sum of price * quantity."""
        return self._pricing.subtotal(self.items)

    def get_subtotal(self) -> Decimal:
        """Alias of get_total_price."""
        return self.get_total_price()

    def get_tax(self) -> Decimal:
        """Tax at the fixed rate on the subtotal."""
        return self._pricing.tax(self.get_subtotal())

    def get_shipping(self) -> Decimal:
        """Shipping fee for the subtotal."""
        return self._pricing.shipping(self.get_subtotal())

    def get_grand_total(self) -> Decimal:
        """Subtotal + tax + shipping."""
        return self.get_subtotal() + self.get_tax() + self.get_shipping()


class WishlistStore(SyncedItemStore[WishlistItem, WishlistSnapshot]):
    """The signed-in subject's wishlist."""

    collection = "wishlists"
    snapshot_type = WishlistSnapshot

    async def _read(self, user_id: str) -> WishlistSnapshot:
        return await self._service.get_wishlist(user_id)

    async def add_item(self, user_id: str | None, product: BaseModel | dict[str, Any]) -> None:
        """Save a product through the service and adopt the result."""
        await self._write(self._service.add_to_wishlist(user_id, product))

    async def remove_item(self, user_id: str | None, product_id: str) -> None:
        """Remove a saved product through the service and adopt the result."""
        await self._write(self._service.remove_from_wishlist(user_id, product_id))

    def contains(self, product_id: str) -> bool:
        """Whether the product is saved."""
        return any(item.id == product_id for item in self.items)
