"""
Business transactions for the storefront.

Every operation follows the same shape: validate the session (and role where the
security rules require one), validate business rules, write to the system of record
in one transaction, then run best-effort side effects whose failures are reported
next to the result instead of failing it.
"""
import logging
import secrets
import string
import time
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.change_feed import ChangeFeed
from core.permissions import Role
from core.pricing import PricingPolicy, to_cents
from models.base import new_document_id, utcnow
from models.cart import Cart, Wishlist
from models.order import Order
from models.product import Product
from schemas.cart import CartItem, CartSnapshot, WishlistItem, WishlistSnapshot
from schemas.order import (
    ORDER_STATUS_TRANSITIONS,
    OrderCreate,
    OrderLine,
    OrderRead,
    OrderStatus,
)
from schemas.product import ProductCreate, ProductRead, ProductUpdate
from schemas.results import OrderResult, ProductResult
from services.exceptions import (
    InvalidStateError,
    NotFoundError,
    OutOfStockError,
    TransactionFailureError,
    ValidationError,
)
from services.notification_service import NotificationClient
from services.search_index import SearchIndexClient
from services.session_validator import SessionValidator
from services.side_effects import run_side_effect

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.digits + string.ascii_lowercase
REQUIRED_PRODUCT_FIELDS = ("name", "description", "price", "category", "quantity_available")
NULLABLE_PRODUCT_FIELDS = ("image_url",)

ItemT = TypeVar("ItemT", CartItem, WishlistItem)


def generate_order_number() -> str:
    """
    Generate a globally unique order number without a central sequencer.

    Format: ORD-<epoch millis>-<9 random base36 chars>.
    """
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def validate_product_fields(data: dict[str, Any], partial: bool = False) -> None:
    """
    Validate product fields against the catalog rules.

    Args:
        data: Field values. For partial updates only the keys present are checked.
        partial: When False, every required field must be present.

    Raises:
        ValidationError: With the name of the first offending field.
    """
    for field in REQUIRED_PRODUCT_FIELDS:
        if field not in data and partial:
            continue
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(field, f"Missing required field: {field}")
    for field, value in data.items():
        if value is None and field not in NULLABLE_PRODUCT_FIELDS:
            raise ValidationError(field, f"Field cannot be null: {field}")

    if "price" in data and data["price"] <= 0:
        raise ValidationError("price", "Price must be greater than 0")
    if "quantity_available" in data and data["quantity_available"] < 0:
        raise ValidationError("quantity_available", "Quantity cannot be negative")


class BusinessLogicService:
    """Orchestrates cart, catalog and checkout transactions for a subject."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        validator: SessionValidator,
        change_feed: ChangeFeed,
        search_index: SearchIndexClient,
        notifications: NotificationClient,
        pricing: PricingPolicy | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._validator = validator
        self._feed = change_feed
        self._search_index = search_index
        self._notifications = notifications
        self._pricing = pricing or PricingPolicy()

    @property
    def pricing(self) -> PricingPolicy:
        """Tax and shipping policy used for orders."""
        return self._pricing

    # =========================================================================
    # Products
    # =========================================================================

    async def get_product(self, product_id: str) -> ProductRead:
        """Read a product. Products are world-readable."""
        async with self._session_factory() as db:
            product = await db.get(Product, product_id)
        if product is None:
            raise NotFoundError("product", product_id)
        return ProductRead.model_validate(product)

    async def create_product(self, subject_id: str | None, data: ProductCreate) -> ProductResult:
        """
        Create a catalog product.

        Raises:
            PermissionDeniedError: Subject is not an admin.
            ValidationError: Missing field, price <= 0 or negative quantity.
            TransactionFailureError: The write was rejected.
        """
        await self._validator.check_role(subject_id, Role.ADMIN)
        fields = data.model_dump()
        validate_product_fields(fields)

        product = Product(
            id=new_document_id(),
            name=fields["name"],
            description=fields["description"],
            category=fields["category"],
            price=fields["price"],
            quantity_available=fields["quantity_available"],
            image_url=fields.get("image_url"),
            active=True,
            featured=False,
            rating=0.0,
            review_count=0,
        )
        try:
            async with self._session_factory() as db, db.begin():
                db.add(product)
        except SQLAlchemyError as e:
            logger.error("product_create_failed error=%s", e)
            raise TransactionFailureError(f"Failed to create product: {e}") from e

        created = ProductRead.model_validate(product)
        logger.info("product_created product_id=%s subject_id=%s", created.id, subject_id)
        outcome = await run_side_effect(
            "search_index", self._search_index.index_product(created.model_dump(mode="json")),
        )
        return ProductResult(product=created, side_effects=[outcome])

    async def update_product(
        self,
        subject_id: str | None,
        product_id: str,
        updates: ProductUpdate,
    ) -> ProductResult:
        """
        Apply a partial update to a product.

        Raises:
            PermissionDeniedError: Subject is not an admin.
            ValidationError: A provided field breaks the catalog rules.
            NotFoundError: No such product.
            TransactionFailureError: The write was rejected.
        """
        await self._validator.check_role(subject_id, Role.ADMIN)
        fields = updates.model_dump(exclude_unset=True)
        validate_product_fields(fields, partial=True)

        try:
            async with self._session_factory() as db, db.begin():
                product = await db.get(Product, product_id, with_for_update=True)
                if product is None:
                    raise NotFoundError("product", product_id)
                for name, value in fields.items():
                    setattr(product, name, value)
                product.updated_at = utcnow()
        except SQLAlchemyError as e:
            logger.error("product_update_failed product_id=%s error=%s", product_id, e)
            raise TransactionFailureError(f"Failed to update product: {e}") from e

        updated = ProductRead.model_validate(product)
        logger.info(
            "product_updated product_id=%s fields=%s subject_id=%s",
            product_id,
            sorted(fields),
            subject_id,
        )
        outcome = await run_side_effect(
            "search_index", self._search_index.index_product(updated.model_dump(mode="json")),
        )
        return ProductResult(product=updated, side_effects=[outcome])

    async def _sync_product_to_search(self, product_id: str) -> None:
        product = await self.get_product(product_id)
        await self._search_index.index_product(product.model_dump(mode="json"))

    # =========================================================================
    # Orders
    # =========================================================================

    async def process_order(self, subject_id: str | None, order: OrderCreate) -> OrderResult:
        """
        Place an order for the subject.

        Steps: validate session, validate order shape, advisory inventory check,
        atomic write (order insert + conditional stock decrements), then
        best-effort confirmation and search sync.

        Raises:
            UnauthenticatedError / InvalidSessionError: No valid subject.
            AccountSuspendedError / AccountDeactivatedError: Account flags set.
            ValidationError: Empty order, missing address, bad quantity, unknown product.
            OutOfStockError: A product cannot cover the requested quantity.
            TransactionFailureError: The atomic write was aborted.
        """
        user = await self._validator.validate_active_session(subject_id)
        requested = self._validate_order_shape(order)
        products = await self._validate_inventory(requested)

        lines = [
            OrderLine(
                id=product.id,
                name=product.name,
                price=product.price,
                quantity=requested[product.id],
                image_url=product.image_url,
            )
            for product in products
        ]
        subtotal = to_cents(self._pricing.subtotal(lines))
        tax = to_cents(self._pricing.tax(subtotal))
        shipping_fee = to_cents(self._pricing.shipping(subtotal))

        order_row = Order(
            id=new_document_id(),
            user_id=user.uid,
            order_number=generate_order_number(),
            status=OrderStatus.PROCESSING.value,
            items=[line.model_dump(mode="json") for line in lines],
            shipping=order.shipping.model_dump(mode="json", exclude_none=True),
            subtotal=subtotal,
            tax=tax,
            shipping_fee=shipping_fee,
            total=subtotal + tax + shipping_fee,
        )
        await self._write_order(order_row, lines)

        placed = OrderRead.model_validate(order_row)
        logger.info(
            "order_placed order_id=%s order_number=%s user_id=%s total=%s",
            placed.id,
            placed.order_number,
            placed.user_id,
            placed.total,
        )

        side_effects = [
            await run_side_effect(
                "order_confirmation",
                self._notifications.send_order_confirmation(placed.model_dump(mode="json")),
            ),
        ]
        for line in lines:
            side_effects.append(
                await run_side_effect("search_index", self._sync_product_to_search(line.id)),
            )
        return OrderResult(order=placed, side_effects=side_effects)

    def _validate_order_shape(self, order: OrderCreate) -> dict[str, int]:
        """Check the order has items and an address; return quantities merged by product."""
        if not order.items:
            raise ValidationError("items", "Order must contain at least one item")
        if order.shipping is None or not (order.shipping.address or "").strip():
            raise ValidationError("shipping.address", "Shipping address is required")

        requested: dict[str, int] = {}
        for index, item in enumerate(order.items):
            if item.quantity <= 0:
                raise ValidationError(
                    f"items[{index}].quantity", "Item quantity must be greater than 0",
                )
            requested[item.id] = requested.get(item.id, 0) + item.quantity
        return requested

    async def _validate_inventory(self, requested: dict[str, int]) -> list[ProductRead]:
        """
        Re-read every product and compare stock with the requested quantity.

        Advisory only: stock can change before the write. The conditional decrement in
        _write_order is what prevents overselling.
        """
        async with self._session_factory() as db:
            result = await db.execute(select(Product).where(Product.id.in_(list(requested))))
            found = {product.id: ProductRead.model_validate(product) for product in result.scalars()}

        products = []
        for product_id, quantity in requested.items():
            product = found.get(product_id)
            if product is None or not product.active:
                raise ValidationError("items", f"Product {product_id} not found")
            if product.quantity_available < quantity:
                raise OutOfStockError(product_id, quantity, product.quantity_available)
            products.append(product)
        return products

    async def _write_order(self, order_row: Order, lines: list[OrderLine]) -> None:
        """Insert the order and decrement stock in one all-or-nothing transaction."""
        try:
            async with self._session_factory() as db, db.begin():
                db.add(order_row)
                await db.flush()
                for line in lines:
                    result = await db.execute(
                        update(Product)
                        .where(
                            Product.id == line.id,
                            Product.quantity_available >= line.quantity,
                        )
                        .values(
                            quantity_available=Product.quantity_available - line.quantity,
                            updated_at=utcnow(),
                        )
                        .execution_options(synchronize_session=False),
                    )
                    if result.rowcount != 1:
                        # Raising inside begin() rolls back the order insert too.
                        logger.info(
                            "order_stock_conflict product_id=%s requested=%s",
                            line.id,
                            line.quantity,
                        )
                        raise OutOfStockError(line.id, line.quantity)
        except SQLAlchemyError as e:
            logger.error("order_write_failed order_id=%s error=%s", order_row.id, e)
            raise TransactionFailureError(f"Failed to process order: {e}") from e

    async def get_order(self, subject_id: str | None, order_id: str) -> OrderRead:
        """
        Read an order. Owners may read their own orders, admins any order.

        Raises:
            NotFoundError: No such order.
            PermissionDeniedError: Subject is neither the owner nor an admin.
        """
        user = await self._validator.validate_active_session(subject_id)
        async with self._session_factory() as db:
            order = await db.get(Order, order_id)
        if order is None:
            raise NotFoundError("order", order_id)
        if order.user_id != user.uid:
            await self._validator.check_role(subject_id, Role.ADMIN)
        return OrderRead.model_validate(order)

    async def list_orders(self, subject_id: str | None) -> list[OrderRead]:
        """The subject's own orders, newest first."""
        user = await self._validator.validate_active_session(subject_id)
        async with self._session_factory() as db:
            result = await db.execute(
                select(Order)
                .where(Order.user_id == user.uid)
                .order_by(Order.created_at.desc()),
            )
            return [OrderRead.model_validate(order) for order in result.scalars()]

    async def update_order_status(
        self,
        subject_id: str | None,
        order_id: str,
        status: OrderStatus,
    ) -> OrderRead:
        """
        Move an order to a new status.

        Raises:
            PermissionDeniedError: Role may not update orders.
            NotFoundError: No such order.
            InvalidStateError: Transition not allowed from the current status.
        """
        await self._validator.check_permission(subject_id, "update", "orders")
        try:
            async with self._session_factory() as db, db.begin():
                order = await db.get(Order, order_id, with_for_update=True)
                if order is None:
                    raise NotFoundError("order", order_id)
                current = OrderStatus(order.status)
                if status not in ORDER_STATUS_TRANSITIONS[current]:
                    raise InvalidStateError(
                        f"Cannot change order status from {current} to {status}",
                    )
                order.status = status.value
                order.updated_at = utcnow()
        except SQLAlchemyError as e:
            logger.error("order_status_update_failed order_id=%s error=%s", order_id, e)
            raise TransactionFailureError(f"Failed to update order: {e}") from e

        updated = OrderRead.model_validate(order)
        logger.info(
            "order_status_updated order_id=%s from=%s to=%s subject_id=%s",
            order_id,
            current,
            status,
            subject_id,
        )
        await run_side_effect(
            "order_push", self._feed.publish(f"orders/{order_id}", updated.model_dump(mode="json")),
        )
        return updated

    # =========================================================================
    # Cart
    # =========================================================================

    async def get_cart(self, subject_id: str | None) -> CartSnapshot:
        """Read the subject's cart. A missing document is an empty cart."""
        user = await self._validator.validate_active_session(subject_id)
        async with self._session_factory() as db:
            cart = await db.get(Cart, user.uid)
        if cart is None:
            return CartSnapshot()
        return CartSnapshot(items=cart.items, version=cart.version, updated_at=cart.updated_at)

    async def add_to_cart(
        self,
        subject_id: str | None,
        product: BaseModel | dict[str, Any],
        quantity: int = 1,
    ) -> CartSnapshot:
        """Add a product to the cart, or increase the quantity of its existing line."""
        if quantity <= 0:
            raise ValidationError("quantity", "Quantity must be greater than 0")
        new_item = CartItem.from_product(product, quantity)

        def add(items: list[CartItem]) -> list[CartItem]:
            for item in items:
                if item.id == new_item.id:
                    item.quantity += quantity
                    return items
            return [*items, new_item]

        return await self._mutate_cart(subject_id, add)

    async def update_cart_quantity(
        self,
        subject_id: str | None,
        product_id: str,
        quantity: int,
    ) -> CartSnapshot:
        """Set a line's quantity. Zero or less removes the line."""
        if quantity <= 0:
            return await self.remove_from_cart(subject_id, product_id)

        def set_quantity(items: list[CartItem]) -> list[CartItem]:
            for item in items:
                if item.id == product_id:
                    item.quantity = quantity
                    return items
            raise NotFoundError("cart item", product_id)

        return await self._mutate_cart(subject_id, set_quantity)

    async def remove_from_cart(self, subject_id: str | None, product_id: str) -> CartSnapshot:
        """Remove a line from the cart. Removing an absent line is a no-op write."""
        return await self._mutate_cart(
            subject_id, lambda items: [item for item in items if item.id != product_id],
        )

    async def clear_cart(self, subject_id: str | None) -> CartSnapshot:
        """Empty the cart."""
        return await self._mutate_cart(subject_id, lambda _items: [])

    async def _mutate_cart(
        self,
        subject_id: str | None,
        mutate: Callable[[list[CartItem]], list[CartItem]],
    ) -> CartSnapshot:
        items, version, updated_at = await self._mutate_items(
            subject_id, Cart, CartItem, mutate, "carts",
        )
        snapshot = CartSnapshot(items=items, version=version, updated_at=updated_at)
        await run_side_effect(
            "cart_push",
            self._feed.publish(f"carts/{subject_id}", snapshot.model_dump(mode="json")),
        )
        return snapshot

    # =========================================================================
    # Wishlist
    # =========================================================================

    async def get_wishlist(self, subject_id: str | None) -> WishlistSnapshot:
        """Read the subject's wishlist. A missing document is an empty wishlist."""
        user = await self._validator.validate_active_session(subject_id)
        async with self._session_factory() as db:
            wishlist = await db.get(Wishlist, user.uid)
        if wishlist is None:
            return WishlistSnapshot()
        return WishlistSnapshot(
            items=wishlist.items, version=wishlist.version, updated_at=wishlist.updated_at,
        )

    async def add_to_wishlist(
        self,
        subject_id: str | None,
        product: BaseModel | dict[str, Any],
    ) -> WishlistSnapshot:
        """Save a product. Saving an already saved product changes nothing."""
        new_item = WishlistItem.from_product(product)

        def add(items: list[WishlistItem]) -> list[WishlistItem]:
            if any(item.id == new_item.id for item in items):
                return items
            return [*items, new_item]

        return await self._mutate_wishlist(subject_id, add)

    async def remove_from_wishlist(
        self,
        subject_id: str | None,
        product_id: str,
    ) -> WishlistSnapshot:
        """Remove a saved product."""
        return await self._mutate_wishlist(
            subject_id, lambda items: [item for item in items if item.id != product_id],
        )

    async def _mutate_wishlist(
        self,
        subject_id: str | None,
        mutate: Callable[[list[WishlistItem]], list[WishlistItem]],
    ) -> WishlistSnapshot:
        items, version, updated_at = await self._mutate_items(
            subject_id, Wishlist, WishlistItem, mutate, "wishlists",
        )
        snapshot = WishlistSnapshot(items=items, version=version, updated_at=updated_at)
        await run_side_effect(
            "wishlist_push",
            self._feed.publish(f"wishlists/{subject_id}", snapshot.model_dump(mode="json")),
        )
        return snapshot

    async def _mutate_items(
        self,
        subject_id: str | None,
        model: type[Cart] | type[Wishlist],
        item_schema: type[ItemT],
        mutate: Callable[[list[ItemT]], list[ItemT]],
        collection: str,
    ) -> tuple[list[ItemT], int, Any]:
        """
        Read-modify-write the subject's item document in one transaction.

        Bumps the document version so pushes of older states can be recognized.
        """
        user = await self._validator.validate_active_session(subject_id)
        try:
            async with self._session_factory() as db, db.begin():
                document = await db.get(model, user.uid, with_for_update=True)
                if document is None:
                    document = model(user_id=user.uid, items=[], version=0)
                    db.add(document)
                items = mutate([item_schema.model_validate(item) for item in document.items])
                document.items = [item.model_dump(mode="json") for item in items]
                document.version = (document.version or 0) + 1
                document.updated_at = utcnow()
        except SQLAlchemyError as e:
            logger.error("%s_write_failed user_id=%s error=%s", collection, user.uid, e)
            raise TransactionFailureError(f"Failed to update {collection}: {e}") from e

        logger.debug(
            "%s_written user_id=%s version=%s items=%s",
            collection,
            user.uid,
            document.version,
            len(items),
        )
        return items, document.version, document.updated_at
