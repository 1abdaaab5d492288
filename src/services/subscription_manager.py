"""Ownership of live snapshot subscriptions, at most one per resource key."""
import logging
from dataclasses import dataclass

from core.change_feed import CancelFn, ChangeFeed, ErrorCallback, Snapshot, SnapshotCallback

logger = logging.getLogger(__name__)


@dataclass
class Subscription:
    """A live listener for one resource key and the function that cancels it."""

    resource_key: str
    cancel: CancelFn
    generation: int


class SubscriptionManager:
    """
    Keeps at most one live subscription per resource key.

    subscribe() cancels the previous subscription for the key before opening the new
    one, so the same push is never applied twice. Errors are reported once through
    on_error and the subscription is considered dead; there is no automatic retry,
    the caller decides whether to subscribe again.
    """

    def __init__(self, change_feed: ChangeFeed) -> None:
        self._feed = change_feed
        self._subscriptions: dict[str, Subscription] = {}
        self._generation = 0

    def subscribe(
        self,
        resource_key: str,
        on_change: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> CancelFn:
        """
        Replace any live subscription for the key with a new one.

        Args:
            resource_key: Document key, e.g. "carts/<user_id>".
            on_change: Receives every full snapshot (None when the document is absent).
            on_error: Receives the transport error; the subscription is dead afterwards.

        Returns:
            A cancel function for this subscription. Calling it after the subscription
            was replaced does not affect the newer one.
        """
        self.unsubscribe(resource_key)
        self._generation += 1
        generation = self._generation

        def deliver(snapshot: Snapshot) -> None:
            # A cancelled listener may still have a message in flight.
            if not self._is_current(resource_key, generation):
                return
            on_change(snapshot)

        def fail(error: BaseException) -> None:
            if not self._is_current(resource_key, generation):
                return
            logger.warning(
                "subscription_failed resource_key=%s error=%s", resource_key, error,
            )
            del self._subscriptions[resource_key]
            on_error(error)

        cancel = self._feed.watch(resource_key, deliver, fail)
        self._subscriptions[resource_key] = Subscription(resource_key, cancel, generation)
        logger.debug("subscription_started resource_key=%s", resource_key)

        def cancel_this() -> None:
            if self._is_current(resource_key, generation):
                self.unsubscribe(resource_key)

        return cancel_this

    def unsubscribe(self, resource_key: str) -> None:
        """Cancel and forget the subscription for the key. No-op when none is live."""
        subscription = self._subscriptions.pop(resource_key, None)
        if subscription is None:
            return
        subscription.cancel()
        logger.debug("subscription_cancelled resource_key=%s", resource_key)

    def unsubscribe_all(self) -> None:
        """Cancel every live subscription."""
        for resource_key in list(self._subscriptions):
            self.unsubscribe(resource_key)

    def is_active(self, resource_key: str) -> bool:
        """Whether a live subscription exists for the key."""
        return resource_key in self._subscriptions

    @property
    def active_keys(self) -> list[str]:
        """Keys with a live subscription."""
        return list(self._subscriptions)

    def _is_current(self, resource_key: str, generation: int) -> bool:
        subscription = self._subscriptions.get(resource_key)
        return subscription is not None and subscription.generation == generation
