"""
Change feed delivering full document snapshots to live subscribers.

A key names one document, e.g. "carts/<user_id>". Publishers send the whole
document (or None when it no longer exists); subscribers always receive a full
replacement, never a delta.

Two transports:
- LocalChangeFeed: in-process fan-out, used when Redis is disabled or unreachable.
- RedisChangeFeed: Redis pub/sub, used when several processes share the store.
"""
import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, Protocol

from redis.exceptions import RedisError

from core.redis import RedisClient

logger = logging.getLogger(__name__)

Snapshot = dict[str, Any] | None
SnapshotCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[BaseException], None]
CancelFn = Callable[[], None]


def encode_snapshot(snapshot: Snapshot) -> str:
    """Serialize a snapshot for the wire: {"exists": bool, "data": {...}}."""
    return json.dumps({"exists": snapshot is not None, "data": snapshot}, default=str)


def decode_snapshot(payload: str | bytes) -> Snapshot:
    """Deserialize a wire payload. A missing document decodes to None."""
    message = json.loads(payload)
    if not message.get("exists"):
        return None
    return message.get("data") or {}


class ChangeFeed(Protocol):
    """Transport used by SubscriptionManager (watch) and services (publish)."""

    async def publish(self, key: str, snapshot: Snapshot) -> None:
        """Deliver a snapshot to every live watcher of the key."""
        ...

    def watch(self, key: str, on_change: SnapshotCallback, on_error: ErrorCallback) -> CancelFn:
        """Start listening; returns a synchronous cancel function."""
        ...


class _LocalWatcher:
    def __init__(self, on_change: SnapshotCallback, on_error: ErrorCallback) -> None:
        self.on_change = on_change
        self.on_error = on_error


class LocalChangeFeed:
    """
    In-process change feed.

    Delivery happens synchronously inside publish(), in publish order. A watcher whose
    callback raises is dropped and gets the exception through its on_error.
    """

    def __init__(self) -> None:
        self._watchers: dict[str, list[_LocalWatcher]] = {}

    async def publish(self, key: str, snapshot: Snapshot) -> None:
        """Deliver a snapshot to every watcher of the key."""
        payload = encode_snapshot(snapshot)
        for watcher in list(self._watchers.get(key, [])):
            try:
                watcher.on_change(decode_snapshot(payload))
            except Exception as e:
                logger.warning("change_feed_listener_failed key=%s error=%s", key, e)
                self._remove(key, watcher)
                watcher.on_error(e)

    def watch(self, key: str, on_change: SnapshotCallback, on_error: ErrorCallback) -> CancelFn:
        """Register a watcher; the returned function removes it."""
        watcher = _LocalWatcher(on_change, on_error)
        self._watchers.setdefault(key, []).append(watcher)

        def cancel() -> None:
            self._remove(key, watcher)

        return cancel

    def watcher_count(self, key: str) -> int:
        """Number of live watchers for a key."""
        return len(self._watchers.get(key, []))

    def _remove(self, key: str, watcher: _LocalWatcher) -> None:
        watchers = self._watchers.get(key)
        if watchers and watcher in watchers:
            watchers.remove(watcher)
            if not watchers:
                del self._watchers[key]


class RedisChangeFeed:
    """Change feed over Redis pub/sub. One listener task per watch."""

    def __init__(self, redis_client: RedisClient, channel_prefix: str = "storefront:") -> None:
        self._redis = redis_client
        self._channel_prefix = channel_prefix

    def _channel(self, key: str) -> str:
        return f"{self._channel_prefix}{key}"

    async def publish(self, key: str, snapshot: Snapshot) -> None:
        """Publish a snapshot. Raises ConnectionError if Redis is unavailable."""
        receivers = await self._redis.publish(self._channel(key), encode_snapshot(snapshot))
        if receivers is None:
            raise ConnectionError("Redis unavailable, snapshot not published")
        logger.debug("change_feed_published key=%s receivers=%s", key, receivers)

    def watch(self, key: str, on_change: SnapshotCallback, on_error: ErrorCallback) -> CancelFn:
        """Spawn a listener task; cancelling it stops delivery immediately."""
        task = asyncio.get_running_loop().create_task(
            self._listen(self._channel(key), on_change, on_error),
            name=f"change-feed:{key}",
        )

        def cancel() -> None:
            task.cancel()

        return cancel

    async def _listen(
        self,
        channel: str,
        on_change: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        pubsub = self._redis.pubsub()
        if pubsub is None:
            on_error(ConnectionError("Redis unavailable, cannot subscribe"))
            return
        try:
            await pubsub.subscribe(channel)
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                on_change(decode_snapshot(message["data"]))
        except Exception as e:
            # Any failure, including one raised by on_change, ends the watch
            logger.warning("change_feed_listen_failed channel=%s error=%s", channel, e)
            on_error(e)
        finally:
            try:
                await pubsub.aclose()
            except RedisError as e:
                logger.debug("change_feed_close_failed channel=%s error=%s", channel, e)
