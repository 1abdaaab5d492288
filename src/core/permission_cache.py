"""Short-lived cache of role verdicts for reduced system-of-record reads."""
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from schemas.user_record import UserRecord

logger = logging.getLogger(__name__)


@dataclass
class PermissionCacheEntry:
    """Verdict for one (subject, required role) pair plus the user snapshot it was based on."""

    subject_id: str
    required_role: str
    has_permission: bool
    snapshot: UserRecord
    fetched_at: float


class PermissionCache:
    """
    In-memory cache of role verdicts keyed by (subject_id, required_role).

    An entry whose age is at or past the TTL is treated as absent; it is never
    returned as "probably still valid". Reads and writes are not locked: two
    concurrent misses for the same key both go to the system of record and the
    last write wins.
    """

    CACHE_TTL = 300  # 5 minutes

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache. `clock` returns seconds and must be monotonic."""
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], PermissionCacheEntry] = {}

    @property
    def ttl_seconds(self) -> float:
        """Time-to-live of an entry, in seconds."""
        return self._ttl

    def _is_fresh(self, entry: PermissionCacheEntry) -> bool:
        return (self._clock() - entry.fetched_at) < self._ttl

    def get(self, subject_id: str, required_role: str) -> PermissionCacheEntry | None:
        """
        Get a fresh entry for the pair.

        Returns:
            The entry if present and younger than the TTL, None otherwise.
            Expired entries are dropped on access.
        """
        key = (subject_id, required_role)
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("permission_cache_miss subject_id=%s role=%s", subject_id, required_role)
            return None
        if not self._is_fresh(entry):
            del self._entries[key]
            logger.debug(
                "permission_cache_expired subject_id=%s role=%s", subject_id, required_role,
            )
            return None
        logger.debug("permission_cache_hit subject_id=%s role=%s", subject_id, required_role)
        return entry

    def get_snapshot(self, subject_id: str) -> UserRecord | None:
        """Most recent fresh user snapshot for the subject, from any of its entries."""
        fresh = [
            entry for (subject, _), entry in self._entries.items()
            if subject == subject_id and self._is_fresh(entry)
        ]
        if not fresh:
            return None
        return max(fresh, key=lambda entry: entry.fetched_at).snapshot

    def set(self, subject_id: str, required_role: str, user: UserRecord) -> PermissionCacheEntry:
        """Compute and store the verdict for the pair from a freshly read user record."""
        entry = PermissionCacheEntry(
            subject_id=subject_id,
            required_role=required_role,
            has_permission=user.role == required_role,
            snapshot=user,
            fetched_at=self._clock(),
        )
        self._entries[(subject_id, required_role)] = entry
        logger.debug(
            "permission_cache_set subject_id=%s role=%s has_permission=%s",
            subject_id,
            required_role,
            entry.has_permission,
        )
        return entry

    def invalidate(self, subject_id: str | None = None) -> None:
        """
        Drop all entries for a subject, or the whole cache when no subject is given.

        Synchronous. Call on logout and whenever the subject's role changes.
        """
        if subject_id is None:
            self._entries.clear()
        else:
            for key in [key for key in self._entries if key[0] == subject_id]:
                del self._entries[key]
        logger.debug("permission_cache_invalidate subject_id=%s", subject_id)

    def __len__(self) -> int:
        return len(self._entries)
