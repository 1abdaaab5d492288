"""Session and permission validation, re-checked on every sensitive action."""
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.change_feed import CancelFn, Snapshot
from core.permission_cache import PermissionCache
from core.permissions import is_allowed
from schemas.token import TokenMetadata
from schemas.user_record import UserRecord
from services import user_service
from services.exceptions import (
    AccountDeactivatedError,
    AccountSuspendedError,
    InvalidSessionError,
    PermissionDeniedError,
    SessionExpiredError,
    UnauthenticatedError,
)
from services.subscription_manager import SubscriptionManager

logger = logging.getLogger(__name__)

DEFAULT_SESSION_MAX_AGE = timedelta(hours=24)


class SessionValidator:
    """
    Answers "may this subject do X to Y" using the permission cache.

    Role verdicts are cached for the cache TTL, so a demotion takes effect within one
    TTL window. A PermissionDeniedError is authoritative: callers must not fall back
    to an older verdict.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: PermissionCache,
        subscriptions: SubscriptionManager | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache
        self._subscriptions = subscriptions
        self._now = now
        self._tokens: dict[str, TokenMetadata] = {}

    # -------------------------------------------------------------------------
    # Role and permission checks
    # -------------------------------------------------------------------------

    async def check_role(self, subject_id: str | None, required_role: str) -> UserRecord:
        """
        Verify the subject currently holds the required role.

        Returns:
            The user snapshot the verdict is based on.

        Raises:
            UnauthenticatedError: No subject.
            InvalidSessionError: Subject has no user document.
            AccountSuspendedError / AccountDeactivatedError: Account flags set.
            PermissionDeniedError: Role differs from required_role.
        """
        if not subject_id:
            raise UnauthenticatedError()

        entry = self._cache.get(subject_id, required_role)
        if entry is None:
            user = await self._fetch_active_user(subject_id)
            entry = self._cache.set(subject_id, required_role, user)

        if not entry.has_permission:
            logger.info(
                "permission_denied subject_id=%s required=%s actual=%s",
                subject_id,
                required_role,
                entry.snapshot.role,
            )
            raise PermissionDeniedError(required=required_role, actual=entry.snapshot.role)
        return entry.snapshot

    async def check_permission(self, subject_id: str | None, action: str, resource: str) -> bool:
        """
        Verify the subject's own role allows the action on the resource.

        Returns:
            True. Never returns False; a denial always raises.

        Raises:
            PermissionDeniedError: Action not listed for the resource under the role.
        """
        user = await self.validate_active_session(subject_id)
        if not is_allowed(user.role, action, resource):
            logger.info(
                "permission_denied subject_id=%s action=%s resource=%s role=%s",
                subject_id,
                action,
                resource,
                user.role,
            )
            raise PermissionDeniedError(required=f"{action}:{resource}", actual=user.role)
        return True

    async def validate_active_session(self, subject_id: str | None) -> UserRecord:
        """
        Verify the subject exists and is neither suspended nor deactivated.

        Served from any fresh cache entry for the subject; otherwise read fresh and
        cached under the subject's own role.
        """
        if not subject_id:
            raise UnauthenticatedError()
        cached = self._cache.get_snapshot(subject_id)
        if cached is not None:
            return cached
        user = await self._fetch_active_user(subject_id)
        self._cache.set(subject_id, user.role, user)
        return user

    async def _fetch_active_user(self, subject_id: str) -> UserRecord:
        async with self._session_factory() as db:
            user = await user_service.get_user_record(db, subject_id)
        logger.debug("user_record_fetched subject_id=%s found=%s", subject_id, user is not None)
        if user is None:
            raise InvalidSessionError(subject_id)
        if user.suspended:
            raise AccountSuspendedError(subject_id)
        if user.deactivated:
            raise AccountDeactivatedError(subject_id)
        return user

    # -------------------------------------------------------------------------
    # Token freshness
    # -------------------------------------------------------------------------

    def remember_token(self, token: TokenMetadata) -> None:
        """Record the subject's token metadata on sign-in."""
        self._tokens[token.subject_id] = token

    def forget_token(self, subject_id: str) -> None:
        """Drop the subject's token metadata (on sign-out)."""
        self._tokens.pop(subject_id, None)

    def validate_session_freshness(
        self,
        subject_id: str | None,
        max_age: timedelta = DEFAULT_SESSION_MAX_AGE,
    ) -> TokenMetadata:
        """
        Verify the signed-in subject authenticated no longer than max_age ago.

        Uses the token recorded at sign-in.

        Raises:
            UnauthenticatedError: No subject or no token known for it.
            SessionExpiredError: Authentication is older than max_age.
        """
        if not subject_id:
            raise UnauthenticatedError()
        token = self._tokens.get(subject_id)
        if token is None:
            raise UnauthenticatedError("No identity token for subject")
        return self.check_token_freshness(token, max_age)

    def check_token_freshness(
        self,
        token: TokenMetadata,
        max_age: timedelta = DEFAULT_SESSION_MAX_AGE,
    ) -> TokenMetadata:
        """Verify the given token was issued for an authentication no older than max_age."""
        age = self._now() - token.auth_time
        if age > max_age:
            logger.info(
                "session_expired subject_id=%s age_seconds=%s",
                token.subject_id,
                int(age.total_seconds()),
            )
            raise SessionExpiredError(age.total_seconds(), max_age.total_seconds())
        return token

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def invalidate(self, subject_id: str | None = None) -> None:
        """Drop cached verdicts for a subject, or all of them. Synchronous."""
        self._cache.invalidate(subject_id)

    def watch_role_changes(
        self,
        subject_id: str,
        callback: Callable[[UserRecord], None] | None = None,
    ) -> CancelFn:
        """
        Invalidate the subject's cache entries whenever its user document changes.

        Args:
            subject_id: Subject to watch.
            callback: Called with the new user snapshot after invalidation.

        Returns:
            Cancel function for the watch.
        """
        if self._subscriptions is None:
            raise RuntimeError("SessionValidator has no SubscriptionManager to watch with")

        def on_change(snapshot: Snapshot) -> None:
            self.invalidate(subject_id)
            if snapshot is not None and callback is not None:
                callback(user_service.user_record_from_snapshot(subject_id, snapshot))

        def on_error(error: BaseException) -> None:
            # Without the watch, role changes only surface after the TTL.
            logger.warning("role_watch_failed subject_id=%s error=%s", subject_id, error)
            self.invalidate(subject_id)

        return self._subscriptions.subscribe(f"users/{subject_id}", on_change, on_error)
