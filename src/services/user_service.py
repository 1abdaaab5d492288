"""Read access to mirrored user documents."""
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from models.user import User
from schemas.user_record import UserRecord


def to_user_record(user: User) -> UserRecord:
    """Snapshot an ORM user into a detached UserRecord."""
    return UserRecord(
        uid=user.uid,
        role=user.role,
        email=user.email,
        display_name=user.display_name,
        suspended=bool(user.suspended),
        deactivated=bool(user.deactivated),
    )


def user_record_from_snapshot(uid: str, data: dict[str, Any]) -> UserRecord:
    """Build a UserRecord from a pushed user document."""
    return UserRecord(
        uid=uid,
        role=data.get("role", "customer"),
        email=data.get("email"),
        display_name=data.get("display_name"),
        suspended=bool(data.get("suspended", False)),
        deactivated=bool(data.get("deactivated", False)),
    )


async def get_user_record(db: AsyncSession, uid: str) -> UserRecord | None:
    """
    Read a user document from the system of record.

    Args:
        db: Database session.
        uid: The subject id.

    Returns:
        UserRecord if the user exists, None otherwise.
    """
    user = await db.get(User, uid, populate_existing=True)
    if user is None:
        return None
    return to_user_record(user)
