"""Role-based permission matrix for storefront resources."""
import logging
from enum import StrEnum

logger = logging.getLogger(__name__)


class Role(StrEnum):
    """User roles as stored on the user document."""

    CUSTOMER = "customer"
    ADMIN = "admin"
    EDITOR = "editor"
    SUPPORT = "support"


# ---------------------------------------------------------------------------
# Permission Policy
# ---------------------------------------------------------------------------
# role -> resource -> allowed actions. Read-only configuration.
# Customer "orders: read" and "profile" are scoped to the customer's own documents;
# ownership is enforced by the service layer, not here.

PERMISSIONS: dict[Role, dict[str, frozenset[str]]] = {
    Role.ADMIN: {
        "products": frozenset({"create", "read", "update", "delete"}),
        "orders": frozenset({"read", "update", "delete"}),
        "users": frozenset({"read", "update"}),
        "analytics": frozenset({"read"}),
        "settings": frozenset({"read", "update"}),
    },
    Role.EDITOR: {
        "products": frozenset({"create", "read", "update"}),
        "orders": frozenset({"read", "update"}),
        "analytics": frozenset({"read"}),
    },
    Role.SUPPORT: {
        "orders": frozenset({"read", "update"}),
        "users": frozenset({"read"}),
    },
    Role.CUSTOMER: {
        "orders": frozenset({"read"}),
        "profile": frozenset({"read", "update"}),
    },
}


def get_role_safely(role_value: str | None) -> Role | None:
    """
    Convert a stored role string to a Role, returning None for unknown values.

    Unknown roles get no permissions rather than failing the lookup.
    """
    if role_value is None:
        return None
    try:
        return Role(role_value)
    except ValueError:
        logger.warning("Unknown role value '%s', granting no permissions", role_value)
        return None


def allowed_actions(role_value: str | None, resource: str) -> frozenset[str]:
    """Actions the role may perform on the resource (empty if none)."""
    role = get_role_safely(role_value)
    if role is None:
        return frozenset()
    return PERMISSIONS.get(role, {}).get(resource, frozenset())


def is_allowed(role_value: str | None, action: str, resource: str) -> bool:
    """Whether the role may perform the action on the resource."""
    return action in allowed_actions(role_value, resource)
