"""Shared exceptions for service layer operations."""


class StorefrontError(Exception):
    """Base class for errors surfaced to the caller of a storefront operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class UnauthenticatedError(StorefrontError):
    """Raised when an operation requires a signed-in subject and there is none."""

    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class InvalidSessionError(UnauthenticatedError):
    """Raised when the subject has no user record in the system of record."""

    def __init__(self, subject_id: str) -> None:
        self.subject_id = subject_id
        super().__init__(f"Invalid user session: {subject_id}")


class PermissionDeniedError(StorefrontError):
    """
    Raised when the subject's role does not grant the requested access.

    `required` is either a role name (role checks) or "<action>:<resource>"
    (permission matrix checks). `actual` is the subject's current role.
    """

    def __init__(self, required: str, actual: str | None) -> None:
        self.required = required
        self.actual = actual
        super().__init__(f"Access denied. Required: {required}, current role: {actual}")


class AccountSuspendedError(StorefrontError):
    """Raised when the subject's account is flagged as suspended."""

    def __init__(self, subject_id: str) -> None:
        self.subject_id = subject_id
        super().__init__("User account suspended")


class AccountDeactivatedError(StorefrontError):
    """Raised when the subject's account is flagged as deactivated."""

    def __init__(self, subject_id: str) -> None:
        self.subject_id = subject_id
        super().__init__("User account deactivated")


class SessionExpiredError(StorefrontError):
    """Raised when the subject authenticated longer ago than the allowed maximum."""

    def __init__(self, age_seconds: float, max_age_seconds: float) -> None:
        self.age_seconds = age_seconds
        self.max_age_seconds = max_age_seconds
        super().__init__("Session expired. Please log in again.")


class ValidationError(StorefrontError):
    """Raised when input violates a business rule. `field` names the offending field."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)


class OutOfStockError(StorefrontError):
    """Raised when a product cannot cover the requested quantity."""

    def __init__(self, product_id: str, requested: int | None = None,
                 available: int | None = None) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(f"Insufficient inventory for product {product_id}")


class TransactionFailureError(StorefrontError):
    """Raised when the atomic write was aborted by the system of record."""

    def __init__(self, message: str = "Transaction aborted") -> None:
        super().__init__(message)


class NotFoundError(StorefrontError):
    """Raised when a referenced document does not exist or is not visible to the subject."""

    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class InvalidStateError(StorefrontError):
    """
    Raised when an operation is invalid for a resource's current state.

    Used for order status transitions that are not allowed from the current status
    (e.g., shipping a cancelled order).
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class SideEffectFailure(Exception):  # noqa: N818
    """
    Failure of a best-effort side effect (notification, search sync).

    Never raised to the caller of a transaction; captured in SideEffectOutcome.
    """

    def __init__(self, effect: str, cause: BaseException) -> None:
        self.effect = effect
        self.cause = cause
        super().__init__(f"{effect} failed: {cause}")
