"""Mapping of service exceptions to HTTP responses."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from services.exceptions import (
    AccountDeactivatedError,
    AccountSuspendedError,
    InvalidStateError,
    NotFoundError,
    OutOfStockError,
    PermissionDeniedError,
    SessionExpiredError,
    StorefrontError,
    TransactionFailureError,
    UnauthenticatedError,
    ValidationError,
)

# Most specific first; the first isinstance match wins.
STATUS_CODES: list[tuple[type[StorefrontError], int, str]] = [
    (UnauthenticatedError, 401, "unauthenticated"),
    (SessionExpiredError, 401, "session_expired"),
    (PermissionDeniedError, 403, "permission_denied"),
    (AccountSuspendedError, 403, "account_suspended"),
    (AccountDeactivatedError, 403, "account_deactivated"),
    (NotFoundError, 404, "not_found"),
    (OutOfStockError, 409, "out_of_stock"),
    (InvalidStateError, 409, "invalid_state"),
    (ValidationError, 422, "validation_error"),
    (TransactionFailureError, 503, "transaction_failed"),
]


def error_body(exc: StorefrontError) -> tuple[int, dict]:
    """Status code and JSON body for a service exception."""
    for exc_type, status_code, code in STATUS_CODES:
        if isinstance(exc, exc_type):
            break
    else:
        status_code, code = 400, "storefront_error"

    body: dict = {"error": code, "detail": str(exc)}
    if isinstance(exc, PermissionDeniedError):
        body["required"] = exc.required
        body["actual"] = exc.actual
    elif isinstance(exc, ValidationError):
        body["field"] = exc.field
    elif isinstance(exc, OutOfStockError):
        body["product_id"] = exc.product_id
    return status_code, body


async def storefront_exception_handler(_request: Request, exc: StorefrontError) -> JSONResponse:
    """Return a typed error response; a denial is never turned into an empty result."""
    status_code, body = error_body(exc)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    """Attach the service exception handler to the app."""
    app.add_exception_handler(StorefrontError, storefront_exception_handler)
