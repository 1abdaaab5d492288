"""FastAPI dependencies for injection."""
from fastapi import Request

from core.auth import get_current_subject, get_current_token
from core.config import get_settings
from services.business_logic_service import BusinessLogicService
from services.session_validator import SessionValidator


def get_business_service(request: Request) -> BusinessLogicService:
    """The BusinessLogicService built at startup."""
    return request.app.state.business


def get_session_validator(request: Request) -> SessionValidator:
    """The SessionValidator built at startup."""
    return request.app.state.validator


__all__ = [
    "get_business_service",
    "get_current_subject",
    "get_current_token",
    "get_session_validator",
    "get_settings",
]
