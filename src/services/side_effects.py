"""Best-effort execution of post-commit side effects."""
import logging
from collections.abc import Awaitable

from schemas.results import SideEffectOutcome
from services.exceptions import SideEffectFailure

logger = logging.getLogger(__name__)


async def run_side_effect(name: str, effect: Awaitable[None]) -> SideEffectOutcome:
    """
    Await a side effect and report its outcome instead of raising.

    Any exception is logged and captured as a SideEffectFailure; the committed
    transaction it follows is never affected.
    """
    try:
        await effect
    except Exception as e:
        failure = SideEffectFailure(name, e)
        logger.warning("side_effect_failed effect=%s error=%s", name, e, exc_info=True)
        return SideEffectOutcome(name=name, succeeded=False, error=failure)
    return SideEffectOutcome(name=name, succeeded=True)
