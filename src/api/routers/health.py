"""Health check endpoints."""
import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    change_feed: str


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Check application, database and change feed health."""
    db_status = "healthy"
    try:
        async with request.app.state.session_factory() as db:
            await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        db_status = "unhealthy"

    redis_client = request.app.state.redis_client
    if redis_client is None:
        feed_status = "local"
    elif await redis_client.ping():
        feed_status = "healthy"
    else:
        feed_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" and feed_status != "unhealthy" else "degraded",
        database=db_status,
        change_feed=feed_status,
    )
