"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.errors import register_error_handlers
from api.routers import cart, health, orders, products
from core.change_feed import ChangeFeed
from core.config import Settings, get_settings
from core.permission_cache import PermissionCache
from core.pricing import PricingPolicy
from core.redis import RedisClient
from db.session import create_engine, create_session_factory, create_tables
from services.business_logic_service import BusinessLogicService
from services.notification_service import NotificationClient
from services.search_index import SearchIndexClient
from services.session_validator import SessionValidator
from services.storefront import connect_change_feed
from services.subscription_manager import SubscriptionManager


def configure_logging(level: str) -> None:
    """Configure root logging once at startup."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def install_services(
    app: FastAPI,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    change_feed: ChangeFeed,
    redis_client: RedisClient | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> None:
    """Build the service graph once and attach it to app.state."""
    cache = PermissionCache(settings.permission_cache_ttl)
    subscriptions = SubscriptionManager(change_feed)
    validator = SessionValidator(session_factory, cache, subscriptions)
    business = BusinessLogicService(
        session_factory,
        validator,
        change_feed,
        SearchIndexClient(
            settings.search_index_url,
            api_key=settings.search_index_api_key,
            http_client=http_client,
            timeout=settings.side_effect_timeout,
        ),
        NotificationClient(
            settings.notification_url,
            http_client=http_client,
            timeout=settings.side_effect_timeout,
        ),
        PricingPolicy.from_settings(settings),
    )
    app.state.session_factory = session_factory
    app.state.redis_client = redis_client
    app.state.change_feed = change_feed
    app.state.subscriptions = subscriptions
    app.state.validator = validator
    app.state.business = business


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()
    configure_logging(app_settings.log_level)

    # Startup: database (tables are created if missing)
    engine = create_engine(app_settings)
    await create_tables(engine)

    # Startup: change feed (Redis pub/sub, in-process fallback)
    change_feed, redis_client = await connect_change_feed(app_settings)

    async with httpx.AsyncClient(timeout=app_settings.side_effect_timeout) as http_client:
        install_services(
            app,
            app_settings,
            create_session_factory(engine),
            change_feed,
            redis_client,
            http_client,
        )
        yield

        # Shutdown: stop listeners, then close connections
        app.state.subscriptions.unsubscribe_all()
    if redis_client is not None:
        await redis_client.close()
    await engine.dispose()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking - API shouldn't be framed
        response.headers["X-Frame-Options"] = "DENY"
        return response


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app_settings = get_settings()
    app = FastAPI(
        title="Storefront API",
        description="Cart, catalog and checkout transactions with permission re-validation.",
        version="0.1.0",
        lifespan=lifespan,
    )
    register_error_handlers(app)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(cart.router)
    app.include_router(orders.router)
    app.include_router(products.router)
    return app


app = create_app()
