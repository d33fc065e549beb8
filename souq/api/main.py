"""
FastAPI Main Application
Entry point for the Souq marketplace API.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from ..config import get_settings as get_market_settings
from ..db import LedgerStore, create_session_factory
from ..marketplace import Marketplace, build_demo_marketplace
from ..messaging import create_relay
from .config import APISettings, get_settings
from .errors import setup_error_handlers
from .middleware import RequestLoggingMiddleware, RequestTimingMiddleware
from .routers import agents_router, health_router, ledger_router, products_router

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

MarketplaceFactory = Callable[[], Marketplace]

ROUTERS = (health_router, products_router, ledger_router, agents_router)


def default_marketplace_factory() -> Marketplace:
    """Demo marketplace persisted to DATABASE_URL, with the Redis relay if enabled."""
    settings = get_market_settings()

    store = None
    if get_settings().persist_ledger:
        store = LedgerStore(create_session_factory(settings.database_url))

    relay = create_relay(settings) if settings.enable_message_relay else None

    return build_demo_marketplace(settings, store=store, relay=relay)


def add_middleware(app: FastAPI, settings: APISettings) -> None:
    # Starlette runs the last added middleware first: logging assigns the
    # request ID before timing and the handlers read it
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestTimingMiddleware, slow_request_ms=settings.slow_request_ms)
    app.add_middleware(RequestLoggingMiddleware)


def create_app(marketplace_factory: Optional[MarketplaceFactory] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        marketplace_factory: Builds the marketplace on startup (demo marketplace by default)

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()
    factory = marketplace_factory or default_marketplace_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        market = factory()
        await market.start()
        app.state.marketplace = market
        logger.info(
            f"Marketplace started: {len(market.agents)} agents, "
            f"ledger height {market.chain.height}, {market.registry.product_count} products"
        )

        try:
            yield
        finally:
            app.state.marketplace = None
            await market.stop()
            logger.info(f"Marketplace stopped at ledger height {market.chain.height}")

    app = FastAPI(
        title=settings.app_name,
        description=settings.description,
        version=settings.version,
        lifespan=lifespan,
    )

    add_middleware(app, settings)
    setup_error_handlers(app)
    for router in ROUTERS:
        app.include_router(router)

    @app.get("/")
    async def root():
        """API information and entry points."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "description": settings.description,
            "endpoints": {
                "health": "/health",
                "status": "/status",
                "products": "/api/v1/products",
                "ledger": "/api/v1/ledger/blocks",
                "agents": "/api/v1/agents",
                "messages": "/api/v1/messages/stats",
                "docs": app.docs_url,
            },
        }

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "souq.api.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
