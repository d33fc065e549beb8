"""
Dependency Injection
FastAPI dependencies for the marketplace and its components.
"""

import uuid

from fastapi import Depends, HTTPException, Request, status

from ..ledger import Blockchain, ProductRegistry
from ..marketplace import Marketplace
from ..messaging import MessageBus


def get_marketplace(request: Request) -> Marketplace:
    """
    Get the running marketplace from app state.

    Use as FastAPI dependency:
        @router.get("/endpoint")
        async def endpoint(market: Marketplace = Depends(get_marketplace)):
            ...

    Raises:
        HTTPException: 503 outside the app lifespan
    """
    market = getattr(request.app.state, "marketplace", None)
    if market is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Marketplace is not running",
        )
    return market


def get_registry(market: Marketplace = Depends(get_marketplace)) -> ProductRegistry:
    return market.registry


def get_chain(market: Marketplace = Depends(get_marketplace)) -> Blockchain:
    return market.chain


def get_bus(market: Marketplace = Depends(get_marketplace)) -> MessageBus:
    return market.bus


def get_request_id(request: Request) -> str:
    """Request ID assigned by RequestLoggingMiddleware, or a fresh one."""
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = uuid.uuid4().hex
        request.state.request_id = request_id
    return request_id
