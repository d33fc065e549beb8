"""
API Routers
FastAPI route handlers for different endpoints.
"""

from .agents import router as agents_router
from .health import router as health_router
from .ledger import router as ledger_router
from .products import router as products_router

__all__ = [
    "agents_router",
    "health_router",
    "ledger_router",
    "products_router",
]
