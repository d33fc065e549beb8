"""
Database
SQLAlchemy models, session factory and ledger block store.
"""

from .models import Base, BlockRecord
from .session import create_session_factory
from .store import LedgerStore

__all__ = [
    "Base",
    "BlockRecord",
    "create_session_factory",
    "LedgerStore",
]
