"""
SQLAlchemy ORM Models
Database table definitions using SQLAlchemy ORM.
"""

from sqlalchemy import JSON, TIMESTAMP, Column, Integer, String
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class BlockRecord(Base):
    """
    Sealed ledger block.

    Timestamps are stored as ISO strings so block hashes survive
    a round trip through any database backend.
    """
    __tablename__ = 'ledger_blocks'

    index = Column(Integer, primary_key=True, autoincrement=False,
                   comment='Block height (0 = genesis)')
    hash = Column(String(64), unique=True, nullable=False, index=True)
    previous_hash = Column(String(64), nullable=False)
    nonce = Column(Integer, nullable=False, default=0)
    timestamp = Column(String(64), nullable=False,
                       comment='ISO-8601 block timestamp as hashed')
    transactions = Column(JSON, nullable=False, default=list,
                          comment='Serialized transactions in block order')

    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<BlockRecord(index={self.index}, hash={self.hash[:12]})>"
