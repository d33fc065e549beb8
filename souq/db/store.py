"""
Ledger Store
Persists sealed blocks and loads them back in chain order.
"""

import logging
from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from ..ledger.block import Block
from ..ledger.errors import LedgerIntegrityError
from .models import BlockRecord

logger = logging.getLogger(__name__)


class LedgerStore:
    """Block persistence backed by SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def save_block(self, block: Block) -> bool:
        """
        Save a block (idempotent on index).

        Returns:
            True if the block was inserted, False if already stored

        Raises:
            LedgerIntegrityError: If a different block is stored at the same index
        """
        session: Session = self.session_factory()
        try:
            existing = session.get(BlockRecord, block.index)
            if existing is not None:
                if existing.hash != block.hash:
                    raise LedgerIntegrityError(
                        f"Conflicting block at index {block.index}", block_index=block.index
                    )
                return False

            header = block.header()
            session.add(
                BlockRecord(
                    index=block.index,
                    hash=block.hash,
                    previous_hash=block.previous_hash,
                    nonce=block.nonce,
                    timestamp=header["timestamp"],
                    transactions=header["transactions"],
                )
            )
            session.commit()
            logger.debug(f"Stored block {block.index}")
            return True
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def load_blocks(self) -> List[Block]:
        """Load all stored blocks ordered by index."""
        session: Session = self.session_factory()
        try:
            records = session.scalars(select(BlockRecord).order_by(BlockRecord.index)).all()
            return [
                Block.model_validate(
                    {
                        "index": record.index,
                        "timestamp": record.timestamp,
                        "transactions": record.transactions,
                        "previous_hash": record.previous_hash,
                        "nonce": record.nonce,
                        "hash": record.hash,
                    }
                )
                for record in records
            ]
        finally:
            session.close()

    def count(self) -> int:
        session: Session = self.session_factory()
        try:
            return session.scalar(select(func.count()).select_from(BlockRecord)) or 0
        finally:
            session.close()
