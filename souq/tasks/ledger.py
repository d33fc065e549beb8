"""
Ledger Tasks
Background tasks for sealing and verifying the persisted ledger
"""

import logging
from typing import Any, Dict, List, Optional

from ..config import get_settings
from ..db import LedgerStore, create_session_factory
from ..ledger import Blockchain, ContractError, ProductRegistry, Transaction
from .celery_app import app

logger = logging.getLogger(__name__)


def get_store() -> LedgerStore:
    """Ledger store for the configured database."""
    settings = get_settings()
    return LedgerStore(create_session_factory(settings.database_url))


def _load_chain(store: LedgerStore) -> Blockchain:
    settings = get_settings()
    blocks = store.load_blocks()
    chain = Blockchain.from_blocks(
        blocks,
        difficulty=settings.ledger_difficulty,
        max_block_transactions=settings.ledger_max_block_transactions,
        on_block=store.save_block,
    )
    if not blocks:
        store.save_block(chain.last_block)
    return chain


@app.task(bind=True, name="tasks.seal_pending_block")
def seal_pending_block(self, transactions: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """
    Validate submitted transactions against the stored ledger and seal them.

    Args:
        transactions: Serialized transactions to record before sealing

    Returns:
        Dictionary with sealing results
    """
    try:
        settings = get_settings()
        store = get_store()
        chain = _load_chain(store)
        registry = ProductRegistry.replay(
            chain,
            admin=settings.ledger_admin,
            require_certification=settings.require_certification,
        )

        rejected = []
        for data in transactions or []:
            tx_id = data.get("tx_id") if isinstance(data, dict) else None
            try:
                registry.apply(Transaction.model_validate(data))
            except (ContractError, ValueError) as e:
                # ValueError covers pydantic validation of the serialized form
                logger.warning(f"Rejected transaction {tx_id}: {e}")
                rejected.append({"tx_id": tx_id, "error": str(e)})

        block = chain.seal_pending()
        if block is None:
            logger.info("No pending transactions to seal")
            return {"status": "idle", "height": chain.height, "rejected": rejected}

        logger.info(f"Sealed block {block.index} with {len(block.transactions)} transactions")
        return {
            "status": "success",
            "index": block.index,
            "hash": block.hash,
            "transactions": len(block.transactions),
            "rejected": rejected,
        }

    except Exception as e:
        logger.error(f"Error sealing block: {e}", exc_info=True)
        return {
            "status": "error",
            "error": str(e),
        }


@app.task(bind=True, name="tasks.verify_ledger")
def verify_ledger(self) -> Dict[str, Any]:
    """
    Verify the stored chain and replay the registry contract.

    Returns:
        Dictionary with verification results
    """
    try:
        settings = get_settings()
        store = get_store()
        blocks = store.load_blocks()
        chain = Blockchain(
            difficulty=settings.ledger_difficulty,
            max_block_transactions=settings.ledger_max_block_transactions,
            blocks=blocks or None,
        )

        result = chain.verify()
        if not result.valid:
            logger.error(f"Ledger verification failed: {result.error}")
            return {"status": "invalid", **result.to_dict()}

        registry = ProductRegistry.replay(
            chain,
            admin=settings.ledger_admin,
            require_certification=settings.require_certification,
        )

        logger.info(f"Ledger verified: height {result.height}, {registry.product_count} products")
        return {
            "status": "success",
            **result.to_dict(),
            "products": registry.product_count,
        }

    except Exception as e:
        logger.error(f"Error verifying ledger: {e}", exc_info=True)
        return {
            "status": "error",
            "error": str(e),
        }
