"""
Blockchain
Append-only hash-chained ledger with proof-of-work sealing.
"""

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .block import GENESIS_PREVIOUS_HASH, Block, Transaction, genesis_block
from .errors import LedgerIntegrityError

logger = logging.getLogger(__name__)


@dataclass
class ChainVerification:
    """Result of a full chain verification."""

    valid: bool
    height: int
    error: Optional[str] = None
    block_index: Optional[int] = None

    def to_dict(self) -> Dict:
        return asdict(self)


class Blockchain:
    """
    Hash-chained ledger.

    Transactions are submitted to a pending pool and sealed into blocks
    in submission order. All mutation is guarded by one re-entrant lock.
    """

    def __init__(
        self,
        difficulty: int = 2,
        max_block_transactions: int = 50,
        blocks: Optional[List[Block]] = None,
        on_block: Optional[Callable[[Block], None]] = None,
    ):
        """
        Initialize chain.

        Args:
            difficulty: Leading hex zeros required of sealed block hashes
            max_block_transactions: Maximum transactions per sealed block
            blocks: Existing blocks (starting with genesis); new chain if omitted
            on_block: Callback invoked with each newly sealed block
        """
        self.difficulty = difficulty
        self.max_block_transactions = max_block_transactions
        self.on_block = on_block
        self.lock = threading.RLock()

        self._blocks: List[Block] = list(blocks) if blocks else [genesis_block()]
        self._pending: List[Transaction] = []
        self._tx_index: Dict[str, Optional[int]] = {}

        for block in self._blocks:
            for tx in block.transactions:
                self._tx_index[tx.tx_id] = block.index

    @classmethod
    def from_blocks(cls, blocks: Iterable[Block], **kwargs) -> "Blockchain":
        """
        Rebuild a chain from stored blocks.

        Raises:
            LedgerIntegrityError: If the blocks do not form a valid chain
        """
        blocks = list(blocks)
        if not blocks:
            return cls(**kwargs)

        chain = cls(blocks=blocks, **kwargs)
        result = chain.verify()
        if not result.valid:
            raise LedgerIntegrityError(result.error, block_index=result.block_index)
        return chain

    # === Properties ===

    @property
    def blocks(self) -> List[Block]:
        with self.lock:
            return list(self._blocks)

    @property
    def pending(self) -> List[Transaction]:
        with self.lock:
            return list(self._pending)

    @property
    def height(self) -> int:
        """Index of the last sealed block."""
        with self.lock:
            return self._blocks[-1].index

    @property
    def last_block(self) -> Block:
        with self.lock:
            return self._blocks[-1]

    # === Transactions ===

    def submit(self, tx: Transaction) -> Transaction:
        """
        Add a transaction to the pending pool.

        Raises:
            ValueError: If the tx_id is already on the ledger
        """
        with self.lock:
            if tx.tx_id in self._tx_index:
                raise ValueError(f"Duplicate transaction: {tx.tx_id}")
            self._pending.append(tx)
            self._tx_index[tx.tx_id] = None

        logger.debug(f"Submitted {tx.kind.value} transaction", extra={"tx_id": tx.tx_id})
        return tx

    def find_transaction(self, tx_id: str) -> Optional[int]:
        """
        Get the index of the block holding a transaction.

        Returns:
            Block index, or None if pending or unknown
        """
        with self.lock:
            return self._tx_index.get(tx_id)

    def has_transaction(self, tx_id: str) -> bool:
        with self.lock:
            return tx_id in self._tx_index

    def all_transactions(self) -> List[Transaction]:
        """Confirmed transactions in chain order, then pending ones."""
        with self.lock:
            txs = [tx for block in self._blocks for tx in block.transactions]
            txs.extend(self._pending)
            return txs

    # === Sealing ===

    def seal_pending(self) -> Optional[Block]:
        """
        Seal pending transactions into a new block.

        Returns:
            The new block, or None if nothing is pending
        """
        with self.lock:
            if not self._pending:
                return None

            batch = self._pending[: self.max_block_transactions]
            previous = self._blocks[-1]
            block = Block(
                index=previous.index + 1,
                transactions=batch,
                previous_hash=previous.hash,
            )
            self._proof_of_work(block)

            self._blocks.append(block)
            del self._pending[: len(batch)]
            for tx in batch:
                self._tx_index[tx.tx_id] = block.index

        logger.info(
            f"Sealed block {block.index} with {len(batch)} transactions "
            f"(nonce={block.nonce}, hash={block.hash[:16]}...)"
        )

        if self.on_block is not None:
            self.on_block(block)

        return block

    def _proof_of_work(self, block: Block) -> None:
        target = "0" * self.difficulty
        nonce = 0
        while True:
            block.nonce = nonce
            digest = block.compute_hash()
            if digest.startswith(target):
                block.hash = digest
                return
            nonce += 1

    # === Verification ===

    def verify(self) -> ChainVerification:
        """
        Verify the whole chain.

        Checks:
        - Genesis block is the expected one
        - Each stored hash matches the block contents
        - Indices are contiguous and each block links to the previous hash
        - Sealed blocks meet the difficulty target
        - No transaction appears twice
        """
        with self.lock:
            blocks = list(self._blocks)

        height = blocks[-1].index if blocks else -1

        def fail(error: str, index: Optional[int]) -> ChainVerification:
            return ChainVerification(valid=False, height=height, error=error, block_index=index)

        if not blocks:
            return fail("chain is empty", None)

        genesis = blocks[0]
        expected = genesis_block()
        if genesis.hash != expected.hash or genesis.previous_hash != GENESIS_PREVIOUS_HASH:
            return fail("genesis block mismatch", 0)

        seen_tx = set()
        for position, block in enumerate(blocks):
            if block.index != position:
                return fail(f"block index {block.index} at position {position}", block.index)

            if block.compute_hash() != block.hash:
                return fail(f"hash mismatch in block {block.index}", block.index)

            if position > 0:
                if block.previous_hash != blocks[position - 1].hash:
                    return fail(f"broken link at block {block.index}", block.index)
                if not block.meets_difficulty(self.difficulty):
                    return fail(f"block {block.index} does not meet difficulty", block.index)

            for tx in block.transactions:
                if tx.tx_id in seen_tx:
                    return fail(f"duplicate transaction {tx.tx_id}", block.index)
                seen_tx.add(tx.tx_id)

        return ChainVerification(valid=True, height=height)

    def __len__(self):
        with self.lock:
            return len(self._blocks)
