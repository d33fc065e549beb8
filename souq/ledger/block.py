"""
Ledger Blocks
Transaction and block models with canonical SHA-256 hashing.
"""

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List
from uuid import uuid4

from pydantic import BaseModel, Field

GENESIS_PREVIOUS_HASH = "0" * 64
GENESIS_TIMESTAMP = datetime(1970, 1, 1, tzinfo=timezone.utc)


def canonical_json(data: Any) -> str:
    """Deterministic JSON: sorted keys, compact separators."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def sha256_hex(data: Any) -> str:
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TxKind(str, Enum):
    """Contract transaction types."""

    REGISTER_CERTIFIER = "register_certifier"
    ADD_PRODUCT = "add_product"
    CERTIFY = "certify"
    REVOKE_CERTIFICATION = "revoke_certification"
    PURCHASE = "purchase"


class Transaction(BaseModel):
    """A single contract state change."""

    tx_id: str = Field(default_factory=lambda: uuid4().hex)
    kind: TxKind
    sender: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)

    def digest(self) -> str:
        return sha256_hex(self.model_dump(mode="json"))


class Block(BaseModel):
    """
    Sealed group of transactions.

    `hash` covers every other field, so changing any transaction
    or the link to the previous block invalidates it.
    """

    index: int = Field(..., ge=0)
    timestamp: datetime = Field(default_factory=_utcnow)
    transactions: List[Transaction] = Field(default_factory=list)
    previous_hash: str
    nonce: int = 0
    hash: str = ""

    def header(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"hash"})

    def compute_hash(self) -> str:
        return sha256_hex(self.header())

    def meets_difficulty(self, difficulty: int) -> bool:
        return self.hash.startswith("0" * difficulty)

    def __repr__(self):
        return f"<Block(index={self.index}, txs={len(self.transactions)}, hash={self.hash[:12]})>"


def genesis_block() -> Block:
    """Deterministic first block."""
    block = Block(
        index=0,
        timestamp=GENESIS_TIMESTAMP,
        transactions=[],
        previous_hash=GENESIS_PREVIOUS_HASH,
        nonce=0,
    )
    block.hash = block.compute_hash()
    return block
