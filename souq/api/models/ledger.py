"""
Ledger Models
Pydantic models for ledger endpoints.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BlockResponse(BaseModel):
    index: int
    timestamp: str
    previous_hash: str
    nonce: int
    hash: str
    transactions: List[Dict[str, Any]]


class BlockListResponse(BaseModel):
    blocks: List[BlockResponse]
    height: int = Field(..., description="Index of the last sealed block")
    pending: int = Field(..., description="Transactions waiting to be sealed")


class VerificationResponse(BaseModel):
    valid: bool
    height: int
    error: Optional[str] = None
    block_index: Optional[int] = None


class SealResponse(BaseModel):
    sealed: bool = Field(..., description="Whether a block was sealed")
    block: Optional[BlockResponse] = None


class BalanceResponse(BaseModel):
    account: str
    balance: str
