"""
API Models
Pydantic models for request/response validation.
"""

from .agents import (
    AgentInfo,
    AgentListResponse,
    BuyRequest,
    BuyResponse,
    DeadLetterListResponse,
    MessageStatsResponse,
    TaskRequest,
    TaskResponse,
)
from .ledger import (
    BalanceResponse,
    BlockListResponse,
    BlockResponse,
    SealResponse,
    VerificationResponse,
)
from .products import (
    AddProductRequest,
    CertifyRequest,
    ProductCountResponse,
    ProductListResponse,
    ProductResponse,
    PurchaseRequest,
    TransactionResponse,
)

__all__ = [
    "AgentInfo",
    "AgentListResponse",
    "BuyRequest",
    "BuyResponse",
    "DeadLetterListResponse",
    "MessageStatsResponse",
    "TaskRequest",
    "TaskResponse",
    "BalanceResponse",
    "BlockListResponse",
    "BlockResponse",
    "SealResponse",
    "VerificationResponse",
    "AddProductRequest",
    "CertifyRequest",
    "ProductCountResponse",
    "ProductListResponse",
    "ProductResponse",
    "PurchaseRequest",
    "TransactionResponse",
]
