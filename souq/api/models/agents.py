"""
Agent Models
Pydantic models for agent and messaging endpoints.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AgentInfo(BaseModel):
    name: str
    role: str
    state: str
    alive: bool
    handled: int
    failures: int
    mailbox_depth: int
    extra: Dict[str, Any] = Field(default_factory=dict, description="Role-specific details")


class AgentListResponse(BaseModel):
    agents: List[AgentInfo]


class BuyRequest(BaseModel):
    """Start one negotiation round for a buyer agent."""

    query: str = Field(..., min_length=1, max_length=255, description="Product name fragment")
    max_price: Optional[Decimal] = Field(None, gt=0, description="Highest acceptable price")
    require_certified: bool = Field(default=True, description="Only halal-certified products")


class BuyResponse(BaseModel):
    status: str = Field(..., description="purchased, no_proposals or failed")
    product_id: Optional[str] = None
    seller: Optional[str] = None
    price: Optional[str] = None
    tx_id: Optional[str] = None
    proposals_considered: int = 0
    reason: Optional[str] = None
    remaining_budget: str


class TaskRequest(BaseModel):
    kind: str = Field(..., min_length=1, max_length=64, description="Task kind")
    payload: Dict[str, Any] = Field(default_factory=dict)


class TaskResponse(BaseModel):
    task_id: str
    kind: str
    status: str
    attempts: int
    assignee: Optional[str] = None
    result: Any = None
    error: Optional[str] = None


class MessageStatsResponse(BaseModel):
    sent: int
    delivered: int
    acked: int
    redelivered: int
    duplicates: int
    dead_lettered: int
    pending_requests: int
    mailboxes: Dict[str, int]


class DeadLetterListResponse(BaseModel):
    dead_letters: List[Dict[str, Any]]
    total: int
