"""
Agents
Marketplace agent roles built on a shared lifecycle.
"""

from .allocation import AllocationTask, TaskAllocator, TaskStatus
from .allocator import TaskAllocatorAgent, WorkerAgent
from .base import Agent, AgentState
from .buyer import BuyerAgent, Proposal, PurchaseOutcome
from .certifier import DEFAULT_FORBIDDEN, CertifierAgent
from .seller import Offer, SellerAgent

__all__ = [
    "Agent",
    "AgentState",
    "AllocationTask",
    "TaskAllocator",
    "TaskStatus",
    "TaskAllocatorAgent",
    "WorkerAgent",
    "BuyerAgent",
    "Proposal",
    "PurchaseOutcome",
    "CertifierAgent",
    "DEFAULT_FORBIDDEN",
    "Offer",
    "SellerAgent",
]
