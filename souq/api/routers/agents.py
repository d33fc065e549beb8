"""
Agent Endpoints
Agent status, buyer negotiations, task allocation and message bus stats.
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from ...agents import BuyerAgent, TaskAllocatorAgent
from ...marketplace import Marketplace
from ...messaging import MessageBus
from ..dependencies import get_bus, get_marketplace, get_request_id
from ..errors import InvalidRequestError, ResourceNotFoundError
from ..models.agents import (
    AgentInfo,
    AgentListResponse,
    BuyRequest,
    BuyResponse,
    DeadLetterListResponse,
    MessageStatsResponse,
    TaskRequest,
    TaskResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["agents"])

BASE_FIELDS = {"name", "role", "state", "alive", "handled", "failures", "mailbox_depth"}


@router.get("/agents", response_model=AgentListResponse)
async def list_agents(market: Marketplace = Depends(get_marketplace)) -> AgentListResponse:
    agents = []
    for agent in market.agents:
        info = agent.describe()
        agents.append(
            AgentInfo(
                **{k: v for k, v in info.items() if k in BASE_FIELDS},
                extra={k: v for k, v in info.items() if k not in BASE_FIELDS},
            )
        )
    return AgentListResponse(agents=agents)


@router.post("/agents/{buyer}/buy", response_model=BuyResponse)
async def buy(
    buyer: str,
    request: BuyRequest,
    market: Marketplace = Depends(get_marketplace),
    request_id: str = Depends(get_request_id),
) -> BuyResponse:
    """
    Run one contract-net negotiation round for a buyer agent.

    Workflow:
    1. CFP to every seller
    2. Rank proposals (certified, within price and budget, cheapest first)
    3. Accept the best; fall back to the next on failure
    """
    agent = market.get_agent(buyer)
    if agent is None:
        raise ResourceNotFoundError("Agent", buyer)
    if not isinstance(agent, BuyerAgent):
        raise InvalidRequestError(f"Agent {buyer} is not a buyer", {"role": agent.role})

    logger.info(f"Buy round for {buyer}: '{request.query}'", extra={"request_id": request_id})
    outcome = await agent.buy(
        request.query,
        max_price=request.max_price,
        require_certified=request.require_certified,
    )
    return BuyResponse(**outcome.to_dict(), remaining_budget=str(agent.budget))


@router.post("/agents/tasks", response_model=TaskResponse, status_code=status.HTTP_200_OK)
async def run_task(
    request: TaskRequest,
    market: Marketplace = Depends(get_marketplace),
) -> TaskResponse:
    """Queue a task on the allocator and dispatch until it settles."""
    allocators = market.agents_by_role(TaskAllocatorAgent.role)
    if not allocators:
        raise ResourceNotFoundError("Agent", "allocator")
    allocator: TaskAllocatorAgent = allocators[0]

    task = allocator.submit(request.kind, request.payload)
    await allocator.run_until_complete()

    data = task.to_dict()
    return TaskResponse(**{k: data[k] for k in TaskResponse.model_fields})


@router.get("/messages/stats", response_model=MessageStatsResponse)
async def message_stats(bus: MessageBus = Depends(get_bus)) -> MessageStatsResponse:
    return MessageStatsResponse(**bus.stats())


@router.get("/messages/dead-letters", response_model=DeadLetterListResponse)
async def dead_letters(
    limit: int = Query(50, ge=1, le=1000),
    bus: MessageBus = Depends(get_bus),
) -> DeadLetterListResponse:
    letters = bus.dead_letters(limit=limit)
    return DeadLetterListResponse(dead_letters=letters, total=len(letters))
