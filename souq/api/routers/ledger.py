"""
Ledger Endpoints
Block browsing, sealing and verification.
"""

import logging

from fastapi import APIRouter, Depends, Query

from ...ledger import Block, Blockchain
from ...marketplace import Marketplace
from ..config import APISettings, get_settings
from ..dependencies import get_chain, get_marketplace
from ..errors import ResourceNotFoundError
from ..models.ledger import (
    BalanceResponse,
    BlockListResponse,
    BlockResponse,
    SealResponse,
    VerificationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/ledger", tags=["ledger"])


def to_block_response(block: Block) -> BlockResponse:
    return BlockResponse(**block.model_dump(mode="json"))


@router.get("/blocks", response_model=BlockListResponse)
async def list_blocks(
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1),
    chain: Blockchain = Depends(get_chain),
    settings: APISettings = Depends(get_settings),
) -> BlockListResponse:
    limit = min(limit, settings.max_blocks_per_page)
    blocks = chain.blocks[offset : offset + limit]
    return BlockListResponse(
        blocks=[to_block_response(b) for b in blocks],
        height=chain.height,
        pending=len(chain.pending),
    )


@router.get("/blocks/{index}", response_model=BlockResponse)
async def get_block(index: int, chain: Blockchain = Depends(get_chain)) -> BlockResponse:
    blocks = chain.blocks
    if index < 0 or index >= len(blocks):
        raise ResourceNotFoundError("Block", index)
    return to_block_response(blocks[index])


@router.post("/seal", response_model=SealResponse)
async def seal_block(market: Marketplace = Depends(get_marketplace)) -> SealResponse:
    """Seal pending transactions into a new block."""
    block = market.seal()
    if block is None:
        return SealResponse(sealed=False)
    return SealResponse(sealed=True, block=to_block_response(block))


@router.get("/verify", response_model=VerificationResponse)
async def verify_ledger(chain: Blockchain = Depends(get_chain)) -> VerificationResponse:
    return VerificationResponse(**chain.verify().to_dict())


@router.get("/balances/{account}", response_model=BalanceResponse)
async def get_balance(
    account: str, market: Marketplace = Depends(get_marketplace)
) -> BalanceResponse:
    return BalanceResponse(account=account, balance=str(market.registry.balance_of(account)))
