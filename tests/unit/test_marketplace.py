"""
Tests for the marketplace environment
"""

import asyncio
from decimal import Decimal

import pytest

from souq.agents import BuyerAgent, WorkerAgent
from souq.marketplace import Marketplace


@pytest.mark.asyncio
async def test_status(marketplace):
    await marketplace.start()
    try:
        status = marketplace.status()
    finally:
        await marketplace.stop()

    assert status["running"] is True
    assert len(status["agents"]) == 7
    assert status["products"] == 6
    assert status["ledger"]["valid"] is True
    assert marketplace.chain.pending == []
    assert not marketplace.running


def test_agents_by_role(marketplace):
    assert [a.name for a in marketplace.agents_by_role(BuyerAgent.role)] == ["buyer-fatima"]
    assert len(marketplace.agents_by_role(WorkerAgent.role)) == 2
    assert marketplace.get_agent("nobody") is None


def test_duplicate_agent_rejected(settings):
    market = Marketplace(settings)
    market.add_agent(BuyerAgent("buyer", market.bus, sellers=[], budget="10"))

    with pytest.raises(ValueError):
        market.add_agent(BuyerAgent("buyer", market.bus, sellers=[], budget="10"))


@pytest.mark.asyncio
async def test_relay_observes_deliveries(settings):
    delivered = []
    market = Marketplace(settings, relay=delivered.append)
    market.add_agent(WorkerAgent("worker-1", market.bus, lambda kind, payload: payload))

    await market.start()
    try:
        await market.get_agent("worker-1").inform("worker-1", {"hello": "world"})
    finally:
        await market.stop()

    assert delivered
    assert delivered[0].body == {"hello": "world"}


@pytest.mark.asyncio
async def test_pending_transactions_sealed_on_interval(settings):
    market = Marketplace(settings.model_copy(update={"seal_interval": 0.05}))

    await market.start()
    try:
        tx = market.registry.add_product("seller-a", "dates", "Dates", Decimal("9.00"), ["dates"])
        await asyncio.sleep(0.3)

        assert market.chain.pending == []
        assert market.chain.height == 1
        assert market.chain.find_transaction(tx.tx_id) == 1
    finally:
        await market.stop()


@pytest.mark.asyncio
async def test_idle_interval_seals_nothing(settings):
    market = Marketplace(settings.model_copy(update={"seal_interval": 0.02}))

    await market.start()
    try:
        await asyncio.sleep(0.1)
    finally:
        await market.stop()

    assert market.chain.height == 0
