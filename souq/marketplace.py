"""
Marketplace Environment
Wires the message bus, ledger, registry and agents together.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .agents import (
    Agent,
    BuyerAgent,
    CertifierAgent,
    Offer,
    SellerAgent,
    TaskAllocatorAgent,
    WorkerAgent,
)
from .config import Settings, get_settings
from .db import LedgerStore
from .ledger import Block, Blockchain, ProductRegistry
from .messaging import MessageBus, RedisMessageRelay

logger = logging.getLogger(__name__)


class Marketplace:
    """
    The environment agents live in.

    Sealed blocks are persisted through the store when one is given,
    and the chain is restored from it on construction.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[LedgerStore] = None,
        relay: Optional[RedisMessageRelay] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.relay = relay

        self.bus = MessageBus(
            mailbox_size=self.settings.mailbox_size,
            send_timeout=self.settings.send_timeout,
            ack_timeout=self.settings.ack_timeout,
            max_delivery_attempts=self.settings.max_delivery_attempts,
        )
        if relay is not None:
            self.bus.add_observer(relay)

        chain_kwargs = {
            "difficulty": self.settings.ledger_difficulty,
            "max_block_transactions": self.settings.ledger_max_block_transactions,
            "on_block": self._persist_block,
        }
        if store is not None:
            blocks = store.load_blocks()
            self.chain = Blockchain.from_blocks(blocks, **chain_kwargs)
            if not blocks:
                store.save_block(self.chain.last_block)
        else:
            self.chain = Blockchain(**chain_kwargs)

        self.registry = ProductRegistry.replay(
            self.chain,
            admin=self.settings.ledger_admin,
            require_certification=self.settings.require_certification,
        )

        self._agents: Dict[str, Agent] = {}
        self._sealer: Optional[asyncio.Task] = None
        self.running = False

    # === Agents ===

    def add_agent(self, agent: Agent) -> Agent:
        if agent.name in self._agents:
            raise ValueError(f"Agent already exists: {agent.name}")
        self._agents[agent.name] = agent
        return agent

    def get_agent(self, name: str) -> Optional[Agent]:
        return self._agents.get(name)

    @property
    def agents(self) -> List[Agent]:
        return list(self._agents.values())

    def agents_by_role(self, role: str) -> List[Agent]:
        return [agent for agent in self._agents.values() if agent.role == role]

    # === Lifecycle ===

    async def start(self) -> None:
        """Start agents in the order they were added, then the periodic sealer."""
        for agent in self._agents.values():
            await agent.start()
        self._sealer = asyncio.create_task(self._seal_periodically(), name="marketplace:sealer")
        self.running = True
        logger.info(f"Marketplace started with {len(self._agents)} agents")

    async def stop(self) -> None:
        """Stop agents in reverse order and seal pending transactions."""
        if self._sealer is not None:
            self._sealer.cancel()
            await asyncio.gather(self._sealer, return_exceptions=True)
            self._sealer = None
        for agent in reversed(list(self._agents.values())):
            await agent.stop()
        self.running = False
        while self.chain.pending:
            self.seal()
        logger.info("Marketplace stopped")

    def seal(self) -> Optional[Block]:
        return self.chain.seal_pending()

    async def _seal_periodically(self) -> None:
        interval = self.settings.seal_interval
        while True:
            await asyncio.sleep(interval)
            if not self.chain.pending:
                continue
            try:
                block = self.seal()
            except Exception as e:
                logger.error(f"Scheduled seal failed: {e}", exc_info=True)
                continue
            if block is not None:
                logger.info(
                    f"Sealed block {block.index} with {len(block.transactions)} transactions"
                )

    def _persist_block(self, block: Block) -> None:
        if self.store is not None:
            self.store.save_block(block)

    # === Status ===

    def status(self) -> Dict[str, Any]:
        verification = self.chain.verify()
        return {
            "running": self.running,
            "agents": [agent.describe() for agent in self._agents.values()],
            "bus": self.bus.stats(),
            "ledger": {
                "height": self.chain.height,
                "pending": len(self.chain.pending),
                "valid": verification.valid,
                "error": verification.error,
            },
            "products": self.registry.product_count,
        }


DEMO_CATALOG = {
    "seller-amina": [
        Offer("amina-dates-1kg", "Medjool Dates 1kg", Decimal("12.50"), ["dates"]),
        Offer("amina-honey", "Sidr Honey 500g", Decimal("24.00"), ["honey"]),
        Offer("amina-gummies", "Fruit Gummies", Decimal("3.20"), ["sugar", "pork gelatin"]),
    ],
    "seller-yusuf": [
        Offer("yusuf-dates-1kg", "Ajwa Dates 1kg", Decimal("18.00"), ["dates"]),
        Offer("yusuf-lamb", "Lamb Shoulder", Decimal("15.75"), ["lamb"]),
        Offer("yusuf-sauce", "Cooking Sauce", Decimal("4.10"), ["tomato", "white wine"]),
    ],
}


def _demo_task(kind: str, payload: Dict[str, Any]) -> Any:
    if kind == "price_check":
        return {"product_id": payload.get("product_id"), "checked": True}
    if kind == "echo":
        return payload
    raise ValueError(f"Unknown task kind: {kind}")


def build_demo_marketplace(
    settings: Optional[Settings] = None,
    store: Optional[LedgerStore] = None,
    relay: Optional[RedisMessageRelay] = None,
) -> Marketplace:
    """
    Marketplace with a certifier, two sellers, a buyer, two workers and an allocator.
    """
    market = Marketplace(settings, store=store, relay=relay)
    settings = market.settings

    certifier = CertifierAgent("certifier-halal", market.bus, market.registry)
    market.registry.register_certifier(settings.ledger_admin, certifier.name)
    market.add_agent(certifier)

    for seller_name, offers in DEMO_CATALOG.items():
        market.add_agent(
            SellerAgent(seller_name, market.bus, market.registry, offers, certifier=certifier.name)
        )

    market.add_agent(
        BuyerAgent(
            "buyer-fatima",
            market.bus,
            sellers=list(DEMO_CATALOG),
            budget=Decimal("100.00"),
            negotiation_timeout=settings.negotiation_timeout,
        )
    )

    workers = [WorkerAgent(f"worker-{i}", market.bus, _demo_task) for i in (1, 2)]
    for worker in workers:
        market.add_agent(worker)

    market.add_agent(
        TaskAllocatorAgent(
            "allocator",
            market.bus,
            workers=workers,
            max_attempts=settings.max_task_attempts,
            task_timeout=settings.task_timeout,
        )
    )
    return market
