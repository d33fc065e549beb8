"""
Buyer Agent
Runs contract-net negotiations against known sellers.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from ..messaging import Message, MessageBus, MessagingError, Performative, ReplyTimeoutError
from .base import Agent

logger = logging.getLogger(__name__)


@dataclass
class Proposal:
    seller: str
    product_id: str
    name: str
    price: Decimal
    certified: bool


@dataclass
class PurchaseOutcome:
    """Result of one buying round."""

    status: str  # purchased, no_proposals, failed
    product_id: Optional[str] = None
    seller: Optional[str] = None
    price: Optional[Decimal] = None
    tx_id: Optional[str] = None
    proposals_considered: int = 0
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["price"] = str(self.price) if self.price is not None else None
        return data


class BuyerAgent(Agent):
    """
    Buyer with a budget.

    One `buy()` call is one contract-net round: CFP to all sellers,
    rank the proposals, accept the best and fall back to the next
    candidate if the seller reports a failure.
    """

    role = "buyer"

    def __init__(
        self,
        name: str,
        bus: MessageBus,
        sellers: Iterable[str],
        budget: Decimal,
        negotiation_timeout: float = 2.0,
    ):
        super().__init__(name, bus)
        self.sellers = list(sellers)
        self.budget = Decimal(str(budget))
        self.negotiation_timeout = negotiation_timeout
        self.purchases: List[PurchaseOutcome] = []
        # Accepts that timed out, by message_id; the seller may still complete them
        self._unconfirmed: Dict[str, Proposal] = {}
        self.handlers = {
            Performative.INFORM: self.on_late_reply,
            Performative.FAILURE: self.on_late_reply,
        }

    async def buy(
        self,
        query: str,
        max_price: Optional[Decimal] = None,
        require_certified: bool = True,
    ) -> PurchaseOutcome:
        """
        Run one negotiation round.

        Args:
            query: Case-insensitive product name fragment
            max_price: Highest acceptable price
            require_certified: Only consider halal-certified products

        Returns:
            PurchaseOutcome
        """
        conversation_id = uuid4().hex
        max_price = Decimal(str(max_price)) if max_price is not None else None

        logger.info(
            f"Buyer {self.name} calling for proposals: '{query}' (max={max_price})",
            extra={"agent": self.name, "conversation_id": conversation_id},
        )

        proposals = await self._collect_proposals(query, max_price, conversation_id)
        candidates = self.rank(proposals, max_price, require_certified)

        if not candidates:
            await self._reject_all(proposals, None, conversation_id)
            outcome = PurchaseOutcome(
                status="no_proposals",
                proposals_considered=len(proposals),
                reason="no acceptable proposals",
            )
            self.purchases.append(outcome)
            return outcome

        outcome = None
        last_reason = None
        for candidate in candidates:
            accept = self.message(
                candidate.seller,
                Performative.ACCEPT_PROPOSAL,
                {"product_id": candidate.product_id, "payment": str(candidate.price)},
                conversation_id,
            )
            try:
                reply = await self.request(accept, timeout=self.negotiation_timeout)
            except MessagingError as e:
                last_reason = str(e)
                if isinstance(e, ReplyTimeoutError):
                    self._unconfirmed[accept.message_id] = candidate
                logger.warning(f"Buyer {self.name}: accept to {candidate.seller} failed: {e}")
                continue

            if reply.performative == Performative.INFORM:
                self.budget -= candidate.price
                outcome = PurchaseOutcome(
                    status="purchased",
                    product_id=candidate.product_id,
                    seller=candidate.seller,
                    price=candidate.price,
                    tx_id=reply.body.get("tx_id"),
                    proposals_considered=len(proposals),
                )
                break

            last_reason = reply.body.get("error", reply.performative.value)
            logger.info(
                f"Buyer {self.name}: {candidate.seller} could not sell "
                f"{candidate.product_id}: {last_reason}"
            )

        await self._reject_all(proposals, outcome, conversation_id)

        if outcome is None:
            outcome = PurchaseOutcome(
                status="failed",
                proposals_considered=len(proposals),
                reason=last_reason,
            )

        self.purchases.append(outcome)
        logger.info(
            f"Buyer {self.name} round finished: {outcome.status}",
            extra={"agent": self.name, "conversation_id": conversation_id},
        )
        return outcome

    async def on_late_reply(self, message: Message) -> None:
        candidate = self._unconfirmed.pop(message.in_reply_to, None)
        if candidate is None:
            logger.debug(
                f"Buyer {self.name}: unsolicited {message.performative.value} from {message.sender}"
            )
            return None

        if message.performative != Performative.INFORM:
            logger.info(
                f"Buyer {self.name}: {candidate.seller} declined {candidate.product_id} after timeout"
            )
            return None

        self.budget -= candidate.price
        self.purchases.append(
            PurchaseOutcome(
                status="purchased",
                product_id=candidate.product_id,
                seller=candidate.seller,
                price=candidate.price,
                tx_id=message.body.get("tx_id"),
                reason="confirmed after timeout",
            )
        )
        logger.warning(
            f"Buyer {self.name}: late sale of {candidate.product_id} by {candidate.seller}, "
            f"budget now {self.budget}",
            extra={"agent": self.name, "conversation_id": message.conversation_id},
        )
        return None

    def rank(
        self,
        proposals: List[Proposal],
        max_price: Optional[Decimal],
        require_certified: bool,
    ) -> List[Proposal]:
        """Filter acceptable proposals and order them cheapest first."""
        acceptable = [
            p
            for p in proposals
            if (p.certified or not require_certified)
            and (max_price is None or p.price <= max_price)
            and p.price <= self.budget
        ]
        return sorted(acceptable, key=lambda p: (p.price, p.seller, p.product_id))

    async def _collect_proposals(
        self, query: str, max_price: Optional[Decimal], conversation_id: str
    ) -> List[Proposal]:
        body = {"query": query}
        if max_price is not None:
            body["max_price"] = str(max_price)

        requests = [
            self.request(
                self.message(seller, Performative.CFP, body, conversation_id),
                timeout=self.negotiation_timeout,
            )
            for seller in self.sellers
        ]
        replies = await asyncio.gather(*requests, return_exceptions=True)

        proposals: List[Proposal] = []
        for seller, reply in zip(self.sellers, replies):
            if isinstance(reply, MessagingError):
                logger.info(f"Buyer {self.name}: no answer from {seller}: {reply}")
                continue
            if isinstance(reply, BaseException):
                raise reply
            if reply.performative != Performative.PROPOSE:
                continue
            for item in reply.body.get("proposals", []):
                proposals.append(
                    Proposal(
                        seller=seller,
                        product_id=item["product_id"],
                        name=item.get("name", ""),
                        price=Decimal(str(item["price"])),
                        certified=bool(item.get("certified", False)),
                    )
                )
        return proposals

    async def _reject_all(
        self,
        proposals: List[Proposal],
        outcome: Optional[PurchaseOutcome],
        conversation_id: str,
    ) -> None:
        winner = outcome.seller if outcome else None
        for seller in sorted({p.seller for p in proposals}):
            if seller == winner:
                continue
            try:
                await self.send(
                    self.message(seller, Performative.REJECT_PROPOSAL, {}, conversation_id)
                )
            except MessagingError as e:
                logger.debug(f"Reject to {seller} not delivered: {e}")

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["budget"] = str(self.budget)
        info["purchases"] = len([p for p in self.purchases if p.status == "purchased"])
        return info
