"""
Seller Agent
Lists products on the registry and answers calls for proposals.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from ..ledger import ContractError, ProductRegistry, ProductStatus
from ..messaging import Message, MessageBus, MessagingError, Performative
from .base import Agent

logger = logging.getLogger(__name__)


@dataclass
class Offer:
    """Product a seller wants to list."""

    product_id: str
    name: str
    price: Decimal
    ingredients: List[str] = field(default_factory=list)


class SellerAgent(Agent):
    """
    Seller in contract-net negotiations.

    Protocol:
    - CFP {"query", "max_price"?} -> PROPOSE {"proposals": [...]} or REFUSE
    - ACCEPT_PROPOSAL {"product_id", "payment"} -> INFORM {"tx_id", ...} or FAILURE
    - REJECT_PROPOSAL -> logged
    """

    role = "seller"

    def __init__(
        self,
        name: str,
        bus: MessageBus,
        registry: ProductRegistry,
        offers: Iterable[Offer] = (),
        certifier: Optional[str] = None,
    ):
        super().__init__(name, bus)
        self.registry = registry
        self.offers = list(offers)
        self.certifier = certifier
        self.certification_results: Dict[str, Dict[str, Any]] = {}
        self.sales: List[Dict[str, Any]] = []

        self.handlers = {
            Performative.CFP: self.on_cfp,
            Performative.ACCEPT_PROPOSAL: self.on_accept,
            Performative.REJECT_PROPOSAL: self.on_reject,
            Performative.INFORM: self.on_certification_result,
            Performative.REFUSE: self.on_certification_result,
        }

    async def setup(self) -> None:
        for offer in self.offers:
            if not self.registry.has_product(offer.product_id):
                self.registry.add_product(
                    self.name, offer.product_id, offer.name, offer.price, offer.ingredients
                )

        if self.certifier:
            for offer in self.offers:
                if self.registry.get_product(offer.product_id).certified:
                    continue
                await self.request_certification(offer.product_id)

    async def request_certification(self, product_id: str) -> None:
        """Ask the certifier to certify a product (reliable delivery)."""
        try:
            await self.bus.send_reliable(
                self.message(
                    self.certifier,
                    Performative.REQUEST,
                    {"action": "certify", "product_id": product_id},
                )
            )
        except MessagingError as e:
            logger.warning(
                f"Seller {self.name} could not reach certifier {self.certifier}: {e}",
                extra={"agent": self.name},
            )

    def matching_products(self, query: str, max_price: Optional[Decimal] = None):
        query = (query or "").lower()
        for product in self.registry.list_products(status=ProductStatus.LISTED, seller=self.name):
            if query not in product.name.lower():
                continue
            if max_price is not None and product.price > max_price:
                continue
            yield product

    async def on_cfp(self, message: Message) -> Message:
        query = message.body.get("query", "")
        max_price = message.body.get("max_price")
        max_price = Decimal(str(max_price)) if max_price is not None else None

        proposals = [
            {
                "product_id": product.product_id,
                "name": product.name,
                "price": str(product.price),
                "certified": product.certified,
            }
            for product in self.matching_products(query, max_price)
        ]

        if not proposals:
            return message.reply(Performative.REFUSE, {"reason": "no matching products"})

        logger.debug(f"Seller {self.name} proposing {len(proposals)} products for '{query}'")
        return message.reply(Performative.PROPOSE, {"proposals": proposals})

    async def on_accept(self, message: Message) -> Message:
        product_id = message.body.get("product_id")
        payment = message.body.get("payment")

        try:
            tx = self.registry.purchase(message.sender, product_id, payment)
        except ContractError as e:
            logger.info(
                f"Seller {self.name} rejected purchase of {product_id}: {e.message}",
                extra={"agent": self.name, "conversation_id": message.conversation_id},
            )
            return message.reply(
                Performative.FAILURE,
                {"error": e.message, "code": e.code, "product_id": product_id},
            )

        product = self.registry.get_product(product_id)
        sale = {
            "tx_id": tx.tx_id,
            "product_id": product_id,
            "price": str(product.price),
            "buyer": message.sender,
        }
        self.sales.append(sale)
        return message.reply(Performative.INFORM, sale)

    async def on_reject(self, message: Message) -> None:
        logger.debug(
            f"Seller {self.name}: proposal rejected by {message.sender}",
            extra={"agent": self.name, "conversation_id": message.conversation_id},
        )
        return None

    async def on_certification_result(self, message: Message) -> None:
        product_id = message.body.get("product_id")
        if product_id is None:
            return None
        self.certification_results[product_id] = {
            "certified": message.performative == Performative.INFORM,
            **message.body,
        }
        if message.performative == Performative.REFUSE:
            logger.warning(
                f"Certification refused for {product_id}: {message.body.get('reason')}",
                extra={"agent": self.name},
            )
        return None
