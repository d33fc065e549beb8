"""
Certifier Agent
Rule-based halal certification recorded on the registry.
"""

import logging
from typing import Iterable, List

from ..ledger import CertificationRefusedError, ContractError, ProductRegistry
from ..messaging import Message, MessageBus, Performative
from .base import Agent

logger = logging.getLogger(__name__)

DEFAULT_FORBIDDEN = (
    "pork",
    "lard",
    "gelatin",
    "alcohol",
    "ethanol",
    "wine",
    "beer",
    "bacon",
    "ham",
    "carmine",
)


class CertifierAgent(Agent):
    """
    Halal certifier.

    Protocol:
    - REQUEST {"action": "certify", "product_id"} -> INFORM {"certificate_id"} or REFUSE
    - REQUEST {"action": "revoke", "product_id"} -> INFORM or FAILURE
    """

    role = "certifier"

    def __init__(
        self,
        name: str,
        bus: MessageBus,
        registry: ProductRegistry,
        forbidden_ingredients: Iterable[str] = DEFAULT_FORBIDDEN,
    ):
        super().__init__(name, bus)
        self.registry = registry
        self.forbidden_ingredients = [term.lower() for term in forbidden_ingredients]
        self.issued = 0

        self.handlers = {Performative.REQUEST: self.on_request}

    def find_violations(self, ingredients: Iterable[str]) -> List[str]:
        """Ingredients containing a forbidden term (case-insensitive)."""
        violations = []
        for ingredient in ingredients:
            lowered = ingredient.lower()
            if any(term in lowered for term in self.forbidden_ingredients):
                violations.append(ingredient)
        return violations

    def certify_product(self, product_id: str) -> str:
        """
        Inspect a product and record a certificate.

        Returns:
            Certificate ID

        Raises:
            CertificationRefusedError: If forbidden ingredients are found
            ContractError: If the registry rejects the certificate
        """
        product = self.registry.get_product(product_id)
        violations = self.find_violations(product.ingredients)
        if violations:
            raise CertificationRefusedError(product_id, violations)

        certificate_id = f"HC-{self.name}-{self.issued + 1}"
        self.registry.certify(self.name, product_id, certificate_id)
        self.issued += 1
        logger.info(f"Certified {product_id} as {certificate_id}", extra={"agent": self.name})
        return certificate_id

    async def on_request(self, message: Message) -> Message:
        action = message.body.get("action")
        product_id = message.body.get("product_id")

        if action == "certify":
            try:
                certificate_id = self.certify_product(product_id)
            except CertificationRefusedError as e:
                return message.reply(
                    Performative.REFUSE,
                    {
                        "product_id": product_id,
                        "reason": "forbidden ingredients",
                        "violations": e.details["violations"],
                    },
                )
            except ContractError as e:
                return message.reply(
                    Performative.REFUSE,
                    {"product_id": product_id, "reason": e.message, "code": e.code},
                )
            return message.reply(
                Performative.INFORM,
                {"product_id": product_id, "certificate_id": certificate_id},
            )

        if action == "revoke":
            try:
                tx = self.registry.revoke_certification(self.name, product_id)
            except ContractError as e:
                return message.reply(
                    Performative.FAILURE,
                    {"product_id": product_id, "error": e.message, "code": e.code},
                )
            return message.reply(
                Performative.INFORM,
                {"product_id": product_id, "revoked": True, "tx_id": tx.tx_id},
            )

        return message.reply(Performative.NOT_UNDERSTOOD, {"action": action})

    def describe(self):
        info = super().describe()
        info["issued"] = self.issued
        return info
