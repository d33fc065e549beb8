"""
Tests for seller, buyer and certifier negotiations
"""

import asyncio
from decimal import Decimal

import pytest

from souq.agents import Agent, BuyerAgent, CertifierAgent, Offer, SellerAgent
from souq.ledger import CertificationRefusedError, ProductStatus, UnauthorizedError
from souq.messaging import Message, Performative

CERTIFIER = "certifier-halal"


def amina_offers():
    return [
        Offer("amina-dates", "Medjool Dates 1kg", Decimal("12.50"), ["dates"]),
        Offer("amina-gummies", "Fruit Gummies", Decimal("3.20"), ["sugar", "pork gelatin"]),
    ]


def yusuf_offers():
    return [
        Offer("yusuf-dates", "Ajwa Dates 1kg", Decimal("18.00"), ["ajwa dates"]),
        Offer("yusuf-sauce", "Cooking Sauce", Decimal("4.10"), ["tomato", "white wine"]),
    ]


class DishonestSeller(Agent):
    """Proposes a cheap certified product but never completes the sale."""

    role = "seller"

    def __init__(self, name, bus):
        super().__init__(name, bus)
        self.handlers = {
            Performative.CFP: self.on_cfp,
            Performative.ACCEPT_PROPOSAL: self.on_accept,
            Performative.REJECT_PROPOSAL: self.on_reject,
        }

    async def on_cfp(self, message):
        proposal = {"product_id": "fake", "name": "Dates", "price": "1.00", "certified": True}
        return message.reply(Performative.PROPOSE, {"proposals": [proposal]})

    async def on_accept(self, message):
        return message.reply(Performative.FAILURE, {"error": "out of stock"})

    async def on_reject(self, message):
        return None


class SlowSeller(SellerAgent):
    """Completes sales, but only after the buyer has stopped waiting."""

    delay = 0.3

    async def on_accept(self, message):
        await asyncio.sleep(self.delay)
        return await super().on_accept(message)


@pytest.fixture
def agents(bus, registry):
    certifier = CertifierAgent(CERTIFIER, bus, registry)
    amina = SellerAgent("seller-amina", bus, registry, amina_offers(), certifier=CERTIFIER)
    yusuf = SellerAgent("seller-yusuf", bus, registry, yusuf_offers(), certifier=CERTIFIER)
    buyer = BuyerAgent(
        "buyer-fatima",
        bus,
        sellers=["seller-amina", "seller-yusuf"],
        budget=Decimal("100.00"),
        negotiation_timeout=0.5,
    )
    return certifier, amina, yusuf, buyer


async def start_all(agents):
    for agent in agents:
        await agent.start()


async def stop_all(agents):
    for agent in reversed(agents):
        await agent.stop()


class TestCertification:
    @pytest.mark.asyncio
    async def test_sellers_list_and_certify_on_start(self, agents, registry):
        await start_all(agents)
        try:
            assert registry.product_count == 4
            assert registry.get_product("amina-dates").certified
            assert registry.get_product("yusuf-dates").certified
            assert not registry.get_product("amina-gummies").certified
            assert not registry.get_product("yusuf-sauce").certified
            assert agents[0].issued == 2
        finally:
            await stop_all(agents)

    @pytest.mark.asyncio
    async def test_refusal_reported_to_seller(self, agents):
        await start_all(agents)
        try:
            amina = agents[1]
            for _ in range(20):
                if "amina-gummies" in amina.certification_results:
                    break
                await amina.bus.request(
                    Message(sender="market-watch", recipient=amina.name, performative=Performative.CFP),
                    timeout=0.5,
                )

            result = amina.certification_results["amina-gummies"]
        finally:
            await stop_all(agents)

        assert result["certified"] is False
        assert result["reason"] == "forbidden ingredients"
        assert result["violations"] == ["pork gelatin"]

    def test_find_violations(self, bus, registry):
        certifier = CertifierAgent(CERTIFIER, bus, registry)

        assert certifier.find_violations(["Tomato", "White Wine", "LARD"]) == ["White Wine", "LARD"]
        assert certifier.find_violations(["dates", "honey"]) == []

    def test_certify_product_refused(self, bus, registry):
        certifier = CertifierAgent(CERTIFIER, bus, registry)
        registry.add_product("seller", "gummies", "Gummies", "3.20", ["gelatin"])

        with pytest.raises(CertificationRefusedError) as exc_info:
            certifier.certify_product("gummies")

        assert exc_info.value.details["violations"] == ["gelatin"]
        assert not registry.get_product("gummies").certified

    def test_rejected_certificate_keeps_serial(self, bus, registry):
        certifier = CertifierAgent("certifier-new", bus, registry)
        registry.add_product("seller", "dates", "Dates", "9.00", ["dates"])

        with pytest.raises(UnauthorizedError):
            certifier.certify_product("dates")
        assert certifier.issued == 0

        registry.register_certifier("registry-admin", "certifier-new")

        assert certifier.certify_product("dates") == "HC-certifier-new-1"
        assert certifier.issued == 1

    @pytest.mark.asyncio
    async def test_revoke_and_unknown_action(self, bus, registry):
        certifier = CertifierAgent(CERTIFIER, bus, registry)
        registry.add_product("seller", "dates", "Dates", "12.50", ["dates"])
        certifier.certify_product("dates")
        await certifier.start()
        try:
            revoked = await bus.request(
                Message(
                    sender="admin",
                    recipient=CERTIFIER,
                    performative=Performative.REQUEST,
                    body={"action": "revoke", "product_id": "dates"},
                ),
                timeout=1,
            )
            again = await bus.request(
                Message(
                    sender="admin",
                    recipient=CERTIFIER,
                    performative=Performative.REQUEST,
                    body={"action": "revoke", "product_id": "dates"},
                ),
                timeout=1,
            )
            unknown = await bus.request(
                Message(
                    sender="admin",
                    recipient=CERTIFIER,
                    performative=Performative.REQUEST,
                    body={"action": "audit"},
                ),
                timeout=1,
            )
        finally:
            await certifier.stop()

        assert revoked.performative == Performative.INFORM
        assert revoked.body["revoked"] is True
        assert again.performative == Performative.FAILURE
        assert again.body["code"] == "not_certified"
        assert unknown.performative == Performative.NOT_UNDERSTOOD


class TestSeller:
    @pytest.mark.asyncio
    async def test_cfp_without_match_is_refused(self, bus, registry):
        seller = SellerAgent("seller-amina", bus, registry, amina_offers())
        await seller.start()
        try:
            reply = await bus.request(
                Message(
                    sender="buyer",
                    recipient="seller-amina",
                    performative=Performative.CFP,
                    body={"query": "camel milk"},
                ),
                timeout=1,
            )
        finally:
            await seller.stop()

        assert reply.performative == Performative.REFUSE
        assert reply.body["reason"] == "no matching products"

    @pytest.mark.asyncio
    async def test_accept_with_wrong_payment_fails(self, bus, registry):
        seller = SellerAgent("seller-amina", bus, registry, amina_offers())
        registry.add_product("seller-amina", "preset", "Dates Box", "5.00")
        registry.certify(CERTIFIER, "preset", "HC-0")
        await seller.start()
        try:
            reply = await bus.request(
                Message(
                    sender="buyer",
                    recipient="seller-amina",
                    performative=Performative.ACCEPT_PROPOSAL,
                    body={"product_id": "preset", "payment": "4.99"},
                ),
                timeout=1,
            )
        finally:
            await seller.stop()

        assert reply.performative == Performative.FAILURE
        assert reply.body["code"] == "incorrect_payment"
        assert reply.body["error"] == "incorrect payment amount"
        assert seller.sales == []


class TestBuyer:
    @pytest.mark.asyncio
    async def test_buys_cheapest_certified(self, agents, registry):
        await start_all(agents)
        try:
            buyer = agents[3]
            outcome = await buyer.buy("dates")
        finally:
            await stop_all(agents)

        assert outcome.status == "purchased"
        assert outcome.product_id == "amina-dates"
        assert outcome.seller == "seller-amina"
        assert outcome.price == Decimal("12.50")
        assert outcome.proposals_considered == 2
        assert buyer.budget == Decimal("87.50")
        assert registry.get_product("amina-dates").status == ProductStatus.SOLD
        assert registry.get_product("amina-dates").buyer == "buyer-fatima"
        assert registry.balance_of("seller-amina") == Decimal("12.50")
        assert agents[1].sales[0]["tx_id"] == outcome.tx_id

    @pytest.mark.asyncio
    async def test_second_round_takes_next_product(self, agents):
        await start_all(agents)
        try:
            buyer = agents[3]
            first = await buyer.buy("dates")
            second = await buyer.buy("dates")
            third = await buyer.buy("dates")
        finally:
            await stop_all(agents)

        assert first.product_id == "amina-dates"
        assert second.product_id == "yusuf-dates"
        assert third.status == "no_proposals"
        assert buyer.describe()["purchases"] == 2

    @pytest.mark.asyncio
    async def test_uncertified_products_skipped(self, agents):
        await start_all(agents)
        try:
            outcome = await agents[3].buy("sauce")
        finally:
            await stop_all(agents)

        assert outcome.status == "no_proposals"
        assert outcome.proposals_considered == 1

    @pytest.mark.asyncio
    async def test_max_price_and_budget(self, bus, registry, agents):
        certifier, amina, yusuf, _ = agents
        poor = BuyerAgent(
            "buyer-poor",
            bus,
            sellers=["seller-amina", "seller-yusuf"],
            budget=Decimal("10.00"),
            negotiation_timeout=0.5,
        )
        everyone = [certifier, amina, yusuf, poor]
        await start_all(everyone)
        try:
            over_budget = await poor.buy("dates")
            over_max = await agents[3].buy("dates", max_price=Decimal("10.00"))
        finally:
            await stop_all(everyone)

        assert over_budget.status == "no_proposals"
        assert over_max.status == "no_proposals"
        assert poor.budget == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_falls_back_when_seller_fails(self, bus, registry, agents):
        certifier, amina, yusuf, _ = agents
        dishonest = DishonestSeller("seller-dishonest", bus)
        buyer = BuyerAgent(
            "buyer-fatima",
            bus,
            sellers=["seller-dishonest", "seller-amina"],
            budget=Decimal("100.00"),
            negotiation_timeout=0.5,
        )
        everyone = [certifier, amina, yusuf, dishonest, buyer]
        await start_all(everyone)
        try:
            outcome = await buyer.buy("dates")
        finally:
            await stop_all(everyone)

        assert outcome.status == "purchased"
        assert outcome.seller == "seller-amina"
        assert outcome.proposals_considered == 2

    @pytest.mark.asyncio
    async def test_unreachable_seller_is_skipped(self, bus, registry, agents):
        certifier, amina, yusuf, _ = agents
        buyer = BuyerAgent(
            "buyer-fatima",
            bus,
            sellers=["seller-ghost", "seller-yusuf"],
            budget=Decimal("100.00"),
            negotiation_timeout=0.5,
        )
        everyone = [certifier, amina, yusuf, buyer]
        await start_all(everyone)
        try:
            outcome = await buyer.buy("dates")
        finally:
            await stop_all(everyone)

        assert outcome.status == "purchased"
        assert outcome.product_id == "yusuf-dates"

    @pytest.mark.asyncio
    async def test_late_sale_is_charged_to_budget(self, bus, registry, agents):
        certifier = agents[0]
        slow = SlowSeller("seller-slow", bus, registry, amina_offers(), certifier=CERTIFIER)
        buyer = BuyerAgent(
            "buyer-fatima",
            bus,
            sellers=["seller-slow"],
            budget=Decimal("100.00"),
            negotiation_timeout=0.1,
        )
        everyone = [certifier, slow, buyer]
        await start_all(everyone)
        try:
            outcome = await buyer.buy("dates")
            assert outcome.status == "failed"

            for _ in range(50):
                if buyer.budget != Decimal("100.00"):
                    break
                await asyncio.sleep(0.02)
        finally:
            await stop_all(everyone)

        assert registry.get_product("amina-dates").buyer == "buyer-fatima"
        assert buyer.budget == Decimal("87.50")
        late = buyer.purchases[-1]
        assert late.status == "purchased"
        assert late.product_id == "amina-dates"
        assert late.reason == "confirmed after timeout"
