"""
Tests for the in-process message bus
"""

import asyncio

import pytest

from souq.messaging import (
    DeliveryFailedError,
    MailboxFullError,
    Message,
    MessageBus,
    Performative,
    ReplyTimeoutError,
    UnknownRecipientError,
)


def make(sender="alice", recipient="bob", performative=Performative.INFORM, **body):
    return Message(sender=sender, recipient=recipient, performative=performative, body=body)


class TestRegistry:
    def test_register_twice_fails(self, bus):
        bus.register("bob")
        with pytest.raises(ValueError, match="already registered"):
            bus.register("bob")

    def test_agents_sorted(self, bus):
        bus.register("zed")
        bus.register("amy")
        assert bus.agents() == ["amy", "zed"]

        bus.unregister("zed")
        assert not bus.is_registered("zed")


class TestSend:
    @pytest.mark.asyncio
    async def test_unknown_recipient_is_dead_lettered(self, bus):
        with pytest.raises(UnknownRecipientError) as exc_info:
            await bus.send(make(recipient="ghost"))

        assert exc_info.value.recipient == "ghost"
        letters = bus.dead_letters()
        assert len(letters) == 1
        assert letters[0]["reason"] == "unknown recipient"
        assert bus.stats()["dead_lettered"] == 1

    @pytest.mark.asyncio
    async def test_fifo_with_increasing_sequences(self, bus):
        mailbox = bus.register("bob")

        for i in range(5):
            await bus.send(make(n=i))

        received = [await mailbox.get(timeout=1) for _ in range(5)]
        assert [m.body["n"] for m in received] == [0, 1, 2, 3, 4]
        assert [m.sequence for m in received] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_sequences_are_per_pair(self, bus):
        mailbox = bus.register("bob")

        await bus.send(make(sender="alice"))
        await bus.send(make(sender="alice"))
        await bus.send(make(sender="carol"))

        sequences = [(m.sender, m.sequence) for m in [await mailbox.get(timeout=1) for _ in range(3)]]
        assert sequences == [("alice", 0), ("alice", 1), ("carol", 0)]

    @pytest.mark.asyncio
    async def test_full_mailbox_applies_backpressure(self):
        bus = MessageBus(mailbox_size=1, send_timeout=0.05)
        mailbox = bus.register("bob")

        await bus.send(make())
        with pytest.raises(MailboxFullError):
            await bus.send(make())

        assert mailbox.qsize() == 1
        assert bus.dead_letters()[-1]["reason"] == "mailbox full"

    @pytest.mark.asyncio
    async def test_send_waits_for_space(self):
        bus = MessageBus(mailbox_size=1, send_timeout=1.0)
        mailbox = bus.register("bob")
        await bus.send(make(n=1))

        async def drain():
            await asyncio.sleep(0.05)
            return await mailbox.get(timeout=1)

        drained, _ = await asyncio.gather(drain(), bus.send(make(n=2)))
        assert drained.body["n"] == 1
        assert (await mailbox.get(timeout=1)).body["n"] == 2

    @pytest.mark.asyncio
    async def test_get_returns_none_on_timeout(self, bus):
        mailbox = bus.register("bob")
        assert await mailbox.get(timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_observers_see_deliveries(self, bus):
        bus.register("bob")
        seen = []

        def broken(message):
            raise RuntimeError("observer down")

        bus.add_observer(broken)
        bus.add_observer(seen.append)

        await bus.send(make())

        assert len(seen) == 1
        assert bus.stats()["delivered"] == 1


class TestReliableDelivery:
    @pytest.mark.asyncio
    async def test_acknowledged_delivery(self, bus):
        mailbox = bus.register("bob")

        async def consume():
            message = await mailbox.get(timeout=1)
            mailbox.ack(message.message_id)
            return message

        consumed, sent = await asyncio.gather(consume(), bus.send_reliable(make()))

        assert consumed.message_id == sent.message_id
        assert sent.attempt == 1
        assert bus.stats()["acked"] == 1
        assert bus.stats()["redelivered"] == 0

    @pytest.mark.asyncio
    async def test_slow_consumer_gets_redelivery_without_duplicates(self):
        bus = MessageBus(ack_timeout=0.05, max_delivery_attempts=6)
        mailbox = bus.register("bob")

        async def slow_consume():
            await asyncio.sleep(0.12)
            message = await mailbox.get(timeout=1)
            mailbox.ack(message.message_id)
            return message

        consumed, sent = await asyncio.gather(slow_consume(), bus.send_reliable(make()))

        assert consumed.message_id == sent.message_id
        assert sent.attempt > 1
        stats = bus.stats()
        assert stats["redelivered"] >= 1
        assert stats["duplicates"] >= 1
        assert mailbox.qsize() == 0

    @pytest.mark.asyncio
    async def test_unacknowledged_delivery_fails(self):
        bus = MessageBus(ack_timeout=0.01, max_delivery_attempts=2)
        bus.register("bob")

        with pytest.raises(DeliveryFailedError) as exc_info:
            await bus.send_reliable(make())

        assert exc_info.value.attempts == 2
        assert bus.dead_letters()[-1]["reason"] == "not acknowledged"

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, bus):
        with pytest.raises(UnknownRecipientError):
            await bus.send_reliable(make(recipient="ghost"))

    @pytest.mark.asyncio
    async def test_retry_on_full_mailbox_keeps_send_order(self):
        bus = MessageBus(mailbox_size=1, send_timeout=0.1, ack_timeout=1.0)
        mailbox = bus.register("bob")
        await bus.send(make(n=0))

        async def later_send():
            await asyncio.sleep(0.02)
            return await bus.send(make(n=2))

        async def consume():
            await asyncio.sleep(0.085)
            received = []
            for _ in range(3):
                message = await mailbox.get(timeout=1)
                mailbox.ack(message.message_id)
                received.append(message)
            return received

        received, _, _ = await asyncio.gather(
            consume(), bus.send_reliable(make(n=1)), later_send()
        )

        assert [m.body["n"] for m in received] == [0, 1, 2]
        assert [m.sequence for m in received] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_mailbox_that_stays_full_fails_delivery(self):
        bus = MessageBus(mailbox_size=1, send_timeout=0.01, max_delivery_attempts=2)
        bus.register("bob")
        await bus.send(make())

        with pytest.raises(DeliveryFailedError):
            await bus.send_reliable(make())

        assert bus.dead_letters()[-1]["reason"] == "mailbox full"


class TestRequestReply:
    @pytest.mark.asyncio
    async def test_reply_is_correlated(self, bus):
        mailbox = bus.register("bob")

        async def responder():
            request = await mailbox.get(timeout=1)
            await bus.send(request.reply(Performative.INFORM, {"answer": 42}))

        reply, _ = await asyncio.gather(
            bus.request(make(performative=Performative.QUERY), timeout=1), responder()
        )

        assert reply.performative == Performative.INFORM
        assert reply.body == {"answer": 42}
        assert bus.stats()["pending_requests"] == 0

    @pytest.mark.asyncio
    async def test_requester_needs_no_mailbox(self, bus):
        mailbox = bus.register("bob")

        async def responder():
            request = await mailbox.get(timeout=1)
            await bus.send(request.reply(Performative.AGREE))

        reply, _ = await asyncio.gather(
            bus.request(make(sender="api", performative=Performative.REQUEST), timeout=1),
            responder(),
        )

        assert reply.recipient == "api"
        assert not bus.is_registered("api")

    @pytest.mark.asyncio
    async def test_request_timeout(self, bus):
        bus.register("bob")

        with pytest.raises(ReplyTimeoutError):
            await bus.request(make(performative=Performative.QUERY), timeout=0.05)

        assert bus.stats()["pending_requests"] == 0


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_broadcast_reports_per_recipient(self, bus):
        bob = bus.register("bob")
        carol = bus.register("carol")

        results = await bus.broadcast(
            "alice", ["bob", "ghost", "carol"], Performative.CFP, {"query": "dates"}
        )

        assert results == {"bob": True, "ghost": False, "carol": True}
        first = await bob.get(timeout=1)
        second = await carol.get(timeout=1)
        assert first.conversation_id == second.conversation_id
        assert first.body == {"query": "dates"}

    @pytest.mark.asyncio
    async def test_broadcast_uses_given_conversation(self, bus):
        bob = bus.register("bob")

        await bus.broadcast("alice", ["bob"], Performative.INFORM, conversation_id="conv-1")

        assert (await bob.get(timeout=1)).conversation_id == "conv-1"
