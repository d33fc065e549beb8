"""
Tests for the agent lifecycle and message dispatch
"""

import asyncio

import pytest

from souq.agents import Agent, AgentState
from souq.messaging import Message, Performative


class EchoAgent(Agent):
    role = "echo"

    def __init__(self, name, bus):
        super().__init__(name, bus)
        self.handlers = {
            Performative.REQUEST: self.on_request,
            Performative.QUERY: self.on_query,
        }

    async def on_request(self, message):
        return message.reply(Performative.INFORM, {"echo": message.body})

    async def on_query(self, message):
        raise RuntimeError("query failed")


class BrokenSetupAgent(Agent):
    async def setup(self):
        raise RuntimeError("setup failed")


def ask(recipient, performative, **body):
    return Message(sender="tester", recipient=recipient, performative=performative, body=body)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, bus):
        agent = EchoAgent("echo", bus)
        assert agent.state == AgentState.CREATED

        await agent.start()
        assert agent.is_alive
        assert bus.is_registered("echo")

        await agent.stop()
        assert agent.state == AgentState.STOPPED
        assert not agent.is_alive
        assert not bus.is_registered("echo")

    @pytest.mark.asyncio
    async def test_failed_setup(self, bus):
        agent = BrokenSetupAgent("broken", bus)

        with pytest.raises(RuntimeError):
            await agent.start()

        assert agent.state == AgentState.FAILED
        assert not bus.is_registered("broken")

    @pytest.mark.asyncio
    async def test_periodic_behaviour(self, bus):
        agent = EchoAgent("echo", bus)
        ticks = []

        async def tick():
            ticks.append(1)

        agent.add_periodic(0.01, tick)
        await agent.start()
        try:
            await asyncio.sleep(0.08)
        finally:
            await agent.stop()

        assert len(ticks) >= 2

    @pytest.mark.asyncio
    async def test_failing_periodic_behaviour_keeps_running(self, bus):
        agent = EchoAgent("echo", bus)
        calls = []

        async def flaky():
            calls.append(1)
            raise RuntimeError("tick failed")

        agent.add_periodic(0.01, flaky)
        await agent.start()
        try:
            await asyncio.sleep(0.08)
            assert agent.is_alive
        finally:
            await agent.stop()

        assert len(calls) >= 2


class TestDispatch:
    @pytest.mark.asyncio
    async def test_handler_reply(self, bus):
        agent = EchoAgent("echo", bus)
        await agent.start()
        try:
            reply = await bus.request(ask("echo", Performative.REQUEST, x=1), timeout=1)
        finally:
            await agent.stop()

        assert reply.performative == Performative.INFORM
        assert reply.body == {"echo": {"x": 1}}
        assert agent.handled_count == 1

    @pytest.mark.asyncio
    async def test_unknown_performative_not_understood(self, bus):
        agent = EchoAgent("echo", bus)
        await agent.start()
        try:
            reply = await bus.request(ask("echo", Performative.CFP), timeout=1)
        finally:
            await agent.stop()

        assert reply.performative == Performative.NOT_UNDERSTOOD
        assert reply.body == {"performative": "cfp"}

    @pytest.mark.asyncio
    async def test_handler_error_becomes_failure(self, bus):
        agent = EchoAgent("echo", bus)
        await agent.start()
        try:
            reply = await bus.request(ask("echo", Performative.QUERY), timeout=1)
            assert agent.is_alive
            again = await bus.request(ask("echo", Performative.REQUEST), timeout=1)
        finally:
            await agent.stop()

        assert reply.performative == Performative.FAILURE
        assert reply.body == {"error": "query failed", "type": "RuntimeError"}
        assert again.performative == Performative.INFORM
        assert agent.failure_count == 1

    @pytest.mark.asyncio
    async def test_failure_is_not_answered(self, bus):
        agent = EchoAgent("echo", bus)
        tester = bus.register("tester")
        await agent.start()
        try:
            await bus.send(ask("echo", Performative.FAILURE))
            await asyncio.sleep(0.05)
        finally:
            await agent.stop()

        assert tester.qsize() == 0

    @pytest.mark.asyncio
    async def test_messages_are_acknowledged(self, bus):
        agent = EchoAgent("echo", bus)
        bus.register("tester")
        await agent.start()
        try:
            sent = await bus.send_reliable(ask("echo", Performative.REQUEST))
        finally:
            await agent.stop()

        assert sent.attempt == 1
        assert bus.stats()["acked"] == 1

    @pytest.mark.asyncio
    async def test_describe(self, bus):
        agent = EchoAgent("echo", bus)
        await agent.start()
        try:
            info = agent.describe()
        finally:
            await agent.stop()

        assert info["name"] == "echo"
        assert info["role"] == "echo"
        assert info["state"] == "running"
        assert info["alive"] is True
