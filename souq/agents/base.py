"""
Agent Base
Lifecycle, message dispatch and periodic behaviours shared by all agents.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..messaging import Mailbox, Message, MessageBus, Performative

logger = logging.getLogger(__name__)

Handler = Callable[[Message], Awaitable[Optional[Message]]]


class AgentState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


class Agent:
    """
    Base class for marketplace agents.

    Subclasses register handlers per performative in `handlers`. A handler
    may return a reply, which is sent on its behalf. Every message is
    acknowledged after its handler finishes, so reliable senders stop
    redelivering.
    """

    role = "agent"

    def __init__(self, name: str, bus: MessageBus):
        self.name = name
        self.bus = bus
        self.state = AgentState.CREATED
        self.mailbox: Optional[Mailbox] = None
        self.handlers: Dict[Performative, Handler] = {}

        self.handled_count = 0
        self.failure_count = 0

        self._loop_task: Optional[asyncio.Task] = None
        self._periodic: List[Tuple[float, Callable[[], Awaitable[Any]]]] = []
        self._periodic_tasks: List[asyncio.Task] = []

    # === Lifecycle ===

    async def start(self) -> None:
        """Register the mailbox, run setup and start the receive loop."""
        if self.state == AgentState.RUNNING:
            return

        self.mailbox = self.bus.register(self.name)
        try:
            await self.setup()
        except Exception:
            self.bus.unregister(self.name)
            self.state = AgentState.FAILED
            logger.error(f"Agent {self.name} failed during setup", exc_info=True)
            raise

        self._loop_task = asyncio.create_task(self._run(), name=f"agent:{self.name}")
        self._periodic_tasks = [
            asyncio.create_task(self._run_periodic(interval, fn), name=f"agent:{self.name}:periodic")
            for interval, fn in self._periodic
        ]
        self.state = AgentState.RUNNING
        logger.info(f"Agent {self.name} started", extra={"agent": self.name})

    async def stop(self) -> None:
        """Cancel tasks, unregister and run teardown."""
        if self.state != AgentState.RUNNING:
            return

        tasks = [t for t in [self._loop_task, *self._periodic_tasks] if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._loop_task = None
        self._periodic_tasks = []
        self.bus.unregister(self.name)

        try:
            await self.teardown()
        finally:
            self.state = AgentState.STOPPED
            logger.info(f"Agent {self.name} stopped", extra={"agent": self.name})

    @property
    def is_alive(self) -> bool:
        return (
            self.state == AgentState.RUNNING
            and self._loop_task is not None
            and not self._loop_task.done()
        )

    async def setup(self) -> None:
        """Hook run on start, before messages are received."""

    async def teardown(self) -> None:
        """Hook run on stop."""

    def add_periodic(self, interval: float, fn: Callable[[], Awaitable[Any]]) -> None:
        """
        Register a recurring behaviour.

        Args:
            interval: Seconds between runs
            fn: Coroutine function called with no arguments
        """
        self._periodic.append((interval, fn))
        if self.state == AgentState.RUNNING:
            self._periodic_tasks.append(asyncio.create_task(self._run_periodic(interval, fn)))

    # === Messaging helpers ===

    def message(
        self,
        recipient: str,
        performative: Performative,
        body: Optional[Dict[str, Any]] = None,
        conversation_id: Optional[str] = None,
    ) -> Message:
        extra = {"conversation_id": conversation_id} if conversation_id else {}
        return Message(
            sender=self.name,
            recipient=recipient,
            performative=performative,
            body=body or {},
            **extra,
        )

    async def send(self, message: Message) -> Message:
        return await self.bus.send(message)

    async def request(self, message: Message, timeout: float) -> Message:
        return await self.bus.request(message, timeout=timeout)

    async def inform(self, recipient: str, body: Dict[str, Any], conversation_id: str = None) -> Message:
        return await self.send(self.message(recipient, Performative.INFORM, body, conversation_id))

    # === Receive loop ===

    async def _run(self) -> None:
        while True:
            message = await self.mailbox.get()
            try:
                await self.handle(message)
            finally:
                self.mailbox.ack(message.message_id)

    async def handle(self, message: Message) -> None:
        """Dispatch one message and send any reply."""
        handler = self.handlers.get(message.performative)
        self.handled_count += 1

        if handler is None:
            logger.debug(
                f"{self.name} does not handle {message.performative.value}",
                extra={"agent": self.name, "conversation_id": message.conversation_id},
            )
            reply = message.reply(
                Performative.NOT_UNDERSTOOD,
                {"performative": message.performative.value},
            )
        else:
            try:
                reply = await handler(message)
            except Exception as e:
                self.failure_count += 1
                logger.error(
                    f"Agent {self.name} failed handling {message.performative.value}: {e}",
                    exc_info=True,
                    extra={"agent": self.name, "conversation_id": message.conversation_id},
                )
                reply = message.reply(
                    Performative.FAILURE, {"error": str(e), "type": e.__class__.__name__}
                )

        if reply is None:
            return

        # Never answer a NOT_UNDERSTOOD/FAILURE with another one
        if message.performative in (Performative.NOT_UNDERSTOOD, Performative.FAILURE) and (
            reply.performative in (Performative.NOT_UNDERSTOOD, Performative.FAILURE)
        ):
            return

        try:
            await self.send(reply)
        except Exception as e:
            logger.warning(f"Agent {self.name} could not send reply: {e}", extra={"agent": self.name})

    async def _run_periodic(self, interval: float, fn: Callable[[], Awaitable[Any]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await fn()
            except Exception as e:
                logger.error(
                    f"Periodic behaviour of {self.name} failed: {e}",
                    exc_info=True,
                    extra={"agent": self.name},
                )

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "role": self.role,
            "state": self.state.value,
            "alive": self.is_alive,
            "handled": self.handled_count,
            "failures": self.failure_count,
            "mailbox_depth": self.mailbox.qsize() if self.mailbox else 0,
        }

    def __repr__(self):
        return f"<{self.__class__.__name__}(name={self.name}, state={self.state.value})>"
