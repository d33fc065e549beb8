"""
Message Bus
In-process asyncio message bus with bounded mailboxes.

Guarantees:
- Per (sender, recipient) FIFO delivery with strictly increasing sequence numbers
- Backpressure: sends wait up to `send_timeout` for mailbox space
- At-least-once reliable delivery with acknowledgments and bounded redelivery,
  combined with receiver-side duplicate suppression
- Request/reply correlation by `in_reply_to`
- Bounded dead-letter log for undeliverable messages
"""

import asyncio
import logging
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .envelope import Message, Performative
from .errors import (
    DeliveryFailedError,
    MailboxFullError,
    MessagingError,
    ReplyTimeoutError,
    UnknownRecipientError,
)

logger = logging.getLogger(__name__)

# Number of accepted message IDs remembered per mailbox for duplicate suppression
SEEN_WINDOW = 10_000


@dataclass
class DeadLetter:
    """Undeliverable message with the reason it was dropped."""

    message: Message
    reason: str
    at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message.model_dump(mode="json"),
            "reason": self.reason,
            "at": self.at.isoformat(),
        }


class Mailbox:
    """
    Bounded inbox owned by one agent.

    Tracks accepted message IDs so redeliveries are dropped, and
    which of them have been acknowledged by the owner.
    """

    def __init__(self, owner: str, bus: "MessageBus", maxsize: int):
        self.owner = owner
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._bus = bus
        self._seen: "OrderedDict[str, bool]" = OrderedDict()

    def has_seen(self, message_id: str) -> bool:
        return message_id in self._seen

    def is_acked(self, message_id: str) -> bool:
        return self._seen.get(message_id, False)

    def _mark_seen(self, message_id: str) -> None:
        self._seen[message_id] = False
        while len(self._seen) > SEEN_WINDOW:
            self._seen.popitem(last=False)

    def _forget(self, message_id: str) -> None:
        self._seen.pop(message_id, None)

    async def get(self, timeout: Optional[float] = None) -> Optional[Message]:
        """
        Get the next message.

        Args:
            timeout: Seconds to wait, or None to wait forever

        Returns:
            Next message, or None if the timeout expired
        """
        if timeout is None:
            return await self.queue.get()
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def ack(self, message_id: str) -> None:
        """Acknowledge that a message has been processed."""
        if message_id in self._seen:
            self._seen[message_id] = True
        self._bus._resolve_ack(message_id)

    def qsize(self) -> int:
        return self.queue.qsize()

    def __repr__(self):
        return f"<Mailbox(owner={self.owner}, depth={self.qsize()})>"


class MessageBus:
    """
    Routes messages between registered agents.

    Use from a single event loop.
    """

    def __init__(
        self,
        mailbox_size: int = 100,
        send_timeout: float = 1.0,
        ack_timeout: float = 2.0,
        max_delivery_attempts: int = 3,
        dead_letter_limit: int = 1000,
    ):
        """
        Initialize message bus.

        Args:
            mailbox_size: Capacity of each agent mailbox
            send_timeout: Seconds a send waits for mailbox space
            ack_timeout: Seconds a reliable send waits for each acknowledgment
            max_delivery_attempts: Delivery attempts before a reliable send fails
            dead_letter_limit: Number of dead letters retained
        """
        self.mailbox_size = mailbox_size
        self.send_timeout = send_timeout
        self.ack_timeout = ack_timeout
        self.max_delivery_attempts = max_delivery_attempts

        self._mailboxes: Dict[str, Mailbox] = {}
        self._sequences: Dict[Tuple[str, str], int] = {}
        self._pair_locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._ack_waiters: Dict[str, asyncio.Future] = {}
        self._pending_replies: Dict[str, asyncio.Future] = {}
        self._dead_letters: deque = deque(maxlen=dead_letter_limit)
        self._observers: List[Callable[[Message], Any]] = []
        self._stats = {
            "sent": 0,
            "delivered": 0,
            "acked": 0,
            "redelivered": 0,
            "duplicates": 0,
            "dead_lettered": 0,
        }

    # === Registry ===

    def register(self, name: str) -> Mailbox:
        """
        Register a mailbox for an agent.

        Raises:
            ValueError: If the name is already registered
        """
        if name in self._mailboxes:
            raise ValueError(f"Agent already registered: {name}")
        mailbox = Mailbox(name, self, self.mailbox_size)
        self._mailboxes[name] = mailbox
        logger.debug(f"Registered mailbox for {name}")
        return mailbox

    def unregister(self, name: str) -> None:
        self._mailboxes.pop(name, None)
        logger.debug(f"Unregistered mailbox for {name}")

    def is_registered(self, name: str) -> bool:
        return name in self._mailboxes

    def agents(self) -> List[str]:
        return sorted(self._mailboxes)

    def add_observer(self, callback: Callable[[Message], Any]) -> None:
        """Call `callback(message)` for every delivered message."""
        self._observers.append(callback)

    # === Sending ===

    async def send(self, message: Message) -> Message:
        """
        Send a message.

        Args:
            message: Message to send

        Returns:
            The message as delivered (with its sequence number)

        Raises:
            UnknownRecipientError: If the recipient is not registered
            MailboxFullError: If the mailbox stays full past the send timeout
        """
        self._stats["sent"] += 1

        if self._resolve_reply(message):
            return message

        mailbox = self._mailboxes.get(message.recipient)
        if mailbox is None:
            self._dead_letter(message, "unknown recipient")
            raise UnknownRecipientError(message.recipient, message_id=message.message_id)

        async with self._pair_lock(message.sender, message.recipient):
            message = message.model_copy(
                update={"sequence": self._next_sequence(message.sender, message.recipient)}
            )
            try:
                await self._enqueue(mailbox, message)
            except MailboxFullError:
                self._dead_letter(message, "mailbox full")
                raise

        return message

    async def send_reliable(self, message: Message) -> Message:
        """
        Send a message and wait for the recipient to acknowledge it.

        Redelivers the same message_id (with an incremented `attempt`)
        until acknowledged or `max_delivery_attempts` is reached. Retries
        against a full mailbox keep the pair's place in line, so later
        sends from the same sender are never queued ahead of this one.

        Raises:
            UnknownRecipientError: If the recipient is not registered
            DeliveryFailedError: If no acknowledgment arrives
        """
        self._stats["sent"] += 1

        if message.recipient not in self._mailboxes:
            self._dead_letter(message, "unknown recipient")
            raise UnknownRecipientError(message.recipient, message_id=message.message_id)

        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._ack_waiters[message.message_id] = waiter
        lock = self._pair_lock(message.sender, message.recipient)
        enqueued = False

        try:
            async with lock:
                message = message.model_copy(
                    update={"sequence": self._next_sequence(message.sender, message.recipient)}
                )
                for attempt in range(1, self.max_delivery_attempts + 1):
                    message = self._next_attempt(message, attempt)
                    try:
                        await self._enqueue(self._mailbox_for(message), message)
                        enqueued = True
                        break
                    except MailboxFullError:
                        logger.warning(f"Mailbox full for {message.recipient}, will retry")

            if not enqueued:
                self._dead_letter(message, "mailbox full")
                raise DeliveryFailedError(
                    message.recipient, self.max_delivery_attempts, message_id=message.message_id
                )

            while True:
                try:
                    await asyncio.wait_for(asyncio.shield(waiter), timeout=self.ack_timeout)
                    return message
                except asyncio.TimeoutError:
                    pass

                if message.attempt >= self.max_delivery_attempts:
                    break
                message = self._next_attempt(message, message.attempt + 1)
                async with lock:
                    try:
                        await self._enqueue(self._mailbox_for(message), message)
                    except MailboxFullError:
                        logger.warning(f"Mailbox full for {message.recipient} on redelivery")

            self._dead_letter(message, "not acknowledged")
            raise DeliveryFailedError(
                message.recipient, self.max_delivery_attempts, message_id=message.message_id
            )
        finally:
            self._ack_waiters.pop(message.message_id, None)

    async def request(self, message: Message, timeout: float) -> Message:
        """
        Send a message and wait for its reply.

        Args:
            message: Request message
            timeout: Seconds to wait for the reply

        Returns:
            First message whose `in_reply_to` is the request's message_id

        Raises:
            ReplyTimeoutError: If no reply arrives in time
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending_replies[message.message_id] = future

        try:
            await self.send(message)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise ReplyTimeoutError(message.recipient, timeout, message_id=message.message_id)
        finally:
            self._pending_replies.pop(message.message_id, None)

    async def broadcast(
        self,
        sender: str,
        recipients: Iterable[str],
        performative: Performative,
        body: Optional[Dict[str, Any]] = None,
        conversation_id: Optional[str] = None,
    ) -> Dict[str, bool]:
        """
        Send the same content to several recipients in one conversation.

        Returns:
            Dict mapping recipient to whether delivery succeeded
        """
        extra = {"conversation_id": conversation_id} if conversation_id else {}
        results: Dict[str, bool] = {}
        first: Optional[Message] = None

        for recipient in recipients:
            message = Message(
                sender=sender,
                recipient=recipient,
                performative=performative,
                body=dict(body or {}),
                **extra,
            )
            if first is None:
                first = message
                extra = {"conversation_id": message.conversation_id}
            try:
                await self.send(message)
                results[recipient] = True
            except MessagingError as e:
                logger.warning(f"Broadcast to {recipient} failed: {e}")
                results[recipient] = False

        return results

    # === Introspection ===

    def dead_letters(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Get recent dead letters, newest last."""
        letters = list(self._dead_letters)
        if limit is not None:
            letters = letters[-limit:]
        return [letter.to_dict() for letter in letters]

    def stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "pending_requests": len(self._pending_replies),
            "mailboxes": {name: box.qsize() for name, box in sorted(self._mailboxes.items())},
        }

    # === Internals ===

    def _pair_lock(self, sender: str, recipient: str) -> asyncio.Lock:
        # Held from sequence assignment until the message is queued
        key = (sender, recipient)
        lock = self._pair_locks.get(key)
        if lock is None:
            lock = self._pair_locks[key] = asyncio.Lock()
        return lock

    def _next_sequence(self, sender: str, recipient: str) -> int:
        key = (sender, recipient)
        sequence = self._sequences.get(key, -1) + 1
        self._sequences[key] = sequence
        return sequence

    def _next_attempt(self, message: Message, attempt: int) -> Message:
        if attempt > 1:
            self._stats["redelivered"] += 1
            logger.info(
                f"Redelivering {message.message_id} to {message.recipient} "
                f"(attempt {attempt}/{self.max_delivery_attempts})"
            )
        return message.model_copy(update={"attempt": attempt})

    def _mailbox_for(self, message: Message) -> Mailbox:
        mailbox = self._mailboxes.get(message.recipient)
        if mailbox is None:
            self._dead_letter(message, "recipient unregistered")
            raise UnknownRecipientError(message.recipient, message_id=message.message_id)
        return mailbox

    async def _enqueue(self, mailbox: Mailbox, message: Message) -> None:
        if mailbox.has_seen(message.message_id):
            self._stats["duplicates"] += 1
            logger.debug(f"Duplicate {message.message_id} dropped for {mailbox.owner}")
            if mailbox.is_acked(message.message_id):
                self._resolve_ack(message.message_id)
            return

        mailbox._mark_seen(message.message_id)
        try:
            await asyncio.wait_for(mailbox.queue.put(message), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            mailbox._forget(message.message_id)
            raise MailboxFullError(mailbox.owner, message_id=message.message_id)

        self._delivered(message)

    def _resolve_reply(self, message: Message) -> bool:
        if not message.in_reply_to:
            return False
        future = self._pending_replies.get(message.in_reply_to)
        if future is None or future.done():
            return False
        future.set_result(message)
        self._delivered(message)
        return True

    def _resolve_ack(self, message_id: str) -> None:
        waiter = self._ack_waiters.get(message_id)
        if waiter is not None and not waiter.done():
            waiter.set_result(True)
            self._stats["acked"] += 1

    def _delivered(self, message: Message) -> None:
        self._stats["delivered"] += 1
        for observer in self._observers:
            try:
                observer(message)
            except Exception as e:
                logger.error(f"Message observer failed: {e}", exc_info=True)

    def _dead_letter(self, message: Message, reason: str) -> None:
        self._dead_letters.append(DeadLetter(message=message, reason=reason))
        self._stats["dead_lettered"] += 1
        logger.warning(
            f"Dead letter: {message.sender}->{message.recipient} ({reason})",
            extra={"message_id": message.message_id, "conversation_id": message.conversation_id},
        )
