"""
Messaging
Envelopes, message bus and Redis relay.
"""

from .bus import DeadLetter, Mailbox, MessageBus
from .envelope import Message, Performative
from .errors import (
    DeliveryFailedError,
    MailboxFullError,
    MessagingError,
    ReplyTimeoutError,
    UnknownRecipientError,
)
from .relay import RedisMessageRelay, create_relay

__all__ = [
    "DeadLetter",
    "Mailbox",
    "MessageBus",
    "Message",
    "Performative",
    "MessagingError",
    "UnknownRecipientError",
    "MailboxFullError",
    "DeliveryFailedError",
    "ReplyTimeoutError",
    "RedisMessageRelay",
    "create_relay",
]
