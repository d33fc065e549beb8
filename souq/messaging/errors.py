"""
Messaging Errors
Exceptions raised by the message bus.
"""


class MessagingError(Exception):
    """Base exception for message bus errors."""

    def __init__(self, message: str, message_id: str = None):
        self.message = message
        self.message_id = message_id
        super().__init__(self.message)


class UnknownRecipientError(MessagingError):
    """Exception raised when the recipient has no registered mailbox."""

    def __init__(self, recipient: str, message_id: str = None):
        self.recipient = recipient
        super().__init__(f"Unknown recipient: {recipient}", message_id=message_id)


class MailboxFullError(MessagingError):
    """Exception raised when a mailbox stays full past the send timeout."""

    def __init__(self, recipient: str, message_id: str = None):
        self.recipient = recipient
        super().__init__(f"Mailbox full: {recipient}", message_id=message_id)


class DeliveryFailedError(MessagingError):
    """Exception raised when a reliable send exhausts its delivery attempts."""

    def __init__(self, recipient: str, attempts: int, message_id: str = None):
        self.recipient = recipient
        self.attempts = attempts
        super().__init__(
            f"Delivery to {recipient} not acknowledged after {attempts} attempts",
            message_id=message_id,
        )


class ReplyTimeoutError(MessagingError):
    """Exception raised when a request receives no reply in time."""

    def __init__(self, recipient: str, timeout: float, message_id: str = None):
        self.recipient = recipient
        self.timeout = timeout
        super().__init__(
            f"No reply from {recipient} within {timeout:.2f}s", message_id=message_id
        )
