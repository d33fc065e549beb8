"""
Message Envelope
FIPA-style message model exchanged between agents.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _new_id() -> str:
    return uuid4().hex


class Performative(str, Enum):
    """
    Speech-act types.

    Subset of FIPA-ACL used by the marketplace agents.
    """

    REQUEST = "request"  # Ask the recipient to perform an action
    INFORM = "inform"  # Report a fact or a completed action
    CFP = "cfp"  # Call for proposals
    PROPOSE = "propose"  # Offer in response to a CFP
    ACCEPT_PROPOSAL = "accept_proposal"
    REJECT_PROPOSAL = "reject_proposal"
    AGREE = "agree"
    REFUSE = "refuse"
    FAILURE = "failure"  # Action was attempted and failed
    CONFIRM = "confirm"
    NOT_UNDERSTOOD = "not_understood"
    QUERY = "query"


class Message(BaseModel):
    """
    Message envelope.

    The bus assigns `sequence` per (sender, recipient) pair; `attempt`
    is incremented on each redelivery of the same message_id.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    message_id: str = Field(default_factory=_new_id, description="Unique message ID")
    sender: str = Field(..., min_length=1, description="Sending agent name")
    recipient: str = Field(..., min_length=1, description="Receiving agent name")
    performative: Performative = Field(..., description="Speech-act type")
    body: Dict[str, Any] = Field(default_factory=dict, description="Message content")
    conversation_id: str = Field(default_factory=_new_id, description="Conversation thread ID")
    in_reply_to: Optional[str] = Field(None, description="message_id this message answers")
    sequence: int = Field(default=0, ge=0, description="Per-pair sequence number")
    attempt: int = Field(default=1, ge=1, description="Delivery attempt number")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("performative", mode="before")
    @classmethod
    def parse_performative(cls, v):
        """Accept performatives by value in any case."""
        if isinstance(v, str):
            return v.lower()
        return v

    def reply(self, performative: Performative, body: Optional[Dict[str, Any]] = None) -> "Message":
        """
        Build a reply to this message.

        Args:
            performative: Reply speech-act type
            body: Reply content

        Returns:
            New message addressed to the original sender
        """
        return Message(
            sender=self.recipient,
            recipient=self.sender,
            performative=performative,
            body=body or {},
            conversation_id=self.conversation_id,
            in_reply_to=self.message_id,
        )

    def to_json(self) -> str:
        """Serialize to the JSON wire form."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data) -> "Message":
        """Parse a message from its JSON wire form (str or bytes)."""
        return cls.model_validate_json(data)

    def __repr__(self):
        return (
            f"<Message(id={self.message_id[:8]}, {self.sender}->{self.recipient}, "
            f"{self.performative.value}, seq={self.sequence})>"
        )
