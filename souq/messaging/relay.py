"""
Redis Message Relay
Mirrors delivered messages to Redis for outside observers.
"""

import logging
from typing import List, Optional

import redis

from ..config import Settings
from .envelope import Message

logger = logging.getLogger(__name__)


class RedisMessageRelay:
    """
    Bus observer that publishes each delivered message to a Redis channel
    and keeps a capped history list.

    Redis failures are logged and never block delivery.
    """

    def __init__(self, client: redis.Redis, channel: str = "souq:messages", history_size: int = 1000):
        """
        Initialize relay.

        Args:
            client: Redis client
            channel: Pub/sub channel name (history key is `<channel>:history`)
            history_size: Number of messages kept in the history list
        """
        self.client = client
        self.channel = channel
        self.history_key = f"{channel}:history"
        self.history_size = history_size

    def __call__(self, message: Message) -> None:
        self.publish(message)

    def publish(self, message: Message) -> bool:
        """
        Publish a message to the channel and history.

        Returns:
            True if Redis accepted the message
        """
        payload = message.to_json()
        try:
            pipe = self.client.pipeline()
            pipe.publish(self.channel, payload)
            pipe.lpush(self.history_key, payload)
            pipe.ltrim(self.history_key, 0, self.history_size - 1)
            pipe.execute()
            return True
        except redis.RedisError as e:
            logger.error(f"Failed to relay message {message.message_id}: {e}")
            return False

    def recent(self, limit: int = 50) -> List[Message]:
        """
        Get recently relayed messages, newest first.

        Args:
            limit: Maximum number of messages

        Returns:
            List of messages (empty if Redis is unavailable)
        """
        try:
            raw = self.client.lrange(self.history_key, 0, limit - 1)
        except redis.RedisError as e:
            logger.error(f"Failed to read relay history: {e}")
            return []

        messages = []
        for item in raw:
            try:
                messages.append(Message.from_json(item))
            except ValueError as e:
                logger.warning(f"Skipping malformed relay entry: {e}")
        return messages

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


def create_relay(settings: Settings, client: Optional[redis.Redis] = None) -> RedisMessageRelay:
    """Create a relay from settings."""
    if client is None:
        client = redis.Redis.from_url(settings.redis_url, socket_timeout=5, socket_connect_timeout=5)
    logger.info(f"Message relay configured on channel {settings.relay_channel}")
    return RedisMessageRelay(
        client, channel=settings.relay_channel, history_size=settings.relay_history_size
    )
