"""
Message Broker Client for publishing order events
Using Redis Pub/Sub; the front-end subscribes and relays to the owner.
"""
import json
from typing import Any

import redis


class MessageBroker:
    """Redis-based message broker for asynchronous delivery."""

    def __init__(self, host: str, port: int, db: int = 0):
        self.redis_client = redis.Redis(
            host=host,
            port=port,
            db=db,
            decode_responses=True,
            socket_timeout=5,
        )

    def publish(self, channel: str, message: dict[str, Any]) -> None:
        """
        Publish a message to a channel.

        Args:
            channel: Channel name (e.g., 'notifications')
            message: Message data as dictionary
        """
        self.redis_client.publish(channel, json.dumps(message, default=str))

    def close(self):
        """Close the connection."""
        self.redis_client.close()
