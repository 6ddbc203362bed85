"""
Infrastructure layer for the posprint relay.

Implementations of domain interfaces using Redis and the ESC/POS printer.
"""

from .redis_client import RedisClient
from .redis_store import RedisMessageStore
from .memory_store import InMemoryMessageStore
from .stream_publisher import RedisStreamPublisher
from .stream_subscriber import ChannelSubscriber
from .escpos_device import EscposNetworkDevice

__all__ = [
    "RedisClient",
    "RedisMessageStore",
    "InMemoryMessageStore",
    "RedisStreamPublisher",
    "ChannelSubscriber",
    "EscposNetworkDevice"
]
