"""
Ports (interfaces) for the posprint relay.
High-level services depend on these abstractions, adapters implement them.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from .schema import Message, HealthStatus


class MessageStore(ABC):
    """
    Durable record of accepted messages.
    Primary key is messageId; a secondary index orders each origin's
    messages by receivedAt so range counts stay cheap.
    """

    @abstractmethod
    async def put(self, message: Message) -> None:
        """
        Persist a message. Must be visible to query_by_origin_and_time once it returns.

        Raises:
            PersistenceError: If the write fails or the id already exists
        """
        pass

    @abstractmethod
    async def query_by_origin_and_time(
        self,
        origin_id: str,
        since: datetime,
        until: Optional[datetime] = None
    ) -> int:
        """
        Count messages from an origin with since <= receivedAt <= until.

        Args:
            origin_id: Origin identifier (source IP)
            since: Inclusive lower bound
            until: Inclusive upper bound, unbounded when None

        Returns:
            Number of matching messages

        Raises:
            PersistenceError: If the lookup fails
        """
        pass

    @abstractmethod
    async def check_health(self) -> HealthStatus:
        pass


class Publisher(ABC):
    """
    Fire-and-forget publisher onto a named channel.
    No acknowledgment of subscriber receipt.
    """

    @abstractmethod
    async def publish(self, channel: str, payload: bytes) -> str:
        """
        Publish a payload.

        Returns:
            Broker-assigned entry id

        Raises:
            PublishError: If the channel is unreachable or misconfigured
        """
        pass

    @abstractmethod
    async def check_health(self) -> bool:
        pass


class PrinterDevice(ABC):
    """Session protocol of a line printer: open, write lines, feed/cut, close."""

    @abstractmethod
    def open(self) -> None:
        pass

    @abstractmethod
    def write_lines(self, lines: Iterable[str]) -> None:
        pass

    @abstractmethod
    def feed_and_cut(self, feed_lines: int) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


# Exceptions

class RelayError(Exception):
    """
    Base class for relay failures.
    Carries the HTTP status and the generic message shown to clients.
    """
    status_code = 500
    public_message = "Internal server error."

    def __init__(self, detail: str = "", public_message: Optional[str] = None):
        super().__init__(detail or self.public_message)
        if public_message is not None:
            self.public_message = public_message


class InvalidInput(RelayError):
    """Submission body is malformed or violates field constraints."""
    status_code = 400
    public_message = "Invalid input."


class OriginUnresolved(RelayError):
    """No origin identifier could be derived for the request."""
    status_code = 400
    public_message = "Unable to determine source IP."


class RateLimited(RelayError):
    """Origin has reached its submission limit for the window."""
    status_code = 429
    public_message = "Rate limit exceeded. Please try again later."


class PersistenceError(RelayError):
    """Storage write or lookup failed."""
    public_message = "Failed to store message."


class RateLimitCheckError(PersistenceError):
    """The rate-limit lookup against the store failed."""
    public_message = "Failed to check rate limit."


class PublishError(RelayError):
    """Channel publish failed."""
    public_message = "Failed to publish notification."


class ConfigurationError(RelayError):
    """Required configuration is missing or unusable."""
    public_message = "Configuration error."


class PrinterError(Exception):
    """Device open, write or close failed."""
    pass


class SubscriberError(Exception):
    """Channel subscription could not be established."""
    pass
