"""
Domain schemas for the posprint relay.
Defines inbound submissions, stored messages, channel payloads and print jobs.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List

from pydantic import BaseModel, Field, ConfigDict


MAX_MESSAGE_LENGTH = 1024

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with millisecond precision and a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse a timestamp produced by format_timestamp (or any ISO-8601 string)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class Submission(BaseModel):
    """A validated inbound submission (trimmed, non-empty)."""
    model_config = ConfigDict(extra='forbid', frozen=True)

    email: str = Field(..., min_length=1, description="Submitter-provided contact string")
    message: str = Field(
        ...,
        min_length=1,
        max_length=MAX_MESSAGE_LENGTH,
        description="Free text to print"
    )


class Message(BaseModel):
    """
    Persisted record of an accepted submission.
    Immutable once created.
    """
    model_config = ConfigDict(extra='forbid', frozen=True, populate_by_name=True)

    message_id: str = Field(..., alias="messageId", description="Unique identifier generated at ingestion")
    received_at: str = Field(..., alias="receivedAt", description="Ingestion time, ISO-8601")
    email: str = Field(..., min_length=1)
    source_ip: str = Field(..., alias="sourceIp", min_length=1, description="Origin identifier")
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)

    @property
    def received_at_datetime(self) -> datetime:
        return parse_timestamp(self.received_at)

    def to_record(self) -> dict:
        """Stored representation, keyed with the wire field names."""
        return self.model_dump(by_alias=True)


class NotificationPayload(BaseModel):
    """
    Payload published on the channel.
    Carries no messageId or sourceIp.
    """
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    email: str
    message: str
    received_at: str = Field(..., alias="receivedAt")

    @classmethod
    def from_message(cls, record: Message) -> "NotificationPayload":
        return cls(email=record.email, message=record.message, received_at=record.received_at)

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class PrintJob(BaseModel):
    """One formatted rendering of a message for the printer."""
    model_config = ConfigDict(extra='forbid')

    email: str
    message: str
    received_at: str
    lines: List[str] = Field(default_factory=list, description="Fixed-width lines, in print order")


class SubmissionResult(BaseModel):
    """Result of a successful submission. Echoes nothing sensitive."""
    model_config = ConfigDict(extra='forbid')

    status_code: int = 201
    message: str = "Message received."


class RateLimitDecision(BaseModel):
    """Outcome of a rate-limit check for one origin."""
    model_config = ConfigDict(extra='forbid')

    allowed: bool
    count: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)
    window_start: datetime
    window_end: datetime


class SubscriberState(str, Enum):
    """Connection states of the channel subscriber."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    INTERRUPTED = "interrupted"
    RECONNECTING = "reconnecting"


class HealthStatus(BaseModel):
    """Health check response."""
    model_config = ConfigDict(extra='forbid')

    status: str = Field(..., description="overall status: healthy, unhealthy")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    checks: dict[str, str] = Field(default_factory=dict, description="Individual check results")
