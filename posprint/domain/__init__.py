"""
Domain layer for the posprint relay.

Contains data models, interfaces and the error taxonomy.
"""

from .schema import (
    MAX_MESSAGE_LENGTH,
    Submission,
    Message,
    NotificationPayload,
    PrintJob,
    SubmissionResult,
    RateLimitDecision,
    SubscriberState,
    HealthStatus,
    Clock,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from .ports import (
    MessageStore,
    Publisher,
    PrinterDevice,
    RelayError,
    InvalidInput,
    OriginUnresolved,
    RateLimited,
    PersistenceError,
    RateLimitCheckError,
    PublishError,
    ConfigurationError,
    PrinterError,
    SubscriberError,
)

__all__ = [
    "MAX_MESSAGE_LENGTH",
    "Submission",
    "Message",
    "NotificationPayload",
    "PrintJob",
    "SubmissionResult",
    "RateLimitDecision",
    "SubscriberState",
    "HealthStatus",
    "format_timestamp",
    "parse_timestamp",
    "Clock",
    "utc_now",
    "MessageStore",
    "Publisher",
    "PrinterDevice",
    "RelayError",
    "InvalidInput",
    "OriginUnresolved",
    "RateLimited",
    "PersistenceError",
    "RateLimitCheckError",
    "PublishError",
    "ConfigurationError",
    "PrinterError",
    "SubscriberError",
]
