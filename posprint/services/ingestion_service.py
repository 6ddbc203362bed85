"""
Ingestion service for the posprint relay.
Coordinates validation, origin resolution, rate limiting, persistence and publishing.
"""

import json
import logging
import time
import uuid
from typing import Callable, Optional, Union

from posprint.domain.ports import (
    MessageStore,
    Publisher,
    RelayError,
    InvalidInput,
    OriginUnresolved,
    RateLimited,
    PersistenceError,
    PublishError,
    ConfigurationError,
)
from posprint.domain.schema import (
    MAX_MESSAGE_LENGTH,
    Message,
    NotificationPayload,
    Submission,
    SubmissionResult,
    Clock,
    format_timestamp,
    utc_now,
)
from posprint.telemetry.logger import MetricsLogger
from .rate_limiter import RateLimiter


logger = logging.getLogger(__name__)


def resolve_source_ip(forwarded_for: Optional[str], peer_address: Optional[str]) -> Optional[str]:
    """
    First X-Forwarded-For entry if present, else the connection peer address.

    Returns:
        Origin identifier, or None when neither signal is usable
    """
    if isinstance(forwarded_for, str) and forwarded_for.strip():
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    if isinstance(peer_address, str) and peer_address.strip():
        return peer_address.strip()

    return None


def parse_submission(body: Union[bytes, str, None]) -> Submission:
    """
    Decode and validate a raw submission body.

    Raises:
        InvalidInput: On undecodable JSON, missing/empty fields or an overlong message
    """
    try:
        payload = json.loads(body or "{}")
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning(f"Invalid JSON payload: {e}", extra={"component": "ingestion_service"})
        raise InvalidInput(f"Invalid JSON: {e}", public_message="Invalid JSON body.") from e

    if not isinstance(payload, dict):
        payload = {}

    email = payload.get("email")
    message = payload.get("message")
    email = email.strip() if isinstance(email, str) else ""
    message = message.strip() if isinstance(message, str) else ""

    if not email or not message:
        raise InvalidInput(
            "Missing email or message",
            public_message="Both email and message are required."
        )

    if len(message) > MAX_MESSAGE_LENGTH:
        raise InvalidInput(
            f"Message length {len(message)} exceeds {MAX_MESSAGE_LENGTH}",
            public_message=f"Message is too long. Maximum length is {MAX_MESSAGE_LENGTH} characters."
        )

    return Submission(email=email, message=message)


class IngestionService:
    """
    Handles one inbound submission end to end:
    validate -> resolve origin -> rate limit -> persist -> publish.

    Nothing is written before the rate-limit check passes. If publishing
    fails after the write, the stored record stays (it is never delivered).
    """

    def __init__(
        self,
        store: MessageStore,
        rate_limiter: RateLimiter,
        publisher: Publisher,
        channel: str,
        clock: Optional[Clock] = None,
        id_factory: Optional[Callable[[], str]] = None,
        metrics: Optional[MetricsLogger] = None
    ):
        """
        Initialize ingestion service.

        Args:
            store: Message store
            rate_limiter: Rate limiter over the same store
            publisher: Channel publisher
            channel: Channel name to publish accepted messages to
            clock: Returns the current UTC time
            id_factory: Returns a fresh message id
            metrics: Optional metrics logger

        Raises:
            ConfigurationError: If channel is empty
        """
        if not channel:
            raise ConfigurationError("Channel topic is not configured")

        self.store = store
        self.rate_limiter = rate_limiter
        self.publisher = publisher
        self.channel = channel
        self.clock = clock or utc_now
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self.metrics = metrics or MetricsLogger("ingestion")

    async def submit(
        self,
        body: Union[bytes, str, None],
        forwarded_for: Optional[str] = None,
        peer_address: Optional[str] = None
    ) -> SubmissionResult:
        """
        Process one submission.

        Returns:
            SubmissionResult (201, "Message received.")

        Raises:
            InvalidInput, OriginUnresolved, RateLimited,
            PersistenceError, PublishError, ConfigurationError
        """
        start_time = time.time()
        source_ip: Optional[str] = None

        try:
            submission = parse_submission(body)

            source_ip = resolve_source_ip(forwarded_for, peer_address)
            if not source_ip:
                logger.warning(
                    "Unable to determine source IP for request",
                    extra={"component": "ingestion_service"}
                )
                raise OriginUnresolved("No forwarded-for header or peer address")

            now = self.clock()
            decision = await self.rate_limiter.check(source_ip, now)
            if not decision.allowed:
                raise RateLimited(f"{decision.count} messages in window, limit {decision.limit}")

            record = Message(
                message_id=self.id_factory(),
                received_at=format_timestamp(now),
                email=submission.email,
                source_ip=source_ip,
                message=submission.message
            )

            await self._persist(record)
            await self._publish(record)

        except RelayError as e:
            outcome = {400: "invalid", 429: "rate_limited"}.get(e.status_code, "error")
            self.metrics.log_submission_processed(
                outcome=outcome,
                status_code=e.status_code,
                processing_time_ms=(time.time() - start_time) * 1000,
                source_ip=source_ip
            )
            raise

        result = SubmissionResult()
        self.metrics.log_submission_processed(
            outcome="accepted",
            status_code=result.status_code,
            processing_time_ms=(time.time() - start_time) * 1000,
            source_ip=source_ip
        )
        logger.info(
            "Message accepted",
            extra={
                "component": "ingestion_service",
                "message_id": record.message_id,
                "source_ip": source_ip,
                "received_at": record.received_at
            }
        )
        return result

    async def _persist(self, record: Message) -> None:
        try:
            await self.store.put(record)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error storing message: {e}",
                extra={"component": "ingestion_service", "message_id": record.message_id}
            )
            raise PersistenceError(f"Unexpected store error: {e}") from e

    async def _publish(self, record: Message) -> None:
        payload = NotificationPayload.from_message(record).to_bytes()
        try:
            await self.publisher.publish(self.channel, payload)
        except (PublishError, ConfigurationError):
            logger.error(
                "Message stored but not published",
                extra={"component": "ingestion_service", "message_id": record.message_id}
            )
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error publishing message: {e}",
                extra={"component": "ingestion_service", "message_id": record.message_id}
            )
            raise PublishError(f"Unexpected publish error: {e}") from e
