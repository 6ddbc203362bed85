"""
Consumption-side service: turns channel payloads into print jobs and
prints them one at a time, off the subscriber's read loop.
"""

import asyncio
import json
import logging
from typing import Optional

from pydantic import ValidationError

from posprint.domain.schema import Clock, NotificationPayload, PrintJob, format_timestamp, utc_now
from posprint.printing.formatter import PrintFormatter
from posprint.printing.job_runner import PrintJobRunner


logger = logging.getLogger(__name__)


class PrintService:
    """
    handle_message() validates and enqueues; a single worker task drains the
    queue in arrival order and runs each job in a thread so blocking device
    I/O never stalls the event loop.
    """

    def __init__(
        self,
        job_runner: PrintJobRunner,
        formatter: PrintFormatter,
        queue_size: int = 100,
        clock: Optional[Clock] = None
    ):
        self.job_runner = job_runner
        self.formatter = formatter
        self.clock = clock or utc_now

        self._queue: "asyncio.Queue[PrintJob]" = asyncio.Queue(maxsize=queue_size)
        self._worker_task: Optional[asyncio.Task] = None
        self._is_running = False

        self.printed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._is_running:
            logger.warning("Print service already running")
            return

        self._is_running = True
        self._worker_task = asyncio.create_task(self._worker(), name="print-worker")
        logger.info("Print service started", extra={"component": "print_service"})

    async def stop(self, drain_timeout: float = 0.0) -> None:
        """Stop the worker, giving queued jobs up to drain_timeout seconds to finish."""
        if not self._is_running:
            return

        if drain_timeout > 0:
            logger.info(
                f"Waiting for {self._queue.qsize()} queued print jobs",
                extra={"component": "print_service"}
            )
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Print queue not drained before timeout, abandoning remaining jobs",
                    extra={"component": "print_service", "abandoned": self._queue.qsize()}
                )

        self._is_running = False
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
        self._worker_task = None

        logger.info(
            "Print service stopped",
            extra={
                "component": "print_service",
                "printed": self.printed,
                "failed": self.failed,
                "dropped": self.dropped
            }
        )

    def parse_payload(self, payload: bytes) -> Optional[NotificationPayload]:
        """
        Decode a channel payload. Returns None (after logging a warning) when
        it is not a JSON object or lacks email/message.
        """
        try:
            data = json.loads(payload)
        except (ValueError, TypeError) as e:
            logger.warning(f"Received malformed payload: {e}", extra={"component": "print_service"})
            return None

        if not data or not isinstance(data, dict):
            logger.warning("Received empty payload", extra={"component": "print_service"})
            return None

        email = data.get("email")
        message = data.get("message")
        if not email or not message:
            logger.warning(
                "Skipping payload with missing fields",
                extra={
                    "component": "print_service",
                    "has_email": bool(email),
                    "has_message": bool(message)
                }
            )
            return None

        try:
            return NotificationPayload(
                email=email,
                message=message,
                received_at=data.get("receivedAt") or format_timestamp(self.clock())
            )
        except ValidationError as e:
            logger.warning(
                f"Skipping payload with invalid fields: {e.error_count()} errors",
                extra={"component": "print_service"}
            )
            return None

    async def handle_message(self, payload: bytes) -> None:
        """Channel handler. Never raises for bad payloads or a full queue."""
        notification = self.parse_payload(payload)
        if notification is None:
            self.dropped += 1
            return

        job = self.formatter.build_job(
            notification.email,
            notification.message,
            notification.received_at
        )

        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.error(
                "Print queue full, dropping job",
                extra={"component": "print_service", "queue_size": self._queue.maxsize}
            )
            return

        logger.debug(
            "Print job queued",
            extra={"component": "print_service", "pending": self._queue.qsize()}
        )

    async def _worker(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await asyncio.to_thread(self.job_runner.run, job)
                self.printed += 1
                logger.info(
                    "Print job completed",
                    extra={"component": "print_service", "email": job.email}
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.error(
                    f"Failed to print message: {e}",
                    exc_info=True,
                    extra={"component": "print_service", "email": job.email}
                )
            finally:
                self._queue.task_done()
