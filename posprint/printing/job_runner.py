"""
Drives a formatted print job through one printer device session.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from posprint.domain.ports import PrinterDevice, PrinterError
from posprint.domain.schema import PrintJob
from posprint.telemetry.logger import MetricsLogger


logger = logging.getLogger(__name__)

DeviceFactory = Callable[[], PrinterDevice]


class PrintJobRunner:
    """
    Runs print jobs, one fresh device session per job.

    open failure   -> error raised, nothing written
    write failure  -> device closed (close errors only logged), original error raised
    success        -> feed, cut, close (close errors raised)
    """

    def __init__(
        self,
        device_factory: DeviceFactory,
        feed_lines: int = 3,
        metrics: Optional[MetricsLogger] = None
    ):
        """
        Args:
            device_factory: Returns a new, unopened device for each job
            feed_lines: Blank lines fed before the cut
            metrics: Optional metrics logger
        """
        self.device_factory = device_factory
        self.feed_lines = feed_lines
        self.metrics = metrics or MetricsLogger("printing")

    @contextmanager
    def session(self) -> Iterator[PrinterDevice]:
        device = self.device_factory()
        device.open()

        try:
            yield device
        except BaseException:
            try:
                device.close()
            except Exception as close_error:
                logger.error(
                    f"Failed to close device after error: {close_error}",
                    extra={"component": "job_runner"}
                )
            raise

        device.close()

    def run(self, job: PrintJob) -> None:
        """
        Print one job. Blocking; callers on an event loop run it in a thread.

        Raises:
            PrinterError: If the device fails at any stage
        """
        start_time = time.time()

        try:
            with self.session() as device:
                device.write_lines(job.lines)
                device.feed_and_cut(self.feed_lines)
        except PrinterError as e:
            self._record(job, start_time, success=False, error=str(e))
            raise
        except Exception as e:
            self._record(job, start_time, success=False, error=str(e))
            raise PrinterError(f"Print job failed: {e}") from e

        self._record(job, start_time, success=True)
        logger.info(
            "Printed message",
            extra={"component": "job_runner", "email": job.email, "line_count": len(job.lines)}
        )

    def _record(self, job: PrintJob, start_time: float, success: bool, error: Optional[str] = None) -> None:
        self.metrics.log_print_job(
            line_count=len(job.lines),
            duration_ms=(time.time() - start_time) * 1000,
            success=success,
            error=error
        )
