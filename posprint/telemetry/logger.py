"""
Logging configuration for the posprint processes.
Provides structured JSON logging with correlation IDs and metrics.
"""

import logging
import sys
import json
import time
from datetime import datetime, timezone
from typing import Any, Optional


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.
    Formats log records as JSON with consistent fields.
    """

    STANDARD_FIELDS = frozenset({
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
        'filename', 'module', 'exc_info', 'exc_text', 'stack_info',
        'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
        'thread', 'threadName', 'processName', 'process', 'getMessage',
        'taskName', 'message', 'asctime'
    })

    def __init__(
        self,
        service_name: str = "posprint",
        include_extra: bool = True
    ):
        """
        Initialize JSON formatter.

        Args:
            service_name: Name of the service for log identification
            include_extra: Whether to include extra fields from log record
        """
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
                .isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            for key, value in record.__dict__.items():
                if key not in self.STANDARD_FIELDS and not key.startswith('_'):
                    log_entry[key] = value

        return json.dumps(log_entry, default=self._json_default)

    @staticmethod
    def _json_default(obj: Any) -> str:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


class CorrelationFilter(logging.Filter):
    """
    Logging filter that adds correlation ID to log records.
    Useful for tracing one submission across log lines.
    """

    def __init__(self, correlation_id: Optional[str] = None, prefix: str = "pp"):
        super().__init__()
        self.correlation_id = correlation_id
        self.prefix = prefix

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'correlation_id'):
            record.correlation_id = self.correlation_id or self._generate_correlation_id()
        return True

    def _generate_correlation_id(self) -> str:
        return f"{self.prefix}-{int(time.time() * 1000)}"


def setup_logging(
    level: str = "INFO",
    service_name: str = "posprint",
    enable_json: bool = True,
    enable_correlation: bool = True
) -> None:
    """
    Setup logging configuration for the service.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        service_name: Service name for log identification
        enable_json: Whether to use JSON formatting
        enable_correlation: Whether to add correlation IDs
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    if enable_json:
        formatter = JSONFormatter(service_name=service_name)
    else:
        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    if enable_correlation:
        handler.addFilter(CorrelationFilter())

    logging.root.setLevel(numeric_level)
    logging.root.handlers.clear()
    logging.root.addHandler(handler)

    # Quiet chatty dependencies
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("escpos").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured",
        extra={
            "component": "logger",
            "level": level,
            "json_enabled": enable_json,
            "correlation_enabled": enable_correlation
        }
    )


class MetricsLogger:
    """
    Helper class for logging metrics and performance data.
    """

    def __init__(self, logger_name: str = "metrics"):
        self.logger = logging.getLogger(logger_name)

    def log_submission_processed(
        self,
        outcome: str,
        status_code: int,
        processing_time_ms: float,
        source_ip: Optional[str] = None
    ) -> None:
        """
        Log the outcome of one ingestion call.

        Args:
            outcome: accepted, invalid, rate_limited, error
            status_code: HTTP status returned to the client
            processing_time_ms: Processing time in milliseconds
            source_ip: Origin identifier, when resolved
        """
        self.logger.info(
            "Submission processed",
            extra={
                "metric_type": "submission_processed",
                "outcome": outcome,
                "status_code": status_code,
                "processing_time_ms": round(processing_time_ms, 2),
                "source_ip": source_ip
            }
        )

    def log_print_job(
        self,
        line_count: int,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        self.logger.info(
            "Print job finished",
            extra={
                "metric_type": "print_job",
                "line_count": line_count,
                "duration_ms": round(duration_ms, 2),
                "success": success,
                "error": error
            }
        )

    def log_http_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        client_ip: Optional[str] = None
    ) -> None:
        self.logger.info(
            f"HTTP request: {method} {path}",
            extra={
                "metric_type": "http_request",
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip
            }
        )
