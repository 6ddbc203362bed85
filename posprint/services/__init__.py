"""
Service layer for the posprint relay.
"""

from .rate_limiter import RateLimiter
from .ingestion_service import IngestionService, parse_submission, resolve_source_ip
from .print_service import PrintService

__all__ = [
    "RateLimiter",
    "IngestionService",
    "parse_submission",
    "resolve_source_ip",
    "PrintService"
]
