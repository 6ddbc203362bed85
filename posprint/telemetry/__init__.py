"""
Telemetry and observability for the posprint processes.

Contains logging and metrics utilities.
"""

from .logger import setup_logging, JSONFormatter, CorrelationFilter, MetricsLogger

__all__ = [
    "setup_logging",
    "JSONFormatter",
    "CorrelationFilter",
    "MetricsLogger"
]
