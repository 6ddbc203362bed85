"""
Printing subsystem: fixed-width formatting and device session handling.
"""

from .formatter import (
    EMPTY_MESSAGE_PLACEHOLDER,
    PrintFormatter,
    format_print_lines,
    wrap_line,
    wrap_message,
)
from .job_runner import PrintJobRunner

__all__ = [
    "EMPTY_MESSAGE_PLACEHOLDER",
    "PrintFormatter",
    "format_print_lines",
    "wrap_line",
    "wrap_message",
    "PrintJobRunner"
]
