"""
Fixed-width rendering of a message for a line printer.
"""

from typing import List

from posprint.domain.schema import PrintJob


EMPTY_MESSAGE_PLACEHOLDER = "(no message provided)"
SEPARATOR_CHAR = "-"


def normalize_line_endings(text: str) -> str:
    if not isinstance(text, str):
        return ""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def wrap_line(line: str, width: int) -> List[str]:
    """Hard-wrap one logical line into slices of at most `width` characters."""
    if not line:
        return [""]

    segments = []
    remaining = line
    while len(remaining) > width:
        segments.append(remaining[:width])
        remaining = remaining[width:]
    segments.append(remaining)
    return segments


def wrap_message(message: str, width: int) -> List[str]:
    normalized = normalize_line_endings(message)
    if not normalized:
        return [EMPTY_MESSAGE_PLACEHOLDER]

    lines: List[str] = []
    for logical_line in normalized.split("\n"):
        lines.extend(wrap_line(logical_line, width))
    return lines


class PrintFormatter:
    """
    Builds the printed layout:

        From: {email}
        Received: {receivedAt}
        <blank>
        wrapped body lines
        <blank>
        ------------------ (line_width dashes)

    Output depends only on the inputs, so a redelivered message prints identically.
    """

    def __init__(self, line_width: int = 42):
        if line_width < 1:
            raise ValueError(f"Line width must be positive, got {line_width}")
        self.line_width = line_width

    def format(self, email: str, message: str, received_at: str) -> List[str]:
        return [
            f"From: {email}",
            f"Received: {received_at}",
            "",
            *wrap_message(message, self.line_width),
            "",
            SEPARATOR_CHAR * self.line_width,
        ]

    def build_job(self, email: str, message: str, received_at: str) -> PrintJob:
        return PrintJob(
            email=email,
            message=message,
            received_at=received_at,
            lines=self.format(email, message, received_at)
        )


def format_print_lines(email: str, message: str, received_at: str, line_width: int = 42) -> List[str]:
    """Convenience wrapper around PrintFormatter.format."""
    return PrintFormatter(line_width).format(email, message, received_at)
