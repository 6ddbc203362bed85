"""
ESC/POS network printer implementation of the PrinterDevice interface.
"""

import logging
from typing import Iterable, Optional

from escpos.printer import Network

from posprint.domain.ports import PrinterDevice, PrinterError


logger = logging.getLogger(__name__)


class EscposNetworkDevice(PrinterDevice):
    """
    One session with a raw-TCP receipt printer (usually port 9100).
    A new instance is created for every print job.
    """

    def __init__(self, host: str, port: int = 9100, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self._printer: Optional[Network] = None

    def open(self) -> None:
        try:
            printer = Network(self.host, port=self.port, timeout=self.timeout)
            printer.open()
        except Exception as e:
            raise PrinterError(f"Failed to open printer {self.host}:{self.port}: {e}") from e

        try:
            printer.set(align="left")
        except Exception as e:
            # Connected but unusable: release the socket before reporting
            try:
                printer.close()
            except Exception as close_error:
                logger.error(
                    f"Failed to close printer after setup error: {close_error}",
                    extra={"component": "escpos_device", "host": self.host}
                )
            raise PrinterError(f"Failed to set up printer {self.host}:{self.port}: {e}") from e

        self._printer = printer
        logger.debug(
            "Printer session opened",
            extra={"component": "escpos_device", "host": self.host, "port": self.port}
        )

    def _require_open(self) -> Network:
        if self._printer is None:
            raise PrinterError("Printer session is not open")
        return self._printer

    def write_lines(self, lines: Iterable[str]) -> None:
        printer = self._require_open()
        for line in lines:
            printer.textln(line)

    def feed_and_cut(self, feed_lines: int) -> None:
        printer = self._require_open()
        if feed_lines > 0:
            printer.ln(feed_lines)
        printer.cut()

    def close(self) -> None:
        if self._printer is None:
            return
        printer, self._printer = self._printer, None
        printer.close()
        logger.debug(
            "Printer session closed",
            extra={"component": "escpos_device", "host": self.host, "port": self.port}
        )
