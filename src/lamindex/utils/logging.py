"""Centralized logging configuration for lamindex.

Usage in any module:
    from lamindex.utils.logging import get_logger
    logger = get_logger(__name__)
    logger.info("Merged %d records", n)
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

_CONFIGURED = False

LOG_DIR = Path(__file__).resolve().parents[3] / "logs"
LOG_FILE = LOG_DIR / "lamindex.log"


def _escape_for(text: str, encoding: str) -> str:
    return text.encode(encoding, errors="backslashreplace").decode(encoding)


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that survives consoles unable to encode product names."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record) + self.terminator
            try:
                self.stream.write(line)
            except UnicodeEncodeError:
                self.stream.write(_escape_for(line, getattr(self.stream, "encoding", None) or "utf-8"))
            self.flush()
        except Exception:
            self.handleError(record)


_FORMAT = logging.Formatter(
    "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _attach_file_handler(root: logging.Logger, target: Path) -> None:
    for handler in list(root.handlers):
        if isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(target, encoding="utf-8", delay=True)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(_FORMAT)
        root.addHandler(fh)
    except OSError as exc:
        # Read-only checkouts still get console logging
        root.debug("File logging disabled (%s): %s", target, exc)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> None:
    """Configure the root ``lamindex`` logger (console + file).

    Only the first call installs handlers; later calls adjust the level and
    move the file handler when *log_file* is given.
    """
    global _CONFIGURED
    root = logging.getLogger("lamindex")
    if _CONFIGURED:
        root.setLevel(level)
        for handler in root.handlers:
            if isinstance(handler, SafeStreamHandler):
                handler.setLevel(level)
        if log_file is not None:
            _attach_file_handler(root, Path(log_file))
        return
    _CONFIGURED = True

    root.setLevel(level)

    console = SafeStreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(_FORMAT)
    root.addHandler(console)

    _attach_file_handler(root, Path(log_file) if log_file else LOG_FILE)


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``lamindex`` namespace.

    Calls :func:`setup_logging` on first use so callers never need to worry
    about initialization order.
    """
    setup_logging()
    return logging.getLogger(name)
