"""
Logging setup for the BlackBook wallet.

Two console formats:
  - **human** – one line per record, coloured when the stream is a TTY
  - **json**  – newline-delimited JSON for log shippers

Records may carry wallet context through ``extra=`` (``username``,
``address``, ``state``, ``operation``); both formats render it.

Every handler gets a redaction filter: runs of 64+ hex characters (seeds,
secret keys, vault keys, signatures) are cut down to an 8-char prefix
before anything is written.

Usage:
    from blackbook_wallet.logging_config import setup_logging
    setup_logging(level="DEBUG", fmt="json", log_file="wallet.log")
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Optional

CONTEXT_FIELDS = ("username", "address", "state", "operation")
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")

_LONG_HEX = re.compile(r"[0-9a-fA-F]{64,}")


def _context(record: logging.LogRecord) -> dict[str, str]:
    return {
        name: str(getattr(record, name))
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) not in (None, "")
    }


class _RedactingFilter(logging.Filter):
    """Mask long hex strings in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _LONG_HEX.sub(lambda m: m.group(0)[:8] + "…<redacted>", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **_context(record),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class _HumanFormatter(logging.Formatter):
    """``HH:MM:SS [LEVEL  ] logger: message  key=value ...``"""

    COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colour: bool = True):
        super().__init__()
        self.use_colour = use_colour

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"[{record.levelname:<7}]"
        if self.use_colour:
            level = f"{self.COLOURS.get(record.levelname, '')}{level}{self.RESET}"
        line = f"{ts} {level} {record.name}: {record.getMessage()}"
        ctx = _context(record)
        if ctx:
            line += "  " + " ".join(f"{k}={v}" for k, v in ctx.items())
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    fmt: str = "human",
    log_file: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """
    Configure the root logger for the wallet CLI or an embedding app.

    Parameters
    ----------
    level : str
        One of DEBUG, INFO, WARNING, ERROR, CRITICAL. Unknown names fall
        back to INFO.
    fmt : str
        ``"human"`` or ``"json"`` for the console handler.
    log_file : str, optional
        Also append JSON lines to this file (parent dirs are created).
    stream : file-like, optional
        Console stream; defaults to ``sys.stderr``.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    redactor = _RedactingFilter()
    stream = stream if stream is not None else sys.stderr

    console = logging.StreamHandler(stream)
    if fmt == "json":
        console.setFormatter(_JSONFormatter())
    else:
        console.setFormatter(_HumanFormatter(use_colour=stream.isatty()))
    console.addFilter(redactor)
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path), encoding="utf-8")
        fh.setFormatter(_JSONFormatter())
        fh.addFilter(redactor)
        root.addHandler(fh)

    # aiohttp and asyncio chatter stays out of DEBUG sessions
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))
