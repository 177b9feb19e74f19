"""Logging helpers."""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import List, Optional

_LOGGING_CONFIGURED = False
_LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"
_FILE_HANDLER_NAME = "ho-host-audit"

SYSTEM_OWNER = "SYSTEM"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(level=logging.INFO, format=_LOG_FORMAT)
        _LOGGING_CONFIGURED = True
    return logging.getLogger(name)


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Set the root level and (re)attach the audit file handler."""
    get_logger()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root.handlers):
        if handler.get_name() == _FILE_HANDLER_NAME:
            root.removeHandler(handler)
            handler.close()

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.set_name(_FILE_HANDLER_NAME)
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(file_handler)


def audit(
    logger: logging.Logger,
    owner: Optional[str],
    action: str,
    details: str = "",
    level: int = logging.INFO,
) -> None:
    """Emit one audit event as ``[owner] ACTION - details``."""
    logger.log(level, "[%s] %s - %s", owner or SYSTEM_OWNER, action, details)


def read_recent_logs(log_file: Path, limit: int = 50, owner: Optional[str] = None) -> List[str]:
    """Return the last `limit` audit lines visible to `owner`.

    With an owner, only that owner's events and SYSTEM events are kept.
    """
    if not log_file.is_file():
        return []

    markers = None
    if owner is not None:
        markers = (f"[{owner}]", f"[{SYSTEM_OWNER}]")

    lines: deque = deque(maxlen=max(limit, 0))
    with log_file.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            line = line.rstrip("\n")
            if not line:
                continue
            if markers and not any(marker in line for marker in markers):
                continue
            lines.append(line)
    return list(lines)
