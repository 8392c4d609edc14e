from __future__ import annotations

import logging
from typing import Any, Dict

try:
    from systemd.journal import JournalHandler
except Exception:  # pragma: no cover
    JournalHandler = None

LOGGER_NAME = "copy_monitor"


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    # Module loggers (copy_monitor.tracker, ...) propagate into this one
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if not logger.handlers:
        if JournalHandler:
            handler = JournalHandler(SYSLOG_IDENTIFIER="copy-monitor")
        else:
            handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def log_structured(logger: logging.Logger, message: str, extra_fields: Dict[str, Any], level: int = logging.INFO) -> None:
    # systemd.journal.JournalHandler accepts dict in extra; fallback to plain logging otherwise.
    handlers = getattr(logger, "handlers", [])
    try:
        iter(handlers)
    except TypeError:
        handlers = []
    if JournalHandler and any(isinstance(h, JournalHandler) for h in handlers):
        logger.log(level, message, extra=extra_fields)
        return
    if extra_fields:
        fields = " ".join(f"{key}={value}" for key, value in extra_fields.items())
        logger.log(level, f"{message} {fields}")
        return
    logger.log(level, message)
