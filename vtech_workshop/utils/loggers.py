"""
utils/loggers.py

Console logger for the app plus an append-only JSON-lines audit trail for
ledger-affecting operations (stock movements, deliveries, payments, denials).

Public API
----------
- get_logger(name) -> logging.Logger
- configure_logging(level, file_path) -> None
- log_event(logger, op, phase, message, extra: dict = {})
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

__all__ = ["get_logger", "configure_logging", "get_audit_logger", "log_event"]

_ROOT_NAME = "vtech_workshop"
_AUDIT_NAME = "vtech_workshop.audit"
_CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logger(name: str = _ROOT_NAME) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers and name == _ROOT_NAME:
        logger.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        logger.addHandler(ch)
    return logger


def configure_logging(level: str | int = "INFO", file_path: Optional[str] = None) -> None:
    """
    Set the package log level and, if `file_path` is given, mirror audit
    events to that file as JSON lines. Safe to call more than once.
    """
    root = get_logger(_ROOT_NAME)
    root.setLevel(level if isinstance(level, int) else logging.getLevelName(str(level).upper()))

    if file_path:
        audit = logging.getLogger(_AUDIT_NAME)
        target = str(Path(file_path))
        already = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == str(Path(target).resolve())
            for h in audit.handlers
        )
        if not already:
            Path(target).parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(target, mode="a", encoding="utf-8", delay=True)
            fh.setFormatter(_JsonLineFormatter())
            audit.addHandler(fh)


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(_AUDIT_NAME)


class _JsonLineFormatter(logging.Formatter):
    """
    Minimal JSON-lines formatter:
      {"ts":"2025-09-16T12:00:01.123Z","level":"INFO","name":"...","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        # Attach extra dict if provided via our helper
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        return json.dumps(payload, ensure_ascii=False, default=str)


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """
    Log a structured event line.

    Args:
        logger: Usually get_audit_logger().
        op: Operation name, e.g., "stock.reserve" or "job.deliver".
        phase: Phase within the operation, e.g., "commit", "denied", "failed".
        message: Human-readable short message.
        extra: Optional additional key/values (ids, amounts, balances).
        level: Logging level (default INFO).
    """
    extra_payload = {"op": op, "phase": phase}
    if extra:
        # Merge without overwriting the required keys
        for k, v in extra.items():
            if k not in extra_payload:
                extra_payload[k] = v

    # Attach our extra dict in a dedicated attribute the formatter will pick up
    logger.log(level, message, extra={"extra_payload": extra_payload})
