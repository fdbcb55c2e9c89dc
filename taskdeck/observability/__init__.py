from __future__ import annotations

import datetime as dt
import json
import logging
import os
import sys
from collections.abc import Mapping
from typing import Any

SENSITIVE_KEYS = frozenset({"password", "secret", "token", "authorization", "api_key", "redis_url"})

# Extras copied verbatim from ``logger.x(..., extra={...})`` into every line.
STANDARD_FIELDS = (
    "event",
    "app_name",
    "slot",
    "key",
    "task_id",
    "owner_id",
    "duration_ms",
    "attributes",
    "metadata",
)

REDACTED = "[REDACTED]"


def _utc_stamp() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def redact(obj: Any) -> Any:
    """Replace values of sensitive keys, recursing into mappings and sequences."""
    if isinstance(obj, Mapping):
        return {
            k: REDACTED if isinstance(k, str) and k.lower() in SENSITIVE_KEYS else redact(v)
            for k, v in obj.items()
        }
    if isinstance(obj, list | tuple):
        return [redact(v) for v in obj]
    return obj


def _service_name(record: logging.LogRecord) -> str | None:
    return getattr(record, "service", None) or os.getenv("SERVICE_NAME")


def _payload(record: logging.LogRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "ts": _utc_stamp(),
        "level": record.levelname.lower(),
        "service": _service_name(record),
        "logger": record.name,
        "msg": record.getMessage(),
    }
    for name in STANDARD_FIELDS:
        if hasattr(record, name):
            payload[name] = getattr(record, name)
    if isinstance(payload.get("attributes"), Mapping):
        payload["attributes"] = redact(payload["attributes"])
    return payload


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; error details ride along when ``exc_info`` is set."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload = _payload(record)
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            payload["err_type"] = exc_type.__name__
            if exc_value is not None:
                payload["err"] = str(exc_value)
            payload["stack"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleLogFormatter(logging.Formatter):
    """Compact single line for terminals: ``HH:MM:SS LEVEL name event slot= task= - msg``."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        parts = [_utc_stamp()[11:19], record.levelname, _service_name(record) or record.name]
        event = getattr(record, "event", None)
        if event:
            parts.append(str(event))
        slot = getattr(record, "slot", None)
        if slot:
            parts.append(f"slot={slot}")
        task_id = getattr(record, "task_id", None)
        if task_id:
            parts.append(f"task={str(task_id)[:16]}")
        line = " ".join([*parts, "-", record.getMessage()])
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _pick_formatter() -> logging.Formatter:
    choice = (os.getenv("LOG_FORMAT") or "auto").strip().lower()
    if choice == "console":
        return ConsoleLogFormatter()
    if choice == "auto" and sys.stdout.isatty():
        return ConsoleLogFormatter()
    return JsonLogFormatter()


def _to_level(value: str | None, default: int) -> int:
    level = logging.getLevelName((value or "").strip().upper())
    return level if isinstance(level, int) else default


def _module_levels() -> dict[str, str]:
    """Parse ``LOG_MODULE_LEVELS`` (``taskdeck.storage=DEBUG,taskdeck.tasks=WARNING``)."""
    levels: dict[str, str] = {}
    for entry in (os.getenv("LOG_MODULE_LEVELS") or "").split(","):
        prefix, sep, level = entry.partition("=")
        if sep and prefix.strip():
            levels[prefix.strip()] = level
    return levels


def level_for(logger_name: str) -> int:
    base = _to_level(os.getenv("LOG_LEVEL"), logging.INFO)
    for prefix, level in _module_levels().items():
        if logger_name == prefix or logger_name.startswith(prefix + "."):
            return _to_level(level, base)
    return base


def get_json_logger(name: str = "taskdeck") -> logging.Logger:
    """Logger writing to stdout, configured once per name from the environment."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(_pick_formatter())
        logger.addHandler(handler)
        logger.setLevel(level_for(name))
        logger.propagate = False
    return logger


# ----------------------------
# Counters
# ----------------------------
_LabelKey = tuple[tuple[str, str], ...]


def _label_key(labels: Mapping[str, str] | None) -> _LabelKey:
    return tuple(sorted((labels or {}).items()))


class Metrics:
    """In-process counters keyed by name plus a label set."""

    def __init__(self) -> None:
        self._counters: dict[tuple[str, _LabelKey], int] = {}

    def increment(
        self,
        name: str,
        labels: Mapping[str, str] | None = None,
        amount: int = 1,
    ) -> None:
        key = (name, _label_key(labels))
        self._counters[key] = self._counters.get(key, 0) + amount

    def value(self, name: str, labels: Mapping[str, str] | None = None) -> int:
        return self._counters.get((name, _label_key(labels)), 0)

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {"name": name, "labels": dict(labels), "value": count}
            for (name, labels), count in sorted(self._counters.items())
        ]


_metrics: Metrics | None = None


def get_metrics() -> Metrics:
    global _metrics
    if _metrics is None:
        _metrics = Metrics()
    return _metrics


def reset_metrics() -> None:
    global _metrics
    _metrics = Metrics()


__all__ = [
    "STANDARD_FIELDS",
    "ConsoleLogFormatter",
    "JsonLogFormatter",
    "Metrics",
    "get_json_logger",
    "get_metrics",
    "level_for",
    "redact",
    "reset_metrics",
]
