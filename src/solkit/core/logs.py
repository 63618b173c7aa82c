"""Structured logger collaborator for solkit components."""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Deque, Iterable, Literal, Protocol

LogLevel = Literal["debug", "info", "warning", "error"]

VALID_LEVELS: set[str] = {"debug", "info", "warning", "error"}

_LEVEL_ALIASES = {"warn": "warning", "err": "error"}
_STDLIB_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# 64-byte secret keys encode to 87-88 base58 characters.
_SECRET_PATTERN = re.compile(r"\b[1-9A-HJ-NP-Za-km-z]{80,90}\b")


def _mask(token: str) -> str:
    return f"{token[:4]}…{token[-4:]}"


def _redact(text: str) -> str:
    return _SECRET_PATTERN.sub(lambda match: _mask(match.group(0)), text)


class Logger(Protocol):
    """Anything accepting ``(level, message, context)`` calls."""

    def log(self, level: str, message: str, context: dict[str, Any] | None = None) -> None: ...

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None: ...

    def info(self, message: str, context: dict[str, Any] | None = None) -> None: ...

    def warning(self, message: str, context: dict[str, Any] | None = None) -> None: ...

    def error(self, message: str, context: dict[str, Any] | None = None) -> None: ...


@dataclass(slots=True)
class LogEntry:
    """Represents a single structured log entry."""

    timestamp: datetime
    level: LogLevel
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
            "context": dict(self.context),
        }


class ToolkitLogger:
    """Bounded in-memory log of toolkit events, mirrored to stdlib logging."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        max_entries: int = 200,
        redaction_enabled: bool = True,
        name: str = "solkit",
    ) -> None:
        self.enabled = enabled
        self.max_entries = max(max_entries, 1)
        self._redaction_enabled = redaction_enabled
        self._entries: Deque[LogEntry] = deque(maxlen=self.max_entries)
        self._subscribers: list[Callable[[LogEntry], None]] = []
        self._logger = logging.getLogger(name)

    def log(self, level: str, message: str, context: dict[str, Any] | None = None) -> LogEntry | None:
        if not self.enabled:
            return None
        normalized = level.lower()
        normalized = _LEVEL_ALIASES.get(normalized, normalized)
        if normalized not in VALID_LEVELS:
            normalized = "info"
        sanitized = _redact(message) if self._redaction_enabled else message
        entry = LogEntry(
            timestamp=datetime.now(UTC),
            level=normalized,  # type: ignore[arg-type]
            message=sanitized,
            context=dict(context or {}),
        )
        self._entries.append(entry)
        self._logger.log(_STDLIB_LEVELS[normalized], "%s %s", sanitized, entry.context or "")
        for callback in list(self._subscribers):
            callback(entry)
        return entry

    def debug(self, message: str, context: dict[str, Any] | None = None) -> LogEntry | None:
        return self.log("debug", message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> LogEntry | None:
        return self.log("info", message, context)

    def warning(self, message: str, context: dict[str, Any] | None = None) -> LogEntry | None:
        return self.log("warning", message, context)

    def error(self, message: str, context: dict[str, Any] | None = None) -> LogEntry | None:
        return self.log("error", message, context)

    def recent(self, *, level: str | None = None, limit: int = 50) -> list[LogEntry]:
        if level is None:
            return list(self._slice_latest(limit))
        normalized = _LEVEL_ALIASES.get(level.lower(), level.lower())
        filtered = [entry for entry in self._entries if entry.level == normalized]
        return filtered[-limit:] if limit > 0 else []

    def latest(self) -> LogEntry | None:
        if not self._entries:
            return None
        return self._entries[-1]

    def subscribe(self, callback: Callable[[LogEntry], None]) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEntry], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _slice_latest(self, limit: int) -> Iterable[LogEntry]:
        if limit <= 0:
            return []
        if limit >= len(self._entries):
            return list(self._entries)
        return list(self._entries)[-limit:]


class NullLogger:
    """Logger that discards everything."""

    def log(self, level: str, message: str, context: dict[str, Any] | None = None) -> None:
        return None

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        return None

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        return None

    def warning(self, message: str, context: dict[str, Any] | None = None) -> None:
        return None

    def error(self, message: str, context: dict[str, Any] | None = None) -> None:
        return None


__all__ = ["Logger", "LogEntry", "LogLevel", "NullLogger", "ToolkitLogger", "VALID_LEVELS"]
