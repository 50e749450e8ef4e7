"""
Observability for the aipex runtime.

Provides structured logging for agent execution monitoring and debugging.

Design Philosophy:
- Structured logging by default (JSON-formatted records)
- Routed through the standard logging module, so host applications
  keep control of handlers and levels
- Minimal overhead when a level is disabled
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


# =============================================================================
# Log Levels
# =============================================================================


class LogLevel(Enum):
    """Standard log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# =============================================================================
# Structured Logger Protocol
# =============================================================================


class StructuredLogger(Protocol):
    """
    Protocol for structured logging implementations.

    Structured loggers emit logs as key-value pairs rather than
    plain strings, enabling better searchability and analysis.
    """

    def debug(self, message: str, **context: Any) -> None: ...

    def info(self, message: str, **context: Any) -> None: ...

    def warning(self, message: str, **context: Any) -> None: ...

    def error(self, message: str, **context: Any) -> None: ...


# =============================================================================
# JSON Logger Implementation
# =============================================================================


@dataclass
class JSONLogger:
    """
    Structured logger that outputs JSON-formatted logs.

    Each log entry includes:
    - timestamp (ISO 8601)
    - level
    - message
    - context fields

    Example output:
        {"timestamp": "2026-01-02T10:30:00+00:00", "level": "info",
         "message": "Turn started", "session_id": "abc-123", "turn": 1}
    """

    name: str = "aipex"
    extra_context: dict[str, Any] = field(default_factory=dict)
    _python_logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._python_logger = logging.getLogger(self.name)

    def _log(self, level: LogLevel, message: str, context: dict[str, Any]) -> None:
        log_method = getattr(self._python_logger, level.value)
        if not self._python_logger.isEnabledFor(getattr(logging, level.name)):
            return

        record = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": level.value,
            "message": message,
            **self.extra_context,
            **context,
        }
        log_method(json.dumps(record, default=str))

    def debug(self, message: str, **context: Any) -> None:
        self._log(LogLevel.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(LogLevel.WARNING, message, context)

    def error(self, message: str, **context: Any) -> None:
        self._log(LogLevel.ERROR, message, context)

    def with_context(self, **extra: Any) -> JSONLogger:
        """Create a new logger with additional context."""
        return JSONLogger(name=self.name, extra_context={**self.extra_context, **extra})


# =============================================================================
# Execution Logger
# =============================================================================


@dataclass
class ExecutionLogger:
    """
    Specialized logger for agent execution.

    Provides convenience methods for the agent loop lifecycle:
    - Execution start/end
    - Turn start/end
    - Tool call outcomes

    Example:
        log = ExecutionLogger(session_id="abc-123")
        log.execution_started(input_preview="Open the settings page", max_turns=10)
        log.turn_started(turn_id="t1", number=1)
        log.tool_call_completed(tool_name="click", call_id="c1", duration_ms=12.5)
        log.execution_completed(reason="finished", turns=1, duration_ms=900.0)
    """

    session_id: str
    inner: StructuredLogger = field(default_factory=JSONLogger)

    def __post_init__(self) -> None:
        if isinstance(self.inner, JSONLogger):
            self.inner = JSONLogger(
                name="aipex.execution",
                extra_context={"session_id": self.session_id},
            )

    # Execution lifecycle
    def execution_started(self, input_preview: str, max_turns: int) -> None:
        self.inner.info(
            "Execution started",
            input_preview=input_preview[:80],
            max_turns=max_turns,
        )

    def execution_completed(self, reason: str, turns: int, duration_ms: float) -> None:
        self.inner.info(
            "Execution completed",
            reason=reason,
            turns=turns,
            duration_ms=round(duration_ms, 2),
        )

    def execution_failed(
        self,
        error: str,
        error_code: str,
        recoverable: bool,
        turns: int,
    ) -> None:
        self.inner.error(
            "Execution failed",
            error=error,
            error_code=error_code,
            recoverable=recoverable,
            turns=turns,
        )

    # Turn lifecycle
    def turn_started(self, turn_id: str, number: int) -> None:
        self.inner.debug("Turn started", turn_id=turn_id, number=number)

    def turn_completed(self, turn_id: str, should_continue: bool, tool_calls: int) -> None:
        self.inner.debug(
            "Turn completed",
            turn_id=turn_id,
            should_continue=should_continue,
            tool_calls=tool_calls,
        )

    # Tools
    def tool_call_completed(self, tool_name: str, call_id: str, duration_ms: float) -> None:
        self.inner.debug(
            "Tool call completed",
            tool_name=tool_name,
            call_id=call_id,
            duration_ms=round(duration_ms, 2),
        )

    def tool_call_failed(self, tool_name: str, call_id: str, error: str) -> None:
        self.inner.warning(
            "Tool call failed",
            tool_name=tool_name,
            call_id=call_id,
            error=error,
        )

    # Stop signals
    def stop_signal(self, signal: str, turns: int, **details: Any) -> None:
        self.inner.warning("Execution stopped", signal=signal, turns=turns, **details)


# =============================================================================
# Setup
# =============================================================================


class _JSONFormatter(logging.Formatter):
    """Wraps plain records as JSON; records that already are JSON pass through."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if message.startswith("{"):
            return message
        return json.dumps(
            {
                "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
                "level": record.levelname.lower(),
                "logger": record.name,
                "message": message,
            },
            default=str,
        )


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Attach a stream handler to the `aipex` logger.

    Calling it again replaces the previously installed handler.
    """
    root = logging.getLogger("aipex")
    for handler in list(root.handlers):
        if getattr(handler, "_aipex_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._aipex_handler = True  # type: ignore[attr-defined]
    if json_format:
        handler.setFormatter(_JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root.addHandler(handler)
    root.setLevel(level.upper())
    logger.debug(f"[observability] Logging configured (level={level}, json={json_format})")
