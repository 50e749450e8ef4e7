"""
Tool call metrics.

The registry records every execution here: outcome and duration per tool.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ToolMetrics:
    tool_name: str
    total_calls: int
    success_count: int
    failure_count: int
    avg_duration_ms: float
    total_duration_ms: float

    @property
    def success_rate(self) -> float:
        return self.success_count / self.total_calls if self.total_calls else 0.0


@dataclass(slots=True)
class _Counters:
    calls: int = 0
    successes: int = 0
    total_duration_ms: float = 0.0


class ToolMonitor:
    """Thread-safe per-tool call counters."""

    def __init__(self) -> None:
        self._counters: dict[str, _Counters] = {}
        self._lock = threading.Lock()

    def record_call(self, tool_name: str, success: bool, duration_ms: float) -> None:
        with self._lock:
            counters = self._counters.setdefault(tool_name, _Counters())
            counters.calls += 1
            counters.total_duration_ms += duration_ms
            if success:
                counters.successes += 1

    def get_metrics(self, tool_name: str | None = None) -> list[ToolMetrics]:
        with self._lock:
            if tool_name is not None:
                names = [tool_name] if tool_name in self._counters else []
            else:
                names = list(self._counters)
            return [self._snapshot(name, self._counters[name]) for name in names]

    def clear(self, tool_name: str | None = None) -> None:
        with self._lock:
            if tool_name is None:
                self._counters.clear()
            else:
                self._counters.pop(tool_name, None)

    @staticmethod
    def _snapshot(name: str, counters: _Counters) -> ToolMetrics:
        return ToolMetrics(
            tool_name=name,
            total_calls=counters.calls,
            success_count=counters.successes,
            failure_count=counters.calls - counters.successes,
            avg_duration_ms=counters.total_duration_ms / counters.calls,
            total_duration_ms=counters.total_duration_ms,
        )
