"""
Debounced buffer for streaming text.

Models emit tokens in bursts of tiny deltas. StreamBuffer batches them so
downstream consumers are notified at a bounded rate:

- Size strategy: once the pending text reaches max_buffer_size it is
  flushed synchronously, bounding memory and worst-case latency.
- Time strategy: otherwise a flush is scheduled `delay` seconds after the
  first pending character. Later adds do not push the timer back.

Timers run on the asyncio event loop, so add() must be called from a
coroutine running on that loop.

Example:
    buffer = StreamBuffer(delay=0.05, max_buffer_size=1024)
    buffer.add("He", emit)
    buffer.add("llo", emit)
    # ~50ms later: emit("Hello")
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class StreamBuffer:
    """Accumulates text and flushes it by size or after a fixed delay."""

    def __init__(self, delay: float = 0.05, max_buffer_size: int = 1024) -> None:
        """
        Args:
            delay: Seconds between the first pending character and its flush
            max_buffer_size: Pending length (chars) that forces an immediate flush
        """
        self._delay = delay
        self._max_buffer_size = max_buffer_size
        self._buffer: list[str] = []
        self._size = 0
        self._timer: asyncio.TimerHandle | None = None

    def add(self, text: str, on_flush: Callable[[str], None]) -> None:
        """Append text, flushing now if the ceiling is reached."""
        if not text:
            return

        self._buffer.append(text)
        self._size += len(text)

        if self._size >= self._max_buffer_size:
            self.flush(on_flush)
            return

        if self._timer is None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self._delay, self.flush, on_flush)

    def flush(self, on_flush: Callable[[str], None]) -> None:
        """Emit everything pending (if anything) and cancel the timer."""
        self._cancel_timer()

        if self._size == 0:
            return

        text = "".join(self._buffer)
        self._buffer.clear()
        self._size = 0
        on_flush(text)

    def dispose(self) -> None:
        """Cancel the timer and drop pending text without emitting it."""
        self._cancel_timer()
        if self._size:
            logger.debug(f"[stream_buffer] Discarding {self._size} unflushed chars")
        self._buffer.clear()
        self._size = 0

    @property
    def pending(self) -> str:
        return "".join(self._buffer)

    @property
    def has_pending(self) -> bool:
        return self._size > 0

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def __repr__(self) -> str:
        return f"<StreamBuffer pending={self._size} delay={self._delay}>"
