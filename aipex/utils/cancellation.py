"""
Cooperative cancellation token.

A token is created per turn and handed down the call chain (turn -> tool
context). Nothing is interrupted preemptively: every suspend point checks
the token and raises TurnCancelledError when it is set.
"""

from __future__ import annotations

import asyncio

from .errors import TurnCancelledError


class CancellationToken:
    """One-shot cancellation flag with an awaitable signal."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = ""
        self._event: asyncio.Event | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Set the token. Later calls keep the first reason."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise TurnCancelledError(self._reason)

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def __repr__(self) -> str:
        return f"<CancellationToken cancelled={self._cancelled}>"
