"""
Resilient wrapper around an LLMClient.

Adds the two protections the runtime expects at the model boundary:
- Hard deadline per call (default 30s), independent of turn cancellation
- Retry with exponential backoff for recoverable errors

Streams are only retried while nothing has been yielded yet. Once a chunk
reached the consumer, replaying the stream would duplicate output, so
later failures propagate.

Usage:
    client = ResilientLLMClient(OpenAIClient(...), timeout_seconds=30.0)
    async for chunk in client.generate_stream(request):
        ...
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from aipex.utils.errors import LLMTimeoutError
from aipex.utils.retry import DEFAULT_RETRY, RetryPolicy, retry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aipex.config.schemas import AppSettings

    from .base import LLMClient, LLMRequest, LLMResponse, StreamChunk

logger = logging.getLogger(__name__)


class ResilientLLMClient:
    """LLMClient decorator enforcing deadlines and retries."""

    def __init__(
        self,
        inner: LLMClient,
        *,
        timeout_seconds: float = 30.0,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._inner = inner
        self._timeout = timeout_seconds
        self._policy = policy or DEFAULT_RETRY

    @classmethod
    def from_settings(cls, inner: LLMClient, settings: AppSettings) -> ResilientLLMClient:
        return cls(
            inner,
            timeout_seconds=settings.agent.llm_timeout_seconds,
            policy=RetryPolicy.from_settings(settings.retry),
        )

    @property
    def name(self) -> str:
        return self._inner.name

    async def generate_content(self, request: LLMRequest) -> LLMResponse:
        return await retry(
            lambda: self._with_deadline(self._inner.generate_content(request)),
            policy=self._policy,
            operation_name=f"{self.name}.generate_content",
        )

    async def count_tokens(self, request: LLMRequest) -> int:
        return await retry(
            lambda: self._with_deadline(self._inner.count_tokens(request)),
            policy=self._policy,
            operation_name=f"{self.name}.count_tokens",
        )

    async def generate_stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        attempt = 0
        while True:
            attempt += 1
            yielded = False
            stream = self._inner.generate_stream(request)
            try:
                while True:
                    try:
                        chunk = await self._with_deadline(anext(stream))
                    except StopAsyncIteration:
                        return
                    yielded = True
                    yield chunk

            except asyncio.CancelledError:
                raise

            except Exception as e:
                if yielded or not self._policy.can_retry(attempt, e):
                    raise
                delay = self._policy.get_delay(attempt)
                logger.warning(
                    f"[llm] {self.name}: stream attempt {attempt}/{self._policy.max_attempts} "
                    f"failed before first chunk ({type(e).__name__}: {e}), "
                    f"retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

    async def _with_deadline(self, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except TimeoutError as e:
            raise LLMTimeoutError(
                f"No response from {self.name} within {self._timeout:.1f}s",
                provider=self.name,
            ) from e
