"""Client for web-search-enabled research calls against the OpenAI Responses API."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterator
from random import SystemRandom
from typing import Any, Protocol

from openai import APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError, RateLimitError

from app.config import settings
from app.observability.metrics import metrics

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

WEB_SEARCH_TOOL: dict[str, str] = {"type": "web_search"}


class ResearchProviderError(RuntimeError):
    """Raised when the research provider cannot complete a request."""

    def __init__(self, message: str, code: str = "502_RESEARCH_UPSTREAM") -> None:
        super().__init__(message)
        self.code = code


class ResearchClient(Protocol):
    """Minimal contract for a research-capable reasoning service."""

    async def research(self, prompt: str, *, max_output_tokens: int) -> str:
        ...


class OpenAIResearchClient:
    """Thin async wrapper around the Responses API with the web search tool enabled."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str,
        timeout: float = 180.0,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 1.0,
        client: AsyncOpenAI | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ValueError("OPENAI_API_KEY is required to run investor discovery.")
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout)
        self._model = model
        self._retry_attempts = retry_attempts
        self._retry_backoff_seconds = retry_backoff_seconds
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_settings(cls) -> OpenAIResearchClient:
        return cls(
            settings.openai_api_key,
            model=settings.research_model,
            timeout=settings.research_timeout_seconds,
            retry_attempts=settings.research_retry_attempts,
            retry_backoff_seconds=settings.research_retry_backoff_seconds,
        )

    async def research(self, prompt: str, *, max_output_tokens: int) -> str:
        tags = {"model": self._model}
        outcome = "error"
        start = time.perf_counter()
        try:
            text = await self._execute_with_retry(lambda: self._invoke(prompt, max_output_tokens))
            outcome = "success"
            return text
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            metrics.timing("research.latency_ms", elapsed_ms, tags={**tags, "outcome": outcome})

    async def close(self) -> None:
        await self._client.close()

    async def _invoke(self, prompt: str, max_output_tokens: int) -> str:
        try:
            response = await self._client.responses.create(
                model=self._model,
                input=prompt,
                tools=[WEB_SEARCH_TOOL],
                max_output_tokens=max_output_tokens,
            )
        except RateLimitError as exc:
            raise ResearchProviderError(
                f"Research request rate limited: {exc.message}", code="429_RATE_LIMIT"
            ) from exc
        except APITimeoutError as exc:
            raise ResearchProviderError("Research request timed out.", code="504_RESEARCH_TIMEOUT") from exc
        except APIStatusError as exc:
            raise ResearchProviderError(
                f"Research request failed with status {exc.status_code}: {exc.message}",
                code="502_RESEARCH_UPSTREAM",
            ) from exc
        except OpenAIError as exc:
            raise ResearchProviderError(f"Research request failed: {exc}") from exc
        return _extract_response_text(response)

    async def _execute_with_retry(self, func: Callable[[], Awaitable[str]]) -> str:
        """Retry rate-limited calls with exponential backoff."""
        for attempt, delay in _backoff_delays(self._retry_attempts, self._retry_backoff_seconds):
            try:
                return await func()
            except ResearchProviderError as exc:
                if attempt == self._retry_attempts or exc.code != "429_RATE_LIMIT":
                    raise
                logger.warning(
                    "research.retry",
                    extra={"attempt": attempt, "code": exc.code, "delay_ms": round(delay * 1000, 2)},
                )
                metrics.increment("research.retry", tags={"code": exc.code})
                await self._sleep(delay)
        raise ResearchProviderError("Unable to complete research request after retries.")


def _backoff_delays(
    attempts: int,
    base_delay: float,
    *,
    factor: float = 2.0,
    max_delay: float = 30.0,
    jitter: float = 0.25,
) -> Iterator[tuple[int, float]]:
    """Yield (attempt, delay_seconds) pairs; the delay applies after a failed attempt."""
    rng = SystemRandom()
    delay = max(base_delay, 0.0)
    for attempt in range(1, attempts + 1):
        offset = rng.uniform(0, delay * jitter) if jitter > 0 and delay > 0 else 0.0
        yield attempt, min(delay + offset, max_delay)
        delay = min(delay * factor, max_delay)


def _extract_response_text(response: Any) -> str:
    """Normalize Responses API payloads across SDK versions."""
    output_text = getattr(response, "output_text", None)
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()

    text_chunks: list[str] = []
    for item in getattr(response, "output", None) or []:
        for content in getattr(item, "content", None) or []:
            if getattr(content, "type", None) == "output_text":
                text_chunks.append(getattr(content, "text", ""))
    if text_chunks:
        return "".join(text_chunks).strip()

    logger.warning("research.empty_output", extra={"response_id": getattr(response, "id", None)})
    return ""
