"""Chat-completion client.

Wraps the groq SDK (OpenAI-compatible; point GROQ_BASE_URL elsewhere to use
another provider). SDK-level retries are disabled: rate-limit responses are
retried here a fixed number of times with a fixed backoff, and every other
failure is reported once as CompletionError.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import groq

from fortunebot.core.errors import CompletionError, CompletionQuotaError
from fortunebot.core.metrics import completions_total


logger = logging.getLogger("fortunebot")

Message = Dict[str, str]


class CompletionClient:
    def __init__(
        self,
        api_key: Optional[str],
        model: str = "llama-3.1-8b-instant",
        *,
        base_url: Optional[str] = None,
        temperature: float = 0.8,
        top_p: float = 0.9,
        max_tokens: int = 700,
        timeout: float = 30.0,
        max_attempts: int = 2,
        retry_backoff: float = 1.0,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self.max_tokens = max_tokens
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff = retry_backoff
        self._client = client
        self._owns_client = False
        if self._client is None and api_key:
            self._client = groq.AsyncGroq(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
            self._owns_client = True

    @classmethod
    def from_settings(cls, cfg) -> "CompletionClient":
        return cls(
            cfg.GROQ_API_KEY,
            cfg.LLM_MODEL,
            base_url=cfg.GROQ_BASE_URL,
            temperature=cfg.LLM_TEMPERATURE,
            top_p=cfg.LLM_TOP_P,
            max_tokens=cfg.LLM_MAX_TOKENS,
            timeout=cfg.LLM_TIMEOUT_SECONDS,
            max_attempts=cfg.LLM_MAX_ATTEMPTS,
            retry_backoff=cfg.LLM_RETRY_BACKOFF_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def complete(self, messages: List[Message]) -> str:
        """Return the best completion text.

        Raises:
            CompletionQuotaError: still rate limited after all attempts
            CompletionError: not configured, API/transport error, or empty output
        """
        if self._client is None:
            logger.warning("[llm] GROQ_API_KEY is not set")
            completions_total.inc(labels={"result": "unconfigured"})
            raise CompletionError("Completion API key not configured")

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self._client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    top_p=self.top_p,
                    max_tokens=self.max_tokens,
                )
            except groq.RateLimitError as e:
                logger.warning(f"[llm] rate limited (attempt {attempt}/{self.max_attempts})")
                if attempt >= self.max_attempts:
                    completions_total.inc(labels={"result": "quota"})
                    raise CompletionQuotaError(f"Completion API rate limited: {e.status_code}")
                await asyncio.sleep(self.retry_backoff)
                continue
            except groq.APIStatusError as e:
                completions_total.inc(labels={"result": "error"})
                raise CompletionError(f"Completion API returned {e.status_code}")
            except groq.APIError as e:
                # Connection errors and timeouts
                completions_total.inc(labels={"result": "error"})
                raise CompletionError(f"Completion API unreachable: {e.__class__.__name__}")

            content = _first_content(response)
            if not content:
                completions_total.inc(labels={"result": "empty"})
                raise CompletionError("Completion API returned empty content")
            completions_total.inc(labels={"result": "ok"})
            logger.info("[llm] completion ok")
            return content

        raise CompletionError("Completion attempts exhausted")

    async def ping(self) -> str:
        return await self.complete([{"role": "user", "content": "テスト鑑定を1文で。"}])

    async def close(self) -> None:
        """Close the SDK client built here; an injected client belongs to the caller."""
        if self._owns_client:
            await self._client.close()


def _first_content(response: Any) -> str:
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, TypeError):
        return ""
    return (content or "").strip()
