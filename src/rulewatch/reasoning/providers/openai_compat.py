"""OpenAI-compatible text provider.

Covers: OpenAI, LM Studio, vLLM, llama.cpp server, Together, Groq, and any
service that implements the OpenAI chat completions API.
"""

from __future__ import annotations

import asyncio
import logging
import time

from ...exceptions import ProviderResponseError, ProviderUnavailableError
from ...stats import TokenUsageTracker
from .base import TextProvider

logger = logging.getLogger("rulewatch")


class OpenAICompatProvider(TextProvider):
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
    ):
        try:
            from openai import AsyncOpenAI
        except ImportError:
            raise ImportError(
                "OpenAI SDK not installed. Run: pip install rulewatch[openai]"
            )
        kwargs: dict = {"api_key": api_key, "timeout": timeout_seconds}
        if base_url:
            kwargs["base_url"] = base_url
        self._client = AsyncOpenAI(**kwargs)
        self._model = model
        self._base_url = base_url
        self.usage = TokenUsageTracker()

    async def _complete(self, prompt: str) -> tuple[str, object]:
        response = await self._client.chat.completions.create(
            model=self._model,
            max_tokens=256,
            temperature=0,
            response_format={"type": "json_object"},
            messages=[{"role": "user", "content": prompt}],
        )
        content = response.choices[0].message.content
        if content is None:
            # Some providers return None for content (e.g. refusal, empty response)
            raise ProviderResponseError("Provider returned empty content (None)")
        return content, response.usage

    async def generate(self, prompt: str, retries: int = 2) -> str:
        start = time.monotonic()
        attempts = max(1, retries)
        for attempt in range(1, attempts + 1):
            try:
                content, usage = await self._complete(prompt)
            except Exception as e:
                logger.warning(
                    "LLM request failed (attempt %d/%d): %s", attempt, attempts, e
                )
                if attempt == attempts:
                    self.usage.record_request(
                        success=False, latency_ms=(time.monotonic() - start) * 1000
                    )
                    raise ProviderUnavailableError(str(e)) from e
                await asyncio.sleep(min(2 ** (attempt - 1), 10))
                continue
            self.usage.record_request(
                success=True,
                latency_ms=(time.monotonic() - start) * 1000,
                prompt=prompt,
                response=content,
                prompt_tokens=getattr(usage, "prompt_tokens", None),
                completion_tokens=getattr(usage, "completion_tokens", None),
            )
            return content
        raise ProviderUnavailableError("All retry attempts exhausted")

    async def check_health(self) -> bool:
        try:
            await self._client.models.list()
        except Exception as e:
            logger.error("LLM health check failed: %s", e)
            return False
        return True

    def usage_summary(self) -> dict:
        return self.usage.summary()

    async def close(self) -> None:
        await self._client.close()

    @property
    def provider_name(self) -> str:
        if self._base_url:
            return f"openai-compatible ({self._base_url})"
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model
