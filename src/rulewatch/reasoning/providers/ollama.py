"""Ollama provider — local models over the Ollama HTTP API.

Uses ``/api/generate`` with ``format: "json"`` and deterministic sampling,
which keeps small models (1–3B) close to the requested JSON shape.
"""

from __future__ import annotations

import asyncio
import logging
import time

import aiohttp

from ...exceptions import ProviderError, ProviderResponseError, ProviderUnavailableError
from ...stats import TokenUsageTracker
from .base import TextProvider

logger = logging.getLogger("rulewatch")

BASE_RETRY_DELAY = 1.0
MAX_RETRY_DELAY = 10.0


class OllamaProvider(TextProvider):
    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.2",
        timeout_seconds: float = 30.0,
    ):
        self._host = host.rstrip("/")
        self._model = model
        self._timeout = timeout_seconds
        self._session: aiohttp.ClientSession | None = None
        self.usage = TokenUsageTracker()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _build_payload(self, prompt: str) -> dict:
        return {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": 0,
                "num_ctx": 2048,
                "num_predict": 256,
            },
        }

    async def _post_generate(self, prompt: str) -> dict:
        session = self._get_session()
        async with session.post(
            f"{self._host}/api/generate", json=self._build_payload(prompt)
        ) as resp:
            if resp.status >= 400:
                raise ProviderError(f"Ollama returned HTTP {resp.status}")
            data = await resp.json()
        if not isinstance(data, dict) or not isinstance(data.get("response"), str):
            raise ProviderResponseError("Ollama response has no 'response' text")
        return data

    async def generate(self, prompt: str, retries: int = 2) -> str:
        start = time.monotonic()
        attempts = max(1, retries)
        for attempt in range(1, attempts + 1):
            try:
                logger.debug(
                    "Sending LLM request (attempt %d, model=%s, prompt_len=%d)",
                    attempt, self._model, len(prompt),
                )
                data = await self._post_generate(prompt)
            except (aiohttp.ClientError, asyncio.TimeoutError, ProviderError) as e:
                latency_ms = (time.monotonic() - start) * 1000
                logger.warning(
                    "LLM request failed (attempt %d/%d): %s", attempt, attempts, e
                )
                if attempt == attempts:
                    self.usage.record_request(success=False, latency_ms=latency_ms)
                    raise ProviderUnavailableError(
                        f"Ollama request failed after {attempts} attempts: {e}"
                    ) from e
                delay = min(BASE_RETRY_DELAY * 2 ** (attempt - 1), MAX_RETRY_DELAY)
                await asyncio.sleep(delay)
                continue

            latency_ms = (time.monotonic() - start) * 1000
            if attempt > 1:
                logger.info("LLM request succeeded after retry (attempt %d)", attempt)
            text = data["response"]
            self.usage.record_request(
                success=True,
                latency_ms=latency_ms,
                prompt=prompt,
                response=text,
                prompt_tokens=data.get("prompt_eval_count"),
                completion_tokens=data.get("eval_count"),
            )
            return text
        raise ProviderUnavailableError("All retry attempts exhausted")

    async def check_health(self) -> bool:
        session = self._get_session()
        try:
            async with session.get(f"{self._host}/api/tags") as resp:
                if resp.status >= 400:
                    logger.error("LLM health check failed: HTTP %d", resp.status)
                    return False
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("LLM health check failed: %s", e)
            return False

        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            logger.error("LLM health check failed: unexpected /api/tags response")
            return False
        names = [
            m["name"] for m in models
            if isinstance(m, dict) and isinstance(m.get("name"), str)
        ]
        if not any(self._model in name for name in names):
            logger.warning(
                "Model %s not found in Ollama (available: %s)", self._model, names
            )
            return False
        logger.info("LLM health check passed (model=%s)", self._model)
        return True

    def usage_summary(self) -> dict:
        return self.usage.summary()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def model_name(self) -> str:
        return self._model
