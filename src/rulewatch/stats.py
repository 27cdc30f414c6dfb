"""LLM request and token usage accounting."""

from __future__ import annotations

import logging
import math

logger = logging.getLogger("rulewatch")

# Rough characters-per-token ratio used when the backend reports no counts.
CHARS_PER_TOKEN = 3.5


class TokenUsageTracker:
    """Track request counts, token usage, and average latency.

    Counts reset when the process restarts (or on ``reset()``).
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._prompt_tokens = 0
        self._completion_tokens = 0
        self._requests = 0
        self._successes = 0
        self._failures = 0
        self._average_latency_ms = 0.0

    def record_request(
        self,
        *,
        success: bool,
        latency_ms: float,
        prompt: str = "",
        response: str = "",
        prompt_tokens: int | None = None,
        completion_tokens: int | None = None,
    ) -> None:
        self._requests += 1
        if success:
            self._successes += 1
            if prompt_tokens and completion_tokens:
                self._prompt_tokens += prompt_tokens
                self._completion_tokens += completion_tokens
            else:
                self._prompt_tokens += math.ceil(len(prompt) / CHARS_PER_TOKEN)
                self._completion_tokens += math.ceil(len(response) / CHARS_PER_TOKEN)
        else:
            self._failures += 1
        n = self._requests
        self._average_latency_ms = (self._average_latency_ms * (n - 1) + latency_ms) / n
        logger.debug(
            "LLM usage updated: requests=%d total_tokens=%d",
            self._requests,
            self.total_tokens,
        )

    @property
    def total_tokens(self) -> int:
        return self._prompt_tokens + self._completion_tokens

    def summary(self) -> dict:
        return {
            "total_tokens": self.total_tokens,
            "prompt_tokens": self._prompt_tokens,
            "completion_tokens": self._completion_tokens,
            "requests": self._requests,
            "successes": self._successes,
            "failures": self._failures,
            "success_rate": (
                round(self._successes / self._requests, 2) if self._requests else 0.0
            ),
            "average_latency_ms": round(self._average_latency_ms),
        }
