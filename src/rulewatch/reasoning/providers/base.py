"""Text provider abstraction — every LLM backend implements this interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class TextProvider(ABC):
    """Abstract interface for text-generation LLM providers."""

    @abstractmethod
    async def generate(self, prompt: str, retries: int = 2) -> str:
        """Send a prompt and return the raw text response.

        Retries up to ``retries`` attempts in total, then raises.
        """
        ...

    @abstractmethod
    async def check_health(self) -> bool:
        """Return True when the backend is reachable and the model is usable."""
        ...

    async def close(self) -> None:
        """Release HTTP sessions. Override in subclasses that hold one."""

    def usage_summary(self) -> dict:
        """Token/request accounting. Empty for providers that do not track it."""
        return {}

    @property
    @abstractmethod
    def provider_name(self) -> str: ...

    @property
    @abstractmethod
    def model_name(self) -> str: ...
