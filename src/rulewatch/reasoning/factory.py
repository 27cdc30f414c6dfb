"""Text provider factory — creates the configured provider instance."""

from __future__ import annotations

import logging

from ..config import ReasoningConfig
from .providers.base import TextProvider

logger = logging.getLogger("rulewatch")


def create_provider(config: ReasoningConfig) -> TextProvider | None:
    """Create the configured text provider, or None if not configured."""
    if config.provider == "ollama":
        from .providers.ollama import OllamaProvider

        return OllamaProvider(
            host=config.host,
            model=config.model,
            timeout_seconds=config.timeout_seconds,
        )
    elif config.provider == "openai":
        from .providers.openai_compat import OpenAICompatProvider

        return OpenAICompatProvider(
            api_key=config.api_key,
            model=config.model,
            timeout_seconds=config.timeout_seconds,
        )
    elif config.provider == "openai-compatible":
        from .providers.openai_compat import OpenAICompatProvider

        return OpenAICompatProvider(
            api_key=config.api_key or "not-needed",
            model=config.model,
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
        )
    elif not config.provider:
        return None
    else:
        logger.warning(f"Unknown provider: {config.provider}")
        return None
