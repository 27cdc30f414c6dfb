"""Reasoning — rule compilation prompts and pluggable LLM providers."""

from .factory import create_provider
from .prompts import build_compile_prompt

__all__ = [
    "build_compile_prompt",
    "create_provider",
]
