"""Text providers — Ollama (default) and OpenAI-compatible services."""

from .base import TextProvider
from .json_extract import extract_json_snippet, parse_json_with_repairs

__all__ = [
    "TextProvider",
    "extract_json_snippet",
    "parse_json_with_repairs",
]
