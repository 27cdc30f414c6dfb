"""Robust JSON extraction from LLM responses.

Small local models wrap JSON in prose or code fences and often emit
JavaScript-flavoured objects. Extraction is split in two stages:

  1. ``extract_json_snippet``: strip code fences and keep the outermost
     ``{ ... }`` span.
  2. ``parse_json_with_repairs``: strict parse, then one pass of the repair
     pipeline (smart quotes, trailing commas, bare keys, single quotes)
     and a second strict parse.

Each repair is a pure string transform so it can be tested on its own.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z0-9_]+)\s*:")
_SINGLE_QUOTED_RE = re.compile(r"'([^'\\]*(?:\\.[^'\\]*)*)'")


def extract_json_snippet(text: str) -> str | None:
    """Return the outermost ``{...}`` span, or None when there is none."""
    cleaned = _FENCE_RE.sub("", text).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        return None
    return cleaned[start : end + 1]


def normalize_smart_quotes(text: str) -> str:
    return (
        text.replace("“", '"')
        .replace("”", '"')
        .replace("‘", "'")
        .replace("’", "'")
    )


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def quote_bare_keys(text: str) -> str:
    return _BARE_KEY_RE.sub(r'\1"\2":', text)


def convert_single_quotes(text: str) -> str:
    return _SINGLE_QUOTED_RE.sub(r'"\1"', text)


REPAIRS: list[Callable[[str], str]] = [
    normalize_smart_quotes,
    strip_trailing_commas,
    quote_bare_keys,
    convert_single_quotes,
]


def repair_json(text: str) -> str:
    """Apply every repair in order. Best-effort; may still not parse."""
    for repair in REPAIRS:
        text = repair(text)
    return text


def _try_parse(text: str) -> Any | None:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def parse_json_with_repairs(snippet: str) -> Any | None:
    """Parse *snippet* strictly, then once more after repairs. None on failure."""
    parsed = _try_parse(snippet)
    if parsed is not None:
        return parsed
    return _try_parse(repair_json(snippet))
