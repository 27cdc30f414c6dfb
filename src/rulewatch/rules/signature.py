"""Canonical rule signatures for duplicate detection.

Two compiled rules with the same matching semantics produce the same
signature regardless of array order, case, whitespace, or repeated entries.
"""

from __future__ import annotations

import json
import math
from typing import Any

from .models import CompiledRule, Rule


def normalize_array(values: list[str] | None) -> list[str] | None:
    """Trim, lowercase, dedupe, and sort. Empty results become None."""
    if not values:
        return None
    normalized = {str(v).strip().lower() for v in values}
    normalized.discard("")
    if not normalized:
        return None
    return sorted(normalized)


def _normalize_number(value: Any) -> int | float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def rule_signature_from_compiled(compiled: CompiledRule) -> str:
    match = compiled.match
    normalized_match = {
        key: value
        for key, value in (
            ("pathIncludes", normalize_array(match.path_includes)),
            ("pathExcludes", normalize_array(match.path_excludes)),
            ("extensions", normalize_array(match.extensions)),
            ("eventTypes", normalize_array(match.event_types)),
        )
        if value is not None
    }
    rule_type = compiled.type.value if compiled.type else None
    payload = {
        "type": rule_type,
        "match": normalized_match,
        "windowSeconds": _normalize_number(compiled.window_seconds),
        "count": _normalize_number(compiled.count),
    }
    return json.dumps(payload, separators=(",", ":"))


def rule_signature_from_rule(rule: Rule) -> str:
    return rule_signature_from_compiled(rule.to_compiled())
