"""Rule compiler — natural language → CompiledRule via an LLM provider.

The model supplies structure; ``extract_intent`` supplies ground truth about
scope. After parsing and normalizing the model's JSON, the alignment pass
overwrites or strips every field the user's own words settle.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from ..reasoning.prompts import build_compile_prompt
from ..reasoning.providers.base import TextProvider
from ..reasoning.providers.json_extract import (
    extract_json_snippet,
    parse_json_with_repairs,
)
from .intent import extract_intent, mentions_exclusion
from .models import (
    CompiledRule,
    CompileReject,
    CompileResult,
    EventType,
    MatchFilter,
    RuleType,
)

logger = logging.getLogger("rulewatch")

COMPILE_RETRIES = 2

EVENT_TYPE_SYNONYMS: dict[str, EventType] = {
    "add": EventType.CREATED,
    "added": EventType.CREATED,
    "create": EventType.CREATED,
    "created": EventType.CREATED,
    "new": EventType.CREATED,
    "change": EventType.MODIFIED,
    "changed": EventType.MODIFIED,
    "modify": EventType.MODIFIED,
    "modified": EventType.MODIFIED,
    "update": EventType.MODIFIED,
    "updated": EventType.MODIFIED,
    "delete": EventType.DELETED,
    "deleted": EventType.DELETED,
    "remove": EventType.DELETED,
    "removed": EventType.DELETED,
    "unlink": EventType.DELETED,
}


def normalize_event_type(value: str) -> EventType | None:
    return EVENT_TYPE_SYNONYMS.get(value.strip().lower())


def normalize_rule_type(value: Any) -> RuleType | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    if normalized in (RuleType.PATTERN.value, RuleType.THRESHOLD.value):
        return RuleType(normalized)
    return None


def coerce_number(value: Any) -> int | float | None:
    """Number(value) semantics: non-numeric or non-finite becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def _clean_strings(values: Any) -> list[str] | None:
    if not isinstance(values, list):
        return None
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


def normalize_match_filter(match: Any) -> MatchFilter:
    """Filter the model's match object down to trimmed, typed entries."""
    result = MatchFilter()
    if not isinstance(match, dict):
        return result

    result.path_includes = _clean_strings(match.get("pathIncludes"))
    result.path_excludes = _clean_strings(match.get("pathExcludes"))

    extensions = _clean_strings(match.get("extensions"))
    if extensions is not None:
        result.extensions = [e if e.startswith(".") else f".{e}" for e in extensions]

    event_types = match.get("eventTypes")
    if isinstance(event_types, list):
        mapped = [
            normalize_event_type(e) for e in event_types if isinstance(e, str)
        ]
        normalized = [e.value for e in mapped if e is not None]
        if normalized:
            result.event_types = normalized
    return result


def parse_compiler_response(response: str) -> CompileResult:
    """Turn raw model output into a CompileResult (no intent alignment)."""
    snippet = extract_json_snippet(response)
    if snippet is None:
        return CompileResult(
            reject=CompileReject(
                reason="Invalid response", details="No JSON found in LLM response"
            ),
            raw_response=response,
        )

    parsed = parse_json_with_repairs(snippet)
    if not isinstance(parsed, dict):
        return CompileResult(
            reject=CompileReject(
                reason="Invalid JSON", details="Failed to parse LLM response JSON"
            ),
            raw_response=response,
        )

    reject = parsed.get("reject")
    # An empty object or list still counts as a reject.
    if isinstance(reject, (dict, list)) or reject:
        if isinstance(reject, dict):
            reason = reject.get("reason")
            details = reject.get("details")
            return CompileResult(
                reject=CompileReject(
                    reason=reason if isinstance(reason, str) else "Rejected",
                    details=details if isinstance(details, str) else None,
                ),
                raw_response=response,
            )
        return CompileResult(
            reject=CompileReject(
                reason=reject if isinstance(reject, str) else "Rejected"
            ),
            raw_response=response,
        )

    rule_type = normalize_rule_type(parsed.get("type"))
    if rule_type is None:
        return CompileResult(
            reject=CompileReject(
                reason="Invalid rule type", details="Type must be pattern or threshold"
            ),
            raw_response=response,
        )

    rule = CompiledRule(type=rule_type, match=normalize_match_filter(parsed.get("match")))
    if rule_type == RuleType.THRESHOLD:
        rule.window_seconds = coerce_number(parsed.get("windowSeconds"))
        rule.count = coerce_number(parsed.get("count"))
    return CompileResult(rule=rule, raw_response=response)


def align_rule_to_intent(
    condition: str, rule: CompiledRule, log: logging.Logger | None = None
) -> CompiledRule:
    """Correct the model's rule against what the condition text literally says."""
    log = log or logger
    intent = extract_intent(condition)
    aligned = rule.model_copy(deep=True)
    match = aligned.match
    adjusted = False

    if intent.threshold_requested:
        aligned.type = RuleType.THRESHOLD
        aligned.count = intent.count
        aligned.window_seconds = intent.window_seconds
        adjusted = True
    elif aligned.type == RuleType.THRESHOLD:
        aligned.type = RuleType.PATTERN
        aligned.count = None
        aligned.window_seconds = None
        adjusted = True

    if intent.event_types:
        match.event_types = [et.value for et in intent.event_types]
        adjusted = True

    if intent.extensions:
        match.extensions = list(intent.extensions)
        adjusted = True
    elif match.extensions:
        match.extensions = None
        adjusted = True

    if intent.path_includes:
        trimmed = (p.strip() for p in intent.path_includes)
        match.path_includes = list(dict.fromkeys(p for p in trimmed if p))
        adjusted = True
    elif match.path_includes:
        match.path_includes = None
        adjusted = True

    if not mentions_exclusion(condition) and match.path_excludes:
        match.path_excludes = None
        adjusted = True

    if adjusted:
        log.info(
            "Rule compiler: adjusted output to match user intent "
            "(condition=%r, intent=%s)",
            condition,
            intent.to_json_dict(),
        )
    return aligned


class RuleCompiler:
    """Compile rule text through a TextProvider, then align it to intent."""

    def __init__(
        self,
        provider: TextProvider,
        retries: int = COMPILE_RETRIES,
        log: logging.Logger | None = None,
    ):
        self._provider = provider
        self._retries = retries
        self._log = log or logger

    async def compile(self, condition: str) -> CompileResult:
        prompt = build_compile_prompt(condition)
        try:
            response = await self._provider.generate(prompt, retries=self._retries)
        except Exception as e:
            self._log.error("Rule compilation failed: %s", e)
            return CompileResult(
                reject=CompileReject(
                    reason="LLM unavailable", details="Rule compilation failed"
                )
            )

        result = parse_compiler_response(response)
        if result.reject or result.rule is None:
            return result
        return CompileResult(
            rule=align_rule_to_intent(condition, result.rule, self._log),
            raw_response=response,
        )
