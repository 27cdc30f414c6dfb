"""Static and intent-consistency checks for compiled rules."""

from __future__ import annotations

import math
from typing import Any

from .intent import extract_intent
from .models import (
    EVENT_ORDER,
    CompiledRule,
    MatchFilter,
    RuleType,
    ValidationIssue,
    ValidationResult,
)

MIN_WINDOW_SECONDS = 10
MAX_WINDOW_SECONDS = 86400
MIN_THRESHOLD_COUNT = 1
MAX_THRESHOLD_COUNT = 1000

_MATCH_ARRAY_FIELDS = (
    ("path_includes", "pathIncludes"),
    ("path_excludes", "pathExcludes"),
    ("extensions", "extensions"),
    ("event_types", "eventTypes"),
)

_CANONICAL_EVENT_TYPES = {et.value for et in EVENT_ORDER}


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _check_range(
    errors: list[ValidationIssue], field: str, value: Any, low: int, high: int
) -> None:
    if not _is_finite_number(value):
        errors.append(ValidationIssue(field=field, message=f"{field} must be a number"))
    elif isinstance(value, float) and not value.is_integer():
        errors.append(
            ValidationIssue(field=field, message=f"{field} must be a whole number")
        )
    elif value < low or value > high:
        errors.append(
            ValidationIssue(
                field=field, message=f"{field} must be between {low} and {high}"
            )
        )


def validate_match_filter(match: MatchFilter | None) -> list[ValidationIssue]:
    errors: list[ValidationIssue] = []
    if match is None:
        return [ValidationIssue(field="match", message="match filter is required")]

    for attr, label in _MATCH_ARRAY_FIELDS:
        value = getattr(match, attr)
        if value is not None and (
            not isinstance(value, list) or any(not isinstance(v, str) for v in value)
        ):
            errors.append(
                ValidationIssue(field=label, message=f"{label} must be an array of strings")
            )

    for ext in match.extensions or []:
        if isinstance(ext, str) and not ext.startswith("."):
            errors.append(
                ValidationIssue(
                    field="extensions", message=f'Extension "{ext}" must start with "."'
                )
            )

    for event_type in match.event_types or []:
        if event_type not in _CANONICAL_EVENT_TYPES:
            errors.append(
                ValidationIssue(
                    field="eventTypes", message=f'Invalid event type "{event_type}"'
                )
            )
    return errors


def validate_compiled_rule(rule: CompiledRule) -> ValidationResult:
    errors: list[ValidationIssue] = []

    if rule.type is None:
        errors.append(ValidationIssue(field="type", message="Rule type is required"))

    errors.extend(validate_match_filter(rule.match))

    if rule.type == RuleType.THRESHOLD:
        _check_range(
            errors, "windowSeconds", rule.window_seconds,
            MIN_WINDOW_SECONDS, MAX_WINDOW_SECONDS,
        )
        _check_range(
            errors, "count", rule.count, MIN_THRESHOLD_COUNT, MAX_THRESHOLD_COUNT
        )

    # Anti-runaway guard: every rule must be scoped by path or extension.
    match = rule.match or MatchFilter()
    if not match.path_includes and not match.extensions:
        errors.append(
            ValidationIssue(
                field="match",
                message="Rule is too broad. Add pathIncludes or extensions to narrow scope.",
            )
        )

    return ValidationResult(valid=not errors, errors=errors)


def validate_compiled_rule_with_intent(
    rule: CompiledRule, condition: str
) -> ValidationResult:
    """Static checks plus a field-by-field comparison with the text's intent.

    Every mismatched field is reported, not just the first.
    """
    errors = list(validate_compiled_rule(rule).errors)
    intent = extract_intent(condition)
    match = rule.match or MatchFilter()

    if intent.threshold_requested:
        if rule.type != RuleType.THRESHOLD:
            errors.append(
                ValidationIssue(
                    field="type",
                    message="Rule mentions a count and time window but compiled rule is not threshold.",
                )
            )
        else:
            if rule.count != intent.count:
                errors.append(
                    ValidationIssue(
                        field="count",
                        message=f"Rule mentions count {intent.count} but compiled count is {rule.count}.",
                    )
                )
            if rule.window_seconds != intent.window_seconds:
                errors.append(
                    ValidationIssue(
                        field="windowSeconds",
                        message=(
                            f"Rule mentions window {intent.window_seconds}s but "
                            f"compiled window is {rule.window_seconds}s."
                        ),
                    )
                )

    if intent.event_types:
        wanted = [et.value for et in intent.event_types]
        compiled_types = [str(et).lower() for et in match.event_types or []]
        if not compiled_types:
            errors.append(
                ValidationIssue(
                    field="eventTypes",
                    message="Rule mentions specific events but compiled rule has none.",
                )
            )
        else:
            missing = [et for et in wanted if et not in compiled_types]
            extra = [et for et in compiled_types if et not in wanted]
            if missing:
                errors.append(
                    ValidationIssue(
                        field="eventTypes",
                        message=f"Rule mentions {', '.join(missing)} but compiled rule omitted them.",
                    )
                )
            if extra:
                errors.append(
                    ValidationIssue(
                        field="eventTypes",
                        message=f"Rule mentions {', '.join(wanted)} but compiled includes {', '.join(extra)}.",
                    )
                )

    if intent.extensions:
        compiled_exts = [e.lower() for e in match.extensions or []]
        wanted_exts = [e.lower() for e in intent.extensions]
        missing = [e for e in intent.extensions if e.lower() not in compiled_exts]
        if missing:
            errors.append(
                ValidationIssue(
                    field="extensions",
                    message=f"Rule mentions {', '.join(missing)} but compiled rule omitted them.",
                )
            )
        extras = [e for e in match.extensions or [] if e.lower() not in wanted_exts]
        if extras:
            errors.append(
                ValidationIssue(
                    field="extensions",
                    message=f"Compiled rule added unexpected extensions: {', '.join(extras)}.",
                )
            )

    if intent.path_includes:
        compiled_paths = match.path_includes or []
        missing = [
            inc for inc in intent.path_includes
            if not any(inc.lower() in p.lower() for p in compiled_paths)
        ]
        if missing:
            errors.append(
                ValidationIssue(
                    field="pathIncludes",
                    message=f"Rule mentions {', '.join(missing)} but compiled rule omitted them.",
                )
            )
        extras = [
            p for p in compiled_paths
            if not any(inc.lower() in p.lower() for inc in intent.path_includes)
        ]
        if extras:
            errors.append(
                ValidationIssue(
                    field="pathIncludes",
                    message=f"Compiled rule added unexpected paths: {', '.join(extras)}.",
                )
            )

    return ValidationResult(valid=not errors, errors=errors)
