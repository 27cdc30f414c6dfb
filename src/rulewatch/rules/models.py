"""Pydantic models for file events, rules, compiled rules, and matches.

Persisted and wire models use camelCase aliases so the rules file and the
HTTP API keep the ``{"pathIncludes": [...], "windowSeconds": 600}`` shape.
Python code uses the snake_case attribute names.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class EventType(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


EVENT_ORDER: list[EventType] = [EventType.CREATED, EventType.MODIFIED, EventType.DELETED]


class RuleType(str, Enum):
    PATTERN = "pattern"
    THRESHOLD = "threshold"


class RuleSource(str, Enum):
    LLM = "llm"
    MANUAL = "manual"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        """Serialize with camelCase keys, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FileEvent(CamelModel):
    """One debounced change reported by the watcher."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    type: EventType
    path: str  # Relative to the watch dir, forward slashes
    timestamp: int = Field(default_factory=now_ms)


class MatchFilter(CamelModel):
    path_includes: list[str] | None = None
    path_excludes: list[str] | None = None
    extensions: list[str] | None = None  # Leading dot, e.g. ".ts"
    event_types: list[str] | None = None  # Values of EventType


class CompiledRule(CamelModel):
    """Structured matcher produced by the compiler (or supplied manually)."""

    type: RuleType | None = None
    match: MatchFilter = Field(default_factory=MatchFilter)
    window_seconds: int | float | None = None
    count: int | float | None = None


class CompileReject(CamelModel):
    reason: str
    details: str | None = None


class CompileResult(CamelModel):
    rule: CompiledRule | None = None
    reject: CompileReject | None = None
    raw_response: str | None = None


class Rule(CamelModel):
    id: str
    name: str
    description: str = ""
    enabled: bool = True
    created_at: int = Field(default_factory=now_ms)
    last_matched: int | None = None
    match_count: int = Field(default=0, ge=0)
    type: RuleType
    match: MatchFilter = Field(default_factory=MatchFilter)
    action: Literal["notify"] = "notify"
    source: RuleSource = RuleSource.MANUAL
    original_condition: str | None = None
    window_seconds: int | None = None  # Threshold rules only
    count: int | None = None  # Threshold rules only

    def to_compiled(self) -> CompiledRule:
        threshold = self.type == RuleType.THRESHOLD
        return CompiledRule(
            type=self.type,
            match=self.match,
            window_seconds=self.window_seconds if threshold else None,
            count=self.count if threshold else None,
        )


class RuleUpdate(CamelModel):
    """The only fields that may change after a rule is stored."""

    name: str | None = None
    description: str | None = None
    enabled: bool | None = None


class RuleIntent(CamelModel):
    """Ground-truth constraints derived mechanically from rule text."""

    event_types: list[EventType] = Field(default_factory=list)
    extensions: list[str] = Field(default_factory=list)
    path_includes: list[str] = Field(default_factory=list)
    count: int | None = None
    window_seconds: int | None = None

    @property
    def threshold_requested(self) -> bool:
        return self.count is not None and self.window_seconds is not None


class RuleMatch(CamelModel):
    rule_id: str
    rule_name: str
    rule_type: RuleType
    timestamp: int
    summary: str
    reason: str | None = None
    path: str | None = None
    event_type: EventType | None = None
    count: int | None = None
    window_seconds: int | None = None


class EngineStats(CamelModel):
    events_observed: int = 0
    rules_evaluated: int = 0
    matches: int = 0


class ValidationIssue(CamelModel):
    field: str
    message: str


class ValidationResult(CamelModel):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
