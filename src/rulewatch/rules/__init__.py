"""File-watch rules — intent, compilation, validation, storage, and evaluation."""

from .compiler import RuleCompiler
from .engine import RulesEngine
from .intent import extract_intent
from .models import (
    CompiledRule,
    CompileReject,
    CompileResult,
    EventType,
    FileEvent,
    MatchFilter,
    Rule,
    RuleMatch,
    RuleSource,
    RuleType,
)
from .store import RulesStore
from .validator import validate_compiled_rule, validate_compiled_rule_with_intent

__all__ = [
    "CompileReject",
    "CompileResult",
    "CompiledRule",
    "EventType",
    "FileEvent",
    "MatchFilter",
    "Rule",
    "RuleCompiler",
    "RuleMatch",
    "RuleSource",
    "RuleType",
    "RulesEngine",
    "RulesStore",
    "extract_intent",
    "validate_compiled_rule",
    "validate_compiled_rule_with_intent",
]
