"""Tests for canonical rule signatures (duplicate detection)."""

from __future__ import annotations

import json

from rulewatch.rules.models import CompiledRule, MatchFilter, Rule, RuleType
from rulewatch.rules.signature import (
    normalize_array,
    rule_signature_from_compiled,
    rule_signature_from_rule,
)


def _compiled(**match) -> CompiledRule:
    return CompiledRule(type=RuleType.PATTERN, match=MatchFilter(**match))


class TestNormalizeArray:
    def test_trims_lowercases_dedupes_sorts(self):
        assert normalize_array([" .TS", ".js", ".ts "]) == [".js", ".ts"]

    def test_empty_becomes_none(self):
        assert normalize_array([]) is None
        assert normalize_array(None) is None
        assert normalize_array(["  ", ""]) is None


class TestSignature:
    def test_order_and_case_insensitive(self):
        a = _compiled(extensions=[".TS", ".js"], path_includes=["src/"])
        b = _compiled(extensions=[".js", ".ts", ".js"], path_includes=[" SRC/ "])
        assert rule_signature_from_compiled(a) == rule_signature_from_compiled(b)

    def test_oversized_numbers_do_not_raise(self):
        rule = CompiledRule(
            type=RuleType.THRESHOLD,
            match=MatchFilter(extensions=[".py"]),
            window_seconds=60,
            count=10**400,
        )
        sig = json.loads(rule_signature_from_compiled(rule))
        assert sig["windowSeconds"] == 60
        assert sig["count"] is None

    def test_empty_array_equals_missing(self):
        a = _compiled(extensions=[".md"], event_types=[])
        b = _compiled(extensions=[".md"])
        assert rule_signature_from_compiled(a) == rule_signature_from_compiled(b)

    def test_different_scope_differs(self):
        a = _compiled(extensions=[".md"])
        b = _compiled(extensions=[".txt"])
        assert rule_signature_from_compiled(a) != rule_signature_from_compiled(b)

    def test_integral_float_equals_int(self):
        a = CompiledRule(
            type=RuleType.THRESHOLD,
            match=MatchFilter(extensions=[".py"]),
            window_seconds=600.0,
            count=5,
        )
        b = a.model_copy(update={"window_seconds": 600, "count": 5.0})
        assert rule_signature_from_compiled(a) == rule_signature_from_compiled(b)

    def test_payload_shape(self):
        sig = rule_signature_from_compiled(_compiled(path_includes=["docs/"]))
        assert json.loads(sig) == {
            "type": "pattern",
            "match": {"pathIncludes": ["docs/"]},
            "windowSeconds": None,
            "count": None,
        }

    def test_rule_and_compiled_agree(self):
        rule = Rule(
            id="rule_1",
            name="Docs",
            type=RuleType.THRESHOLD,
            match=MatchFilter(path_includes=["docs/"]),
            window_seconds=60,
            count=3,
        )
        compiled = CompiledRule(
            type=RuleType.THRESHOLD,
            match=MatchFilter(path_includes=["Docs/"]),
            window_seconds=60,
            count=3,
        )
        assert rule_signature_from_rule(rule) == rule_signature_from_compiled(compiled)
