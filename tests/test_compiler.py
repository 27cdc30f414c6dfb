"""Tests for the LLM rule compiler and its intent alignment pass."""

from __future__ import annotations

import json
from unittest.mock import ANY, AsyncMock, MagicMock

import pytest

from rulewatch.reasoning.prompts import build_compile_prompt
from rulewatch.rules.compiler import (
    RuleCompiler,
    align_rule_to_intent,
    coerce_number,
    normalize_match_filter,
    parse_compiler_response,
)
from rulewatch.rules.models import CompiledRule, EventType, MatchFilter, RuleType

ENV_CONDITION = "notify when a .env file is deleted"
SRC_CONDITION = "alert me when 5 files under src/ change within 10 minutes"


def _provider(response: str | None = None, error: Exception | None = None) -> MagicMock:
    provider = MagicMock()
    if error is not None:
        provider.generate = AsyncMock(side_effect=error)
    else:
        provider.generate = AsyncMock(return_value=response)
    return provider


class TestNormalization:
    def test_coerce_number(self):
        assert coerce_number("600") == 600
        assert isinstance(coerce_number(600.0), int)
        assert coerce_number(2.5) == 2.5
        assert coerce_number("abc") is None
        assert coerce_number(True) is None
        assert coerce_number(None) is None

    def test_coerce_number_overflow(self):
        assert coerce_number(10**400) is None
        assert coerce_number("1e400") is None
        assert coerce_number(float("inf")) is None

    def test_extensions_get_leading_dot(self):
        match = normalize_match_filter({"extensions": ["ts", " .md ", "", 3]})
        assert match.extensions == [".ts", ".md"]

    def test_event_type_synonyms(self):
        match = normalize_match_filter({"eventTypes": ["Add", "removed", "bogus", 1]})
        assert match.event_types == ["created", "deleted"]

    def test_unknown_event_types_dropped_entirely(self):
        assert normalize_match_filter({"eventTypes": ["renamed"]}).event_types is None

    def test_non_list_fields_ignored(self):
        match = normalize_match_filter({"pathIncludes": "src/", "extensions": None})
        assert match.path_includes is None
        assert match.extensions is None

    def test_non_dict_match(self):
        assert normalize_match_filter("src/") == MatchFilter()


class TestParseResponse:
    def test_no_json(self):
        result = parse_compiler_response("Sorry, I can't do that.")
        assert result.rule is None
        assert result.reject.reason == "Invalid response"
        assert result.raw_response == "Sorry, I can't do that."

    def test_invalid_json(self):
        result = parse_compiler_response("{not: valid: json}")
        assert result.reject.reason == "Invalid JSON"

    def test_reject_object(self):
        text = json.dumps({"reject": {"reason": "Ambiguous", "details": "Which folder?"}})
        result = parse_compiler_response(text)
        assert result.reject.reason == "Ambiguous"
        assert result.reject.details == "Which folder?"

    def test_reject_object_without_reason(self):
        result = parse_compiler_response('{"reject": {"details": 5}}')
        assert result.reject.reason == "Rejected"
        assert result.reject.details is None

    def test_reject_string(self):
        result = parse_compiler_response('{"reject": "too vague"}')
        assert result.reject.reason == "too vague"

    @pytest.mark.parametrize("reject", ["{}", "[]", "true", "1"])
    def test_empty_or_non_string_reject(self, reject):
        result = parse_compiler_response(
            '{"reject": ' + reject + ', "type": "pattern", "match": {}}'
        )
        assert result.rule is None
        assert result.reject.reason == "Rejected"

    @pytest.mark.parametrize("reject", ["false", "null", '""', "0"])
    def test_falsy_reject_is_ignored(self, reject):
        result = parse_compiler_response(
            '{"reject": ' + reject + ', "type": "pattern", "match": {}}'
        )
        assert result.reject is None
        assert result.rule.type == RuleType.PATTERN

    def test_huge_threshold_numbers_become_none(self):
        huge = "1" + "0" * 400
        result = parse_compiler_response(
            '{"type": "threshold", "match": {"pathIncludes": ["src/"]}, '
            f'"windowSeconds": {huge}, "count": {huge}}}'
        )
        assert result.reject is None
        assert result.rule.window_seconds is None
        assert result.rule.count is None

    def test_invalid_type(self):
        result = parse_compiler_response('{"type": "regex", "match": {}}')
        assert result.reject.reason == "Invalid rule type"

    def test_fenced_threshold_with_string_numbers(self):
        text = (
            "```json\n"
            '{"type": "Threshold", "match": {"pathIncludes": ["src/"]}, '
            '"windowSeconds": "600", "count": "5"}\n```'
        )
        result = parse_compiler_response(text)
        assert result.reject is None
        assert result.rule.type == RuleType.THRESHOLD
        assert result.rule.window_seconds == 600
        assert result.rule.count == 5

    def test_pattern_ignores_threshold_fields(self):
        text = '{"type": "pattern", "match": {}, "windowSeconds": 60, "count": 2}'
        result = parse_compiler_response(text)
        assert result.rule.window_seconds is None
        assert result.rule.count is None


class TestAlignment:
    def test_threshold_intent_overrides_pattern(self):
        rule = CompiledRule(type=RuleType.PATTERN, match=MatchFilter())
        aligned = align_rule_to_intent(SRC_CONDITION, rule)
        assert aligned.type == RuleType.THRESHOLD
        assert aligned.count == 5
        assert aligned.window_seconds == 600
        assert aligned.match.path_includes == ["src/"]
        assert aligned.match.event_types == ["created", "modified"]

    def test_threshold_without_intent_becomes_pattern(self):
        rule = CompiledRule(
            type=RuleType.THRESHOLD,
            match=MatchFilter(extensions=[".env"]),
            window_seconds=60,
            count=3,
        )
        aligned = align_rule_to_intent(ENV_CONDITION, rule)
        assert aligned.type == RuleType.PATTERN
        assert aligned.count is None
        assert aligned.window_seconds is None

    def test_unrequested_scope_stripped(self):
        rule = CompiledRule(
            type=RuleType.PATTERN,
            match=MatchFilter(
                extensions=[".ts"],
                path_includes=["lib/"],
                path_excludes=["node_modules/"],
            ),
        )
        aligned = align_rule_to_intent(SRC_CONDITION, rule)
        assert aligned.match.extensions is None
        assert aligned.match.path_includes == ["src/"]
        assert aligned.match.path_excludes is None

    def test_excludes_kept_when_mentioned(self):
        rule = CompiledRule(
            type=RuleType.PATTERN,
            match=MatchFilter(extensions=[".ts"], path_excludes=["dist/"]),
        )
        aligned = align_rule_to_intent("when .ts files change except in dist", rule)
        assert aligned.match.path_excludes == ["dist/"]

    def test_original_not_mutated(self):
        rule = CompiledRule(type=RuleType.PATTERN, match=MatchFilter(extensions=[".txt"]))
        align_rule_to_intent(ENV_CONDITION, rule)
        assert rule.match.extensions == [".txt"]

    def test_adjustment_logged(self):
        log = MagicMock()
        rule = CompiledRule(type=RuleType.PATTERN, match=MatchFilter(extensions=[".txt"]))
        align_rule_to_intent(ENV_CONDITION, rule, log)
        log.info.assert_called_once()

    def test_nothing_to_adjust_is_silent(self):
        log = MagicMock()
        rule = CompiledRule(type=RuleType.PATTERN, match=MatchFilter())
        aligned = align_rule_to_intent("watch the project", rule, log)
        assert aligned == rule
        log.info.assert_not_called()


class TestRuleCompiler:
    @pytest.mark.asyncio
    async def test_compile_aligns_output(self):
        response = json.dumps(
            {
                "type": "pattern",
                "match": {"extensions": ["env", ".txt"], "eventTypes": ["removed", "changed"]},
            }
        )
        provider = _provider(response)
        result = await RuleCompiler(provider, retries=3).compile(ENV_CONDITION)

        provider.generate.assert_awaited_once_with(ANY, retries=3)
        prompt = provider.generate.await_args.args[0]
        assert ENV_CONDITION in prompt
        assert result.reject is None
        assert result.rule.match.extensions == [".env"]
        assert result.rule.match.event_types == [EventType.DELETED.value]
        assert result.raw_response == response

    @pytest.mark.asyncio
    async def test_reject_passes_through(self):
        provider = _provider('{"reject": {"reason": "Not a file rule"}}')
        result = await RuleCompiler(provider).compile("what's the weather tomorrow")
        assert result.rule is None
        assert result.reject.reason == "Not a file rule"

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_reject(self):
        provider = _provider(error=ConnectionError("refused"))
        result = await RuleCompiler(provider).compile(ENV_CONDITION)
        assert result.rule is None
        assert result.reject.reason == "LLM unavailable"
        assert result.reject.details == "Rule compilation failed"


class TestPrompt:
    def test_condition_embedded_and_escaped(self):
        prompt = build_compile_prompt('when "secrets" files are deleted')
        assert '"when \\"secrets\\" files are deleted"' in prompt
        assert '"reject"' in prompt
        assert prompt.rstrip().endswith("JSON response only:")
