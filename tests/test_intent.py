"""Tests for regex-based intent extraction from rule text."""

from __future__ import annotations

from rulewatch.rules.intent import (
    detect_event_types,
    detect_extensions,
    detect_path_fragments,
    extract_intent,
    mentions_exclusion,
    parse_threshold_count,
    parse_window_seconds,
)
from rulewatch.rules.models import EventType


class TestEventTypes:
    def test_delete_verbs(self):
        assert detect_event_types("notify when a file is removed") == [EventType.DELETED]

    def test_create_verbs(self):
        assert detect_event_types("when new files are added") == [EventType.CREATED]

    def test_modify_verbs(self):
        assert detect_event_types("when config is edited") == [EventType.MODIFIED]

    def test_generic_change_means_created_and_modified(self):
        assert detect_event_types("when anything changes") == [
            EventType.CREATED,
            EventType.MODIFIED,
        ]

    def test_change_with_explicit_verb_adds_modified_only(self):
        assert detect_event_types("when files are deleted or changed") == [
            EventType.MODIFIED,
            EventType.DELETED,
        ]

    def test_canonical_order(self):
        result = detect_event_types("deleted, modified or created")
        assert result == [EventType.CREATED, EventType.MODIFIED, EventType.DELETED]

    def test_case_insensitive(self):
        assert detect_event_types("DELETE anything") == [EventType.DELETED]

    def test_no_signal(self):
        assert detect_event_types("watch the docs") == []


class TestExtensions:
    def test_literal_extension(self):
        assert detect_extensions("when a .env file is deleted") == [".env"]

    def test_multiple_literals_in_order(self):
        assert detect_extensions("any .ts or .tsx file") == [".ts", ".tsx"]

    def test_language_names(self):
        assert detect_extensions("when markdown files change") == [".md", ".markdown"]

    def test_literal_suppresses_language_table(self):
        assert detect_extensions("python files ending in .pyi") == [".pyi"]

    def test_csharp_does_not_trigger_c(self):
        assert detect_extensions("when c# files change") == [".cs"]

    def test_cplusplus_does_not_trigger_c(self):
        assert detect_extensions("when c++ sources are edited") == [
            ".cpp",
            ".hpp",
            ".h",
        ]

    def test_language_inside_word_ignored(self):
        assert detect_extensions("when a google doc changes") == []

    def test_go_standalone(self):
        assert detect_extensions("when go files are created") == [".go"]


class TestPathFragments:
    def test_slash_token(self):
        assert detect_path_fragments("anything under src/components/") == [
            "src/",
            "components/",
        ]

    def test_phrase_after_preposition(self):
        assert detect_path_fragments("files in docs are modified") == ["docs/"]

    def test_article_is_skipped(self):
        assert detect_path_fragments("files inside the tests folder") == ["tests/"]

    def test_stopwords_dropped(self):
        assert detect_path_fragments("anything in the folder") == []

    def test_numbers_dropped(self):
        assert detect_path_fragments("5 changes within 10 minutes") == []

    def test_backslash_normalized(self):
        assert detect_path_fragments("anything in lib\\ changes") == ["lib/"]

    def test_last_is_a_stopword(self):
        assert detect_path_fragments("edits within the last hour") == []


class TestThresholdNumbers:
    def test_at_least(self):
        assert parse_threshold_count("at least 3 changes") == 3

    def test_or_more(self):
        assert parse_threshold_count("10 or more files") == 10

    def test_plus(self):
        assert parse_threshold_count("20+ events") == 20

    def test_plain_count_noun(self):
        assert parse_threshold_count("when 5 files change") == 5

    def test_zero_discarded(self):
        assert parse_threshold_count("0 files") is None

    def test_no_count(self):
        assert parse_threshold_count("when a file is deleted") is None

    def test_window_minutes(self):
        assert parse_window_seconds("within 10 minutes") == 600

    def test_window_hours(self):
        assert parse_window_seconds("over 2 hrs") == 7200

    def test_window_seconds(self):
        assert parse_window_seconds("in 30 secs") == 30

    def test_window_requires_preposition(self):
        assert parse_window_seconds("10 minutes") is None

    def test_zero_window_discarded(self):
        assert parse_window_seconds("within 0 minutes") is None


class TestExclusion:
    def test_mentions(self):
        assert mentions_exclusion("anything except node_modules")
        assert mentions_exclusion("Ignoring build output")

    def test_absent(self):
        assert not mentions_exclusion("when docs change")


class TestExtractIntent:
    def test_threshold_condition(self):
        intent = extract_intent("alert me when 5 files under src/ change within 10 minutes")
        assert intent.count == 5
        assert intent.window_seconds == 600
        assert intent.threshold_requested
        assert intent.event_types == [EventType.CREATED, EventType.MODIFIED]
        assert intent.path_includes == ["src/"]
        assert intent.extensions == []

    def test_pattern_condition(self):
        intent = extract_intent("notify when a .env file is deleted")
        assert intent.event_types == [EventType.DELETED]
        assert intent.extensions == [".env"]
        assert intent.path_includes == []
        assert not intent.threshold_requested

    def test_count_without_window_is_not_threshold(self):
        intent = extract_intent("when 5 files are deleted")
        assert intent.count == 5
        assert intent.window_seconds is None
        assert not intent.threshold_requested

    def test_language_pattern_example(self):
        intent = extract_intent("Alert when TypeScript files change")
        assert {".ts", ".tsx"} <= set(intent.extensions)
        assert intent.event_types == [EventType.CREATED, EventType.MODIFIED]
        assert intent.path_includes == []
        assert not intent.threshold_requested

    def test_tests_folder_threshold_example(self):
        intent = extract_intent(
            "If 3 or more files under __tests__/ are changed within 5 minutes"
        )
        assert intent.count == 3
        assert intent.window_seconds == 300
        assert intent.threshold_requested
        assert "__tests__/" in intent.path_includes
        assert intent.event_types == [EventType.CREATED, EventType.MODIFIED]
        assert intent.extensions == []

    def test_empty_text(self):
        intent = extract_intent("")
        assert intent.event_types == []
        assert intent.extensions == []
        assert intent.path_includes == []
        assert intent.count is None
        assert intent.window_seconds is None
