"""Mechanical intent extraction from natural-language rule text.

The compiler asks a small local model to turn "alert me when 5 python files
under src/ change within 10 minutes" into JSON. Small models drop or invent
scope, so the same text is also parsed here with plain regexes. The result
(``RuleIntent``) is treated as ground truth for event types, extensions,
paths, and threshold numbers.
"""

from __future__ import annotations

import re

from .models import EVENT_ORDER, EventType, RuleIntent

LANGUAGE_EXTENSIONS: dict[str, list[str]] = {
    "typescript": [".ts", ".tsx"],
    "javascript": [".js", ".jsx"],
    "python": [".py"],
    "markdown": [".md", ".markdown"],
    "json": [".json"],
    "yaml": [".yml", ".yaml"],
    "yml": [".yml", ".yaml"],
    "html": [".html", ".htm"],
    "css": [".css"],
    "text": [".txt"],
    "csv": [".csv"],
    "java": [".java"],
    "rust": [".rs"],
    "go": [".go"],
    "kotlin": [".kt", ".kts"],
    "csharp": [".cs"],
    "c#": [".cs"],
    "cplusplus": [".cpp", ".hpp", ".h"],
    "c++": [".cpp", ".hpp", ".h"],
    "c": [".c", ".h"],
}

# Scanned in this order; every language mentioned contributes.
_LANGUAGE_MATCHERS: list[tuple[str, re.Pattern[str]]] = [
    (key, re.compile(rf"(?<![\w#+]){re.escape(key)}(?![\w#+])"))
    for key in LANGUAGE_EXTENSIONS
]

STOPWORDS = frozenset(
    {
        "the", "a", "an", "this", "that", "these", "those",
        "inside", "within", "under", "from", "in", "on", "at", "to", "of",
        "for", "with", "without",
        "my", "our", "your", "last", "past", "next", "same",
        "folder", "directory", "dir", "root", "path", "file", "files", "any",
    }
)

_DELETE_RE = re.compile(r"\b(delete|deleted|deleting|remove|removed|unlink)\b")
_CREATE_RE = re.compile(r"\b(create|created|creating|creates|add|added|new)\b")
_MODIFY_RE = re.compile(
    r"\b(modify|modified|modifying|update|updated|updating|edit|edited|editing)\b"
)
_CHANGE_RE = re.compile(r"\b(change|changed|changes|changing)\b")

_EXTENSION_RE = re.compile(r"\.[a-z0-9]{1,6}\b")
_PATH_TOKEN_RE = re.compile(r"([a-z0-9_.-]+[\\/])")
_PATH_PHRASE_RE = re.compile(
    r"\b(?:in|from|under|inside|within)\s+(?:(?:the|a|an)\s+)?([a-z0-9_.-]+)\b"
)

_COUNT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(?:\bat\s+least|\bno\s+less\s+than|>=)\s*(\d+)\b"),
    re.compile(
        r"\b(\d+)\s*(?:or\s+more|or\s+greater|or\s+above|or\s+over|\+)"
        r"\s*(?:files?|events?|changes?|times?)?\b"
    ),
    re.compile(r"\b(\d+)\s+(?:files?|events?|changes?)\b"),
]

_WINDOW_RE = re.compile(
    r"\b(?:within|in|over|during|for)\s+(\d+)\s*"
    r"(seconds?|secs?|minutes?|mins?|hours?|hrs?)\b"
)

EXCLUSION_RE = re.compile(r"(exclude|excluding|except|ignore|ignoring)\b", re.IGNORECASE)


def normalize_path_token(token: str) -> str:
    normalized = token.replace("\\", "/")
    if not normalized.endswith("/"):
        normalized += "/"
    return normalized


def is_stopword_token(token: str) -> bool:
    cleaned = re.sub(r"[\\/]+$", "", token).lower()
    if not cleaned:
        return True
    if cleaned.isdigit():
        return True
    return cleaned in STOPWORDS


def detect_event_types(text: str) -> list[EventType]:
    """Event types named in *text*, in canonical order.

    Explicit verbs always win; the generic "change" bucket means
    created+modified only when no explicit verb is present.
    """
    text = text.lower()
    saw_delete = bool(_DELETE_RE.search(text))
    saw_create = bool(_CREATE_RE.search(text))
    saw_modify = bool(_MODIFY_RE.search(text))
    saw_change = bool(_CHANGE_RE.search(text))

    found: set[EventType] = set()
    if saw_delete:
        found.add(EventType.DELETED)
    if saw_create:
        found.add(EventType.CREATED)
    if saw_modify:
        found.add(EventType.MODIFIED)
    if saw_change:
        if not (saw_delete or saw_create or saw_modify):
            found.update((EventType.CREATED, EventType.MODIFIED))
        else:
            found.add(EventType.MODIFIED)
    return [et for et in EVENT_ORDER if et in found]


def detect_extensions(text: str) -> list[str]:
    text = text.lower()
    extensions: dict[str, None] = dict.fromkeys(m.group(0) for m in _EXTENSION_RE.finditer(text))
    if not extensions:
        for key, pattern in _LANGUAGE_MATCHERS:
            if pattern.search(text):
                extensions.update(dict.fromkeys(LANGUAGE_EXTENSIONS[key]))
    return list(extensions)


def detect_path_fragments(text: str) -> list[str]:
    text = text.lower()
    paths: dict[str, None] = {}
    for match in _PATH_TOKEN_RE.finditer(text):
        token = match.group(1)
        if not is_stopword_token(token):
            paths[normalize_path_token(token)] = None
    for match in _PATH_PHRASE_RE.finditer(text):
        token = match.group(1)
        if not is_stopword_token(token):
            paths[normalize_path_token(token)] = None
    return list(paths)


def parse_threshold_count(text: str) -> int | None:
    """First matching count family wins; non-positive counts are discarded."""
    text = text.lower()
    for pattern in _COUNT_PATTERNS:
        match = pattern.search(text)
        if match:
            count = int(match.group(1))
            if count > 0:
                return count
    return None


def parse_window_seconds(text: str) -> int | None:
    match = _WINDOW_RE.search(text.lower())
    if not match:
        return None
    value = int(match.group(1))
    if value <= 0:
        return None
    unit = match.group(2)
    if unit.startswith(("hour", "hr")):
        return value * 3600
    if unit.startswith("min"):
        return value * 60
    return value


def mentions_exclusion(text: str) -> bool:
    return bool(EXCLUSION_RE.search(text))


def extract_intent(condition: str) -> RuleIntent:
    """Derive the RuleIntent for a raw rule condition.

    Never raises: text with no recognizable signal yields empty lists and
    ``None`` for count/window.
    """
    return RuleIntent(
        event_types=detect_event_types(condition),
        extensions=detect_extensions(condition),
        path_includes=detect_path_fragments(condition),
        count=parse_threshold_count(condition),
        window_seconds=parse_window_seconds(condition),
    )
