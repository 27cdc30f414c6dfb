"""Rules engine — evaluates file events against stored rules."""

from __future__ import annotations

import logging
import os
import posixpath
from collections import deque
from pathlib import Path

from ..exceptions import StoreError
from ..security import PathGuard
from .models import (
    CompiledRule,
    EngineStats,
    FileEvent,
    MatchFilter,
    Rule,
    RuleMatch,
    RuleSource,
    RuleType,
    RuleUpdate,
)
from .store import RulesStore

logger = logging.getLogger("rulewatch")


def file_extension(path: str) -> str:
    """Lower-cased extension; a bare dotfile such as ``.env`` is its own extension."""
    name = posixpath.basename(path)
    extension = posixpath.splitext(name)[1]
    if not extension and name.startswith(".") and name.count(".") == 1:
        extension = name
    return extension.lower()


def matches_filter(event: FileEvent, match: MatchFilter) -> bool:
    """All present criteria must hold; an empty filter matches everything."""
    normalized_path = event.path.lower()

    if match.path_excludes:
        if any(exc.lower() in normalized_path for exc in match.path_excludes):
            return False

    if match.path_includes:
        if not any(inc.lower() in normalized_path for inc in match.path_includes):
            return False

    if match.extensions:
        extension = file_extension(event.path)
        if extension not in {ext.lower() for ext in match.extensions}:
            return False

    if match.event_types:
        if event.type.value not in match.event_types:
            return False

    return True


def describe_filter(match: MatchFilter) -> str:
    parts = []
    if match.extensions:
        parts.append(f"files with {', '.join(match.extensions)}")
    if match.path_includes:
        parts.append(f"paths including {', '.join(match.path_includes)}")
    if match.event_types:
        parts.append(f"events {', '.join(match.event_types)}")
    return " and ".join(parts) if parts else "events"


class RulesEngine:
    """Evaluates file events against the enabled rules in a RulesStore.

    Pattern rules fire on every matching event. Threshold rules keep a
    per-rule list of event timestamps and fire when ``count`` of them land
    inside ``window_seconds``; the window is emptied after firing.
    """

    def __init__(
        self,
        store: RulesStore,
        recent_match_limit: int = 100,
        path_guard: PathGuard | None = None,
        watch_dir: str | Path | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._recent_matches: deque[RuleMatch] = deque(maxlen=recent_match_limit)
        self._threshold_windows: dict[str, list[int]] = {}
        self._stats = EngineStats()
        self._path_guard = path_guard
        self._watch_dir = os.fspath(watch_dir) if watch_dir is not None else None
        self._log = log or logger

    @property
    def store(self) -> RulesStore:
        return self._store

    async def init(self) -> None:
        await self._store.init()

    # ── Evaluation ───────────────────────────────────────────

    async def evaluate_event(self, event: FileEvent) -> list[RuleMatch]:
        self._stats.events_observed += 1
        self._log.debug("Event observed: %s %s", event.type.value, event.path)

        if self._path_guard is not None and self._watch_dir is not None:
            absolute = os.path.join(self._watch_dir, event.path)
            if not self._path_guard.validate_file_path(absolute):
                self._log.warning("Skipping evaluation for invalid path: %s", event.path)
                return []

        rules = self._store.get_enabled_rules()
        self._stats.rules_evaluated += len(rules)

        matches: list[RuleMatch] = []
        for rule in rules:
            # Deleted or disabled while an earlier match was being saved.
            if not self._store.is_enabled(rule.id):
                continue
            match = self._evaluate_rule(event, rule)
            if match is None:
                continue
            matches.append(match)
            self._stats.matches += 1
            try:
                await self._store.record_match(rule.id)
            except StoreError as e:
                self._log.warning("Failed to persist match for %s: %s", rule.id, e)
            self._recent_matches.append(match)
            self._log.info("Rule matched: %s (%s): %s", rule.name, rule.id, match.reason)
        return matches

    def _evaluate_rule(self, event: FileEvent, rule: Rule) -> RuleMatch | None:
        if not matches_filter(event, rule.match):
            return None

        if rule.type == RuleType.PATTERN:
            reason = f"File {event.path} was {event.type.value}"
            return RuleMatch(
                rule_id=rule.id,
                rule_name=rule.name,
                rule_type=rule.type,
                timestamp=event.timestamp,
                summary=reason,
                reason=reason,
                path=event.path,
                event_type=event.type,
            )

        if rule.window_seconds is None or rule.count is None:
            return None

        now = event.timestamp
        window_ms = rule.window_seconds * 1000
        timestamps = self._threshold_windows.get(rule.id, [])
        timestamps.append(now)
        timestamps = [t for t in timestamps if now - t <= window_ms]
        self._threshold_windows[rule.id] = timestamps

        if len(timestamps) < rule.count:
            return None

        self._threshold_windows[rule.id] = []
        reason = (
            f"{len(timestamps)} {describe_filter(rule.match)} in the last "
            f"{rule.window_seconds}s (threshold: {rule.count})"
        )
        return RuleMatch(
            rule_id=rule.id,
            rule_name=rule.name,
            rule_type=rule.type,
            timestamp=now,
            summary=reason,
            reason=reason,
            count=len(timestamps),
            window_seconds=rule.window_seconds,
        )

    # ── Facade ───────────────────────────────────────────────

    async def add_rule(
        self,
        name: str,
        description: str,
        condition: str,
        compiled: CompiledRule,
        source: RuleSource | str = RuleSource.LLM,
    ) -> Rule:
        return await self._store.add_rule(name, description, condition, compiled, source)

    def find_duplicate_rule(self, condition: str, compiled: CompiledRule) -> Rule | None:
        return self._store.find_duplicate_rule(condition, compiled)

    def get_all_rules(self) -> list[Rule]:
        return self._store.get_all_rules()

    def get_rule(self, rule_id: str) -> Rule | None:
        return self._store.get_rule(rule_id)

    async def update_rule(self, rule_id: str, updates: RuleUpdate | dict) -> bool:
        if isinstance(updates, dict):
            updates = RuleUpdate.model_validate(updates)
        updated = await self._store.update_rule(rule_id, updates)
        if updated and updates.enabled is False:
            self._threshold_windows.pop(rule_id, None)
        return updated

    async def delete_rule(self, rule_id: str) -> bool:
        deleted = await self._store.delete_rule(rule_id)
        if deleted:
            self._threshold_windows.pop(rule_id, None)
        return deleted

    def get_stats(self) -> EngineStats:
        return self._stats.model_copy()

    def get_recent_matches(self) -> list[RuleMatch]:
        """Recent matches, oldest first."""
        return list(self._recent_matches)
