"""JSON persistence for rules.

The in-memory list is the source of truth for the running process. Every
mutation updates memory first, then queues a save. Saves run one at a time
in submission order; each writes a temp file beside the rules file and
atomically replaces the target, so a crash never leaves a partial document.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import json
import logging
import os
import shutil
import sys
import uuid
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..exceptions import RuleValidationError, StorePersistenceError
from .models import CompiledRule, Rule, RuleSource, RuleType, RuleUpdate, now_ms
from .signature import rule_signature_from_compiled, rule_signature_from_rule

logger = logging.getLogger("rulewatch")

SCHEMA_VERSION = 2

_UPDATABLE_FIELDS = ("name", "description", "enabled")

# rename-over-existing can fail on Windows while another process holds the file
_REPLACE_FALLBACK_ERRNOS = {errno.EEXIST, errno.EPERM, errno.EACCES, errno.EBUSY}


def is_rule_safe(record: Any) -> bool:
    """Minimal schema check applied to each persisted record on load."""
    if not isinstance(record, dict):
        return False
    if not isinstance(record.get("id"), str) or not isinstance(record.get("name"), str):
        return False
    rule_type = record.get("type")
    if rule_type not in (RuleType.PATTERN.value, RuleType.THRESHOLD.value):
        return False
    if not isinstance(record.get("match"), dict):
        return False
    if rule_type == RuleType.THRESHOLD.value:
        for key in ("windowSeconds", "count"):
            value = record.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return False
    return True


def generate_rule_id() -> str:
    return f"rule_{uuid.uuid4()}"


def _whole_number(value: int | float | None, field: str) -> int:
    if value is None:
        return 0
    if isinstance(value, float) and not value.is_integer():
        raise RuleValidationError(f"{field} must be a whole number, got {value}")
    return int(value)


class RulesStore:
    """Load, mutate, and persist rules to a single JSON file."""

    def __init__(self, path: str | Path, log: logging.Logger | None = None) -> None:
        self._path = Path(path).expanduser()
        self._rules: list[Rule] = []
        self._save_task: asyncio.Future[None] | None = None
        self._log = log or logger

    @property
    def path(self) -> Path:
        return self._path

    # ── Loading ──────────────────────────────────────────────

    async def init(self) -> None:
        """Load rules from disk (recovering from corruption) and write them back."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if self._path.exists():
            try:
                raw = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
                self._rules = self._parse_document(json.loads(raw))
                self._log.info(
                    "Rule store loaded: %s (%d rules)", self._path, len(self._rules)
                )
            except (OSError, ValueError) as e:
                self._log.warning("Failed to load rule store, starting fresh: %s", e)
                await self._backup_unreadable()
                self._rules = []
        else:
            self._log.info("Rule store initialized (new): %s", self._path)
        await self.save()

    def _parse_document(self, data: Any) -> list[Rule]:
        if not isinstance(data, dict):
            raise ValueError("rules file is not a JSON object")
        records = data.get("rules")
        if not isinstance(records, list):
            return []
        rules: list[Rule] = []
        for record in records:
            if not is_rule_safe(record):
                self._log.warning("Dropping unsafe rule record: %r", record)
                continue
            try:
                rules.append(Rule.model_validate(record))
            except ValidationError as e:
                self._log.warning(
                    "Dropping invalid rule record %s: %s", record.get("id"), e
                )
        return rules

    async def _backup_unreadable(self) -> None:
        backup = self._path.with_name(f"{self._path.name}.corrupt-{now_ms()}")
        try:
            await asyncio.to_thread(shutil.copyfile, self._path, backup)
            self._log.warning("Backed up unreadable rule store to %s", backup)
        except OSError as e:
            self._log.warning("Failed to back up unreadable rule store: %s", e)

    # ── Saving ───────────────────────────────────────────────

    def _serialize(self) -> str:
        data = {
            "version": SCHEMA_VERSION,
            "rules": [r.to_json_dict() for r in self._rules],
        }
        return json.dumps(data, indent=2)

    def _write_atomic(self, serialized: str) -> None:
        temp_path = self._path.with_name(
            f"{self._path.name}.tmp-{os.getpid()}-{now_ms()}"
        )
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(serialized)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.replace(temp_path, self._path)
            except OSError as e:
                if sys.platform != "win32" or e.errno not in _REPLACE_FALLBACK_ERRNOS:
                    raise
                shutil.copyfile(temp_path, self._path)
                temp_path.unlink()
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_path.unlink()
            raise StorePersistenceError(f"Failed to save {self._path}: {e}") from e

    async def _save_after(self, previous: asyncio.Future[None] | None) -> None:
        if previous is not None:
            # The previous save's failure belongs to its own caller.
            with contextlib.suppress(Exception):
                await previous
        await asyncio.to_thread(self._write_atomic, self._serialize())

    async def save(self) -> None:
        """Queue a save behind any in-flight save and wait for it.

        Raises StorePersistenceError if this save fails. Cancelling the
        caller does not cancel the write.
        """
        task = asyncio.ensure_future(self._save_after(self._save_task))
        self._save_task = task
        await asyncio.shield(task)

    async def flush(self) -> None:
        """Wait until every queued save has settled (success or failure)."""
        while self._save_task is not None and not self._save_task.done():
            with contextlib.suppress(Exception):
                await asyncio.shield(self._save_task)

    # ── Mutations ────────────────────────────────────────────

    async def add_rule(
        self,
        name: str,
        description: str,
        condition: str,
        compiled: CompiledRule,
        source: RuleSource | str = RuleSource.LLM,
    ) -> Rule:
        if compiled.type is None:
            raise RuleValidationError("Compiled rule has no type")
        threshold = compiled.type == RuleType.THRESHOLD
        rule = Rule(
            id=generate_rule_id(),
            name=name,
            description=description,
            type=compiled.type,
            match=compiled.match.model_copy(deep=True),
            source=RuleSource(source),
            original_condition=condition,
            window_seconds=(
                _whole_number(compiled.window_seconds, "windowSeconds")
                if threshold
                else None
            ),
            count=_whole_number(compiled.count, "count") if threshold else None,
        )
        self._rules.append(rule)
        await self.save()
        self._log.info("Rule added: %s (%s, %s)", rule.id, rule.name, rule.type.value)
        return rule.model_copy(deep=True)

    async def update_rule(self, rule_id: str, updates: RuleUpdate | dict) -> bool:
        """Apply name/description/enabled updates; other fields are ignored.

        Returns True when at least one updatable field was supplied. The
        store is saved only when a value actually changed.
        """
        rule = self._find(rule_id)
        if rule is None:
            return False
        if isinstance(updates, dict):
            updates = RuleUpdate.model_validate(updates)

        supplied = False
        changed_fields = []
        for field in _UPDATABLE_FIELDS:
            value = getattr(updates, field)
            if field not in updates.model_fields_set or value is None:
                continue
            supplied = True
            if getattr(rule, field) != value:
                setattr(rule, field, value)
                changed_fields.append(field)

        if changed_fields:
            await self.save()
            self._log.info("Rule updated: %s (%s)", rule_id, ", ".join(changed_fields))
        return supplied

    async def delete_rule(self, rule_id: str) -> bool:
        rule = self._find(rule_id)
        if rule is None:
            return False
        self._rules.remove(rule)
        await self.save()
        self._log.info("Rule deleted: %s", rule_id)
        return True

    async def record_match(self, rule_id: str) -> None:
        rule = self._find(rule_id)
        if rule is None:
            return
        rule.last_matched = now_ms()
        rule.match_count += 1
        await self.save()

    # ── Queries ──────────────────────────────────────────────

    def _find(self, rule_id: str) -> Rule | None:
        return next((r for r in self._rules if r.id == rule_id), None)

    def get_rule(self, rule_id: str) -> Rule | None:
        rule = self._find(rule_id)
        return rule.model_copy(deep=True) if rule else None

    def get_all_rules(self) -> list[Rule]:
        return [r.model_copy(deep=True) for r in self._rules]

    def get_enabled_rules(self) -> list[Rule]:
        return [r.model_copy(deep=True) for r in self._rules if r.enabled]

    def is_enabled(self, rule_id: str) -> bool:
        rule = self._find(rule_id)
        return rule is not None and rule.enabled

    def find_duplicate_rule(self, condition: str, compiled: CompiledRule) -> Rule | None:
        """Existing rule with the same normalized condition or signature."""
        normalized_condition = condition.strip().lower()
        signature = rule_signature_from_compiled(compiled)
        for rule in self._rules:
            existing = (rule.original_condition or "").strip().lower()
            if existing and existing == normalized_condition:
                return rule.model_copy(deep=True)
            if rule_signature_from_rule(rule) == signature:
                return rule.model_copy(deep=True)
        return None

    async def close(self) -> None:
        await self.flush()
        self._log.info("Rule store closed")
