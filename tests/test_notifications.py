"""Tests for match notification dispatch and deduplication."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from rulewatch.config import NotificationsConfig
from rulewatch.notifications import CLEANUP_INTERVAL_SECONDS, NotificationDispatcher
from rulewatch.rules.models import EventType, RuleMatch, RuleType


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _match(rule_id: str = "rule_1", path: str | None = "src/.env") -> RuleMatch:
    return RuleMatch(
        rule_id=rule_id,
        rule_name="Env guard",
        rule_type=RuleType.PATTERN,
        timestamp=1,
        summary=f"File {path} was deleted",
        reason=f"File {path} was deleted",
        path=path,
        event_type=EventType.DELETED,
    )


def _dispatcher(
    enabled: bool = True, webhook_configured: bool = False, dedupe: float = 30.0
):
    clock = FakeClock()
    desktop = MagicMock()
    webhook = MagicMock()
    webhook.configured = webhook_configured
    webhook.notify = AsyncMock(return_value=True)
    webhook.notify_error = AsyncMock(return_value=True)
    webhook.close = AsyncMock()
    dispatcher = NotificationDispatcher(
        NotificationsConfig(enabled=enabled, dedupe_seconds=dedupe),
        desktop=desktop,
        webhook=webhook,
        clock=clock,
    )
    return dispatcher, desktop, webhook, clock


class TestDispatch:
    @pytest.mark.asyncio
    async def test_desktop_and_webhook(self):
        dispatcher, desktop, webhook, _ = _dispatcher(webhook_configured=True)
        match = _match()
        assert await dispatcher.notify_match(match) is True
        desktop.notify.assert_called_once_with(
            "Rule Matched: Env guard", "File src/.env was deleted"
        )
        webhook.notify.assert_awaited_once_with(match)

    @pytest.mark.asyncio
    async def test_webhook_skipped_without_url(self):
        dispatcher, desktop, webhook, _ = _dispatcher()
        await dispatcher.notify_match(_match())
        desktop.notify.assert_called_once()
        webhook.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled(self):
        dispatcher, desktop, webhook, _ = _dispatcher(enabled=False, webhook_configured=True)
        assert dispatcher.enabled is False
        assert await dispatcher.notify_match(_match()) is False
        assert await dispatcher.notify_error("boom") is False
        desktop.notify.assert_not_called()
        webhook.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_error_notification(self):
        dispatcher, desktop, webhook, _ = _dispatcher(webhook_configured=True)
        assert await dispatcher.notify_error("watcher crashed") is True
        desktop.notify.assert_called_once_with("rulewatch error", "watcher crashed")
        webhook.notify_error.assert_awaited_once_with("watcher crashed")

    @pytest.mark.asyncio
    async def test_close(self):
        dispatcher, _, webhook, _ = _dispatcher()
        await dispatcher.close()
        webhook.close.assert_awaited_once()

    def test_desktop_disabled_in_config(self):
        dispatcher = NotificationDispatcher(
            NotificationsConfig(desktop_enabled=False), webhook=MagicMock()
        )
        assert dispatcher._desktop is None


class TestDedupe:
    def test_key(self):
        assert NotificationDispatcher.dedupe_key(_match(path="a.md")) == "rule_1:a.md"
        assert NotificationDispatcher.dedupe_key(_match(path=None)) == "rule_1:all"

    @pytest.mark.asyncio
    async def test_repeat_within_window_suppressed(self):
        dispatcher, desktop, _, clock = _dispatcher(dedupe=30)
        assert await dispatcher.notify_match(_match()) is True
        clock.now += 29
        assert await dispatcher.notify_match(_match()) is False
        clock.now += 2
        assert await dispatcher.notify_match(_match()) is True
        assert desktop.notify.call_count == 2

    @pytest.mark.asyncio
    async def test_different_path_or_rule_not_suppressed(self):
        dispatcher, _, _, _ = _dispatcher()
        assert await dispatcher.notify_match(_match(path="a.md")) is True
        assert await dispatcher.notify_match(_match(path="b.md")) is True
        assert await dispatcher.notify_match(_match(rule_id="rule_2", path="a.md")) is True

    @pytest.mark.asyncio
    async def test_stale_entries_cleaned_up(self):
        dispatcher, _, _, clock = _dispatcher(dedupe=30)
        await dispatcher.notify_match(_match(path="old.md"))
        clock.now += CLEANUP_INTERVAL_SECONDS + 1
        await dispatcher.notify_match(_match(path="new.md"))
        assert list(dispatcher._recent) == ["rule_1:new.md"]
