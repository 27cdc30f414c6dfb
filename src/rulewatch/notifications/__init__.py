"""Notification dispatch for matched rules.

Channels:
- "desktop": OS-native desktop notification (macOS / Linux / Windows)
- "webhook": generic HTTP POST (JSON payload), when a URL is configured

Every match is also echoed to the log, so a headless daemon still records it.
"""

from __future__ import annotations

__all__ = ["DesktopNotifier", "NotificationDispatcher", "WebhookNotifier"]

import logging
import time
from typing import Callable

from ..config import NotificationsConfig
from ..rules.models import RuleMatch
from .desktop import DesktopNotifier
from .webhook import WebhookNotifier

logger = logging.getLogger("rulewatch")

CLEANUP_INTERVAL_SECONDS = 5 * 60


class NotificationDispatcher:
    """Routes matches to the enabled channels, suppressing repeats.

    A match is a repeat when the same rule fired for the same path (or,
    for threshold matches, with no path) within ``dedupe_seconds``.
    """

    def __init__(
        self,
        config: NotificationsConfig,
        desktop: DesktopNotifier | None = None,
        webhook: WebhookNotifier | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config
        self._desktop = desktop or (
            DesktopNotifier() if config.desktop_enabled else None
        )
        self._webhook = webhook or WebhookNotifier(default_url=config.webhook_url)
        self._clock = clock
        self._recent: dict[str, float] = {}
        self._last_cleanup = clock()

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @staticmethod
    def dedupe_key(match: RuleMatch) -> str:
        return f"{match.rule_id}:{match.path or 'all'}"

    async def notify_match(self, match: RuleMatch) -> bool:
        """Send the match to every channel. Returns False if skipped."""
        if not self._config.enabled:
            logger.debug("Notifications disabled, skipping %s", match.rule_name)
            return False

        key = self.dedupe_key(match)
        now = self._clock()
        last = self._recent.get(key)
        if last is not None and now - last < self._config.dedupe_seconds:
            logger.debug("Notification suppressed (duplicate): %s", key)
            return False

        title = f"Rule Matched: {match.rule_name}"
        message = match.reason or match.summary
        logger.info("%s: %s", title, message)
        if self._desktop:
            self._desktop.notify(title, message)
        if self._webhook.configured:
            await self._webhook.notify(match)

        self._recent[key] = now
        self._cleanup(now)
        return True

    async def notify_error(self, message: str) -> bool:
        if not self._config.enabled:
            logger.debug("Error notification skipped (disabled)")
            return False
        if self._desktop:
            self._desktop.notify("rulewatch error", message)
        if self._webhook.configured:
            await self._webhook.notify_error(message)
        return True

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup <= CLEANUP_INTERVAL_SECONDS:
            return
        self._last_cleanup = now
        cutoff = now - self._config.dedupe_seconds * 2
        stale = [key for key, sent in self._recent.items() if sent < cutoff]
        for key in stale:
            del self._recent[key]
        if stale:
            logger.debug("Cleaned up %d old notification entries", len(stale))

    async def close(self) -> None:
        """Clean up resources."""
        await self._webhook.close()
