"""Generic webhook notification delivery.

POSTs a structured JSON payload to a URL whenever a rule matches, for
integrations without a dedicated notifier (Home Assistant, chat bots,
custom servers).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import aiohttp

from ..rules.models import RuleMatch

logger = logging.getLogger("rulewatch")


class WebhookNotifier:
    """POST rule matches as JSON to a configured URL."""

    def __init__(self, default_url: str = "", timeout_seconds: float = 15.0):
        self._default_url = default_url
        self._timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    @property
    def configured(self) -> bool:
        return bool(self._default_url)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def build_payload(self, match: RuleMatch) -> dict:
        payload: dict = {
            "event": "rule_matched",
            "match": match.to_json_dict(),
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        return payload

    def build_error_payload(self, message: str) -> dict:
        return {
            "event": "daemon_error",
            "error": message,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }

    async def _post(self, url: str, payload: dict) -> bool:
        session = self._get_session()
        try:
            async with session.post(url, json=payload) as resp:
                ok = resp.status < 400
            if ok:
                logger.info("Webhook sent: %s → %s", payload["event"], url)
            else:
                logger.warning("Webhook failed: HTTP %s → %s", resp.status, url)
            return ok
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Webhook error: %s", e)
            return False

    async def notify(self, match: RuleMatch, url: str = "") -> bool:
        """POST the match. Returns True on success."""
        target_url = url or self._default_url
        if not target_url:
            return False
        return await self._post(target_url, self.build_payload(match))

    async def notify_error(self, message: str, url: str = "") -> bool:
        target_url = url or self._default_url
        if not target_url:
            return False
        return await self._post(target_url, self.build_error_payload(message))

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session:
            await self._session.close()
            self._session = None
