"""HTTP client for a running daemon's API.

The daemon owns the rules file while it runs, so the CLI sends rule changes
through the API instead of writing the file itself.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from .exceptions import DaemonRequestError, DaemonUnavailableError, RulewatchError

logger = logging.getLogger("rulewatch")

DEFAULT_TIMEOUT_SECONDS = 60.0  # Covers a compile round-trip through the model
CONNECT_TIMEOUT_SECONDS = 2.0


def api_url(host: str, port: int) -> str:
    """Base URL for a daemon listening on *host*:*port*."""
    if host in ("", "0.0.0.0", "::"):
        host = "127.0.0.1"
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}"


class DaemonClient:
    """Thin JSON client; use as ``async with DaemonClient(url) as client``."""

    def __init__(self, base_url: str, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(
                total=self._timeout_seconds, connect=CONNECT_TIMEOUT_SECONDS
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def request(self, method: str, path: str, payload: Any = None) -> Any:
        """Send one request and return the decoded JSON body (None when empty).

        Raises DaemonUnavailableError when nothing accepts the connection and
        DaemonRequestError for error statuses.
        """
        url = f"{self.base_url}{path}"
        session = self._get_session()
        try:
            async with session.request(method, url, json=payload) as resp:
                status = resp.status
                text = await resp.text()
        except aiohttp.ClientConnectorError as e:
            raise DaemonUnavailableError(f"No daemon answering at {self.base_url}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RulewatchError(f"Daemon request failed: {method} {path}: {e}") from e

        data = _decode(text)
        logger.debug("Daemon API %s %s -> %d", method, path, status)
        if status >= 400:
            raise DaemonRequestError(status, data)
        return data

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> DaemonClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def _decode(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}
