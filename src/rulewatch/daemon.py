"""Watcher daemon — wires the store, engine, watcher, notifier and API together.

Lifecycle:
    start()  → load rules, health-check the model, start watcher + API
    wait()   → block until SIGINT/SIGTERM or request_stop()
    stop()   → stop watcher and API, close sessions, flush pending saves
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from pathlib import Path
from typing import Any

from aiohttp import web

from .api import create_api_app
from .config import RulewatchConfig
from .exceptions import ConfigError
from .notifications import NotificationDispatcher
from .reasoning import create_provider
from .rules.compiler import RuleCompiler
from .rules.engine import RulesEngine
from .rules.models import FileEvent
from .rules.store import RulesStore
from .security import PathGuard
from .watcher import FileWatcher

logger = logging.getLogger("rulewatch")


class WatcherDaemon:
    """Long-running process: file events in, rule matches and notifications out."""

    def __init__(
        self,
        config: RulewatchConfig,
        log: logging.Logger | None = None,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self.config = config
        self._log = log or logger
        self.watch_dir = Path(config.watcher.watch_dir).expanduser().resolve()

        allowed = config.security.allowed_paths or [str(self.watch_dir)]
        self.path_guard = PathGuard(
            allowed_base_paths=[Path(p).expanduser() for p in allowed],
            allow_symlinks=config.security.allow_symlinks,
            max_file_size=config.security.max_file_size,
            log=self._log,
        )
        if not self.path_guard.validate_watch_directory(self.watch_dir):
            raise ConfigError(f"Refusing to watch directory: {self.watch_dir}")

        self.store = RulesStore(config.rules_file, log=self._log)
        self.engine = RulesEngine(
            self.store,
            recent_match_limit=config.engine.match_history_limit,
            path_guard=self.path_guard,
            watch_dir=self.watch_dir,
            log=self._log,
        )
        self.provider = create_provider(config.reasoning)
        self.compiler: RuleCompiler | None = None
        if self.provider is not None:
            self.compiler = RuleCompiler(
                self.provider, retries=config.reasoning.retries, log=self._log
            )
        self.notifier = notifier or NotificationDispatcher(config.notifications)
        self.watcher = FileWatcher(
            self.watch_dir,
            debounce_ms=config.watcher.debounce_ms,
            ignored=config.watcher.ignored,
            ignore_dotfiles=config.watcher.ignore_dotfiles,
            log=self._log,
        )
        self._api_runner: web.AppRunner | None = None
        self._stop_event = asyncio.Event()
        self.state: dict[str, Any] = {
            "config": config,
            "engine": self.engine,
            "provider": self.provider,
            "compiler": self.compiler,
            "started_at": time.monotonic(),
        }

    async def handle_event(self, event: FileEvent) -> None:
        """Evaluate one event and notify for every match."""
        try:
            matches = await self.engine.evaluate_event(event)
        except Exception as e:
            self._log.exception("Failed to evaluate %s %s", event.type.value, event.path)
            await self.notifier.notify_error(f"Failed to evaluate {event.path}: {e}")
            return
        for match in matches:
            await self.notifier.notify_match(match)

    async def start(self, observer=None) -> None:
        await self.engine.init()
        rules = self.engine.get_all_rules()
        self._log.info(
            "Loaded %d rules (%d enabled)", len(rules), sum(r.enabled for r in rules)
        )

        if self.provider is None:
            self._log.warning("No model provider configured; rule compilation disabled")
        elif not await self.provider.check_health():
            self._log.warning(
                "Model %s is not reachable; rule compilation will fail until it is",
                self.provider.model_name,
            )

        self.watcher.on_event(self.handle_event)
        await self.watcher.start(observer=observer)

        if self.config.api.enabled:
            self._api_runner = web.AppRunner(create_api_app(self.state))
            await self._api_runner.setup()
            site = web.TCPSite(self._api_runner, self.config.api.host, self.config.api.port)
            await site.start()
            self._log.info(
                "API server: http://%s:%d", self.config.api.host, self.config.api.port
            )
        self._log.info("Watching %s", self.watch_dir)

    def request_stop(self) -> None:
        self._stop_event.set()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                signal.signal(sig, lambda signum, _frame: self._on_signal(signum))

    def _on_signal(self, signum: int) -> None:
        self._log.info("Received %s, shutting down...", signal.Signals(signum).name)
        self.request_stop()

    async def wait(self) -> None:
        await self._stop_event.wait()

    async def stop(self) -> None:
        self._log.info("Shutting down daemon...")
        await self.watcher.stop()
        if self._api_runner is not None:
            await self._api_runner.cleanup()
            self._api_runner = None
        if self.provider is not None:
            await self.provider.close()
        await self.notifier.close()
        await self.store.close()
        self._log.info("Daemon stopped")


async def run_daemon(config: RulewatchConfig) -> None:
    """Start the daemon and run until a stop signal arrives."""
    daemon = WatcherDaemon(config)
    daemon.install_signal_handlers()
    await daemon.start()
    try:
        await daemon.wait()
    finally:
        await daemon.stop()
