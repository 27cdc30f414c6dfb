"""Desktop notifications via OS-native commands.

- macOS: terminal-notifier when installed, osascript otherwise
- Linux: notify-send (libnotify)
- Windows: PowerShell toast (best-effort)
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import time

logger = logging.getLogger("rulewatch")

APP_NAME = "rulewatch"


def _escape(text: str) -> str:
    """Escape quotes and backslashes for shell embedding."""
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("'", "\\'")


class DesktopNotifier:
    """Fire-and-forget desktop popups, at most one per ``min_interval`` seconds."""

    def __init__(self, min_interval: float = 1.0, platform: str | None = None):
        self._min_interval = min_interval
        self._last_sent: float | None = None
        self._platform = platform or sys.platform
        self._has_terminal_notifier = (
            self._platform == "darwin"
            and shutil.which("terminal-notifier") is not None
        )

    def build_command(self, title: str, body: str) -> list[str] | None:
        """The argv that shows a notification on this platform, or None."""
        if self._platform == "darwin":
            if self._has_terminal_notifier:
                return [
                    "terminal-notifier",
                    "-title", title,
                    "-message", body,
                    "-group", APP_NAME,
                ]
            script = (
                f'display notification "{_escape(body)}" '
                f'with title "{_escape(title)}"'
            )
            return ["osascript", "-e", script]
        if self._platform.startswith("linux"):
            return ["notify-send", f"--app-name={APP_NAME}", title, body]
        if self._platform == "win32":
            ps_script = (
                "[Windows.UI.Notifications.ToastNotificationManager, "
                "Windows.UI.Notifications, ContentType = WindowsRuntime] | Out-Null; "
                "$xml = [Windows.UI.Notifications.ToastNotificationManager]::"
                "GetTemplateContent([Windows.UI.Notifications.ToastTemplateType]::ToastText02); "
                "$texts = $xml.GetElementsByTagName('text'); "
                f"$texts[0].AppendChild($xml.CreateTextNode('{_escape(title)}')) | Out-Null; "
                f"$texts[1].AppendChild($xml.CreateTextNode('{_escape(body)}')) | Out-Null; "
                "[Windows.UI.Notifications.ToastNotificationManager]::"
                f"CreateToastNotifier('{APP_NAME}').Show("
                "[Windows.UI.Notifications.ToastNotification]::new($xml))"
            )
            return ["powershell", "-Command", ps_script]
        return None

    def notify(self, title: str, body: str) -> bool:
        """Returns True if dispatched, False if rate-limited, unsupported, or failed."""
        now = time.monotonic()
        if self._last_sent is not None and now - self._last_sent < self._min_interval:
            logger.debug("Desktop notification rate-limited, skipping")
            return False

        command = self.build_command(title, body)
        if command is None:
            logger.debug("Desktop notifications unsupported on %s", self._platform)
            return False

        try:
            subprocess.Popen(
                command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        except OSError as e:
            logger.warning("Desktop notification error: %s", e)
            return False
        self._last_sent = now
        logger.debug("Desktop notification: %s", title)
        return True
