"""Path guard — keeps the watcher and engine inside the directories they own."""

from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path

logger = logging.getLogger("rulewatch")

DEFAULT_BLOCKED_EXTENSIONS = (".exe", ".dll", ".so", ".dylib", ".bin")
DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024

BLOCKED_SYSTEM_DIRS = (
    "/etc",
    "/usr",
    "/bin",
    "/sbin",
    "/lib",
    "/lib64",
    "/proc",
    "/sys",
    "/dev",
    "/root",
)

WINDOWS_BLOCKED_DIRS = (
    "windows",
    "program files",
    "program files (x86)",
    "programdata",
    "$recycle.bin",
    "system volume information",
)

_DRIVE_RE = re.compile(r"^([a-zA-Z]:)[\\/]")


def _normcase(path: str) -> str:
    return path.lower() if sys.platform == "win32" else path


class PathGuard:
    """Validate file and watch-directory paths against a set of allowed bases."""

    def __init__(
        self,
        allowed_base_paths: list[str | Path] | None = None,
        allow_symlinks: bool = False,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        blocked_extensions: tuple[str, ...] | list[str] = DEFAULT_BLOCKED_EXTENSIONS,
        log: logging.Logger | None = None,
    ) -> None:
        bases = allowed_base_paths or [os.getcwd()]
        self.allowed_base_paths = [os.path.abspath(os.fspath(b)) for b in bases]
        self.allow_symlinks = allow_symlinks
        self.max_file_size = max_file_size
        self.blocked_extensions = {e.lower() for e in blocked_extensions}
        self._log = log or logger

    def is_path_within_base(self, target: str | Path, base: str | Path) -> bool:
        """Containment check that does not confuse ``/a/bc`` with ``/a/b``."""
        resolved_target = _normcase(os.path.abspath(os.fspath(target)))
        resolved_base = _normcase(os.path.abspath(os.fspath(base)))
        return resolved_target == resolved_base or resolved_target.startswith(
            resolved_base.rstrip(os.sep) + os.sep
        )

    def _within_allowed(self, path: str) -> bool:
        return any(self.is_path_within_base(path, b) for b in self.allowed_base_paths)

    def validate_file_path(self, file_path: str | Path) -> bool:
        """True if the file may be evaluated.

        Missing files pass the symlink and size checks so delete events
        are still evaluated.
        """
        absolute = os.path.abspath(os.fspath(file_path))
        if not self._within_allowed(absolute):
            self._log.warning(
                "Security: path outside allowed directories: %s (allowed: %s)",
                absolute,
                self.allowed_base_paths,
            )
            return False

        ext = os.path.splitext(absolute)[1].lower()
        if ext in self.blocked_extensions:
            self._log.warning("Security: blocked file extension %s: %s", ext, absolute)
            return False

        try:
            if not self.allow_symlinks and os.path.islink(absolute):
                self._log.warning("Security: symlink blocked: %s", absolute)
                return False
            size = os.stat(absolute).st_size
        except FileNotFoundError:
            return True
        except OSError as e:
            self._log.warning("Security: failed to validate %s: %s", absolute, e)
            return False

        if size > self.max_file_size:
            self._log.warning(
                "Security: file exceeds max size: %s (%d > %d bytes)",
                absolute,
                size,
                self.max_file_size,
            )
            return False
        return True

    def validate_watch_directory(self, watch_dir: str | Path) -> bool:
        """Refuse system directories and anything outside the allowed bases."""
        absolute = os.path.abspath(os.fspath(watch_dir))
        normalized = _normcase(absolute)

        for blocked in BLOCKED_SYSTEM_DIRS:
            if normalized == blocked or normalized.startswith(f"{blocked}/"):
                self._log.error(
                    "Security: cannot watch system directory %s (%s)", absolute, blocked
                )
                return False

        if sys.platform == "win32":
            drive_match = _DRIVE_RE.match(absolute)
            if drive_match:
                drive = drive_match.group(1).lower()
                for name in WINDOWS_BLOCKED_DIRS:
                    blocked = f"{drive}\\{name}"
                    if normalized == blocked or normalized.startswith(f"{blocked}\\"):
                        self._log.error(
                            "Security: cannot watch Windows system directory %s",
                            absolute,
                        )
                        return False

        if not self._within_allowed(absolute):
            self._log.error(
                "Security: watch directory outside allowed paths: %s (allowed: %s)",
                absolute,
                self.allowed_base_paths,
            )
            return False

        self._log.info("Security: watch directory validated: %s", absolute)
        return True

    @staticmethod
    def sanitize_path(input_path: str) -> str:
        """Strip NUL bytes and leading ``..`` segments from a user path."""
        sanitized = os.path.normpath(input_path.replace("\0", ""))
        while sanitized.startswith(".."):
            sanitized = sanitized[2:]
            if sanitized.startswith(("/", "\\")):
                sanitized = sanitized[1:]
        return sanitized
