"""Tests for path validation (PathGuard)."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest

from rulewatch.security import PathGuard


def _guard(base, **kwargs) -> PathGuard:
    return PathGuard(allowed_base_paths=[base], log=MagicMock(), **kwargs)


class TestContainment:
    def test_sibling_prefix_is_outside(self, tmp_path):
        guard = _guard(tmp_path)
        assert guard.is_path_within_base(tmp_path / "ab" / "c", tmp_path / "ab")
        assert not guard.is_path_within_base(tmp_path / "abc", tmp_path / "ab")
        assert guard.is_path_within_base(tmp_path, tmp_path)

    def test_defaults_to_cwd(self):
        assert PathGuard().allowed_base_paths == [os.getcwd()]


class TestValidateFilePath:
    def test_regular_file(self, tmp_path):
        target = tmp_path / "notes.md"
        target.write_text("hi")
        assert _guard(tmp_path).validate_file_path(target)

    def test_missing_file_allowed(self, tmp_path):
        assert _guard(tmp_path).validate_file_path(tmp_path / "deleted.md")

    def test_outside_base(self, tmp_path):
        guard = _guard(tmp_path / "project")
        assert not guard.validate_file_path(tmp_path / "secrets.txt")
        assert not guard.validate_file_path(tmp_path / "project" / ".." / "x.txt")

    def test_blocked_extension(self, tmp_path):
        assert not _guard(tmp_path).validate_file_path(tmp_path / "Tool.EXE")

    def test_custom_blocked_extensions(self, tmp_path):
        guard = _guard(tmp_path, blocked_extensions=[".log"])
        assert not guard.validate_file_path(tmp_path / "a.log")
        assert guard.validate_file_path(tmp_path / "a.exe")

    def test_oversized_file(self, tmp_path):
        target = tmp_path / "big.txt"
        target.write_bytes(b"x" * 20)
        assert not _guard(tmp_path, max_file_size=10).validate_file_path(target)
        assert _guard(tmp_path, max_file_size=20).validate_file_path(target)

    def test_symlink(self, tmp_path):
        real = tmp_path / "real.txt"
        real.write_text("x")
        link = tmp_path / "link.txt"
        try:
            link.symlink_to(real)
        except OSError:
            pytest.skip("symlinks not supported")
        assert not _guard(tmp_path).validate_file_path(link)
        assert _guard(tmp_path, allow_symlinks=True).validate_file_path(link)


class TestValidateWatchDirectory:
    def test_allowed(self, tmp_path):
        assert _guard(tmp_path).validate_watch_directory(tmp_path / "project")

    @pytest.mark.parametrize("path", ["/etc", "/usr/local/src", "/proc/self", "/root"])
    def test_system_directories(self, path):
        assert not _guard("/").validate_watch_directory(path)

    def test_similar_name_not_blocked(self, tmp_path):
        guard = _guard("/")
        assert guard.validate_watch_directory("/etcetera")

    def test_outside_allowed(self, tmp_path):
        guard = _guard(tmp_path / "a")
        assert not guard.validate_watch_directory(tmp_path / "b")


class TestSanitize:
    def test_strips_traversal_and_nul(self):
        assert PathGuard.sanitize_path("../../etc/passwd") == "etc/passwd"
        assert PathGuard.sanitize_path("src/\0a.py") == os.path.normpath("src/a.py")

    def test_plain_path_unchanged(self):
        assert PathGuard.sanitize_path("src/app.ts") == os.path.normpath("src/app.ts")
