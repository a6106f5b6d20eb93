"""Unit tests for the filesystem helpers."""

from __future__ import annotations

import os
import stat
import sys
import time
from pathlib import Path

import pytest

from nativepack.core import fileutils
from nativepack.core.errors import PackagingError


class TestCopy:
    def test_copy_recursive_skips_excluded_names(self, tmp_path: Path):
        src = tmp_path / "src"
        (src / "sub").mkdir(parents=True)
        (src / "keep.txt").write_text("keep")
        (src / "notes.diz").write_text("skip")
        (src / "sub" / "inner.txt").write_text("inner")
        (src / "skipdir").mkdir()
        (src / "skipdir" / "x.txt").write_text("x")

        dest = tmp_path / "dest"
        fileutils.copy_recursive(src, dest, excludes=("*.diz", "skipdir"))

        assert (dest / "keep.txt").read_text() == "keep"
        assert (dest / "sub" / "inner.txt").read_text() == "inner"
        assert not (dest / "notes.diz").exists()
        assert not (dest / "skipdir").exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
    def test_copy_file_preserves_exec_bit(self, tmp_path: Path):
        src = tmp_path / "tool"
        src.write_text("#!/bin/sh\n")
        src.chmod(0o755)
        dest = tmp_path / "out" / "tool"
        fileutils.copy_file(src, dest)
        assert dest.stat().st_mode & stat.S_IXUSR

    def test_copy_file_replaces_existing(self, tmp_path: Path):
        src = tmp_path / "a.txt"
        src.write_text("new")
        dest = tmp_path / "b.txt"
        dest.write_text("old")
        fileutils.copy_file(src, dest)
        assert dest.read_text() == "new"


class TestDelete:
    def test_missing_path_is_noop(self, tmp_path: Path):
        fileutils.delete_recursive(tmp_path / "absent")

    def test_deletes_read_only_tree(self, tmp_path: Path):
        root = tmp_path / "tree"
        (root / "sub").mkdir(parents=True)
        locked = root / "sub" / "locked.txt"
        locked.write_text("x")
        locked.chmod(stat.S_IRUSR)

        fileutils.delete_recursive(root)
        assert not root.exists()


class TestOutputDir:
    def test_creates_missing_directory(self, tmp_path: Path):
        target = tmp_path / "a" / "b"
        assert fileutils.writable_output_dir(target) == target
        assert target.is_dir()

    def test_file_in_the_way_is_rejected(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(PackagingError, match="cannot be created"):
            fileutils.writable_output_dir(blocker)


class TestNewestFile:
    def test_picks_most_recent_matching_suffix(self, tmp_path: Path):
        old = tmp_path / "old.deb"
        new = tmp_path / "new.deb"
        old.write_text("old")
        new.write_text("new")
        (tmp_path / "other.rpm").write_text("rpm")
        now = time.time()
        os.utime(old, (now - 100, now - 100))
        os.utime(new, (now, now))

        assert fileutils.newest_file(tmp_path, ".deb") == new

    def test_tie_keeps_first_by_name(self, tmp_path: Path):
        now = time.time()
        for name in ("b.exe", "a.exe"):
            path = tmp_path / name
            path.write_text(name)
            os.utime(path, (now, now))
        assert fileutils.newest_file(tmp_path, ".EXE") == tmp_path / "a.exe"

    def test_none_when_nothing_matches(self, tmp_path: Path):
        assert fileutils.newest_file(tmp_path, ".msi") is None


class TestRtf:
    def test_plain_text_is_converted(self, tmp_path: Path):
        license_file = tmp_path / "LICENSE.txt"
        license_file.write_text("Use {freely}\n\nNo warranty\n", encoding="utf-8")
        fileutils.ensure_rtf(license_file)

        text = license_file.read_text(encoding="cp1252")
        assert text.startswith("{\\rtf1\\ansi")
        assert "Use \\'7bfreely\\'7d" in text
        assert text.rstrip().endswith("}")

    def test_rtf_is_left_alone(self, tmp_path: Path):
        license_file = tmp_path / "LICENSE.rtf"
        original = "{\\rtf1\\ansi already rtf}"
        license_file.write_text(original, encoding="utf-8")
        fileutils.ensure_rtf(license_file)
        assert license_file.read_text(encoding="utf-8") == original

    def test_missing_file_is_ignored(self, tmp_path: Path):
        fileutils.ensure_rtf(tmp_path / "absent.txt")
        fileutils.ensure_rtf(None)

    def test_folder_size(self, tmp_path: Path):
        (tmp_path / "a").write_bytes(b"1234")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "b").write_bytes(b"56")
        assert fileutils.folder_size(tmp_path) == 6
