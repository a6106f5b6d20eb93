"""Filesystem helpers shared by the image assembler and the bundlers."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from collections.abc import Iterable
from fnmatch import fnmatch
from pathlib import Path

from nativepack.core.errors import PackagingError

logger = logging.getLogger(__name__)

RTF_HEADER = (
    "{\\rtf1\\ansi\\ansicpg1252\\deff0\\deflang1033"
    "{\\fonttbl{\\f0\\fnil\\fcharset0 Arial;}}\n"
    "\\viewkind4\\uc1\\pard\\sa200\\sl276\\slmult1\\lang9\\fs20 "
)


def _excluded(name: str, excludes: Iterable[str]) -> bool:
    return any(name == pattern or fnmatch(name, pattern) for pattern in excludes)


def copy_recursive(src: Path, dest: Path, excludes: Iterable[str] = ()) -> None:
    """Copy the tree at *src* into *dest*.

    Entries whose name equals, or glob-matches, one of *excludes* are skipped
    along with everything below them.
    """
    excludes = tuple(excludes)
    src, dest = Path(src), Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    for entry in sorted(src.iterdir()):
        if _excluded(entry.name, excludes):
            continue
        target = dest / entry.name
        if entry.is_dir() and not entry.is_symlink():
            copy_recursive(entry, target, excludes)
        else:
            copy_file(entry, target)


def delete_recursive(path: Path) -> None:
    """Delete *path* and everything below it; a missing path is a no-op."""
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return
    if path.is_file() or path.is_symlink():
        _clear_readonly(path)
        path.unlink()
        return

    # read-only entries block removal on Windows
    _clear_readonly(path)
    for root, dirs, files in os.walk(path):
        for name in dirs + files:
            _clear_readonly(Path(root) / name)
    shutil.rmtree(path)


def _clear_readonly(path: Path) -> None:
    try:
        mode = path.lstat().st_mode
        path.chmod(mode | stat.S_IWRITE)
    except OSError:
        logger.debug("Could not clear read-only flag on %s", path)


def copy_file(src: Path, dest: Path) -> None:
    """Copy a single file, recreating *dest* and preserving the exec bit."""
    src, dest = Path(src), Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    if dest.exists():
        _clear_readonly(dest)
        dest.unlink()
    shutil.copyfile(src, dest)

    mode = src.stat().st_mode
    new_mode = dest.stat().st_mode | stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH
    if mode & stat.S_IXUSR:
        new_mode |= stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
    if not mode & stat.S_IWUSR:
        new_mode &= ~(stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH)
    dest.chmod(new_mode)


def make_executable(path: Path) -> None:
    path = Path(path)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def folder_size(path: Path) -> int:
    """Total size in bytes of the regular files below *path*."""
    path = Path(path)
    if not path.is_dir():
        return 0
    return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())


def writable_output_dir(path: Path) -> Path:
    """Create *path* if needed and check that it can be written to."""
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PackagingError(
            f"Output directory {path.absolute()} cannot be created: {exc}",
            "Choose an output directory in a location you can write to.",
        ) from exc
    if not path.is_dir():
        raise PackagingError(
            f"Output directory {path.absolute()} cannot be created",
            "The output path exists and is not a directory.",
        )
    if not os.access(path, os.W_OK):
        raise PackagingError(
            f"Output directory {path.absolute()} is not writable",
            "Choose an output directory in a location you can write to.",
        )
    return path


def newest_file(directory: Path, suffix: str) -> Path | None:
    """Return the file in *directory* ending in *suffix* modified last.

    Ties keep the first file in name order.
    """
    candidates = sorted(
        p for p in Path(directory).iterdir()
        if p.is_file() and p.name.lower().endswith(suffix.lower())
    )
    newest: Path | None = None
    newest_mtime = -1.0
    for candidate in candidates:
        mtime = candidate.stat().st_mtime
        if mtime > newest_mtime:
            newest, newest_mtime = candidate, mtime
    return newest


def _rtf_escape(line: str) -> str:
    out: list[str] = []
    for char in line:
        code = ord(char)
        if code < 0x10:
            out.append("\\'0" + format(code, "x"))
        elif code > 0xFF:
            out.append(f"\\ud{code}?")
        elif code < 0x20 or code >= 0x80 or char in "\\{}":
            out.append("\\'" + format(code, "x"))
        else:
            out.append(char)
    return "".join(out)


def ensure_rtf(path: Path | None) -> None:
    """Rewrite a plain text file as RTF in place; RTF files are left alone."""
    if path is None or not Path(path).is_file():
        return
    path = Path(path)
    with path.open("rb") as fh:
        if fh.read(7) == b"{\\rtf1\\":
            return

    lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    with path.open("w", encoding="cp1252", newline="") as fh:
        fh.write(RTF_HEADER)
        for line in lines:
            fh.write(_rtf_escape(line))
            fh.write("\\par" if not line else " ")
            fh.write("\r\n")
        fh.write("}\r\n")
