"""File-set models used by the application resource parameters."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict


class RelativeFileSet(BaseModel):
    """A set of files addressed relative to a common base directory.

    ``included_files`` holds POSIX-style relative paths, so membership
    checks such as license lookups behave identically on every host.
    """

    model_config = ConfigDict(frozen=True)

    base_directory: Path
    included_files: frozenset[str] = frozenset()

    @classmethod
    def from_paths(cls, base_directory: Path, paths: list[Path]) -> RelativeFileSet:
        """Build a set from absolute (or base-relative) paths."""
        base = Path(base_directory)
        included: set[str] = set()
        for path in paths:
            path = Path(path)
            try:
                rel = path.relative_to(base) if path.is_absolute() else path
            except ValueError:
                rel = Path(path.name)
            included.add(rel.as_posix())
        return cls(base_directory=base, included_files=frozenset(included))

    @classmethod
    def walk(cls, base_directory: Path) -> RelativeFileSet:
        """Collect every regular file below *base_directory*."""
        base = Path(base_directory)
        files = [p for p in base.rglob("*") if p.is_file()] if base.is_dir() else []
        return cls.from_paths(base, files)

    def contains(self, name: str) -> bool:
        return Path(name).as_posix() in self.included_files

    def files(self) -> list[Path]:
        """Absolute paths of the included files, in sorted order."""
        return [self.base_directory / rel for rel in sorted(self.included_files)]


class MainClassInfo(BaseModel):
    """Result of sniffing a jar manifest.

    One sniff yields up to three parameter values; a field left as ``None``
    means the corresponding parameter was already present and is not
    overwritten.
    """

    model_config = ConfigDict(frozen=True)

    main_class: str | None = None
    main_jar: RelativeFileSet | None = None
    classpath: str | None = None
