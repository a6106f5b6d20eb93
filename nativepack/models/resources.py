"""Resource resolution request models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class ResourceOrigin(str, Enum):
    """Which branch of the resolution order produced a resource."""

    DROP_IN = "drop_in"
    BUNDLED = "bundled"
    CUSTOM_FILE = "custom_file"
    DEFAULT = "default"
    MISSING = "missing"


class ResourceRequest(BaseModel):
    """Describes one resource lookup.

    ``public_name`` is searched in the drop-in directory and among the
    bundled resources; ``custom_file`` is a user-supplied file read straight
    from disk; ``default_name`` names the bundled fallback.
    """

    model_config = ConfigDict(frozen=True)

    public_name: str | None = None
    category: str | None = None
    default_name: str | None = None
    custom_file: Path | None = None
    drop_in_root: Path | None = None
    required: bool = True

    @property
    def label(self) -> str:
        return f"[{self.category}] " if self.category else ""
