"""Models exchanged between the pipeline driver and its callers."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from nativepack.models.pipeline import PipelineTransition


class ExecResult(BaseModel):
    """Outcome of one external tool invocation."""

    model_config = ConfigDict(frozen=True)

    command: list[str]
    exit_code: int
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class BuildRequest(BaseModel):
    """One entry of a batch build.

    ``params`` maps parameter ids to raw text or typed values; it seeds a
    fresh parameter store for this build only.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    bundler_id: str
    output_dir: Path
    params: dict[str, Any] = Field(default_factory=dict)


class BuildOutcome(BaseModel):
    """Per-build report produced by the pipeline driver."""

    model_config = ConfigDict(frozen=True)

    bundler_id: str
    succeeded: bool
    artifact: Path | None = None
    error_kind: str | None = None  # class name from the error taxonomy
    message: str = ""
    advice: str = ""
    exit_code: int | None = None
    transitions: list[PipelineTransition] = []
