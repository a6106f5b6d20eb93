"""nativepack data models: all Pydantic v2, all frozen (immutable)."""

from nativepack.models.build import BuildOutcome, BuildRequest, ExecResult
from nativepack.models.files import MainClassInfo, RelativeFileSet
from nativepack.models.pipeline import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    BundleType,
    PipelineState,
    PipelineTransition,
)
from nativepack.models.resources import ResourceOrigin, ResourceRequest

__all__ = [
    "BuildOutcome",
    "BuildRequest",
    "ExecResult",
    "MainClassInfo",
    "RelativeFileSet",
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    "BundleType",
    "PipelineState",
    "PipelineTransition",
    "ResourceOrigin",
    "ResourceRequest",
]
