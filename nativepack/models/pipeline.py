"""Bundler pipeline state machine models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PipelineState(str, Enum):
    """Lifecycle of one artifact build."""

    UNVALIDATED = "unvalidated"
    VALIDATED = "validated"
    IMAGE_ASSEMBLED = "image_assembled"
    TRANSFORMED = "transformed"
    PACKAGED = "packaged"
    CLEANED_UP = "cleaned_up"
    FAILED = "failed"


# Stages run strictly in order; FAILED is reachable from every
# non-terminal state.
VALID_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.UNVALIDATED: {PipelineState.VALIDATED, PipelineState.FAILED},
    PipelineState.VALIDATED: {PipelineState.IMAGE_ASSEMBLED, PipelineState.FAILED},
    PipelineState.IMAGE_ASSEMBLED: {PipelineState.TRANSFORMED, PipelineState.FAILED},
    PipelineState.TRANSFORMED: {PipelineState.PACKAGED, PipelineState.FAILED},
    PipelineState.PACKAGED: {PipelineState.CLEANED_UP, PipelineState.FAILED},
    PipelineState.CLEANED_UP: set(),  # terminal
    PipelineState.FAILED: set(),  # terminal
}

TERMINAL_STATES: frozenset[PipelineState] = frozenset(
    state for state, targets in VALID_TRANSITIONS.items() if not targets
)


class BundleType(str, Enum):
    """What kind of artifact a bundler produces."""

    IMAGE = "image"
    INSTALLER = "installer"


class PipelineTransition(BaseModel):
    """Records a single state transition of a build."""

    model_config = ConfigDict(frozen=True)

    bundler_id: str
    from_state: PipelineState
    to_state: PipelineState
    detail: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def label(self) -> str:
        return f"{self.from_state.value}->{self.to_state.value}"
