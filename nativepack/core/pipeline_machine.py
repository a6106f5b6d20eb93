"""Per-build pipeline state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- FAILED reachable from every non-terminal state
- Every transition recorded, in order
"""

from __future__ import annotations

import logging

from nativepack.models.pipeline import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    PipelineState,
    PipelineTransition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class PipelineMachine:
    """Tracks the state of one bundler run.

    Parameters
    ----------
    bundler_id:
        Id of the bundler whose run is tracked; copied into each transition.
    """

    def __init__(self, bundler_id: str) -> None:
        self.bundler_id = bundler_id
        self._state = PipelineState.UNVALIDATED
        self._history: list[PipelineTransition] = []

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> list[PipelineTransition]:
        """Snapshot of the recorded transitions."""
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(self, target: PipelineState, detail: str = "") -> PipelineTransition:
        """Move to *target*, recording the transition.

        Raises ``InvalidTransitionError`` if VALID_TRANSITIONS forbids it.
        """
        current = self._state
        allowed = VALID_TRANSITIONS.get(current, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {self.bundler_id} from {current.value} to "
                f"{target.value}. Allowed: {sorted(s.value for s in allowed)}"
            )
        record = PipelineTransition(
            bundler_id=self.bundler_id,
            from_state=current,
            to_state=target,
            detail=detail,
        )
        self._history.append(record)
        self._state = target
        logger.debug("%s: %s", self.bundler_id, record.label)
        return record

    def fail(self, detail: str = "") -> PipelineTransition | None:
        """Move to FAILED unless the run already reached a terminal state."""
        if self.is_terminal:
            return None
        return self.transition(PipelineState.FAILED, detail)

    def available_transitions(self) -> set[PipelineState]:
        return set(VALID_TRANSITIONS.get(self._state, set()))
