"""
Clone Workflow State Machine

Tracks one speaker's progress through:
- Validation of extracted assets
- Provider cloning
- Independent verification
- Persistence
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set

import structlog

from ..errors import FailureReason, InvalidTransitionError
from ..models import WorkflowState, WorkflowStatus

logger = structlog.get_logger(__name__)


ALLOWED_TRANSITIONS: Dict[WorkflowState, Set[WorkflowState]] = {
    WorkflowState.NOT_STARTED: {WorkflowState.VALIDATING},
    WorkflowState.VALIDATING: {WorkflowState.CLONING},
    WorkflowState.CLONING: {WorkflowState.VERIFYING},
    WorkflowState.VERIFYING: {WorkflowState.PERSISTING},
    WorkflowState.PERSISTING: {WorkflowState.COMPLETED},
    WorkflowState.COMPLETED: set(),
    WorkflowState.FAILED: set(),
}


@dataclass
class TransitionRecord:
    """A state change of a workflow."""
    from_state: WorkflowState
    to_state: WorkflowState
    timestamp: datetime = field(default_factory=datetime.utcnow)


@dataclass
class CloneWorkflow:
    """State of one speaker's cloning workflow."""
    speaker_id: str
    state: WorkflowState = WorkflowState.NOT_STARTED
    reason: Optional[FailureReason] = None
    voice_id: Optional[str] = None
    simulated: bool = False
    warnings: List[str] = field(default_factory=list)
    history: List[TransitionRecord] = field(default_factory=list)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def can_transition(self, target: WorkflowState) -> bool:
        if self.state.is_terminal:
            return False
        # Any live state may fail
        if target == WorkflowState.FAILED:
            return True
        return target in ALLOWED_TRANSITIONS[self.state]

    def transition(self, target: WorkflowState) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(self.state.value, target.value)

        self.history.append(TransitionRecord(from_state=self.state, to_state=target))
        logger.debug(
            "workflow_transition",
            speaker_id=self.speaker_id,
            from_state=self.state.value,
            to_state=target.value,
        )
        self.state = target
        self.updated_at = datetime.utcnow()

    def fail(self, reason: FailureReason) -> None:
        self.transition(WorkflowState.FAILED)
        self.reason = reason

    @property
    def visited(self) -> List[WorkflowState]:
        """States entered, in order."""
        return [record.to_state for record in self.history]

    def status(self) -> WorkflowStatus:
        return WorkflowStatus(
            speaker_id=self.speaker_id,
            state=self.state,
            reason=self.reason,
            voice_id=self.voice_id,
            updated_at=self.updated_at,
        )
