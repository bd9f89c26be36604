"""
Clone Lab - speaker voice cloning pipeline.

Extracts a detected speaker's audio, clones it through a voice provider
with independent verification, scores generated audio for production
readiness and resolves speakers to stable identities across recordings.

Example:
    >>> from clonelab import CloneLabService
    >>> service = CloneLabService.from_settings()
    >>> outcome = await service.request_clone("spk_123")
"""

__version__ = "1.0.0"

from .config import Mode, Settings, get_settings, resolve_mode
from .errors import CloneLabError, FailureReason
from .models import (
    AudioSegment,
    CloneOutcome,
    IdentityDecision,
    QualityMetrics,
    SpeakerProfile,
    VoiceCharacteristics,
    WorkflowState,
    WorkflowStatus,
)
from .service import CloneLabService

__all__ = [
    "__version__",
    "AudioSegment",
    "CloneLabError",
    "CloneLabService",
    "CloneOutcome",
    "FailureReason",
    "IdentityDecision",
    "Mode",
    "QualityMetrics",
    "Settings",
    "SpeakerProfile",
    "VoiceCharacteristics",
    "WorkflowState",
    "WorkflowStatus",
    "get_settings",
    "resolve_mode",
]
