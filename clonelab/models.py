"""
Data Models for the Clone Lab pipeline.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import FailureReason


# =============================================================================
# Enums
# =============================================================================


class SpeakerLifecycle(str, Enum):
    """Lifecycle of a detected speaker."""

    DETECTED = "detected"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    CLONING = "cloning"
    CLONED = "cloned"
    FAILED = "failed"


class SegmentQuality(str, Enum):
    """Estimated quality bucket of an audio segment."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class WorkflowState(str, Enum):
    """State of a per-speaker cloning workflow."""

    NOT_STARTED = "not_started"
    VALIDATING = "validating"
    CLONING = "cloning"
    VERIFYING = "verifying"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowState.COMPLETED, WorkflowState.FAILED)


class IdentityDecisionKind(str, Enum):
    """How a detection was resolved against the fingerprint index."""

    MATCHED = "matched"      # Same identity, existing fingerprint updated
    SIMILAR = "similar"      # New identity with a disambiguated name
    NEW = "new"              # New identity with a synthesized name


# =============================================================================
# Speaker Models
# =============================================================================


class VoiceCharacteristics(BaseModel):
    """Bucketed characteristics vector of a detected speaker."""

    pitch: str = Field(default="medium", description="Pitch bucket (low .. high)")
    tempo: str = Field(default="moderate", description="Tempo bucket (slow, moderate, fast)")
    emotion: str = Field(default="neutral", description="Dominant emotional register")
    clarity: str = Field(default="good", description="Articulation clarity bucket")

    @field_validator("pitch", "tempo", "emotion", "clarity")
    @classmethod
    def strip_label(cls, v: str) -> str:
        return v.strip()


class AudioSegment(BaseModel):
    """A time range of source media attributed to one speaker."""

    id: str = Field(default_factory=lambda: f"seg_{uuid.uuid4().hex[:12]}")
    start: float = Field(..., ge=0.0, description="Start offset in seconds")
    end: float = Field(..., ge=0.0, description="End offset in seconds")
    text: str = Field(default="", description="Transcript of the segment")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0, description="Detection confidence")
    audio_url: Optional[str] = Field(default=None, description="Extracted audio location")
    quality: Optional[SegmentQuality] = None

    @property
    def duration(self) -> float:
        return max(0.0, self.end - self.start)


class SpeakerProfile(BaseModel):
    """A speaker detected in a source recording."""

    id: str = Field(default_factory=lambda: f"spk_{uuid.uuid4().hex[:12]}")
    name: str = Field(default="", description="Display name")
    accent: str = Field(default="General American")
    characteristics: VoiceCharacteristics = Field(default_factory=VoiceCharacteristics)
    quality_score: float = Field(default=0.0, ge=0.0, le=10.0)
    segments: List[AudioSegment] = Field(default_factory=list)
    lifecycle: SpeakerLifecycle = SpeakerLifecycle.DETECTED

    source_id: Optional[str] = Field(default=None, description="Source recording identifier")
    source_locator: Optional[str] = Field(default=None, description="Locator of the source media")

    # Links
    voice_id: Optional[str] = None
    persona_id: Optional[str] = None
    fingerprint_signature: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ExtractedAudioFile(BaseModel):
    """Normalized audio stored for one segment."""

    segment_id: str
    url: str
    duration: float
    quality: SegmentQuality
    quality_score: float = Field(default=0.0, ge=0.0, le=10.0)
    sample_rate: int
    channels: int = 1
    content_type: str = "audio/wav"
    text: str = ""


class VoiceSettings(BaseModel):
    """Synthesis settings passed to the provider."""

    stability: float = Field(default=0.75, ge=0.0, le=1.0, description="Voice stability (0=varied, 1=stable)")
    similarity_boost: float = Field(default=0.75, ge=0.0, le=1.0, description="Similarity to original voice")
    style: float = Field(default=0.0, ge=0.0, le=1.0, description="Style exaggeration")
    use_speaker_boost: bool = Field(default=True)


# =============================================================================
# Clone Characteristics
# =============================================================================


class PitchProfile(BaseModel):
    average: float = Field(..., description="Mean fundamental frequency in Hz")
    range: float = Field(..., description="Spread of the fundamental in Hz")
    variation: float = Field(..., ge=0.0, le=1.0)


class ToneProfile(BaseModel):
    warmth: float = Field(..., ge=0.0, le=1.0)
    brightness: float = Field(..., ge=0.0, le=1.0)
    depth: float = Field(..., ge=0.0, le=1.0)


class PaceProfile(BaseModel):
    words_per_minute: float = Field(..., ge=0.0)
    pause_frequency: float = Field(..., ge=0.0, le=1.0)
    rhythm: float = Field(..., ge=0.0, le=1.0)


class VoiceQualityProfile(BaseModel):
    clarity: float = Field(..., ge=0.0, le=1.0)
    consistency: float = Field(..., ge=0.0, le=1.0)
    naturalness: float = Field(..., ge=0.0, le=1.0)


class CloneCharacteristics(BaseModel):
    """Acoustic characteristics of a cloned voice."""

    pitch: PitchProfile
    tone: ToneProfile
    pace: PaceProfile
    quality: VoiceQualityProfile


class SimilarityDetails(BaseModel):
    fundamental_frequency: float = 0.0
    formant_analysis: List[float] = Field(default_factory=list)
    harmonic_richness: float = 0.0
    voice_print: str = ""


class SimilarityMetrics(BaseModel):
    """Similarity between the clone and its source audio, 0-100 scale."""

    overall: float = Field(..., ge=0.0, le=100.0)
    pitch: float = Field(..., ge=0.0, le=100.0)
    tone: float = Field(..., ge=0.0, le=100.0)
    accent: float = Field(..., ge=0.0, le=100.0)
    pace: float = Field(..., ge=0.0, le=100.0)
    clarity: float = Field(..., ge=0.0, le=100.0)
    confidence: float = Field(..., ge=0.0, le=100.0)
    details: SimilarityDetails = Field(default_factory=SimilarityDetails)


# =============================================================================
# Outcomes
# =============================================================================


class CloneOutcome(BaseModel):
    """Terminal result of one speaker's cloning workflow."""

    model_config = ConfigDict(frozen=True)

    speaker_id: str
    status: WorkflowState
    voice_id: Optional[str] = None
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    similarity: Optional[SimilarityMetrics] = None
    characteristics: Optional[CloneCharacteristics] = None
    warnings: List[str] = Field(default_factory=list)
    simulated: bool = False
    persona_id: Optional[str] = None
    verified_at: Optional[datetime] = None
    completed_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("status")
    @classmethod
    def must_be_terminal(cls, v: WorkflowState) -> WorkflowState:
        if not v.is_terminal:
            raise ValueError(f"Outcome status must be terminal, got {v.value}")
        return v

    @property
    def succeeded(self) -> bool:
        return self.status == WorkflowState.COMPLETED


class WorkflowStatus(BaseModel):
    """Observable state of a speaker's workflow."""

    speaker_id: str
    state: WorkflowState
    reason: Optional[FailureReason] = None
    voice_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# Quality Models
# =============================================================================


class QualityDetails(BaseModel):
    snr: float = Field(default=0.0, ge=0.0, le=1.0)
    spectral_quality: float = Field(default=0.0, ge=0.0, le=1.0)
    distortion: float = Field(default=0.0, ge=0.0, le=1.0)
    background_noise: float = Field(default=0.0, ge=0.0, le=1.0)


class QualityMetrics(BaseModel):
    """Multi-dimensional quality assessment of generated audio."""

    transcription_accuracy: float = Field(..., ge=0.0, le=1.0)
    audio_clarity: float = Field(..., ge=0.0, le=1.0)
    naturalness: float = Field(..., ge=0.0, le=1.0)
    emotional_consistency: float = Field(..., ge=0.0, le=1.0)
    similarity: float = Field(..., ge=0.0, le=1.0)
    technical_quality: float = Field(default=0.0, ge=0.0, le=1.0)

    overall: float = Field(..., ge=0.0, le=1.0)
    is_production_ready: bool = False
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    recommendations: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    details: QualityDetails = Field(default_factory=QualityDetails)
    analyzed_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


# =============================================================================
# Identity Models
# =============================================================================


class VoiceFingerprint(BaseModel):
    """Derived signature of a speaker used for matching across recordings."""

    id: str = Field(default_factory=lambda: f"fp_{uuid.uuid4().hex[:12]}")
    signature: str
    accent: str
    name: str
    characteristics: VoiceCharacteristics
    quality_score: float = 0.0
    match_confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    detection_count: int = Field(default=1, ge=1)
    voice_id: Optional[str] = None
    first_seen: datetime = Field(default_factory=datetime.utcnow)
    last_seen: datetime = Field(default_factory=datetime.utcnow)


class IdentityDecision(BaseModel):
    """Result of matching a detection against known fingerprints."""

    matched: bool
    kind: IdentityDecisionKind
    confidence: float = Field(..., ge=0.0, le=1.0)
    name: str
    fingerprint: VoiceFingerprint
    created: bool = False


# =============================================================================
# Persona and Voice Records
# =============================================================================


class Persona(BaseModel):
    """Display metadata describing a cloned voice."""

    id: str = Field(default_factory=lambda: f"per_{uuid.uuid4().hex[:12]}")
    voice_id: Optional[str] = None
    speaker_id: Optional[str] = None
    name: str
    glyph: str
    sample_text: str
    estimated_age: int
    tone: str
    energy: str
    accent: str = "General American"
    region: str = "Unknown Region"
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ClonedVoice(BaseModel):
    """A provider voice created for a speaker."""

    voice_id: str
    speaker_id: str
    name: str
    provider: str
    simulated: bool = False
    characteristics: Optional[CloneCharacteristics] = None
    similarity: Optional[SimilarityMetrics] = None
    sample_urls: List[str] = Field(default_factory=list)
    labels: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
