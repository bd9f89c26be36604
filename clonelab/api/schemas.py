"""
Request and response bodies of the HTTP API.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models import AudioSegment, CloneOutcome, VoiceCharacteristics


class RegisterSpeakerRequest(BaseModel):
    """A speaker detected in a source recording."""

    id: Optional[str] = Field(default=None, description="Caller-assigned speaker id")
    name: str = Field(default="", max_length=100)
    accent: str = Field(default="General American")
    characteristics: VoiceCharacteristics = Field(default_factory=VoiceCharacteristics)
    quality_score: float = Field(default=0.0, ge=0.0, le=10.0)
    segments: List[AudioSegment] = Field(default_factory=list)
    source_id: Optional[str] = None
    source_locator: Optional[str] = None


class MatchIdentityRequest(BaseModel):
    accent: str
    characteristics: VoiceCharacteristics
    quality_score: float = Field(default=0.0, ge=0.0, le=10.0)


class BatchCloneResponse(BaseModel):
    source_id: str
    completed: int
    failed: int
    outcomes: List[CloneOutcome]
