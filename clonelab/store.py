"""
Persistence Store.

Durable records for speakers, clone outcomes, voices, personas and voice
fingerprints. ``InMemoryStore`` is the development backend; a database
backed store implements the same ``PersistenceStore`` interface.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from .errors import SpeakerNotFoundError
from .models import (
    ClonedVoice,
    CloneOutcome,
    Persona,
    SegmentQuality,
    SpeakerLifecycle,
    SpeakerProfile,
    VoiceFingerprint,
)

logger = structlog.get_logger(__name__)


class PersistenceStore(ABC):
    """Storage interface used by the orchestrator and fingerprint matcher."""

    # Speakers

    @abstractmethod
    async def save_speaker(self, speaker: SpeakerProfile) -> SpeakerProfile:
        pass

    @abstractmethod
    async def get_speaker(self, speaker_id: str) -> Optional[SpeakerProfile]:
        pass

    @abstractmethod
    async def list_speakers_by_source(self, source_id: str) -> List[SpeakerProfile]:
        pass

    @abstractmethod
    async def update_speaker(self, speaker_id: str, **updates) -> SpeakerProfile:
        """Apply field updates. Raises SpeakerNotFoundError if absent."""

    @abstractmethod
    async def update_extracted_segments(
        self, speaker_id: str, extracted: Dict[str, Tuple[str, SegmentQuality]]
    ) -> SpeakerProfile:
        """Record the stored audio URL and quality bucket of each extracted segment."""

    # Outcomes

    @abstractmethod
    async def save_outcome(self, outcome: CloneOutcome) -> None:
        pass

    @abstractmethod
    async def get_outcome(self, speaker_id: str) -> Optional[CloneOutcome]:
        pass

    # Voices and personas

    @abstractmethod
    async def save_voice(self, voice: ClonedVoice) -> None:
        pass

    @abstractmethod
    async def get_voice(self, voice_id: str) -> Optional[ClonedVoice]:
        pass

    @abstractmethod
    async def get_voice_for_speaker(self, speaker_id: str) -> Optional[ClonedVoice]:
        pass

    @abstractmethod
    async def save_persona(self, persona: Persona) -> None:
        pass

    @abstractmethod
    async def get_persona_for_speaker(self, speaker_id: str) -> Optional[Persona]:
        pass

    # Fingerprints

    @abstractmethod
    async def list_fingerprints(self, accents: Sequence[str], limit: int) -> List[VoiceFingerprint]:
        """Most recently seen fingerprints with one of ``accents``."""

    @abstractmethod
    async def get_fingerprint_by_signature(self, signature: str) -> Optional[VoiceFingerprint]:
        pass

    @abstractmethod
    async def save_fingerprint(self, fingerprint: VoiceFingerprint) -> None:
        pass

    @abstractmethod
    async def link_fingerprint_voice(self, signature: str, voice_id: str) -> None:
        pass


class InMemoryStore(PersistenceStore):
    """
    In-memory persistence with read-after-write consistency.

    Records are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._speakers: Dict[str, SpeakerProfile] = {}
        self._outcomes: Dict[str, CloneOutcome] = {}
        self._voices: Dict[str, ClonedVoice] = {}
        self._personas: Dict[str, Persona] = {}
        self._fingerprints: Dict[str, VoiceFingerprint] = {}

        # Indexes
        self._speakers_by_source: Dict[str, List[str]] = {}
        self._persona_by_speaker: Dict[str, str] = {}
        self._voice_by_speaker: Dict[str, str] = {}

        self._lock = asyncio.Lock()

    # =========================================================================
    # Speakers
    # =========================================================================

    async def save_speaker(self, speaker: SpeakerProfile) -> SpeakerProfile:
        async with self._lock:
            is_new = speaker.id not in self._speakers
            self._speakers[speaker.id] = speaker.model_copy(deep=True)
            if is_new and speaker.source_id:
                self._speakers_by_source.setdefault(speaker.source_id, []).append(speaker.id)

        logger.debug("speaker_saved", speaker_id=speaker.id, source_id=speaker.source_id)
        return speaker

    async def get_speaker(self, speaker_id: str) -> Optional[SpeakerProfile]:
        speaker = self._speakers.get(speaker_id)
        return speaker.model_copy(deep=True) if speaker else None

    async def list_speakers_by_source(self, source_id: str) -> List[SpeakerProfile]:
        return [
            self._speakers[sid].model_copy(deep=True)
            for sid in self._speakers_by_source.get(source_id, [])
        ]

    async def update_speaker(self, speaker_id: str, **updates) -> SpeakerProfile:
        async with self._lock:
            speaker = self._speakers.get(speaker_id)
            if speaker is None:
                raise SpeakerNotFoundError(speaker_id)
            updated = speaker.model_copy(update={**updates, "updated_at": datetime.utcnow()}, deep=True)
            self._speakers[speaker_id] = updated
        return updated.model_copy(deep=True)

    async def update_extracted_segments(
        self, speaker_id: str, extracted: Dict[str, Tuple[str, SegmentQuality]]
    ) -> SpeakerProfile:
        async with self._lock:
            speaker = self._speakers.get(speaker_id)
            if speaker is None:
                raise SpeakerNotFoundError(speaker_id)
            segments = [
                seg.model_copy(update={"audio_url": extracted[seg.id][0], "quality": extracted[seg.id][1]})
                if seg.id in extracted
                else seg
                for seg in speaker.segments
            ]
            updated = speaker.model_copy(
                update={
                    "segments": segments,
                    "lifecycle": SpeakerLifecycle.EXTRACTED,
                    "updated_at": datetime.utcnow(),
                },
                deep=True,
            )
            self._speakers[speaker_id] = updated
        return updated.model_copy(deep=True)

    # =========================================================================
    # Outcomes
    # =========================================================================

    async def save_outcome(self, outcome: CloneOutcome) -> None:
        # Outcomes are frozen, no copy needed
        async with self._lock:
            self._outcomes[outcome.speaker_id] = outcome

    async def get_outcome(self, speaker_id: str) -> Optional[CloneOutcome]:
        return self._outcomes.get(speaker_id)

    # =========================================================================
    # Voices and Personas
    # =========================================================================

    async def save_voice(self, voice: ClonedVoice) -> None:
        async with self._lock:
            self._voices[voice.voice_id] = voice.model_copy(deep=True)
            self._voice_by_speaker[voice.speaker_id] = voice.voice_id
        logger.info("voice_saved", voice_id=voice.voice_id, speaker_id=voice.speaker_id)

    async def get_voice(self, voice_id: str) -> Optional[ClonedVoice]:
        voice = self._voices.get(voice_id)
        return voice.model_copy(deep=True) if voice else None

    async def get_voice_for_speaker(self, speaker_id: str) -> Optional[ClonedVoice]:
        voice_id = self._voice_by_speaker.get(speaker_id)
        if voice_id is None:
            return None
        return await self.get_voice(voice_id)

    async def save_persona(self, persona: Persona) -> None:
        async with self._lock:
            self._personas[persona.id] = persona.model_copy(deep=True)
            if persona.speaker_id:
                self._persona_by_speaker[persona.speaker_id] = persona.id

    async def get_persona_for_speaker(self, speaker_id: str) -> Optional[Persona]:
        persona_id = self._persona_by_speaker.get(speaker_id)
        if persona_id is None:
            return None
        return self._personas[persona_id].model_copy(deep=True)

    # =========================================================================
    # Fingerprints
    # =========================================================================

    async def list_fingerprints(self, accents: Sequence[str], limit: int) -> List[VoiceFingerprint]:
        wanted = set(accents)
        matches = [fp for fp in self._fingerprints.values() if fp.accent in wanted]
        matches.sort(key=lambda fp: fp.last_seen, reverse=True)
        return [fp.model_copy(deep=True) for fp in matches[:limit]]

    async def get_fingerprint_by_signature(self, signature: str) -> Optional[VoiceFingerprint]:
        fingerprint = self._fingerprints.get(signature)
        return fingerprint.model_copy(deep=True) if fingerprint else None

    async def save_fingerprint(self, fingerprint: VoiceFingerprint) -> None:
        async with self._lock:
            self._fingerprints[fingerprint.signature] = fingerprint.model_copy(deep=True)

    async def link_fingerprint_voice(self, signature: str, voice_id: str) -> None:
        async with self._lock:
            fingerprint = self._fingerprints.get(signature)
            if fingerprint is not None and fingerprint.voice_id is None:
                self._fingerprints[signature] = fingerprint.model_copy(update={"voice_id": voice_id})

    async def count_fingerprints(self) -> int:
        return len(self._fingerprints)
