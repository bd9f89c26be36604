"""
Voice Fingerprint Matcher.

Resolves a speaker detection to a voice identity so the same physical
speaker appearing in many recordings does not produce duplicate voices.
"""

import asyncio
import math
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import structlog

from ..models import (
    IdentityDecision,
    IdentityDecisionKind,
    VoiceCharacteristics,
    VoiceFingerprint,
)
from ..store import PersistenceStore

logger = structlog.get_logger(__name__)


MATCH_THRESHOLD = 0.75
SIMILAR_THRESHOLD = 0.5

SAME_ACCENT_LIMIT = 50
ADJACENT_ACCENT_LIMIT = 30

SIGNATURE_WEIGHT = 30
CHARACTERISTIC_WEIGHTS = {
    "pitch": 25,
    "tempo": 20,
    "emotion": 15,
    "clarity": 10,
}
ADJACENT_CREDIT = 0.7

# Buckets that earn partial credit against each other
SIMILAR_BUCKETS: Dict[str, List[str]] = {
    "high": ["medium-high"],
    "medium-high": ["high", "medium"],
    "medium": ["medium-high", "medium-low"],
    "medium-low": ["medium", "low"],
    "low": ["medium-low"],
    "fast": ["moderate"],
    "moderate": ["fast", "slow"],
    "slow": ["moderate"],
    "professional": ["confident", "instructional"],
    "confident": ["professional", "encouraging"],
    "warm": ["encouraging", "friendly"],
    "excellent": ["good"],
    "good": ["excellent"],
}

ACCENT_ADJACENCY: Dict[str, List[str]] = {
    "General American": ["Midwest U.S.", "West Coast"],
    "Southern U.S.": ["General American"],
    "West Coast": ["General American", "Canadian"],
    "New York": ["General American"],
    "Midwest U.S.": ["General American", "Canadian"],
    "British RP": ["Australian"],
    "Australian": ["British RP"],
    "Canadian": ["General American", "Midwest U.S."],
}

NAMES_BY_ACCENT: Dict[str, List[str]] = {
    "General American": ["Alex Rivera", "Jordan Hayes", "Taylor Morgan", "Casey Wright", "Drew Collins"],
    "Southern U.S.": ["Avery Belle", "Blake Sinclair", "Carter Rose", "Dylan Grace", "Harper Stone"],
    "West Coast": ["Riley Ocean", "Quinn Sage", "Skyler Bay", "Phoenix Cruz", "Sage Harbor"],
    "New York": ["Brooklyn Vale", "Hudson Park", "Lennox Gray", "Rowan Steel", "Emery Chase"],
    "Midwest U.S.": ["River Plain", "Dakota Field", "Sterling Oak", "Camden Hill", "Weston Vale"],
    "British RP": ["Avery Cambridge", "Blake Windsor", "Charlie Ashworth", "Finley Sterling", "Hadley Cross"],
    "Australian": ["Riley Coastal", "Blake Summit", "Charlie Reef", "Finley Grove", "Harper Bay"],
    "Canadian": ["River Pine", "Blake Frost", "Charlie Snow", "Finley North", "Harper Maple"],
}

PROFESSIONAL_NAMES = ["Cameron Professional", "Jordan Executive", "Taylor Authority", "Morgan Elite", "Blake Corporate"]
WARM_NAMES = ["Sage Warm", "River Kind", "Harper Gentle", "Quinn Caring", "Avery Heart"]
HIGH_PITCH_NAMES = ["Melody Bright", "Aria Clear", "Luna Light", "Sky High", "Nova Sharp"]
LOW_PITCH_NAMES = ["Bass Strong", "Vale Deep", "Stone Solid", "Ridge Low", "Canyon Rich"]

HIGH_QUALITY_SUFFIX = " ★"
SIMILAR_SUFFIX = " (Similar)"


# =============================================================================
# Scoring
# =============================================================================


def voice_signature(accent: str, characteristics: VoiceCharacteristics) -> str:
    """Bucket key: accent|pitch|tempo|emotion prefix|clarity prefix."""
    parts = [
        "".join(accent.lower().split()),
        characteristics.pitch.lower(),
        characteristics.tempo.lower(),
        characteristics.emotion.lower()[:3],
        characteristics.clarity.lower()[:3],
    ]
    return "|".join(parts)


def compare_characteristic(a: str, b: str) -> float:
    """1.0 for equal buckets, partial credit for adjacent buckets, else 0."""
    if not a or not b:
        return 0.0
    a, b = a.lower(), b.lower()
    if a == b:
        return 1.0
    if b in SIMILAR_BUCKETS.get(a, ()) or a in SIMILAR_BUCKETS.get(b, ()):
        return ADJACENT_CREDIT
    return 0.0


def signature_score(a: str, b: str) -> float:
    if a == b:
        return 1.0
    parts_a, parts_b = a.split("|"), b.split("|")
    matches = sum(1 for x, y in zip(parts_a, parts_b) if x == y)
    return matches / max(len(parts_a), len(parts_b))


def match_confidence(
    signature_a: str,
    characteristics_a: VoiceCharacteristics,
    signature_b: str,
    characteristics_b: VoiceCharacteristics,
) -> float:
    """Weighted match score in [0, 1]. Symmetric in its two voices."""
    score = SIGNATURE_WEIGHT * signature_score(signature_a, signature_b)
    for field, weight in CHARACTERISTIC_WEIGHTS.items():
        score += weight * compare_characteristic(
            getattr(characteristics_a, field), getattr(characteristics_b, field)
        )
    total = SIGNATURE_WEIGHT + sum(CHARACTERISTIC_WEIGHTS.values())
    return round(score / total, 4)


def synthesize_name(accent: str, characteristics: VoiceCharacteristics, quality_score: float) -> str:
    """Deterministic display name from accent, dominant trait and quality."""
    pool = NAMES_BY_ACCENT.get(accent, NAMES_BY_ACCENT["General American"])

    emotion = characteristics.emotion.lower()
    pitch = characteristics.pitch.lower()
    if "professional" in emotion:
        pool = PROFESSIONAL_NAMES
    elif "warm" in emotion:
        pool = WARM_NAMES
    elif "high" in pitch:
        pool = HIGH_PITCH_NAMES
    elif "low" in pitch:
        pool = LOW_PITCH_NAMES

    index = math.floor(max(quality_score, 0.0) / 10 * len(pool))
    name = pool[min(index, len(pool) - 1)]
    if quality_score >= 9.0:
        name += HIGH_QUALITY_SUFFIX
    return name


# =============================================================================
# Matcher
# =============================================================================


class FingerprintMatcher:
    """
    Matches detections against the fingerprint index.

    Lookup, candidate search and save run under one lock. A decision can
    touch fingerprints in neighbouring buckets and adjacent accents, so
    concurrent detections of one speaker must see each other.
    """

    def __init__(self, store: PersistenceStore):
        self.store = store
        self._lock = asyncio.Lock()

    async def match_or_create(
        self,
        accent: str,
        characteristics: VoiceCharacteristics,
        quality_score: float,
    ) -> IdentityDecision:
        """
        Resolve a detection to an identity.

        Args:
            accent: Accent label of the detection
            characteristics: Bucketed characteristics vector
            quality_score: Speaker quality score (0-10)

        Returns:
            IdentityDecision; ``matched`` is True only when an existing
            fingerprint was reused
        """
        signature = voice_signature(accent, characteristics)

        async with self._lock:
            # The signature bucket itself is always the identity for its detections
            existing = await self.store.get_fingerprint_by_signature(signature)
            if existing is not None:
                confidence = match_confidence(
                    signature, characteristics, existing.signature, existing.characteristics
                )
                return await self._reuse(existing, confidence)

            best, confidence = await self._best_candidate(accent, signature, characteristics)

            if best is not None and confidence > MATCH_THRESHOLD:
                return await self._reuse(best, confidence)

            if best is not None and confidence > SIMILAR_THRESHOLD:
                kind = IdentityDecisionKind.SIMILAR
                name = f"{best.name}{SIMILAR_SUFFIX}"
            else:
                kind = IdentityDecisionKind.NEW
                name = synthesize_name(accent, characteristics, quality_score)

            fingerprint = VoiceFingerprint(
                signature=signature,
                accent=accent,
                name=name,
                characteristics=characteristics,
                quality_score=quality_score,
                match_confidence=confidence if kind == IdentityDecisionKind.SIMILAR else 1.0,
            )
            await self.store.save_fingerprint(fingerprint)

        logger.info(
            "identity_created",
            signature=signature,
            name=name,
            kind=kind.value,
            confidence=confidence,
        )
        return IdentityDecision(
            matched=False,
            kind=kind,
            confidence=confidence,
            name=name,
            fingerprint=fingerprint,
            created=True,
        )

    async def _best_candidate(
        self,
        accent: str,
        signature: str,
        characteristics: VoiceCharacteristics,
    ) -> Tuple[Optional[VoiceFingerprint], float]:
        candidates = await self.store.list_fingerprints([accent], SAME_ACCENT_LIMIT)
        if not candidates:
            adjacent = ACCENT_ADJACENCY.get(accent, [])
            if adjacent:
                candidates = await self.store.list_fingerprints(adjacent, ADJACENT_ACCENT_LIMIT)

        best: Optional[VoiceFingerprint] = None
        best_confidence = 0.0
        for candidate in candidates:
            if not candidate.name:
                continue
            confidence = match_confidence(
                signature, characteristics, candidate.signature, candidate.characteristics
            )
            if confidence > best_confidence:
                best, best_confidence = candidate, confidence
        return best, best_confidence

    async def _reuse(self, fingerprint: VoiceFingerprint, confidence: float) -> IdentityDecision:
        updated = fingerprint.model_copy(
            update={
                "detection_count": fingerprint.detection_count + 1,
                "last_seen": datetime.utcnow(),
                "match_confidence": confidence,
            }
        )
        await self.store.save_fingerprint(updated)

        logger.info(
            "identity_matched",
            signature=updated.signature,
            name=updated.name,
            confidence=confidence,
            detections=updated.detection_count,
        )
        return IdentityDecision(
            matched=True,
            kind=IdentityDecisionKind.MATCHED,
            confidence=confidence,
            name=updated.name,
            fingerprint=updated,
            created=False,
        )
