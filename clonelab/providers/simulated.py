"""
Simulated provider.

Stands in for a live provider when no credentials are configured. Output is
deterministic for a given input so downstream consumers can be exercised
and tested. Results produced through this adapter are always marked as
simulated by the orchestrator.
"""

import hashlib
import random
from typing import Any, Dict, Optional, Sequence, Set, Tuple

from ..config import Mode, ProviderPolicy
from ..media.audio import encode_wav, synthesize_voice_like
from ..media.storage import MediaStorage
from ..models import (
    CloneCharacteristics,
    ExtractedAudioFile,
    PaceProfile,
    PitchProfile,
    SimilarityDetails,
    SimilarityMetrics,
    ToneProfile,
    VoiceQualityProfile,
    VoiceSettings,
)
from .base import ProviderAdapter
from .pacing import ProviderCallPacer

SIMULATED_SAMPLE_RATE = 22050


def _seed(*parts: str) -> int:
    digest = hashlib.sha256("|".join(parts).encode()).digest()
    return int.from_bytes(digest[:8], "big")


class SimulatedProvider(ProviderAdapter):
    """Deterministic in-process provider."""

    name = "simulated"
    mode = Mode.SIMULATED

    def __init__(
        self,
        storage: MediaStorage,
        policy: Optional[ProviderPolicy] = None,
        pacer: Optional[ProviderCallPacer] = None,
    ):
        super().__init__(storage, policy=policy, pacer=pacer or ProviderCallPacer(0.0))
        self._voices: Set[str] = set()

    async def clone(
        self,
        audio_files: Sequence[ExtractedAudioFile],
        name: str,
        description: str = "",
        labels: Optional[Dict[str, Any]] = None,
    ) -> str:
        seed = _seed(name, *sorted(a.url for a in audio_files))
        voice_id = f"sim_{seed:016x}"
        self._voices.add(voice_id)
        self.logger.info("simulated_voice_cloned", voice_id=voice_id, samples=len(audio_files))
        return voice_id

    async def verify_exists(self, voice_id: str) -> bool:
        return voice_id in self._voices

    async def synthesize(
        self,
        voice_id: str,
        text: str,
        settings: Optional[VoiceSettings] = None,
    ) -> bytes:
        # Roughly 150 words per minute
        duration = max(1.0, len(text.split()) / 2.5)
        samples = synthesize_voice_like(
            duration,
            sample_rate=SIMULATED_SAMPLE_RATE,
            seed=_seed(voice_id, text),
        )
        return encode_wav(samples, SIMULATED_SAMPLE_RATE)

    def simulate_profile(self, seed_key: str) -> Tuple[CloneCharacteristics, SimilarityMetrics]:
        """Plausible characteristics and similarity, fixed for ``seed_key``."""
        rng = random.Random(_seed("profile", seed_key))

        characteristics = CloneCharacteristics(
            pitch=PitchProfile(
                average=round(120 + rng.random() * 60, 1),
                range=round(40 + rng.random() * 80, 1),
                variation=round(0.6 + rng.random() * 0.3, 3),
            ),
            tone=ToneProfile(
                warmth=round(0.7 + rng.random() * 0.25, 3),
                brightness=round(0.65 + rng.random() * 0.3, 3),
                depth=round(0.6 + rng.random() * 0.35, 3),
            ),
            pace=PaceProfile(
                words_per_minute=round(140 + rng.random() * 40, 1),
                pause_frequency=round(0.15 + rng.random() * 0.1, 3),
                rhythm=round(0.75 + rng.random() * 0.2, 3),
            ),
            quality=VoiceQualityProfile(
                clarity=round(0.85 + rng.random() * 0.1, 3),
                consistency=round(0.8 + rng.random() * 0.15, 3),
                naturalness=round(0.8 + rng.random() * 0.15, 3),
            ),
        )

        pitch = 80 + rng.random() * 15
        tone = 75 + rng.random() * 20
        accent = 80 + rng.random() * 15
        pace = 78 + rng.random() * 17
        clarity = 82 + rng.random() * 13
        overall = (pitch + tone + accent + pace + clarity) / 5

        similarity = SimilarityMetrics(
            overall=round(overall, 1),
            pitch=round(pitch, 1),
            tone=round(tone, 1),
            accent=round(accent, 1),
            pace=round(pace, 1),
            clarity=round(clarity, 1),
            confidence=round(85 + rng.random() * 10, 1),
            details=SimilarityDetails(
                fundamental_frequency=characteristics.pitch.average,
                formant_analysis=[round(f + rng.uniform(-100, 100), 1) for f in (800, 1200, 2400, 3200)],
                harmonic_richness=round(0.7 + rng.random() * 0.25, 3),
                voice_print=f"sim_{_seed('print', seed_key):016x}",
            ),
        )
        return characteristics, similarity
