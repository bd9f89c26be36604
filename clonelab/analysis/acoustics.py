"""
Acoustic profiler.

Measures the characteristics of a voice from its extracted audio and
estimates how closely a clone reproduces it.
"""

import hashlib
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import structlog

from ..models import (
    CloneCharacteristics,
    PaceProfile,
    PitchProfile,
    SimilarityDetails,
    SimilarityMetrics,
    ToneProfile,
    VoiceQualityProfile,
)
from . import dsp

logger = structlog.get_logger(__name__)

DEFAULT_WPM = 150.0
FORMANT_BANDS = ((250.0, 1000.0), (800.0, 2500.0), (2000.0, 3500.0), (3000.0, 4500.0))


def _clip(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return float(max(low, min(high, value)))


@dataclass
class VoiceSample:
    """Decoded mono audio and its transcript."""

    samples: np.ndarray
    sample_rate: int
    text: str = ""

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate if self.sample_rate else 0.0


class AcousticProfiler:
    """Derives clone characteristics and similarity from PCM audio."""

    def characteristics(self, voice: Sequence[VoiceSample]) -> CloneCharacteristics:
        """Measure pitch, tone, pace and quality across all samples."""
        if not voice:
            raise ValueError("At least one sample is required")

        sample_rate = voice[0].sample_rate
        joined = np.concatenate([v.samples for v in voice])

        pitches = np.concatenate([dsp.estimate_pitch_track(v.samples, v.sample_rate) for v in voice])
        if len(pitches):
            average = float(np.median(pitches))
            spread = float(np.percentile(pitches, 90) - np.percentile(pitches, 10))
            variation = _clip(float(np.std(pitches) / max(np.mean(pitches), 1e-6)) * 3)
        else:
            average, spread, variation = 0.0, 0.0, 0.0

        warmth = _clip(dsp.band_energy_ratio(joined, sample_rate, 100.0, 1000.0) * 1.2)
        brightness = _clip(dsp.band_energy_ratio(joined, sample_rate, 2000.0, 8000.0) * 3.0)
        depth = _clip(dsp.band_energy_ratio(joined, sample_rate, 60.0, 300.0) * 2.0)

        duration = sum(v.duration for v in voice)
        words = sum(len(v.text.split()) for v in voice)
        wpm = words / (duration / 60.0) if words and duration > 0 else DEFAULT_WPM

        rms = dsp.frame_rms(joined)
        voiced = rms[rms >= 0.01]
        rhythm = _clip(1.0 - float(np.std(voiced) / np.mean(voiced))) if len(voiced) > 1 else 0.5

        snr_db = dsp.estimate_snr_db(joined)
        clarity = _clip((snr_db if snr_db is not None else 20.0) / 40.0)

        centroids = [dsp.spectral_centroid(v.samples, v.sample_rate) for v in voice]
        if len(centroids) > 1 and np.mean(centroids) > 0:
            consistency = _clip(1.0 - float(np.std(centroids) / np.mean(centroids)) * 2)
        else:
            consistency = 0.8

        naturalness = _clip(0.5 + 0.5 * rhythm * (1.0 - min(1.0, dsp.clipping_ratio(joined) * 20)))

        return CloneCharacteristics(
            pitch=PitchProfile(average=round(average, 1), range=round(spread, 1), variation=round(variation, 3)),
            tone=ToneProfile(warmth=round(warmth, 3), brightness=round(brightness, 3), depth=round(depth, 3)),
            pace=PaceProfile(
                words_per_minute=round(wpm, 1),
                pause_frequency=round(dsp.silence_ratio(joined), 3),
                rhythm=round(rhythm, 3),
            ),
            quality=VoiceQualityProfile(
                clarity=round(clarity, 3),
                consistency=round(consistency, 3),
                naturalness=round(naturalness, 3),
            ),
        )

    def formants(self, samples: np.ndarray, sample_rate: int) -> List[float]:
        """Strongest spectral peak inside each formant band."""
        spectrum = dsp.magnitude_spectrum(samples)
        freqs = np.fft.rfftfreq(dsp.FRAME_SIZE, d=1.0 / sample_rate)
        peaks = []
        for low, high in FORMANT_BANDS:
            mask = (freqs >= low) & (freqs < high)
            if not mask.any():
                peaks.append(0.0)
                continue
            peaks.append(round(float(freqs[mask][np.argmax(spectrum[mask])]), 1))
        return peaks

    def voice_print(self, samples: np.ndarray) -> str:
        """Stable hash of the coarse spectral envelope."""
        spectrum = dsp.magnitude_spectrum(samples)
        bands = np.array_split(spectrum, 32)
        envelope = np.array([b.mean() for b in bands])
        envelope = envelope / (envelope.max() or 1.0)
        quantized = np.round(envelope * 15).astype(np.uint8)
        return hashlib.sha256(quantized.tobytes()).hexdigest()[:16]

    def similarity(
        self,
        reference: Sequence[VoiceSample],
        characteristics: CloneCharacteristics,
    ) -> SimilarityMetrics:
        """
        Predicted similarity on a 0-100 scale.

        Fidelity is estimated from how consistent and clean the reference
        audio is, since no clone audio is rendered for comparison.
        """
        joined = np.concatenate([v.samples for v in reference])
        sample_rate = reference[0].sample_rate

        details = SimilarityDetails(
            fundamental_frequency=characteristics.pitch.average,
            formant_analysis=self.formants(joined, sample_rate),
            harmonic_richness=round(_clip(1.0 - dsp.spectral_flatness(joined)), 3),
            voice_print=self.voice_print(joined),
        )

        q = characteristics.quality
        pitch = 100 * _clip(0.7 + 0.3 * (1 - characteristics.pitch.variation))
        tone = 100 * _clip(0.6 + 0.4 * q.consistency)
        accent = 100 * _clip(0.65 + 0.35 * q.consistency)
        pace = 100 * _clip(0.6 + 0.4 * characteristics.pace.rhythm)
        clarity = 100 * _clip(0.5 + 0.5 * q.clarity)
        confidence = 100 * _clip(0.5 + 0.3 * q.consistency + 0.1 * min(len(reference), 3) / 3)

        overall = (pitch + tone + accent + pace + clarity) / 5
        return SimilarityMetrics(
            overall=round(overall, 1),
            pitch=round(pitch, 1),
            tone=round(tone, 1),
            accent=round(accent, 1),
            pace=round(pace, 1),
            clarity=round(clarity, 1),
            confidence=round(confidence, 1),
            details=details,
        )
