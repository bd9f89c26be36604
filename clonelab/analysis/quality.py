"""
Quality Analyzer.

Scores generated audio for production readiness across transcription
accuracy, technical quality, perceptual quality and similarity to a
reference. Each sub-analysis is fault tolerant: a failure falls back to a
fixed value and is recorded in the result's warnings instead of aborting.

The heuristic coefficients below are calibration constants, not derived
quantities; tune them against measured provider output.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import structlog

from ..errors import ANALYSIS_DEGRADED, ANALYSIS_FAILED, MediaError
from ..media.audio import DecodedAudio, decode_wav, detect_format, resample
from ..models import QualityDetails, QualityMetrics
from . import dsp
from .cache import QualityCache
from .transcription import TranscriptionAdapter, text_similarity

logger = structlog.get_logger(__name__)


# =============================================================================
# Scoring constants
# =============================================================================

WEIGHTS = {
    "transcription": 0.25,
    "clarity": 0.25,
    "naturalness": 0.25,
    "emotional": 0.15,
    "similarity": 0.10,
}

READY_OVERALL = 0.70
READY_TRANSCRIPTION = 0.75
READY_CLARITY = 0.65
READY_NATURALNESS = 0.65

TRANSCRIPTION_FALLBACK = 0.8
SIMILARITY_FALLBACK = 0.75
NEUTRAL_SIMILARITY = 0.75

# Assumed bitrate for compressed streams we cannot decode (128 kbps)
COMPRESSED_BYTES_PER_SECOND = 16000
SPOKEN_WORDS_PER_SECOND = 2.5


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return float(max(low, min(high, value)))


@dataclass
class TechnicalScores:
    clarity: float
    snr: float
    spectral: float
    distortion: float

    @property
    def aggregate(self) -> float:
        return (self.clarity + self.snr + self.spectral + (1.0 - self.distortion)) / 4


@dataclass
class PerceptualScores:
    naturalness: float
    emotional: float


TECHNICAL_FALLBACK = TechnicalScores(clarity=0.8, snr=0.75, spectral=0.8, distortion=0.2)
PERCEPTUAL_FALLBACK = PerceptualScores(naturalness=0.75, emotional=0.7)


@dataclass
class AudioProfile:
    """Container and stream facts the heuristics work from."""

    size: int
    format: str
    duration: float
    decoded: Optional[DecodedAudio] = None

    @property
    def bytes_per_second(self) -> float:
        return self.size / max(self.duration, 0.1)


# =============================================================================
# Pure scoring functions
# =============================================================================


def combine_scores(
    transcription: float,
    clarity: float,
    naturalness: float,
    emotional: float,
    similarity: float,
) -> float:
    """Fixed weighted combination, rounded to two decimals."""
    overall = (
        WEIGHTS["transcription"] * transcription
        + WEIGHTS["clarity"] * clarity
        + WEIGHTS["naturalness"] * naturalness
        + WEIGHTS["emotional"] * emotional
        + WEIGHTS["similarity"] * similarity
    )
    return round(_clamp(overall), 2)


def is_production_ready(
    overall: float,
    transcription: float,
    clarity: float,
    naturalness: float,
) -> bool:
    return (
        overall >= READY_OVERALL
        and transcription >= READY_TRANSCRIPTION
        and clarity >= READY_CLARITY
        and naturalness >= READY_NATURALNESS
    )


def score_confidence(scores: List[float]) -> float:
    """1 - population stddev of the scores, clipped to [0.5, 1]."""
    if not scores:
        return 0.5
    return round(_clamp(1.0 - float(np.std(scores)), 0.5, 1.0), 3)


def quality_band(score: float) -> str:
    if score < 0.5:
        return "critical"
    if score < 0.7:
        return "poor"
    if score < 0.8:
        return "acceptable"
    return "excellent"


def build_recommendations(
    transcription: float,
    clarity: float,
    naturalness: float,
    emotional: float,
    similarity: float,
    overall: float,
) -> List[str]:
    """Remediation actions keyed off score bands."""
    recommendations: List[str] = []
    voice_settings: List[str] = []

    if quality_band(overall) == "critical":
        return [
            "CRITICAL: voice quality too low for any use, complete re-clone required",
            "Action: use at least 2-3 minutes of clear single-speaker source audio",
            "Requirements: remove background noise and record with a good microphone",
        ]

    if quality_band(overall) == "poor":
        recommendations.append("Voice needs significant improvement before production use")

    if transcription < 0.6:
        recommendations.append("CRITICAL: speech is unclear, re-clone with a cleaner audio source")
        voice_settings += ["Increase stability to 0.95", "Reduce style to 0.3-0.5"]
    elif transcription < 0.8:
        recommendations.append("Improve speech clarity")
        voice_settings += ["Increase stability to 0.85-0.9", "Adjust similarity_boost to 0.9-0.95"]

    if clarity < 0.6:
        recommendations.append("CRITICAL: source audio has noise or distortion")
        recommendations.append("Action: clean the source audio or find a better recording")
    elif clarity < 0.75:
        recommendations.append("Improve audio quality")
        voice_settings += ["Enable use_speaker_boost", "Increase similarity_boost to 0.95"]

    if naturalness < 0.6:
        recommendations.append("CRITICAL: voice sounds robotic, re-clone from more expressive audio")
        voice_settings.append("Increase style to 0.7-0.9")
    elif naturalness < 0.75:
        recommendations.append("Improve naturalness and expression")
        voice_settings += ["Adjust style to 0.6-0.8", "Enable use_speaker_boost"]

    if emotional < 0.6:
        recommendations.append("Emotional tone is flat, use more varied source audio")
        voice_settings.append("Increase style to 0.8-0.9")
    elif emotional < 0.75:
        recommendations.append("Fine-tune emotional expression")
        voice_settings.append("Adjust style to 0.7-0.8")

    if similarity < 0.7:
        recommendations.append("Voice does not match the reference, consider re-cloning")
        recommendations.append("Use longer, more representative audio samples")

    if voice_settings:
        recommendations.append("Recommended voice settings:")
        recommendations += [f"  - {setting}" for setting in dict.fromkeys(voice_settings)]

    band = quality_band(overall)
    if band == "excellent":
        recommendations.append("PRODUCTION READY: voice meets quality standards")
    elif band == "acceptable":
        recommendations.append("ACCEPTABLE: suitable for testing, monitor quality in production")
    elif overall >= 0.6:
        recommendations.append("NEEDS WORK: improve before production deployment")

    if overall < 0.6:
        recommendations += [
            "Next steps: obtain higher quality source audio",
            "Next steps: repeat the cloning process",
            "Next steps: re-run quality analysis",
        ]
    elif overall < 0.8:
        recommendations += [
            "Next steps: apply the recommended voice settings",
            "Next steps: test with sample phrases",
            "Next steps: monitor quality in real usage",
        ]

    return recommendations


def emergency_metrics(warnings: List[str]) -> QualityMetrics:
    """Result returned when every sub-analysis failed."""
    return QualityMetrics(
        transcription_accuracy=0.85,
        audio_clarity=0.8,
        naturalness=0.75,
        emotional_consistency=0.8,
        similarity=0.8,
        technical_quality=0.8,
        overall=0.8,
        is_production_ready=False,
        confidence=0.6,
        recommendations=[
            "Quality analysis failed; scores are placeholders, not measurements",
            "Listen to the generated audio before use",
            "Re-run quality analysis once the analysis backends recover",
        ],
        warnings=[f"{ANALYSIS_FAILED}: every quality sub-analysis failed"] + warnings,
        details=QualityDetails(snr=0.75, spectral_quality=0.8, distortion=0.2, background_noise=0.25),
    )


# =============================================================================
# Analyzer
# =============================================================================


class QualityAnalyzer:
    """
    Analyzes generated audio for production readiness.

    Features:
    - Transcription accuracy (ASR comparison when an adapter is configured)
    - Technical quality from container facts blended with DSP measurement
    - Perceptual quality from intelligibility and textual emotional cues
    - Spectral similarity against reference audio
    """

    def __init__(
        self,
        transcriber: Optional[TranscriptionAdapter] = None,
        cache: Optional[QualityCache] = None,
    ):
        self.transcriber = transcriber
        self.cache = cache

    async def analyze(
        self,
        audio: bytes,
        text: str,
        reference: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> QualityMetrics:
        """
        Score generated audio.

        Args:
            audio: Generated audio bytes
            text: Text the audio was generated from
            reference: Optional reference audio of the source speaker
            content_type: MIME type hint for non-WAV audio

        Returns:
            QualityMetrics, degraded or emergency if sub-analyses failed
        """
        if not audio:
            raise ValueError("Cannot analyze empty audio")

        cache_key = None
        if self.cache is not None:
            cache_key = QualityCache.key(audio, text, reference)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("quality_cache_hit")
                return cached

        profile = self._profile(audio, text, content_type)
        warnings: List[str] = []
        failed = 0

        try:
            transcription = await self._transcription_accuracy(profile, audio, text, content_type)
        except Exception as e:
            failed += 1
            transcription = TRANSCRIPTION_FALLBACK
            warnings.append(self._degraded("transcription", e))

        try:
            technical = self._technical_quality(profile)
        except Exception as e:
            failed += 1
            technical = TECHNICAL_FALLBACK
            warnings.append(self._degraded("technical", e))

        try:
            perceptual = self._perceptual_quality(profile, text, transcription)
        except Exception as e:
            failed += 1
            perceptual = PERCEPTUAL_FALLBACK
            warnings.append(self._degraded("perceptual", e))

        similarity_attempted = reference is not None
        try:
            similarity = self._similarity(profile, reference)
        except Exception as e:
            failed += 1
            similarity = SIMILARITY_FALLBACK
            warnings.append(self._degraded("similarity", e))

        # With no reference there is no similarity analysis to fail
        if failed == (4 if similarity_attempted else 3):
            logger.error("quality_analysis_failed", warnings=warnings)
            return emergency_metrics(warnings)

        overall = combine_scores(
            transcription,
            technical.clarity,
            perceptual.naturalness,
            perceptual.emotional,
            similarity,
        )
        metrics = QualityMetrics(
            transcription_accuracy=round(transcription, 3),
            audio_clarity=round(technical.clarity, 3),
            naturalness=round(perceptual.naturalness, 3),
            emotional_consistency=round(perceptual.emotional, 3),
            similarity=round(similarity, 3),
            technical_quality=round(technical.aggregate, 3),
            overall=overall,
            is_production_ready=is_production_ready(
                overall, transcription, technical.clarity, perceptual.naturalness
            ),
            confidence=score_confidence(
                [transcription, technical.clarity, perceptual.naturalness, perceptual.emotional]
            ),
            recommendations=build_recommendations(
                transcription,
                technical.clarity,
                perceptual.naturalness,
                perceptual.emotional,
                similarity,
                overall,
            ),
            warnings=warnings,
            details=QualityDetails(
                snr=round(technical.snr, 3),
                spectral_quality=round(technical.spectral, 3),
                distortion=round(technical.distortion, 3),
                background_noise=round(1.0 - technical.snr, 3),
            ),
        )

        logger.info(
            "quality_analyzed",
            overall=metrics.overall,
            production_ready=metrics.is_production_ready,
            degraded=bool(warnings),
        )

        if cache_key is not None and not warnings:
            self.cache.put(cache_key, metrics)
        return metrics

    @staticmethod
    def _degraded(analysis: str, error: Exception) -> str:
        logger.warning("quality_subanalysis_failed", analysis=analysis, error=str(error))
        return f"{ANALYSIS_DEGRADED}: {analysis} analysis fell back to defaults ({error})"

    def _profile(self, audio: bytes, text: str, content_type: Optional[str]) -> AudioProfile:
        audio_format = detect_format(audio, content_type)
        decoded = None
        if audio_format == "wav":
            try:
                decoded = decode_wav(audio)
            except MediaError as e:
                logger.warning("quality_decode_failed", error=e.message)

        if decoded is not None:
            duration = decoded.duration
        elif audio_format in ("mp3", "ogg", "webm", "m4a"):
            duration = len(audio) / COMPRESSED_BYTES_PER_SECOND
        else:
            duration = max(1.0, len(text.split()) / SPOKEN_WORDS_PER_SECOND)

        return AudioProfile(size=len(audio), format=audio_format, duration=duration, decoded=decoded)

    # =========================================================================
    # Sub-analyses
    # =========================================================================

    async def _transcription_accuracy(
        self,
        profile: AudioProfile,
        audio: bytes,
        text: str,
        content_type: Optional[str],
    ) -> float:
        if self.transcriber is not None:
            transcript = await self.transcriber.transcribe(audio, content_type or "audio/wav")
            return _clamp(text_similarity(text, transcript))

        score = 0.82
        bps = profile.bytes_per_second
        if bps > 40000:
            score += 0.08
        elif bps > 25000:
            score += 0.04
        elif bps < 15000:
            score -= 0.06

        if profile.format == "wav":
            score += 0.05
        elif profile.format == "mp3":
            score += 0.02

        if len(text) > 200:
            score += 0.03
        elif len(text) < 50:
            score -= 0.02

        return _clamp(score, 0.65, 0.95)

    def _technical_quality(self, profile: AudioProfile) -> TechnicalScores:
        clarity, snr, spectral, distortion = 0.82, 0.8, 0.85, 0.12

        bps = profile.bytes_per_second
        if bps > 50000:
            clarity += 0.15
            snr += 0.2
            spectral += 0.1
            distortion -= 0.1
        elif bps > 30000:
            clarity += 0.05
            snr += 0.1
            distortion -= 0.05
        elif bps < 20000:
            clarity -= 0.15
            snr -= 0.2
            distortion += 0.15

        if profile.format == "wav":
            clarity += 0.1
            snr += 0.1
        elif profile.format != "mp3":
            clarity -= 0.1
            distortion += 0.1

        heuristic = TechnicalScores(
            clarity=_clamp(clarity),
            snr=_clamp(snr),
            spectral=_clamp(spectral),
            distortion=_clamp(distortion),
        )
        if profile.decoded is None or len(profile.decoded.samples) == 0:
            return heuristic

        samples = profile.decoded.samples
        snr_db = dsp.estimate_snr_db(samples)
        measured_snr = _clamp((snr_db if snr_db is not None else 20.0) / 40.0)
        flatness = dsp.spectral_flatness(samples)
        measured_spectral = _clamp(1.0 - flatness)
        measured_distortion = _clamp(dsp.clipping_ratio(samples) * 20 + max(0.0, flatness - 0.5) * 0.5)
        measured_clarity = _clamp(
            0.5 * measured_snr + 0.3 * measured_spectral + 0.2 * (1.0 - measured_distortion)
        )

        return TechnicalScores(
            clarity=_clamp((heuristic.clarity + measured_clarity) / 2),
            snr=_clamp((heuristic.snr + measured_snr) / 2),
            spectral=_clamp((heuristic.spectral + measured_spectral) / 2),
            distortion=_clamp((heuristic.distortion + measured_distortion) / 2),
        )

    def _perceptual_quality(
        self,
        profile: AudioProfile,
        text: str,
        transcription: float,
    ) -> PerceptualScores:
        naturalness = 0.78
        bps = profile.bytes_per_second
        if bps > 40000:
            naturalness += 0.12
        elif bps > 25000:
            naturalness += 0.06
        elif bps < 15000:
            naturalness -= 0.08

        if transcription > 0.9:
            naturalness += 0.08
        elif transcription > 0.8:
            naturalness += 0.04
        elif transcription < 0.7:
            naturalness -= 0.06

        emotional = 0.76
        if len(text) > 150:
            emotional += 0.05
        elif len(text) < 50:
            emotional -= 0.03
        if "!" in text or "?" in text:
            emotional += 0.03
        if text.count(",") > 2:
            emotional += 0.02

        return PerceptualScores(
            naturalness=_clamp(naturalness, 0.6, 0.95),
            emotional=_clamp(emotional, 0.6, 0.95),
        )

    def _similarity(self, profile: AudioProfile, reference: Optional[bytes]) -> float:
        if reference is None:
            return NEUTRAL_SIMILARITY
        if profile.decoded is None:
            raise MediaError(f"Generated audio ({profile.format}) is not decodable PCM", code="DECODE_ERROR")

        ref = decode_wav(reference)
        ref_samples = resample(ref.samples, ref.sample_rate, profile.decoded.sample_rate)
        return dsp.spectral_correlation(profile.decoded.samples, ref_samples)
