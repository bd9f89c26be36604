"""
Audio analysis: quality scoring, acoustic profiling and transcription.
"""

from .acoustics import AcousticProfiler, VoiceSample
from .cache import QualityCache
from .quality import (
    QualityAnalyzer,
    build_recommendations,
    combine_scores,
    emergency_metrics,
    is_production_ready,
    quality_band,
    score_confidence,
)
from .transcription import TranscriptionAdapter, WhisperTranscriptionAdapter, text_similarity

__all__ = [
    "AcousticProfiler",
    "VoiceSample",
    "QualityCache",
    "QualityAnalyzer",
    "build_recommendations",
    "combine_scores",
    "emergency_metrics",
    "is_production_ready",
    "quality_band",
    "score_confidence",
    "TranscriptionAdapter",
    "WhisperTranscriptionAdapter",
    "text_similarity",
]
