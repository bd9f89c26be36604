"""
Audio segment extraction.
"""

from .extractor import AudioSegmentExtractor, estimate_quality_score, quality_bucket

__all__ = [
    "AudioSegmentExtractor",
    "estimate_quality_score",
    "quality_bucket",
]
