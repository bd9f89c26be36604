"""
Audio Segment Extractor.

Selects the best candidate segments for a speaker, pulls their audio from
the source media, normalizes it to mono fixed-rate PCM and stores the
result for cloning.
"""

import asyncio
from typing import List, Optional, Sequence

import structlog

from ..config import ExtractionConfig
from ..errors import AssetUnreachableError, MediaError, MediaTimeoutError
from ..media.audio import WAV_CONTENT_TYPE, decode_wav, detect_format, encode_wav, resample
from ..media.source import MediaSourceAdapter
from ..media.storage import MediaStorage
from ..models import AudioSegment, ExtractedAudioFile, SegmentQuality

logger = structlog.get_logger(__name__)


def quality_bucket(duration: float) -> SegmentQuality:
    """Duration bucket used to label a segment."""
    if duration > 10:
        return SegmentQuality.HIGH
    if duration > 5:
        return SegmentQuality.MEDIUM
    return SegmentQuality.LOW


def estimate_quality_score(duration: float, sample_rate: int, audio_format: str) -> float:
    """
    Ranking heuristic on a 0-10 scale.

    Uses only duration, native sample rate and container; it orders
    candidates and is not an acoustic measurement.
    """
    score = 5.0

    if duration > 15:
        score += 3
    elif duration > 8:
        score += 2
    elif duration > 3:
        score += 1

    if sample_rate >= 44100:
        score += 2
    elif sample_rate >= 22050:
        score += 1

    if audio_format == "wav":
        score += 1

    return min(10.0, score)


class AudioSegmentExtractor:
    """
    Extracts cloning-ready audio for a speaker.

    Per-segment failures are skipped. The request fails only when no
    segment survives.
    """

    def __init__(
        self,
        source: MediaSourceAdapter,
        storage: MediaStorage,
        config: Optional[ExtractionConfig] = None,
    ):
        self.source = source
        self.storage = storage
        self.config = config or ExtractionConfig()

    def select_candidates(self, segments: Sequence[AudioSegment]) -> List[AudioSegment]:
        """Filter by duration and confidence floors, best first."""
        eligible = [
            seg for seg in segments
            if seg.duration >= self.config.min_segment_duration_s
            and seg.confidence >= self.config.min_confidence
        ]
        # Stable sort keeps caller order among equal candidates
        return sorted(eligible, key=lambda s: s.confidence * s.duration, reverse=True)

    async def extract(
        self,
        speaker_id: str,
        segments: Sequence[AudioSegment],
        locator: str,
        max_segments: Optional[int] = None,
    ) -> List[ExtractedAudioFile]:
        """
        Extract up to ``max_segments`` normalized audio files.

        Args:
            speaker_id: Speaker the segments belong to
            segments: Ordered candidate segments
            locator: Source media locator
            max_segments: Override for the configured limit

        Returns:
            Extracted files ranked by estimated quality

        Raises:
            AssetUnreachableError: if no segment could be extracted
        """
        limit = max_segments or self.config.max_segments
        candidates = self.select_candidates(segments)
        log = logger.bind(speaker_id=speaker_id, locator=locator)

        log.info(
            "extraction_started",
            candidates=len(segments),
            eligible=len(candidates),
            limit=limit,
        )

        extracted: List[ExtractedAudioFile] = []
        failures = 0
        for segment in candidates:
            if len(extracted) >= limit:
                break
            try:
                extracted.append(await self._extract_one(speaker_id, segment, locator))
            except MediaError as e:
                failures += 1
                log.warning(
                    "segment_extraction_failed",
                    segment_id=segment.id,
                    code=e.code,
                    error=e.message,
                )

        if not extracted:
            raise AssetUnreachableError(
                f"No usable audio for speaker {speaker_id}",
                details={
                    "candidates": len(segments),
                    "eligible": len(candidates),
                    "failed": failures,
                },
            )

        extracted.sort(key=lambda f: f.quality_score, reverse=True)
        log.info("extraction_completed", extracted=len(extracted), failed=failures)
        return extracted

    async def _extract_one(
        self,
        speaker_id: str,
        segment: AudioSegment,
        locator: str,
    ) -> ExtractedAudioFile:
        try:
            raw = await asyncio.wait_for(
                self.source.fetch(locator, segment.start, segment.end),
                timeout=self.config.fetch_timeout_s,
            )
        except asyncio.TimeoutError:
            raise MediaTimeoutError(f"Fetch of segment {segment.id} timed out")

        audio_format = detect_format(raw)
        decoded = decode_wav(raw)
        target_rate = self.config.target_sample_rate
        samples = resample(decoded.samples, decoded.sample_rate, target_rate)
        duration = len(samples) / target_rate

        url = await self.storage.upload(
            encode_wav(samples, target_rate),
            content_type=WAV_CONTENT_TYPE,
            metadata={
                "speaker_id": speaker_id,
                "segment_id": segment.id,
                "start": f"{segment.start:.3f}",
                "end": f"{segment.end:.3f}",
                "text": segment.text[:200],
            },
        )

        return ExtractedAudioFile(
            segment_id=segment.id,
            url=url,
            duration=round(duration, 3),
            quality=quality_bucket(duration),
            quality_score=estimate_quality_score(duration, decoded.sample_rate, audio_format),
            sample_rate=target_rate,
            channels=1,
            content_type=WAV_CONTENT_TYPE,
            text=segment.text,
        )
