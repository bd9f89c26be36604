"""
Media source adapters.

A media source returns the raw PCM audio for a time range of a source
recording identified by a locator.
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Dict

import structlog

from ..errors import MediaError
from .audio import encode_wav, slice_wav, synthesize_voice_like
from .storage import MediaStorage

logger = structlog.get_logger(__name__)


class MediaSourceAdapter(ABC):
    """Fetches a time range of source media as WAV bytes."""

    @abstractmethod
    async def fetch(self, locator: str, start: float, end: float) -> bytes:
        """Return ``[start, end)`` seconds of ``locator`` as WAV bytes."""


class StorageMediaSource(MediaSourceAdapter):
    """Source media stored as WAV behind a storage or HTTP URL."""

    def __init__(self, storage: MediaStorage, cache_size: int = 4):
        self.storage = storage
        self._cache: Dict[str, bytes] = {}
        self._cache_size = cache_size

    async def _load(self, locator: str) -> bytes:
        if locator in self._cache:
            return self._cache[locator]
        data = await self.storage.download(locator)
        if len(self._cache) >= self._cache_size:
            self._cache.pop(next(iter(self._cache)))
        self._cache[locator] = data
        return data

    async def fetch(self, locator: str, start: float, end: float) -> bytes:
        data = await self._load(locator)
        return slice_wav(data, start, end)


class SimulatedMediaSource(MediaSourceAdapter):
    """Deterministic synthetic speech, keyed by locator and offsets."""

    def __init__(self, sample_rate: int = 22050):
        self.sample_rate = sample_rate

    async def fetch(self, locator: str, start: float, end: float) -> bytes:
        if end <= start:
            raise MediaError(f"Empty range {start}-{end}", code="RANGE_ERROR")
        digest = hashlib.sha256(f"{locator}:{start:.3f}:{end:.3f}".encode()).digest()
        seed = int.from_bytes(digest[:8], "big")
        fundamental = 100.0 + (hashlib.sha256(locator.encode()).digest()[0] % 120)
        samples = synthesize_voice_like(
            end - start,
            sample_rate=self.sample_rate,
            seed=seed,
            fundamental=fundamental,
        )
        logger.debug("simulated_media_fetched", locator=locator, start=start, end=end)
        return encode_wav(samples, self.sample_rate)
