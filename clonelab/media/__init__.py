"""
Media access: PCM utilities, durable storage and source media adapters.
"""

from .audio import (
    DecodedAudio,
    WAV_CONTENT_TYPE,
    decode_wav,
    detect_format,
    encode_wav,
    resample,
    slice_wav,
    synthesize_voice_like,
)
from .source import MediaSourceAdapter, SimulatedMediaSource, StorageMediaSource
from .storage import (
    LocalStorageBackend,
    MediaStorage,
    S3StorageBackend,
    StorageBackend,
)

__all__ = [
    "DecodedAudio",
    "WAV_CONTENT_TYPE",
    "decode_wav",
    "detect_format",
    "encode_wav",
    "resample",
    "slice_wav",
    "synthesize_voice_like",
    "MediaSourceAdapter",
    "SimulatedMediaSource",
    "StorageMediaSource",
    "LocalStorageBackend",
    "MediaStorage",
    "S3StorageBackend",
    "StorageBackend",
]
