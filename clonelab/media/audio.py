"""
PCM audio utilities.

Container sniffing, WAV decode/encode, mono down-mix and resampling for
uncompressed PCM. Compressed codecs are detected but never decoded.
"""

import io
import wave
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..errors import MediaError


WAV_CONTENT_TYPE = "audio/wav"

_MIME_FORMATS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/flac": "flac",
    "audio/ogg": "ogg",
    "audio/webm": "webm",
    "audio/mp4": "m4a",
}


@dataclass
class DecodedAudio:
    """Mono float samples in [-1, 1] plus stream properties."""

    samples: np.ndarray
    sample_rate: int
    channels: int
    sample_width: int

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate


def detect_format(data: bytes, content_type: Optional[str] = None) -> str:
    """Detect container format from magic bytes, falling back to the MIME type."""
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    if data[:3] == b"ID3" or data[:2] in (b"\xff\xfb", b"\xff\xf3", b"\xff\xf2"):
        return "mp3"
    if data[:4] == b"fLaC":
        return "flac"
    if data[:4] == b"OggS":
        return "ogg"
    if content_type:
        return _MIME_FORMATS.get(content_type.split(";")[0].strip().lower(), "unknown")
    return "unknown"


def decode_wav(data: bytes) -> DecodedAudio:
    """Decode PCM WAV bytes into mono float samples."""
    try:
        with io.BytesIO(data) as f:
            with wave.open(f, "rb") as wav:
                channels = wav.getnchannels()
                sample_rate = wav.getframerate()
                sample_width = wav.getsampwidth()
                n_frames = wav.getnframes()
                frames = wav.readframes(n_frames)
    except (wave.Error, EOFError) as e:
        raise MediaError(f"Not a decodable WAV stream: {e}", code="DECODE_ERROR")

    if sample_width == 2:
        samples = np.frombuffer(frames, dtype="<i2").astype(np.float32) / 32768.0
    elif sample_width == 1:
        samples = (np.frombuffer(frames, dtype=np.uint8).astype(np.float32) - 128) / 128.0
    elif sample_width == 4:
        samples = np.frombuffer(frames, dtype="<i4").astype(np.float32) / 2147483648.0
    else:
        raise MediaError(f"Unsupported sample width: {sample_width}", code="DECODE_ERROR")

    if channels > 1:
        usable = len(samples) - len(samples) % channels
        samples = samples[:usable].reshape(-1, channels).mean(axis=1)

    return DecodedAudio(
        samples=samples.astype(np.float32),
        sample_rate=sample_rate,
        channels=channels,
        sample_width=sample_width,
    )


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resample of a mono signal."""
    if source_rate == target_rate or len(samples) == 0:
        return samples
    duration = len(samples) / source_rate
    n_target = max(1, int(round(duration * target_rate)))
    source_t = np.arange(len(samples)) / source_rate
    target_t = np.arange(n_target) / target_rate
    return np.interp(target_t, source_t, samples).astype(np.float32)


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode mono float samples as 16-bit PCM WAV."""
    pcm = (np.clip(samples, -1.0, 1.0) * 32767.0).astype("<i2")
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return buffer.getvalue()


def slice_wav(data: bytes, start: float, end: float) -> bytes:
    """Cut ``[start, end)`` seconds out of a WAV stream, keeping its native rate."""
    decoded = decode_wav(data)
    first = max(0, int(start * decoded.sample_rate))
    last = min(len(decoded.samples), int(end * decoded.sample_rate))
    if last <= first:
        raise MediaError(
            f"Range {start:.2f}-{end:.2f}s is outside the media ({decoded.duration:.2f}s)",
            code="RANGE_ERROR",
        )
    return encode_wav(decoded.samples[first:last], decoded.sample_rate)


def synthesize_voice_like(
    duration: float,
    sample_rate: int = 44100,
    seed: int = 0,
    fundamental: float = 140.0,
) -> np.ndarray:
    """Deterministic speech-like waveform: a gliding fundamental, three formants
    and a syllable-rate envelope over low-level noise."""
    rng = np.random.default_rng(seed)
    n = max(1, int(duration * sample_rate))
    t = np.arange(n) / sample_rate

    f0 = fundamental + 20.0 * np.sin(2 * np.pi * 0.5 * t)
    f1 = 800.0 + 100.0 * np.sin(2 * np.pi * 0.33 * t)
    f2 = 1200.0 + 150.0 * np.sin(2 * np.pi * 0.29 * t)
    f3 = 2400.0 + 200.0 * np.sin(2 * np.pi * 0.21 * t)

    phase = 2 * np.pi * np.cumsum(f0) / sample_rate
    voiced = (
        0.40 * np.sin(phase)
        + 0.15 * np.sin(2 * phase)
        + 0.20 * np.sin(2 * np.pi * np.cumsum(f1) / sample_rate)
        + 0.12 * np.sin(2 * np.pi * np.cumsum(f2) / sample_rate)
        + 0.06 * np.sin(2 * np.pi * np.cumsum(f3) / sample_rate)
    )

    syllable_rate = 4.0 + rng.uniform(-0.5, 0.5)
    envelope = 0.5 * (1 + np.sin(2 * np.pi * syllable_rate * t + rng.uniform(0, np.pi)))
    envelope = np.clip(envelope * 1.4 - 0.2, 0.0, 1.0)

    noise = rng.normal(0.0, 0.01, n)
    return (0.6 * voiced * envelope + noise).astype(np.float32)
