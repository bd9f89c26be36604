"""Unit tests for PCM audio utilities and media sources."""

import io
import wave

import numpy as np
import pytest

from clonelab.errors import MediaError
from clonelab.media import (
    SimulatedMediaSource,
    StorageMediaSource,
    decode_wav,
    detect_format,
    encode_wav,
    resample,
    slice_wav,
)


class TestDetectFormat:
    """Tests for container sniffing."""

    def test_wav_magic(self, wav_factory):
        assert detect_format(wav_factory(0.1)) == "wav"

    def test_mp3_magic(self):
        assert detect_format(b"ID3\x04\x00" + b"\x00" * 20) == "mp3"
        assert detect_format(b"\xff\xfb\x90\x00" + b"\x00" * 20) == "mp3"

    def test_falls_back_to_mime_type(self):
        assert detect_format(b"\x00" * 16, "audio/webm; codecs=opus") == "webm"

    def test_unknown(self):
        assert detect_format(b"\x00" * 16) == "unknown"


class TestDecodeWav:
    """Tests for WAV decoding."""

    def test_decode_properties(self, wav_factory):
        decoded = decode_wav(wav_factory(1.5, sample_rate=16000))

        assert decoded.sample_rate == 16000
        assert decoded.channels == 1
        assert decoded.duration == pytest.approx(1.5, abs=1e-3)
        assert np.max(np.abs(decoded.samples)) <= 1.0

    def test_stereo_is_mixed_down(self):
        left = np.full(800, 0.5)
        right = np.full(800, -0.5)
        interleaved = (np.column_stack([left, right]).ravel() * 32767).astype("<i2")

        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav:
            wav.setnchannels(2)
            wav.setsampwidth(2)
            wav.setframerate(8000)
            wav.writeframes(interleaved.tobytes())

        decoded = decode_wav(buffer.getvalue())

        assert decoded.channels == 2
        assert len(decoded.samples) == 800
        assert np.allclose(decoded.samples, 0.0, atol=1e-3)

    def test_garbage_raises_media_error(self):
        with pytest.raises(MediaError) as exc_info:
            decode_wav(b"not a wav file at all")

        assert exc_info.value.code == "DECODE_ERROR"


class TestResampleAndSlice:
    """Tests for resampling and range slicing."""

    def test_resample_preserves_duration(self):
        samples = np.zeros(22050, dtype=np.float32)
        out = resample(samples, 22050, 44100)
        assert len(out) == 44100

    def test_resample_same_rate_is_identity(self):
        samples = np.ones(100, dtype=np.float32)
        assert resample(samples, 16000, 16000) is samples

    def test_slice_range(self, wav_factory):
        sliced = decode_wav(slice_wav(wav_factory(4.0), 1.0, 2.5))
        assert sliced.duration == pytest.approx(1.5, abs=1e-3)

    def test_slice_outside_media(self, wav_factory):
        with pytest.raises(MediaError) as exc_info:
            slice_wav(wav_factory(1.0), 5.0, 8.0)
        assert exc_info.value.code == "RANGE_ERROR"

    def test_encode_clips_out_of_range_samples(self):
        decoded = decode_wav(encode_wav(np.array([2.0, -2.0], dtype=np.float32), 8000))
        assert decoded.samples.max() <= 1.0
        assert decoded.samples.min() >= -1.0


class TestMediaSources:
    """Tests for source media adapters."""

    @pytest.mark.asyncio
    async def test_simulated_source_is_deterministic(self):
        source = SimulatedMediaSource(sample_rate=8000)

        first = await source.fetch("vimeo://123", 0.0, 2.0)
        second = await source.fetch("vimeo://123", 0.0, 2.0)
        other = await source.fetch("vimeo://456", 0.0, 2.0)

        assert first == second
        assert first != other
        assert decode_wav(first).duration == pytest.approx(2.0, abs=1e-3)

    @pytest.mark.asyncio
    async def test_simulated_source_rejects_empty_range(self):
        with pytest.raises(MediaError):
            await SimulatedMediaSource().fetch("x", 3.0, 3.0)

    @pytest.mark.asyncio
    async def test_storage_source_slices_stored_media(self, storage, wav_factory):
        url = await storage.upload(wav_factory(6.0), category="sources")
        source = StorageMediaSource(storage)

        clip = await source.fetch(url, 2.0, 5.0)

        assert decode_wav(clip).duration == pytest.approx(3.0, abs=1e-3)
