"""
Signal measurements on mono float samples.
"""

from typing import Optional

import numpy as np

FRAME_SIZE = 1024


def frame_signal(samples: np.ndarray, frame_size: int = FRAME_SIZE, hop: Optional[int] = None) -> np.ndarray:
    """Split a signal into (n_frames, frame_size) without padding."""
    hop = hop or frame_size
    if len(samples) < frame_size:
        return np.empty((0, frame_size), dtype=np.float32)
    n_frames = 1 + (len(samples) - frame_size) // hop
    index = np.arange(frame_size)[None, :] + hop * np.arange(n_frames)[:, None]
    return samples[index]


def frame_rms(samples: np.ndarray, frame_size: int = FRAME_SIZE) -> np.ndarray:
    frames = frame_signal(samples, frame_size)
    if len(frames) == 0:
        return np.empty(0, dtype=np.float32)
    return np.sqrt(np.mean(frames ** 2, axis=1))


def estimate_snr_db(samples: np.ndarray) -> Optional[float]:
    """Estimate SNR from loud (90th pct) vs quiet (10th pct) frame energy."""
    rms_values = frame_rms(samples)
    if len(rms_values) < 2:
        return None

    signal_rms = np.percentile(rms_values, 90)
    noise_rms = np.percentile(rms_values, 10)

    if noise_rms < 1e-10:
        return 60.0  # Very clean signal

    snr = 20 * np.log10(max(signal_rms, 1e-10) / noise_rms)
    return float(min(60.0, max(0.0, snr)))


def clipping_ratio(samples: np.ndarray, threshold: float = 0.99) -> float:
    """Calculate ratio of clipped samples."""
    if len(samples) == 0:
        return 0.0
    return float(np.sum(np.abs(samples) > threshold) / len(samples))


def silence_ratio(samples: np.ndarray, threshold: float = 0.01) -> float:
    """Calculate ratio of silent frames."""
    rms_values = frame_rms(samples)
    if len(rms_values) == 0:
        return 0.0
    return float(np.mean(rms_values < threshold))


def magnitude_spectrum(samples: np.ndarray, n_fft: int = FRAME_SIZE) -> np.ndarray:
    """Frame-averaged magnitude spectrum with a Hann window."""
    frames = frame_signal(samples, n_fft, hop=n_fft // 2)
    if len(frames) == 0:
        padded = np.zeros(n_fft, dtype=np.float32)
        padded[: len(samples)] = samples[:n_fft]
        frames = padded[None, :]
    window = np.hanning(n_fft)
    return np.abs(np.fft.rfft(frames * window, axis=1)).mean(axis=0)


def spectral_flatness(samples: np.ndarray) -> float:
    """Geometric over arithmetic mean of the power spectrum, in [0, 1]."""
    power = magnitude_spectrum(samples) ** 2 + 1e-12
    return float(np.exp(np.mean(np.log(power))) / np.mean(power))


def spectral_centroid(samples: np.ndarray, sample_rate: int) -> float:
    """Magnitude-weighted mean frequency in Hz."""
    spectrum = magnitude_spectrum(samples)
    freqs = np.fft.rfftfreq(FRAME_SIZE, d=1.0 / sample_rate)
    total = spectrum.sum()
    if total <= 0:
        return 0.0
    return float((spectrum * freqs).sum() / total)


def band_energy_ratio(samples: np.ndarray, sample_rate: int, low_hz: float, high_hz: float) -> float:
    """Share of spectral energy within ``[low_hz, high_hz)``."""
    power = magnitude_spectrum(samples) ** 2
    freqs = np.fft.rfftfreq(FRAME_SIZE, d=1.0 / sample_rate)
    total = power.sum()
    if total <= 0:
        return 0.0
    mask = (freqs >= low_hz) & (freqs < high_hz)
    return float(power[mask].sum() / total)


def estimate_pitch_track(
    samples: np.ndarray,
    sample_rate: int,
    fmin: float = 60.0,
    fmax: float = 400.0,
    frame_size: int = 2048,
) -> np.ndarray:
    """Autocorrelation pitch per voiced frame, in Hz. Unvoiced frames are dropped."""
    frames = frame_signal(samples, frame_size, hop=frame_size // 2)
    if len(frames) == 0:
        return np.empty(0, dtype=np.float32)

    min_lag = max(1, int(sample_rate / fmax))
    max_lag = min(frame_size - 1, int(sample_rate / fmin))
    rms = np.sqrt(np.mean(frames ** 2, axis=1))
    gate = max(0.01, float(np.percentile(rms, 30)))

    pitches = []
    for frame, level in zip(frames, rms):
        if level < gate:
            continue
        frame = frame - frame.mean()
        corr = np.correlate(frame, frame, mode="full")[frame_size - 1:]
        if corr[0] <= 0:
            continue
        segment = corr[min_lag:max_lag]
        if len(segment) == 0:
            continue
        lag = int(np.argmax(segment)) + min_lag
        # Weak periodicity means the frame is not voiced
        if corr[lag] / corr[0] < 0.3:
            continue
        pitches.append(sample_rate / lag)
    return np.asarray(pitches, dtype=np.float32)


def spectral_correlation(a: np.ndarray, b: np.ndarray) -> float:
    """Pearson correlation of frame-averaged magnitude spectra, clamped to [0, 1]."""
    spec_a = magnitude_spectrum(a)
    spec_b = magnitude_spectrum(b)
    if spec_a.std() < 1e-12 or spec_b.std() < 1e-12:
        return 0.0
    corr = float(np.corrcoef(spec_a, spec_b)[0, 1])
    if np.isnan(corr):
        return 0.0
    return max(0.0, min(1.0, corr))
