"""
Synthetic ECG generation.
Sum-of-Gaussians PQRST beats at a fixed R-R spacing, for demos and tests.
"""

import numpy as np
from typing import List, Optional, Tuple

from ecgstream.config import constants

# (offset from R in samples at 360 Hz, amplitude, width in samples)
BEAT_TEMPLATE = {
    "P": (-28, 0.15, 5.0),
    "Q": (-10, -0.15, 2.5),
    "R": (0, 1.0, 4.0),
    "S": (10, -0.25, 2.5),
    "T": (120, 0.3, 14.0),
}


def synthetic_ecg(n_beats: int, rr_samples: int = 600,
                  sample_rate: float = constants.DEFAULT_SAMPLE_RATE,
                  amplitude: float = 1.0,
                  noise_std: float = 0.0,
                  seed: Optional[int] = None) -> Tuple[np.ndarray, List[int]]:
    """
    Generate a regular single-lead ECG.

    R-peaks sit at rr_samples // 2 + k * rr_samples. Wave offsets and
    widths are scaled from 360 Hz to sample_rate.

    Args:
        n_beats: Number of beats
        rr_samples: R-R spacing in samples
        sample_rate: Sampling rate (Hz)
        amplitude: R amplitude scale
        noise_std: Standard deviation of additive Gaussian noise
        seed: Noise seed

    Returns:
        Tuple of (signal, R-peak indices)
    """
    if n_beats <= 0 or rr_samples <= 0:
        return np.zeros(0), []

    scale = sample_rate / constants.DEFAULT_SAMPLE_RATE
    n = n_beats * rr_samples
    t = np.arange(n, dtype=float)
    signal = np.zeros(n)
    r_peaks = [rr_samples // 2 + k * rr_samples for k in range(n_beats)]

    for r in r_peaks:
        for offset, height, width in BEAT_TEMPLATE.values():
            center = r + offset * scale
            signal += height * np.exp(-0.5 * ((t - center) / (width * scale)) ** 2)

    signal *= amplitude
    if noise_std > 0:
        rng = np.random.default_rng(seed)
        signal += rng.normal(0.0, noise_std, n)

    return signal, r_peaks


def to_adc(signal: np.ndarray) -> np.ndarray:
    """Normalized samples to 12-bit ADC counts."""
    counts = np.round(np.asarray(signal, dtype=float) * constants.RAW_ADC_MIDPOINT + constants.RAW_ADC_MIDPOINT)
    return np.clip(counts, 0, 2 * constants.RAW_ADC_MIDPOINT - 1).astype(int)
