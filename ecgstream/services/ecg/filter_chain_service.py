"""
Filter Chain Service

Per-sample ECG cleaning: baseline wander highpass, power-line notch and
high-frequency lowpass, each a second-order IIR section with its own taps.
Designed along Clean Architecture and SOLID lines.
"""

from typing import Optional, Sequence, List, Tuple
import math
import logging

import numpy as np
from scipy import signal

from ecgstream.config import constants
from ecgstream.config.app_config import FilterConfig
from ecgstream.domain.interfaces.ecg_interfaces import ISampleFilter

logger = logging.getLogger(__name__)

# Butterworth order 2 coefficients at 360 Hz, stored as (b0, b1, b2), (a1, a2)
HIGHPASS_360 = ((0.99384833, -1.98769666, 0.99384833), (-1.98765881, 0.98773450))
LOWPASS_360 = ((0.04948996, 0.09897991, 0.04948996), (-1.27963242, 0.47759225))
NOTCH_360 = (
    ((0.95183262, -1.22439830, 0.95183262), (-1.21708497, 0.95085885)),
    ((1.0, -1.28635883, 1.0), (-1.29217906, 0.95280880)),
)


class BiquadSection:
    """
    One second-order IIR section with two delay taps.

    Direct form II:
        x0 = in - a1*z1 - a2*z2
        out = b0*x0 + b1*z1 + b2*z2
    """

    def __init__(self, b: Sequence[float], a: Sequence[float]):
        if len(b) != 3 or len(a) != 2:
            raise ValueError("A biquad needs three b and two a coefficients")
        self.b0, self.b1, self.b2 = (float(v) for v in b)
        self.a1, self.a2 = (float(v) for v in a)
        self.z1 = 0.0
        self.z2 = 0.0

    def process(self, sample: float) -> float:
        x0 = sample - self.a1 * self.z1 - self.a2 * self.z2
        output = self.b0 * x0 + self.b1 * self.z1 + self.b2 * self.z2
        self.z2 = self.z1
        self.z1 = x0
        return output

    def reset(self) -> None:
        self.z1 = 0.0
        self.z2 = 0.0

    @property
    def taps(self) -> Tuple[float, float]:
        return self.z1, self.z2


class CascadedFilter(ISampleFilter):
    """Chain of biquad sections applied in order."""

    def __init__(self, sections: Sequence[BiquadSection]):
        self.sections: List[BiquadSection] = list(sections)

    def process(self, sample: float) -> float:
        output = sample
        for section in self.sections:
            output = section.process(output)
        return output

    def reset(self) -> None:
        for section in self.sections:
            section.reset()

    @property
    def taps(self) -> List[float]:
        values: List[float] = []
        for section in self.sections:
            values.extend(section.taps)
        return values


def _sections_from_sos(sos: np.ndarray) -> List[BiquadSection]:
    """Convert scipy second-order sections to biquads (a0 is normalized to 1)."""
    return [BiquadSection(row[:3], row[4:6]) for row in np.atleast_2d(sos)]


def _check_cutoff(cutoff_hz: float, sample_rate: float) -> None:
    if not 0 < cutoff_hz < sample_rate / 2:
        raise ValueError(
            f"Cutoff {cutoff_hz} Hz must lie between 0 and Nyquist ({sample_rate / 2} Hz)"
        )


class HighpassFilter(CascadedFilter):
    """Baseline wander and DC removal (0.5 Hz)."""

    def __init__(self, sample_rate: float = constants.DEFAULT_SAMPLE_RATE,
                 cutoff_hz: float = 0.5):
        if sample_rate == constants.DEFAULT_SAMPLE_RATE and cutoff_hz == 0.5:
            sections = [BiquadSection(*HIGHPASS_360)]
        else:
            _check_cutoff(cutoff_hz, sample_rate)
            sos = signal.butter(2, cutoff_hz, btype='highpass', fs=sample_rate, output='sos')
            sections = _sections_from_sos(sos)
        super().__init__(sections)


class LowpassFilter(CascadedFilter):
    """High-frequency noise removal (30 Hz)."""

    def __init__(self, sample_rate: float = constants.DEFAULT_SAMPLE_RATE,
                 cutoff_hz: float = 30.0):
        if sample_rate == constants.DEFAULT_SAMPLE_RATE and cutoff_hz == 30.0:
            sections = [BiquadSection(*LOWPASS_360)]
        else:
            _check_cutoff(cutoff_hz, sample_rate)
            sos = signal.butter(2, cutoff_hz, btype='lowpass', fs=sample_rate, output='sos')
            sections = _sections_from_sos(sos)
        super().__init__(sections)


class NotchFilter(CascadedFilter):
    """Power-line band-stop (48-52 Hz), two cascaded sections."""

    def __init__(self, sample_rate: float = constants.DEFAULT_SAMPLE_RATE,
                 band_hz: Tuple[float, float] = (48.0, 52.0)):
        low, high = band_hz
        if sample_rate == constants.DEFAULT_SAMPLE_RATE and (low, high) == (48.0, 52.0):
            sections = [BiquadSection(*coeffs) for coeffs in NOTCH_360]
        else:
            _check_cutoff(low, sample_rate)
            _check_cutoff(high, sample_rate)
            sos = signal.butter(2, [low, high], btype='bandstop', fs=sample_rate, output='sos')
            sections = _sections_from_sos(sos)
        super().__init__(sections)


class FilterChainService(ISampleFilter):
    """
    Live filter chain.

    Order: highpass -> notch -> lowpass. Non-finite outputs become 0 and
    the result is clamped to [-1, 1] before it reaches any detector.
    Call reset() at the start of every recording session.
    """

    def __init__(self, sample_rate: float = constants.DEFAULT_SAMPLE_RATE,
                 config: Optional[FilterConfig] = None):
        """
        FilterChainService constructor.

        Args:
            sample_rate: Sampling rate (Hz)
            config: Filter settings, defaults when None
        """
        if not sample_rate > 0:
            raise ValueError("Sample rate must be positive")

        self._config = config or FilterConfig()
        self.sample_rate = float(sample_rate)
        self.highpass = HighpassFilter(self.sample_rate, self._config.highpass_cutoff_hz)
        self.notch = NotchFilter(self.sample_rate, tuple(self._config.notch_band_hz))
        self.lowpass = LowpassFilter(self.sample_rate, self._config.lowpass_cutoff_hz)
        self._stages: List[ISampleFilter] = [self.highpass, self.notch, self.lowpass]
        logger.info(f"FilterChainService initialized ({self.sample_rate:g} Hz)")

    def process(self, sample: float) -> float:
        """
        Filter one raw sample.

        Args:
            sample: Raw normalized sample

        Returns:
            float: Finite sample in [-1, 1]
        """
        output = float(sample)
        for stage in self._stages:
            output = stage.process(output)

        if not math.isfinite(output):
            # A non-finite input poisons the taps; start over from silence
            self.reset()
            return 0.0

        if self._config.clamp_output:
            output = min(1.0, max(-1.0, output))
        return output

    def process_block(self, samples: Sequence[float]) -> np.ndarray:
        """
        Filter samples in acquisition order.

        Args:
            samples: Raw samples

        Returns:
            np.ndarray: Filtered samples
        """
        return np.array([self.process(s) for s in samples], dtype=float)

    def reset(self) -> None:
        """Zero every tap of every stage."""
        for stage in self._stages:
            stage.reset()
        logger.debug("Filter chain reset")
