"""
QRS Detector Service

Adaptive dual-threshold QRS detection on a block of filtered samples:
bandpass (optional) -> derivative -> squaring -> moving-window integration
-> adaptive peak picking -> refinement -> T-wave rejection.
Designed along Clean Architecture and SOLID lines.
"""

from typing import List, Optional, Tuple
import logging

import numpy as np
from scipy import signal

from ecgstream.config import constants
from ecgstream.config.app_config import QRSDetectorConfig
from ecgstream.domain.models.ecg_models import DetectorState, QRSIntermediateSignals
from ecgstream.domain.interfaces.ecg_interfaces import IQRSDetector

logger = logging.getLogger(__name__)

# 5-15 Hz bandpass at 360 Hz
BANDPASS_B = [0.1816, 0.0, -0.1816]
BANDPASS_A = [1.0, -1.5267, 0.5763]

MIN_BLOCK_LENGTH = 5


class QRSDetectorService(IQRSDetector):
    """
    Adaptive QRS detector.

    Thresholds and recent peak/noise amplitudes persist across calls so
    that they keep adapting over a recording. Peak positions are local to
    each block; the refractory distance applies within one block.
    """

    def __init__(self, sample_rate: float = constants.DEFAULT_SAMPLE_RATE,
                 use_prefiltered: Optional[bool] = None,
                 config: Optional[QRSDetectorConfig] = None):
        """
        QRSDetectorService constructor.

        Args:
            sample_rate: Sampling rate (Hz)
            use_prefiltered: Skip the internal bandpass (overrides config)
            config: Detector settings, defaults when None
        """
        if not sample_rate > 0:
            raise ValueError("Sample rate must be positive")

        self._config = config or QRSDetectorConfig()
        self.sample_rate = float(sample_rate)
        self.use_prefiltered = (self._config.use_prefiltered
                                if use_prefiltered is None else use_prefiltered)

        self._window_size = max(1, round(self.sample_rate * self._config.integration_window_ms / 1000))
        self._min_distance = max(1, round(self.sample_rate * self._config.refractory_ms / 1000))
        self._refine_window = round(self.sample_rate * self._config.refine_window_ms / 1000)
        self._t_wave_window = round(self.sample_rate * self._config.t_wave_window_ms / 1000)

        self._state = self.initial_state()
        self._intermediate: Optional[QRSIntermediateSignals] = None
        logger.info(f"QRSDetectorService initialized (min distance: {self._min_distance} samples)")

    @property
    def min_distance(self) -> int:
        """Refractory distance in samples."""
        return self._min_distance

    @property
    def state(self) -> DetectorState:
        return self._state.copy()

    def initial_state(self) -> DetectorState:
        return DetectorState(
            signal_threshold=self._config.initial_signal_threshold,
            noise_threshold=self._config.initial_noise_threshold,
        )

    def reset(self) -> None:
        """Restore initial thresholds and clear the amplitude history."""
        self._state = self.initial_state()
        self._intermediate = None
        logger.debug("QRS detector reset")

    def detect_qrs(self, data: np.ndarray) -> List[int]:
        """
        Detect R-peaks with the detector-owned state.

        Args:
            data: Filtered signal block

        Returns:
            List[int]: Sorted peak indices within the block
        """
        peaks, self._state = self.detect(data, self._state)
        return peaks

    def detect(self, data: np.ndarray,
               state: DetectorState) -> Tuple[List[int], DetectorState]:
        """
        Detect R-peaks starting from the given state.

        The caller's state is never mutated; the updated state is returned.

        Args:
            data: Filtered signal block
            state: Adaptive state to start from

        Returns:
            Tuple[List[int], DetectorState]: Peak indices and new state
        """
        state = state.copy()
        try:
            x = np.asarray(data, dtype=float)
            if x.size == 0:
                return [], state
            x = np.nan_to_num(x, nan=0.0, posinf=0.0, neginf=0.0)

            filtered = self._bandpass(x)
            normalized = self._normalize(filtered)
            differentiated = self._differentiate(normalized)
            squared = differentiated ** 2
            integrated = self._integrate(squared)

            candidates = self._find_peaks(integrated, state)
            peaks = self._refine_peaks(candidates, normalized, state)
            peaks = self._enforce_refractory(peaks, normalized)
            peaks = self._reject_t_waves(peaks, normalized)

            self._intermediate = QRSIntermediateSignals(
                filtered=normalized,
                differentiated=differentiated,
                squared=squared,
                integrated=integrated,
                signal_threshold=state.signal_threshold,
                noise_threshold=state.noise_threshold,
            )
            logger.debug(
                f"QRS detection: {len(peaks)} peaks, "
                f"thresholds {state.signal_threshold:.4f}/{state.noise_threshold:.4f}"
            )
            return peaks, state

        except Exception as e:
            logger.error(f"Error detecting QRS complexes: {str(e)}")
            return [], state

    def get_intermediate_signals(self) -> Optional[QRSIntermediateSignals]:
        """Stage outputs of the last detection (None before the first call)."""
        return self._intermediate

    def _bandpass(self, data: np.ndarray) -> np.ndarray:
        if self.use_prefiltered:
            return data.copy()
        return signal.lfilter(BANDPASS_B, BANDPASS_A, data)

    def _normalize(self, data: np.ndarray) -> np.ndarray:
        std = float(np.std(data))
        if std == 0 or not np.isfinite(std):
            std = 1.0
        return (data - float(np.mean(data))) / std

    def _differentiate(self, data: np.ndarray) -> np.ndarray:
        """Five-point derivative; the first and last two samples stay zero."""
        output = np.zeros_like(data)
        if data.size < 5:
            return output
        scale = self.sample_rate / constants.DEFAULT_SAMPLE_RATE / 8
        output[2:-2] = (2 * data[4:] + data[3:-1] - data[1:-3] - 2 * data[:-4]) * scale
        return output

    def _integrate(self, data: np.ndarray) -> np.ndarray:
        """Causal moving-window sum divided by the window length."""
        window = self._window_size
        running = np.cumsum(data)
        output = running.copy()
        output[window:] = running[window:] - running[:-window]
        return output / window

    def _recent_mean(self, values: List[float]) -> float:
        recent = values[-self._config.history_length:]
        return sum(recent) / len(recent) if recent else 0.0

    def _remember(self, values: List[float], value: float) -> None:
        values.append(value)
        del values[:-self._config.history_length]

    def _find_peaks(self, integrated: np.ndarray, state: DetectorState) -> List[int]:
        """Adaptive dual-threshold scan over local maxima of the integrated signal."""
        n = integrated.size
        if n < MIN_BLOCK_LENGTH:
            return []

        if not state.peak_amplitudes:
            ordered = np.sort(integrated)[::-1]
            top_value = float(ordered[int(n * 0.05)])
            state.signal_threshold = top_value * 0.6
            state.noise_threshold = top_value * 0.2

        signal_rate = self._config.signal_learning_rate
        noise_rate = self._config.noise_learning_rate
        peaks: List[int] = []
        peak_values: List[float] = []

        for i in range(1, n - 1):
            value = float(integrated[i])
            if not (value > integrated[i - 1] and value >= integrated[i + 1]):
                continue

            if value > state.signal_threshold:
                if not peaks or i - peaks[-1] >= self._min_distance:
                    peaks.append(i)
                    peak_values.append(value)
                    self._remember(state.peak_amplitudes, value)
                    average = self._recent_mean(state.peak_amplitudes)
                    target = state.noise_threshold + 0.25 * (average - state.noise_threshold)
                    state.signal_threshold = ((1 - signal_rate) * state.signal_threshold
                                              + signal_rate * max(target, constants.AMPLITUDE_EPSILON))
                elif value > peak_values[-1]:
                    # Taller maximum inside the refractory window replaces the last peak
                    peaks[-1] = i
                    peak_values[-1] = value
                    state.peak_amplitudes[-1] = value
            elif value > state.noise_threshold:
                self._remember(state.noise_amplitudes, value)
                average = self._recent_mean(state.noise_amplitudes)
                state.noise_threshold = ((1 - noise_rate) * state.noise_threshold
                                         + noise_rate * max(average, constants.AMPLITUDE_EPSILON))

        return peaks

    def _refine_peaks(self, peaks: List[int], filtered: np.ndarray,
                      state: DetectorState) -> List[int]:
        """Move each peak to the largest |filtered| within the refine window."""
        recent = self._recent_mean(state.peak_amplitudes)
        threshold = (max(self._config.refine_amplitude_ratio * recent, constants.AMPLITUDE_EPSILON)
                     if recent else constants.AMPLITUDE_EPSILON)

        magnitude = np.abs(filtered)
        last = filtered.size - 1
        refined = set()
        for peak in peaks:
            start = max(0, peak - self._refine_window)
            end = min(last, peak + self._refine_window)
            index = start + int(np.argmax(magnitude[start:end + 1]))
            if magnitude[index] >= threshold:
                refined.add(index)
        return sorted(refined)

    def _enforce_refractory(self, peaks: List[int], filtered: np.ndarray) -> List[int]:
        """Merge peaks closer than the refractory distance, keeping the taller one."""
        kept: List[int] = []
        for peak in peaks:
            if kept and peak - kept[-1] < self._min_distance:
                if abs(filtered[peak]) > abs(filtered[kept[-1]]):
                    kept[-1] = peak
                continue
            kept.append(peak)
        return kept

    def _reject_t_waves(self, peaks: List[int], filtered: np.ndarray) -> List[int]:
        ratio = self._config.t_wave_amplitude_ratio
        kept: List[int] = []
        for peak in peaks:
            if kept:
                previous = kept[-1]
                if (peak - previous < self._t_wave_window
                        and abs(filtered[peak]) < ratio * abs(filtered[previous])):
                    continue
            kept.append(peak)
        return kept
