"""
HRV Calculator Service

Heart rate variability over a bounded RR history.
Time-domain metrics, a triangular index, a successive-difference LF/HF
proxy and a rule-based physiological state estimate.
Designed along Clean Architecture and SOLID lines.
"""

from collections import deque
from typing import List, Optional, Sequence
import logging

import numpy as np

from ecgstream.config import constants
from ecgstream.config.app_config import HRVConfig
from ecgstream.domain.models.ecg_models import (
    HRVMetrics, HRVAssessment, LFHFRatio, PhysiologicalState,
    PhysiologicalStateLabel, OptimizedHRVResult
)
from ecgstream.domain.interfaces.ecg_interfaces import IHRVCalculator

logger = logging.getLogger(__name__)

MIN_LFHF_SAMPLES = 30
MAX_STATE_CONFIDENCE = 0.95
ENTROPY_SCALE = 20.0  # triangular index -> entropy proxy


def map_value(value: float, in_min: float, in_max: float,
              out_min: float, out_max: float) -> float:
    """Linear map from [in_min, in_max] to [out_min, out_max] (not clamped)."""
    return (value - in_min) * (out_max - out_min) / (in_max - in_min) + out_min


class HRVCalculatorService(IHRVCalculator):
    """
    HRV calculator.

    Metrics:
    - RMSSD (Root Mean Square of Successive Differences)
    - SDNN (population standard deviation of RR)
    - pNN50 (percentage of successive differences > 50 ms)
    - Triangular index (7.8125 ms histogram)
    - LF/HF proxy (not a spectral estimate)
    """

    def __init__(self, config: Optional[HRVConfig] = None):
        """HRVCalculatorService constructor."""
        self._config = config or HRVConfig()
        self._rr_intervals: deque = deque(maxlen=self._config.max_intervals)
        logger.info(f"HRVCalculatorService initialized (capacity: {self._config.max_intervals})")

    # RR history

    def add_rr_interval(self, interval_ms: float) -> bool:
        """
        Append one RR interval; values outside the accepted range are ignored.

        Args:
            interval_ms: RR interval (ms)

        Returns:
            bool: True if the interval was stored
        """
        if not self._config.min_rr_ms <= interval_ms <= self._config.max_rr_ms:
            return False
        self._rr_intervals.append(float(interval_ms))
        return True

    def extract_rr_from_peaks(self, peaks: Sequence[int], sample_rate: float) -> int:
        """
        Append the RR intervals between consecutive peaks.

        Args:
            peaks: Peak sample indices
            sample_rate: Sampling rate (Hz)

        Returns:
            int: Number of intervals stored
        """
        if len(peaks) < 2 or not sample_rate > 0:
            return 0

        added = 0
        for previous, current in zip(peaks[:-1], peaks[1:]):
            if self.add_rr_interval((current - previous) / sample_rate * 1000):
                added += 1
        return added

    def get_rr_intervals(self) -> List[float]:
        return list(self._rr_intervals)

    def reset(self) -> None:
        self._rr_intervals.clear()

    def _intervals(self, rr_intervals: Optional[Sequence[float]] = None) -> np.ndarray:
        source = self._rr_intervals if rr_intervals is None else rr_intervals
        return np.asarray(list(source), dtype=float)

    # Time domain

    def calculate_rmssd(self, rr_intervals: Optional[Sequence[float]] = None) -> float:
        rr = self._intervals(rr_intervals)
        if rr.size < 2:
            return 0.0
        return float(np.sqrt(np.mean(np.diff(rr) ** 2)))

    def calculate_sdnn(self, rr_intervals: Optional[Sequence[float]] = None) -> float:
        rr = self._intervals(rr_intervals)
        if rr.size < 2:
            return 0.0
        return float(np.std(rr))

    def calculate_pnn50(self) -> float:
        rr = self._intervals()
        if rr.size < 2:
            return 0.0
        differences = np.abs(np.diff(rr))
        return float(np.count_nonzero(differences > constants.NN50_THRESHOLD_MS) / differences.size * 100)

    def calculate_triangular_index(self) -> float:
        """
        RR count divided by the height of the tallest histogram bin.

        Bins are triangular_bin_ms wide starting at the shortest RR, so
        every interval falls into a bin. Needs at least 20 intervals.
        """
        rr = self._intervals()
        if rr.size < constants.MIN_TRIANGULAR_SAMPLES:
            return 0.0

        bin_width = self._config.triangular_bin_ms
        bins = np.floor((rr - rr.min()) / bin_width).astype(int)
        tallest = int(np.bincount(bins).max())
        return rr.size / tallest if tallest > 0 else 0.0

    def calculate_lf_hf_ratio(self) -> LFHFRatio:
        """
        Successive-difference LF/HF proxy.

        LF is the mean |difference| over every 4th successive difference,
        HF over every 2nd. This is not a power spectral estimate.
        """
        rr = self._intervals()
        if rr.size < MIN_LFHF_SAMPLES:
            return LFHFRatio()

        differences = np.abs(np.diff(rr))
        lf = float(np.mean(differences[::4]))
        hf = float(np.mean(differences[::2]))
        ratio = lf / hf if hf > 0 else 0.0
        return LFHFRatio(lf=lf, hf=hf, ratio=ratio)

    def get_hrv_assessment(self) -> HRVAssessment:
        rmssd = self.calculate_rmssd()
        if rmssd < 20:
            return HRVAssessment(status="Low", description="Poor autonomic function")
        if rmssd < 50:
            return HRVAssessment(status="Normal", description="Good autonomic balance")
        return HRVAssessment(status="High", description="Excellent autonomic function")

    def get_all_metrics(self) -> HRVMetrics:
        """
        All HRV metrics over the current history.

        Returns:
            HRVMetrics: Metrics (zeros for an empty history)
        """
        return HRVMetrics(
            rmssd=self.calculate_rmssd(),
            sdnn=self.calculate_sdnn(),
            pnn50=self.calculate_pnn50(),
            triangular_index=self.calculate_triangular_index(),
            lfhf=self.calculate_lf_hf_ratio(),
            sample_count=len(self._rr_intervals),
            assessment=self.get_hrv_assessment(),
        )

    # Physiological state

    def get_physiological_state(self) -> PhysiologicalState:
        """
        Rule cascade over RMSSD, SDNN, pNN50, LF/HF, an entropy proxy and
        mean heart rate.

        Returns:
            PhysiologicalState: State and confidence (capped at 0.95);
            Analyzing with zero confidence below the minimum sample count
        """
        metrics = self.get_all_metrics()
        if metrics.sample_count < self._config.min_state_samples:
            return PhysiologicalState(PhysiologicalStateLabel.ANALYZING, 0.0)

        rmssd = metrics.rmssd
        sdnn = metrics.sdnn
        pnn50 = metrics.pnn50
        lf_hf = metrics.lfhf.ratio
        entropy = metrics.triangular_index / ENTROPY_SCALE
        mean_rr = float(np.mean(self._intervals()))
        bpm = 60000.0 / mean_rr if mean_rr > 0 else 0.0

        if rmssd < 25 and sdnn < 50 and bpm > 90:
            state = PhysiologicalStateLabel.HIGH_STRESS
            confidence = 0.7 + (90 - rmssd) / 100
        elif rmssd > 40 and pnn50 > 30 and lf_hf < 1.5:
            state = PhysiologicalStateLabel.RELAXED
            confidence = 0.7 + (rmssd - 40) / 100
        elif pnn50 < 10 and lf_hf > 2.0:
            state = PhysiologicalStateLabel.FOCUSED
            confidence = 0.7 + (lf_hf - 2.0) / 3
        elif sdnn < 30 and entropy < 0.6:
            state = PhysiologicalStateLabel.FATIGUE
            confidence = 0.7 + (0.6 - entropy) / 0.5
        else:
            state = PhysiologicalStateLabel.NEUTRAL
            # Farther from every rule boundary -> more confident
            stress_distance = min(abs(rmssd - 25) / 25, abs(sdnn - 50) / 50, abs(bpm - 90) / 90)
            relaxed_distance = min(abs(rmssd - 40) / 40, abs(pnn50 - 30) / 30, abs(lf_hf - 1.5) / 1.5)
            focused_distance = min(abs(pnn50 - 10) / 10, abs(lf_hf - 2.0) / 2.0)
            fatigue_distance = min(abs(sdnn - 30) / 30, abs(entropy - 0.6) / 0.6)
            confidence = 0.6 + min(stress_distance, relaxed_distance,
                                   focused_distance, fatigue_distance) * 0.4

        confidence = max(0.0, min(MAX_STATE_CONFIDENCE, confidence))
        logger.debug(f"Physiological state: {state.value} ({confidence:.2f})")
        return PhysiologicalState(state, confidence)

    def determine_physiological_state(self, metrics: HRVMetrics, age: float) -> PhysiologicalState:
        """
        Weighted stress score with an age adjustment.

        Args:
            metrics: HRV metrics (RMSSD, SDNN and the LF/HF ratio are used)
            age: Age in years

        Returns:
            PhysiologicalState: State with confidence clamped to [0, 1]
        """
        score = 0.0
        score += map_value(metrics.rmssd, 0, 50, 10, 0)
        score += map_value(metrics.lfhf.ratio, 0.5, 3, 0, 10)
        score += map_value(metrics.sdnn, 0, 100, 10, 0)

        # Lower HRV is expected with age
        if age > 50:
            score *= 0.85

        if score > 15:
            state = PhysiologicalStateLabel.HIGH_STRESS
            confidence = map_value(score, 15, 30, 0.7, 1)
        elif score < 5:
            state = PhysiologicalStateLabel.RELAXED
            confidence = map_value(score, 5, 0, 0.7, 1)
        elif score < 10:
            state = PhysiologicalStateLabel.FOCUSED
            confidence = 1 - abs(score - 7.5) / 5
        else:
            state = PhysiologicalStateLabel.FATIGUE
            confidence = 1 - abs(score - 12.5) / 5

        return PhysiologicalState(state, max(0.0, min(1.0, confidence)))

    # Artifact-filtered path

    def optimize_hrv_calculation(self, rr_intervals: Sequence[float]) -> OptimizedHRVResult:
        """
        Median-filter artifact removal followed by RMSSD and SDNN.

        Spectral powers are not estimated; the result reports zero LF/HF
        power with spectral_available=False.

        Args:
            rr_intervals: Raw RR intervals (ms)

        Returns:
            OptimizedHRVResult: Filtered time-domain metrics
        """
        try:
            filtered = self.remove_artifacts(rr_intervals)
            return OptimizedHRVResult(
                rmssd=self.calculate_rmssd(filtered),
                sdnn=self.calculate_sdnn(filtered),
                filtered_count=len(filtered),
            )
        except Exception as e:
            logger.error(f"Error in optimized HRV calculation: {str(e)}")
            return OptimizedHRVResult(rmssd=0.0, sdnn=0.0)

    def remove_artifacts(self, rr_intervals: Sequence[float]) -> List[float]:
        """
        Running window-3 median, then the RR range filter.

        Each median is written back before the next window is taken, so a
        corrected interval feeds its neighbour. Endpoints are kept.
        """
        smoothed = np.asarray(list(rr_intervals), dtype=float)
        if smoothed.size == 0:
            return []
        for i in range(1, smoothed.size - 1):
            smoothed[i] = np.median(smoothed[i - 1:i + 2])
        mask = (smoothed >= self._config.min_rr_ms) & (smoothed <= self._config.max_rr_ms)
        return smoothed[mask].tolist()
