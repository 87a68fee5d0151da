"""
PQRST Detector Service

Locates P, Q, R, S and T fiducial points around validated QRS complexes
with RR-scaled search windows. Also provides a self-contained mode that
finds its own R-peaks from amplitude statistics.
Designed along Clean Architecture and SOLID lines.
"""

from typing import List, Sequence
import math
import logging

import numpy as np

from ecgstream.config import constants
from ecgstream.domain.models.ecg_models import FiducialPoint, WaveType, WaveVisualization
from ecgstream.domain.interfaces.ecg_interfaces import IWaveDetector

logger = logging.getLogger(__name__)

# Beats with R closer than this to either buffer edge are skipped
EDGE_MARGIN = 9

# Window caps in samples
Q_WINDOW_MAX = 18
P_WINDOW_MAX = 27
S_WINDOW_MAX = 18
T_WINDOW_MAX = 54

MIN_DIRECT_AMPLITUDE = 0.2
DIRECT_THRESHOLD_RATIO = 0.6
HIGH_R_AMPLITUDE = 0.5


class PQRSTDetectorService(IWaveDetector):
    """
    PQRST fiducial-point detector.

    Stateless apart from its sample rate; safe to share between callers.
    """

    def __init__(self, sample_rate: float = constants.DEFAULT_SAMPLE_RATE):
        """
        PQRSTDetectorService constructor.

        Args:
            sample_rate: Sampling rate (Hz)
        """
        if not sample_rate > 0:
            raise ValueError("Sample rate must be positive")

        self.sample_rate = float(sample_rate)
        self._qrs_window = math.floor(self.sample_rate * 0.06)
        self._peak_window = math.floor(self.sample_rate * 0.08)
        self._skip_window = math.floor(self.sample_rate * 0.15)
        self._min_rr = math.floor(self.sample_rate * 0.3)
        self._max_rr = math.floor(self.sample_rate * 1.5)
        logger.info("PQRSTDetectorService initialized")

    def is_valid_qrs(self, data: np.ndarray, index: int) -> bool:
        """
        Check QRS morphology around a candidate R.

        A negative sample within 60 ms before and within 60 ms after the
        candidate, or an R amplitude above 0.5, validates it.

        Args:
            data: Signal buffer
            index: Candidate R index

        Returns:
            bool: True for a plausible QRS complex
        """
        data = np.asarray(data, dtype=float)
        if not 0 <= index < data.size:
            return False

        before = data[max(0, index - self._qrs_window):index]
        after = data[index + 1:min(data.size, index + self._qrs_window)]
        has_q_wave = bool(np.any(before < 0))
        has_s_wave = bool(np.any(after < 0))
        return (has_q_wave and has_s_wave) or data[index] > HIGH_R_AMPLITUDE

    def detect_waves(self, data: np.ndarray, r_peaks: Sequence[int],
                     offset: int = 0) -> List[FiducialPoint]:
        """
        Locate P, Q, S and T around the given R-peaks.

        Points are returned in R, Q, P, S, T order per beat.

        Args:
            data: Signal buffer
            r_peaks: Candidate R-peak indices
            offset: Absolute index of data[0]

        Returns:
            List[FiducialPoint]: Detected points, empty on failure
        """
        try:
            data = np.asarray(data, dtype=float)
            n = data.size
            valid_peaks = [int(p) for p in r_peaks if self.is_valid_qrs(data, int(p))]
            if not valid_peaks:
                return []

            points: List[FiducialPoint] = []
            for position, r_index in enumerate(valid_peaks):
                if r_index < EDGE_MARGIN or r_index >= n - EDGE_MARGIN:
                    continue

                rr = self._local_rr(valid_peaks, position)

                points.append(self._point(data, r_index, WaveType.R, offset))

                # Q: most negative sample just before R
                q_size = min(math.floor(rr * 0.08), Q_WINDOW_MAX)
                q_start = max(0, r_index - q_size)
                q_index = self._extreme(data, q_start, r_index, np.argmin)
                points.append(self._point(data, q_index, WaveType.Q, offset))

                # P: most positive sample before Q, leaving a 1 % RR gap
                p_size = min(math.floor(rr * 0.15), P_WINDOW_MAX)
                p_start = max(0, q_index - p_size)
                p_end = max(p_start, q_index - math.floor(rr * 0.01))
                p_index = self._extreme(data, p_start, p_end, np.argmax)
                points.append(self._point(data, p_index, WaveType.P, offset))

                # S: most negative sample just after R
                s_size = min(math.floor(rr * 0.08), S_WINDOW_MAX)
                s_start = r_index + 1
                s_end = min(n - 1, r_index + s_size)
                s_index = self._extreme(data, s_start, s_end + 1, np.argmin)
                points.append(self._point(data, s_index, WaveType.S, offset))

                # T: most positive sample starting 15 % RR after S
                t_start = s_index + math.floor(rr * 0.15)
                if t_start > n - 1:
                    logger.debug(f"T window for R at {r_index} starts past the buffer end")
                    continue
                t_size = min(math.floor(rr * 0.25), T_WINDOW_MAX)
                t_end = min(n - 1, t_start + t_size)
                t_index = self._extreme(data, t_start, t_end + 1, np.argmax)
                points.append(self._point(data, t_index, WaveType.T, offset))

            return points

        except Exception as e:
            logger.error(f"Error detecting PQRST waves: {str(e)}")
            return []

    def detect_direct_waves(self, data: np.ndarray, offset: int = 0) -> List[FiducialPoint]:
        """
        Find R-peaks from amplitude statistics and delegate to guided mode.

        Args:
            data: Signal buffer
            offset: Absolute index of data[0]

        Returns:
            List[FiducialPoint]: Detected points, empty for a weak signal
        """
        try:
            data = np.asarray(data, dtype=float)
            r_peaks = self.find_direct_r_peaks(data)
            if not r_peaks:
                return []
            return self.detect_waves(data, r_peaks, offset)

        except Exception as e:
            logger.error(f"Error in direct wave detection: {str(e)}")
            return []

    def find_direct_r_peaks(self, data: np.ndarray) -> List[int]:
        """
        R candidates: samples above 60 % of the top amplitude that are the
        maximum of their +/-80 ms neighbourhood, 150 ms apart at least.
        """
        data = np.asarray(data, dtype=float)
        n = data.size
        top_count = math.floor(n * 0.05)
        if top_count == 0:
            return []

        max_value = float(np.sort(data)[::-1][:top_count][0])
        if max_value < MIN_DIRECT_AMPLITUDE:
            logger.debug(f"Signal too weak for direct detection (max: {max_value:.3f})")
            return []

        threshold = max_value * DIRECT_THRESHOLD_RATIO
        window = self._peak_window
        r_peaks: List[int] = []

        i = window
        while i < n - window:
            if data[i] >= threshold:
                neighbourhood = data[max(0, i - window):min(n, i + window + 1)]
                if not np.any(neighbourhood > data[i]):
                    r_peaks.append(i)
                    i += self._skip_window
            i += 1

        return r_peaks

    def generate_wave_visualization(self, data: np.ndarray,
                                    points: Sequence[FiducialPoint]) -> WaveVisualization:
        """
        Splat points onto per-type sparse arrays aligned to data.

        Args:
            data: Signal buffer
            points: Fiducial points of that buffer

        Returns:
            WaveVisualization: One array per wave type, zero elsewhere
        """
        n = len(data)
        lines = {wave_type: np.zeros(n) for wave_type in WaveType}
        for p in points:
            if 0 <= p.index < n:
                lines[p.type][p.index] = p.amplitude

        return WaveVisualization(
            p_line=lines[WaveType.P],
            q_line=lines[WaveType.Q],
            r_line=lines[WaveType.R],
            s_line=lines[WaveType.S],
            t_line=lines[WaveType.T],
        )

    def _local_rr(self, peaks: List[int], position: int) -> int:
        """Distance to the previous peak, else the next, else one second; clamped."""
        if position > 0:
            rr = peaks[position] - peaks[position - 1]
        elif position < len(peaks) - 1:
            rr = peaks[position + 1] - peaks[position]
        else:
            rr = self.sample_rate

        if rr < self.sample_rate * 0.3:
            rr = self._min_rr
        elif rr > self.sample_rate * 1.5:
            rr = self._max_rr
        return int(rr)

    @staticmethod
    def _point(data: np.ndarray, index: int, wave_type: WaveType, offset: int) -> FiducialPoint:
        return FiducialPoint(
            index=index,
            absolute_position=offset + index,
            amplitude=float(data[index]),
            type=wave_type,
        )

    @staticmethod
    def _extreme(data: np.ndarray, start: int, end: int, selector) -> int:
        """Index of the first extreme in data[start:end]; start for an empty range."""
        if end <= start:
            return start
        return start + int(selector(data[start:end]))
