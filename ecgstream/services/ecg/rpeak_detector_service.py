"""
R-Peak Detector Service

Unified R-peak detection for live and session analysis.
Runs the self-contained PQRST scan and, for weak signals, rescales by peak
amplitude and retries once.
Designed along Clean Architecture and SOLID lines.
"""

from typing import List, Optional, Sequence
from functools import lru_cache
import math
import logging

import numpy as np

from ecgstream.config import constants
from ecgstream.config.app_config import RPeakConfig
from ecgstream.domain.models.ecg_models import RPeakOptions, WaveType
from ecgstream.domain.interfaces.ecg_interfaces import IRPeakDetector
from ecgstream.services.ecg.pqrst_detector_service import PQRSTDetectorService

logger = logging.getLogger(__name__)


def _valid_sample_rate(sample_rate: float) -> bool:
    try:
        return math.isfinite(sample_rate) and sample_rate > 0
    except TypeError:
        return False


@lru_cache(maxsize=8)
def _detector_for(sample_rate: float) -> PQRSTDetectorService:
    return PQRSTDetectorService(sample_rate)


def detect_r_peaks_ecg(signal: Sequence[float], sample_rate: float,
                       options: Optional[RPeakOptions] = None) -> List[int]:
    """
    Detect R-peaks in a signal.

    Args:
        signal: ECG samples
        sample_rate: Sampling rate (Hz)
        options: Detector options (adaptive rescale on by default)

    Returns:
        List[int]: R-peak indices; empty for empty/non-finite input or an
        invalid sample rate
    """
    options = options or RPeakOptions()

    if signal is None or len(signal) == 0:
        logger.warning("Empty or invalid signal provided for R-peak detection")
        return []

    if not _valid_sample_rate(sample_rate):
        logger.error(f"Invalid sample rate for R-peak detection: {sample_rate}")
        return []

    data = np.asarray(signal, dtype=float)
    if not np.all(np.isfinite(data)):
        logger.warning("Non-finite samples in signal, skipping R-peak detection")
        return []

    detector = _detector_for(float(sample_rate))

    points = detector.detect_direct_waves(data, 0)
    peaks = [p.index for p in points if p.type == WaveType.R]
    if peaks:
        return peaks

    if options.adaptive_threshold:
        peak_amplitude = max(float(np.max(np.abs(data))), constants.AMPLITUDE_EPSILON)
        scaled = data / peak_amplitude
        points = detector.detect_direct_waves(scaled, 0)
        peaks = [p.index for p in points if p.type == WaveType.R]
        if peaks:
            logger.debug(f"R-peaks recovered after amplitude rescale (x{1 / peak_amplitude:.2f})")

    return peaks


class RPeakDetectorService(IRPeakDetector):
    """
    R-peak detector service.

    Thin service wrapper around detect_r_peaks_ecg that carries the
    configured options.
    """

    def __init__(self, config: Optional[RPeakConfig] = None):
        """RPeakDetectorService constructor."""
        self._config = config or RPeakConfig()
        self._options = RPeakOptions(adaptive_threshold=self._config.adaptive_threshold)
        logger.info("RPeakDetectorService initialized")

    def detect(self, buffer: np.ndarray, sample_rate: float,
               options: Optional[RPeakOptions] = None) -> List[int]:
        """
        Detect R-peaks.

        Args:
            buffer: Signal buffer
            sample_rate: Sampling rate (Hz)
            options: Overrides the configured options

        Returns:
            List[int]: R-peak indices
        """
        try:
            return detect_r_peaks_ecg(buffer, sample_rate, options or self._options)
        except Exception as e:
            logger.error(f"Error detecting R-peaks: {str(e)}")
            return []
