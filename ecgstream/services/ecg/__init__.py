"""
ECG services
"""

from .filter_chain_service import FilterChainService, HighpassFilter, LowpassFilter, NotchFilter
from .qrs_detector_service import QRSDetectorService
from .pqrst_detector_service import PQRSTDetectorService
from .rpeak_detector_service import RPeakDetectorService, detect_r_peaks_ecg
from .interval_calculator_service import IntervalCalculatorService
from .hrv_calculator_service import HRVCalculatorService
from .beat_window_service import BeatWindowService
from .ecg_stream_service import ECGStreamService, RollingWindow, HeartRateTracker
from .session_analyzer_service import SessionAnalyzerService

__all__ = [
    # Filtering
    "FilterChainService",
    "HighpassFilter",
    "LowpassFilter",
    "NotchFilter",
    # Detection
    "QRSDetectorService",
    "PQRSTDetectorService",
    "RPeakDetectorService",
    "detect_r_peaks_ecg",
    # Measurement
    "IntervalCalculatorService",
    "HRVCalculatorService",
    "BeatWindowService",
    # Coordination
    "ECGStreamService",
    "RollingWindow",
    "HeartRateTracker",
    "SessionAnalyzerService",
]
