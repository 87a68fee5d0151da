"""
Session Analyzer Service

Offline analysis of a complete recording.
Coordinates R-peak, PQRST, interval, HRV and optional beat classification
services and summarizes the session for a consumer-facing report.
Designed along Clean Architecture and SOLID lines.
"""

from typing import List, Optional, Sequence
import time
import logging

import numpy as np

from ecgstream.config import constants
from ecgstream.domain.models.ecg_models import (
    Gender, ECGIntervals, HRVMetrics, HeartRateStats, Abnormality,
    RhythmClassification, SessionAnalysisResult,
    BPMStatus, PRStatus, QRSStatus, QTStatus
)
from ecgstream.domain.interfaces.ecg_interfaces import IBeatClassifier
from ecgstream.services.ecg.pqrst_detector_service import PQRSTDetectorService
from ecgstream.services.ecg.rpeak_detector_service import detect_r_peaks_ecg
from ecgstream.services.ecg.interval_calculator_service import IntervalCalculatorService
from ecgstream.services.ecg.hrv_calculator_service import HRVCalculatorService
from ecgstream.services.ecg.beat_window_service import (
    BeatWindowService, NORMAL_SINUS_RHYTHM
)

logger = logging.getLogger(__name__)

IRREGULAR_RR_TOLERANCE = 0.2
VENTRICULAR_ALERT_PERCENT = 10.0
MIN_IRREGULARITY_PEAKS = 3

DISCLAIMER = (
    "Remember that this device is not a medical diagnostic tool. "
    "Always consult with a healthcare professional."
)


class SessionAnalyzerService:
    """
    Whole-recording ECG analysis.

    Steps:
    - Amplitude-based R-peak detection
    - R-guided PQRST delineation and clinical intervals
    - HRV metrics and physiological state
    - Optional beat-level rhythm classification
    - Heart rate statistics, irregularity, abnormalities, recommendations
    """

    def __init__(self, sample_rate: float = constants.DEFAULT_SAMPLE_RATE):
        """
        SessionAnalyzerService constructor.

        Args:
            sample_rate: Sampling rate (Hz)
        """
        if not sample_rate > 0:
            raise ValueError("Sample rate must be positive")

        self.sample_rate = float(sample_rate)
        self._pqrst_detector = PQRSTDetectorService(self.sample_rate)
        self._interval_calculator = IntervalCalculatorService(self.sample_rate)
        self._hrv_calculator = HRVCalculatorService()
        self._beat_windows = BeatWindowService(self.sample_rate)
        logger.info("SessionAnalyzerService initialized")

    def reset(self) -> None:
        """Clear accumulated RR history between sessions."""
        self._hrv_calculator.reset()
        self._interval_calculator.reset()

    def analyze_session(self, samples: Sequence[float],
                        gender: Gender = Gender.MALE,
                        age: Optional[float] = None,
                        classifier: Optional[IBeatClassifier] = None) -> SessionAnalysisResult:
        """
        Analyze one recorded session.

        Args:
            samples: Filtered ECG samples of the whole session
            gender: QT/QTc threshold set
            age: Age in years, enables the age-adjusted state estimate
            classifier: External beat classifier, rhythm is skipped when None

        Returns:
            SessionAnalysisResult: Session summary
        """
        start_time = time.time()
        data = np.nan_to_num(np.asarray(samples, dtype=float))
        duration = data.size / self.sample_rate

        self.reset()
        self._interval_calculator.set_gender(gender)

        # 1. R-peaks
        peaks = detect_r_peaks_ecg(data, self.sample_rate) if data.size else []
        logger.info(f"Session: {len(peaks)} R-peaks in {duration:.1f} s")

        # 2. PQRST and intervals
        points = self._pqrst_detector.detect_waves(data, peaks, 0) if peaks else []
        intervals: Optional[ECGIntervals] = None
        reading = self._interval_calculator.calculate_intervals(points)
        if reading is not None and self._interval_calculator.validate_intervals(reading.intervals):
            intervals = reading.intervals

        # 3. HRV
        self._hrv_calculator.extract_rr_from_peaks(peaks, self.sample_rate)
        hrv = self._hrv_calculator.get_all_metrics()
        if age is not None and hrv.sample_count >= 2:
            state = self._hrv_calculator.determine_physiological_state(hrv, age)
        else:
            state = self._hrv_calculator.get_physiological_state()

        # 4. Rhythm
        rhythm: Optional[RhythmClassification] = None
        if classifier is not None:
            rhythm = self._beat_windows.classify_rhythm(data, peaks, classifier, intervals)

        # 5. Summary
        heart_rate = self.calculate_heart_rate_stats(peaks)
        irregular = self.count_irregular_beats(peaks)
        abnormalities = self.detect_abnormalities(intervals, hrv, rhythm)

        result = SessionAnalysisResult(
            duration_seconds=duration,
            duration_label=self.format_duration(duration),
            r_peaks=[int(p) for p in peaks],
            heart_rate=heart_rate,
            heart_rate_status=self.determine_heart_rate_status(heart_rate.average),
            irregular_beats=irregular,
            percent_irregular=self.calculate_percent_irregular(peaks),
            intervals=intervals,
            hrv=hrv,
            physiological_state=state,
            rhythm=rhythm,
            abnormalities=abnormalities,
            recommendations=self.generate_recommendations(abnormalities, rhythm),
            processing_time_ms=(time.time() - start_time) * 1000,
        )
        logger.info(
            f"Session analysis completed in {result.processing_time_ms:.1f}ms "
            f"(HR {heart_rate.average:.1f} BPM, {len(abnormalities)} abnormalities)"
        )
        return result

    # Heart rate

    def _rr_intervals(self, peaks: Sequence[int]) -> np.ndarray:
        if len(peaks) < 2:
            return np.array([], dtype=float)
        return np.diff(np.asarray(peaks, dtype=float)) / self.sample_rate * 1000

    def calculate_heart_rate_stats(self, peaks: Sequence[int]) -> HeartRateStats:
        """Mean, median, min and max BPM over physiological RR intervals."""
        rr = self._rr_intervals(peaks)
        rr = rr[(rr >= constants.MIN_RR_MS) & (rr <= constants.MAX_RR_MS)]
        if rr.size == 0:
            if len(peaks) < 2:
                logger.warning("No valid R-peaks detected")
            return HeartRateStats()

        bpms = np.sort(60000.0 / rr)
        return HeartRateStats(
            average=float(np.mean(bpms)),
            median=float(bpms[bpms.size // 2]),
            min=float(bpms[0]),
            max=float(bpms[-1]),
        )

    @staticmethod
    def determine_heart_rate_status(bpm: float) -> str:
        if not np.isfinite(bpm) or bpm <= 0:
            return BPMStatus.UNKNOWN.value
        if bpm < 60:
            return BPMStatus.BRADYCARDIA.value
        if bpm > 100:
            return BPMStatus.TACHYCARDIA.value
        return BPMStatus.NORMAL.value

    def count_irregular_beats(self, peaks: Sequence[int]) -> int:
        """RR intervals deviating from the median by more than 20 %."""
        if len(peaks) < MIN_IRREGULARITY_PEAKS:
            return 0
        rr = np.sort(self._rr_intervals(peaks))
        median = rr[rr.size // 2]
        return int(np.count_nonzero(np.abs(rr - median) > median * IRREGULAR_RR_TOLERANCE))

    def calculate_percent_irregular(self, peaks: Sequence[int]) -> float:
        if len(peaks) < MIN_IRREGULARITY_PEAKS:
            return 0.0
        return self.count_irregular_beats(peaks) / (len(peaks) - 1) * 100

    # Findings

    def detect_abnormalities(self, intervals: Optional[ECGIntervals],
                             hrv: HRVMetrics,
                             rhythm: Optional[RhythmClassification]) -> List[Abnormality]:
        """
        Abnormalities from interval status and beat classification.

        Args:
            intervals: Session intervals, may be None
            hrv: HRV metrics
            rhythm: Beat classification result, may be None

        Returns:
            List[Abnormality]: Findings with severity
        """
        abnormalities: List[Abnormality] = []

        if intervals is not None:
            status = intervals.status
            if status.bpm == BPMStatus.BRADYCARDIA:
                abnormalities.append(Abnormality(
                    "Bradycardia", "medium",
                    "Slow heart rate detected, which may indicate an underlying condition."
                ))
            if status.bpm == BPMStatus.TACHYCARDIA:
                abnormalities.append(Abnormality(
                    "Tachycardia", "medium",
                    "Elevated heart rate detected, which could be due to exertion, stress, or cardiac issues."
                ))
            if status.pr == PRStatus.LONG:
                abnormalities.append(Abnormality(
                    "Prolonged PR Interval", "medium",
                    "Delayed conduction from atria to ventricles detected."
                ))
            if status.qrs == QRSStatus.WIDE:
                abnormalities.append(Abnormality(
                    "Wide QRS Complex", "medium",
                    "Delayed ventricular conduction detected, possibly indicating bundle branch block."
                ))
            if status.qtc == QTStatus.PROLONGED:
                abnormalities.append(Abnormality(
                    "Prolonged QTc", "high",
                    "Prolonged QTc interval increases risk of dangerous arrhythmias."
                ))

        ventricular = self._ventricular_percent(rhythm)
        if ventricular > VENTRICULAR_ALERT_PERCENT:
            abnormalities.append(Abnormality(
                "Ventricular Arrhythmia", "high",
                f"{ventricular:.1f}% of beats classified as ventricular, indicating possible PVCs or VT."
            ))

        if hrv.sample_count >= constants.MIN_HRV_STATE_SAMPLES and hrv.assessment.status == "Low":
            abnormalities.append(Abnormality(
                "Reduced Heart Rate Variability", "low",
                "Low beat-to-beat variability, often seen with stress, fatigue or poor recovery."
            ))

        return abnormalities

    def generate_recommendations(self, abnormalities: Sequence[Abnormality],
                                 rhythm: Optional[RhythmClassification]) -> List[str]:
        recommendations = [DISCLAIMER]

        abnormal_rhythm = rhythm is not None and rhythm.prediction != NORMAL_SINUS_RHYTHM
        if abnormalities or abnormal_rhythm:
            recommendations.append(
                "Based on the patterns detected, consider scheduling a consultation with a cardiologist."
            )
        if self._ventricular_percent(rhythm) > VENTRICULAR_ALERT_PERCENT:
            recommendations.append(
                "Frequent ventricular beats detected. Avoid excessive caffeine and monitor for "
                "symptoms like palpitations."
            )
        if any(a.severity == "high" for a in abnormalities):
            recommendations.append(
                "High-priority abnormalities detected. Seek immediate medical attention if "
                "experiencing symptoms."
            )
        return recommendations

    @staticmethod
    def _ventricular_percent(rhythm: Optional[RhythmClassification]) -> float:
        if rhythm is None or not rhythm.beat_counts:
            return 0.0
        total = sum(rhythm.beat_counts.values())
        if total == 0:
            return 0.0
        return rhythm.beat_counts.get("Ventricular", 0) / total * 100

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Seconds as m:ss."""
        seconds = max(0.0, float(seconds))
        return f"{int(seconds // 60)}:{int(seconds % 60):02d}"
