"""
Beat Window Service

Prepares normalized beat windows centred on R-peaks for an external beat
classifier and turns its class probabilities into a rhythm summary.
Model weights and training live outside this package.
Designed along Clean Architecture and SOLID lines.
"""

from typing import Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np

from ecgstream.config import constants
from ecgstream.domain.models.ecg_models import (
    BeatPrediction, RhythmClassification, ECGIntervals, BPMStatus
)
from ecgstream.domain.interfaces.ecg_interfaces import IBeatClassifier

logger = logging.getLogger(__name__)

POLARITY_SEARCH_RANGE = 30
MAX_NORMALIZED_MEAN = 0.3
MIN_VALID_PREDICTIONS = 3

# Classifier input quality, in 12-bit-like units (x * 400)
CLASSIFIER_SCALE = 400.0
MIN_CLASSIFIER_AMPLITUDE = 50.0
MIN_CLASSIFIER_VARIANCE = 100.0

NORMAL_SINUS_RHYTHM = "Normal Sinus Rhythm"


class BeatWindowService:
    """
    Beat window preparation and rhythm interpretation.

    Window pipeline:
    - 135-sample window centred on each R-peak
    - Polarity correction (dominant deflection made positive)
    - Z-score normalization, flat windows rejected
    """

    def __init__(self, sample_rate: float = constants.DEFAULT_SAMPLE_RATE,
                 window_length: int = constants.BEAT_WINDOW_LENGTH):
        """
        BeatWindowService constructor.

        Args:
            sample_rate: Sampling rate (Hz)
            window_length: Classifier input length in samples
        """
        if not sample_rate > 0:
            raise ValueError("Sample rate must be positive")

        self.sample_rate = float(sample_rate)
        self.window_length = int(window_length)
        self._half_window = self.window_length // 2
        self._classes = list(constants.AAMI_CLASSES)
        self._bias = np.asarray(constants.DEVICE_BIAS_CORRECTION, dtype=float)
        logger.info("BeatWindowService initialized")

    def filter_physiological_peaks(self, peaks: Sequence[int]) -> List[int]:
        """Keep peaks whose distance to the preceding detected peak is a plausible RR."""
        kept: List[int] = []
        for i, peak in enumerate(peaks):
            if i == 0:
                kept.append(int(peak))
                continue
            rr_ms = (peak - peaks[i - 1]) / self.sample_rate * 1000
            if constants.MIN_RR_MS <= rr_ms <= constants.MAX_BEAT_RR_MS:
                kept.append(int(peak))
        return kept

    def extract_beat_windows(self, signal: np.ndarray,
                             peaks: Sequence[int]) -> List[Tuple[int, np.ndarray]]:
        """
        Cut raw beat windows around R-peaks.

        Args:
            signal: ECG samples
            peaks: R-peak indices

        Returns:
            List[Tuple[int, np.ndarray]]: (peak, window) pairs; windows that
            would cross the signal bounds are skipped
        """
        data = np.asarray(signal, dtype=float)
        windows = []
        for peak in self.filter_physiological_peaks(peaks):
            start = peak - self._half_window
            end = peak + self._half_window + (self.window_length % 2)
            if start < 0 or end >= data.size:
                continue
            windows.append((peak, data[start:end].copy()))
        return windows

    def adapt_window(self, window: np.ndarray) -> Optional[np.ndarray]:
        """
        Polarity-correct and z-score one beat window.

        Args:
            window: Raw beat window

        Returns:
            Optional[np.ndarray]: Normalized window, None for a flat or
            badly normalized window
        """
        beat = np.asarray(window, dtype=float)
        if beat.size == 0:
            return None

        center = beat.size // 2
        search = beat[max(0, center - POLARITY_SEARCH_RANGE):min(beat.size, center + POLARITY_SEARCH_RANGE)]
        dominant = search[int(np.argmax(np.abs(search)))]
        if abs(dominant) <= abs(beat[center]):
            dominant = beat[center]
        if dominant < 0:
            beat = -beat

        std = float(np.std(beat))
        if std < constants.FLAT_SIGNAL_STD_THRESHOLD:
            return None
        normalized = (beat - float(np.mean(beat))) / std

        if abs(float(np.mean(normalized))) > MAX_NORMALIZED_MEAN:
            return None
        return normalized

    def interpret_probabilities(self, probabilities: Sequence[float]) -> Optional[BeatPrediction]:
        """
        Apply the device bias correction and pick the winning class.

        Args:
            probabilities: Raw classifier output, one value per AAMI class

        Returns:
            Optional[BeatPrediction]: Prediction, None when the confidence
            is not above the acceptance threshold
        """
        probs = np.asarray(list(probabilities), dtype=float)
        if probs.size != len(self._classes):
            logger.warning(f"Unexpected classifier output length: {probs.size}")
            return None

        corrected = probs * self._bias
        total = float(corrected.sum())
        if total <= 0 or not np.isfinite(total):
            return None
        corrected = corrected / total

        best = int(np.argmax(corrected))
        confidence = float(corrected[best])
        if confidence <= constants.MIN_CLASSIFIER_CONFIDENCE:
            return None
        return BeatPrediction(
            label=self._classes[best],
            confidence=confidence,
            probabilities=corrected.tolist(),
        )

    def classify_rhythm(self, signal: np.ndarray, peaks: Sequence[int],
                        classifier: Optional[IBeatClassifier],
                        intervals: Optional[ECGIntervals] = None) -> RhythmClassification:
        """
        Classify every usable beat and aggregate a rhythm label.

        Args:
            signal: ECG samples
            peaks: R-peak indices
            classifier: External beat classifier
            intervals: Intervals for the heart-rate override

        Returns:
            RhythmClassification: Rhythm label, confidence (0-100) and counts
        """
        if classifier is None or len(peaks) == 0:
            return RhythmClassification(
                prediction="Analysis Failed",
                confidence=0.0,
                explanation="Could not run beat analysis due to missing classifier or insufficient data.",
            )

        try:
            data = np.asarray(signal, dtype=float)
            scaled = data * CLASSIFIER_SCALE
            if (float(np.max(np.abs(scaled))) < MIN_CLASSIFIER_AMPLITUDE
                    or float(np.mean(scaled ** 2)) < MIN_CLASSIFIER_VARIANCE):
                return RhythmClassification(
                    prediction="Poor Signal Quality",
                    confidence=0.0,
                    explanation="Signal too weak for reliable beat analysis. Ensure good electrode contact.",
                )

            counts: Dict[str, int] = {name: 0 for name in self._classes}
            confidence_sum = 0.0
            valid = 0

            for peak, window in self.extract_beat_windows(data, peaks):
                adapted = self.adapt_window(window)
                if adapted is None:
                    logger.debug(f"Beat at {peak} rejected during normalization")
                    continue
                try:
                    prediction = self.interpret_probabilities(classifier.predict(adapted))
                except Exception as e:
                    logger.warning(f"Failed to classify beat at {peak}: {str(e)}")
                    continue
                if prediction is None:
                    continue
                counts[prediction.label] += 1
                confidence_sum += prediction.confidence
                valid += 1

            label, confidence = "Insufficient Data", 0.0
            if valid >= MIN_VALID_PREDICTIONS:
                label, confidence = self._overall_rhythm(counts, confidence_sum / valid * 100)

                if intervals is not None:
                    if intervals.status.bpm == BPMStatus.BRADYCARDIA:
                        label, confidence = "Bradycardia", max(confidence, 70.0)
                    elif intervals.status.bpm == BPMStatus.TACHYCARDIA:
                        label, confidence = "Tachycardia", max(confidence, 70.0)

            return RhythmClassification(
                prediction=label,
                confidence=confidence,
                explanation=self.get_explanation(label, counts, valid),
                beat_counts=counts,
                valid_predictions=valid,
            )

        except Exception as e:
            logger.error(f"Error classifying rhythm: {str(e)}")
            return RhythmClassification(
                prediction="Analysis Error",
                confidence=0.0,
                explanation="An error occurred during beat-level analysis. Please try again.",
            )

    def _overall_rhythm(self, counts: Dict[str, int], average_confidence: float) -> Tuple[str, float]:
        total = sum(counts.values())

        def percent(name: str) -> float:
            return counts[name] / total * 100

        if percent("Normal") >= 75:
            return NORMAL_SINUS_RHYTHM, average_confidence
        if percent("Ventricular") > 15:
            return "Ventricular Arrhythmia", min(average_confidence, 85.0)
        if percent("Supraventricular") > 15:
            return "Supraventricular Arrhythmia", min(average_confidence, 80.0)
        if percent("Fusion") > 10:
            return "Fusion Beats Detected", min(average_confidence, 75.0)
        if percent("Other") > 20:
            return "Abnormal Rhythm", min(average_confidence, 70.0)
        return "Mixed Rhythm Pattern", min(average_confidence, 65.0)

    def get_explanation(self, prediction: str, counts: Dict[str, int], valid: int) -> str:
        """Human-readable explanation of a rhythm label."""
        total = sum(counts.values())
        if total == 0:
            return "Insufficient quality data for reliable beat analysis. Signal may be too noisy or weak."
        if valid < MIN_VALID_PREDICTIONS:
            return (f"Only {valid} beats could be analyzed reliably. "
                    f"Longer recording recommended for comprehensive analysis.")

        def share(name: str) -> str:
            return f"{counts[name] / total * 100:.1f}%"

        explanations = {
            NORMAL_SINUS_RHYTHM: (
                f"Analysis of {total} beats shows predominantly normal cardiac rhythm "
                f"({share('Normal')} normal beats)."
            ),
            "Ventricular Arrhythmia": (
                f"Detected {counts['Ventricular']} ventricular beats out of {total} analyzed beats "
                f"({share('Ventricular')}). This may indicate premature ventricular contractions."
            ),
            "Supraventricular Arrhythmia": (
                f"Found {counts['Supraventricular']} supraventricular beats out of {total} analyzed beats "
                f"({share('Supraventricular')}). This suggests arrhythmias originating above the ventricles."
            ),
            "Fusion Beats Detected": (
                f"Identified {counts['Fusion']} fusion beats out of {total} analyzed beats."
            ),
            "Abnormal Rhythm": (
                f"Irregular patterns in {share('Other')} of {total} beats that do not fit "
                f"typical arrhythmia categories."
            ),
            "Mixed Rhythm Pattern": (
                f"Multiple beat types: Normal ({counts['Normal']}), Ventricular ({counts['Ventricular']}), "
                f"Supraventricular ({counts['Supraventricular']}), Other ({counts['Other']})."
            ),
            "Bradycardia": f"Slow heart rate detected; {total} beats were analyzed for rhythm classification.",
            "Tachycardia": f"Elevated heart rate detected; {total} beats were analyzed for rhythm classification.",
        }
        return explanations.get(
            prediction,
            f"Beat analysis completed on {total} beats. Patterns require clinical correlation."
        )
