"""
ECG Domain Interfaces

Domain interfaces of the streaming ECG core.
Designed along Clean Architecture and SOLID lines.
"""

from typing import Protocol, Optional, List, Sequence, Tuple
import numpy as np
from abc import abstractmethod

from ecgstream.domain.models.ecg_models import (
    FiducialPoint, CardiacComplex, ECGIntervals, IntervalReading,
    DetectorState, HRVMetrics, PhysiologicalState, RPeakOptions, Gender
)


class ISampleFilter(Protocol):
    """
    Per-sample filter interface.

    Filters keep their own delay taps between calls.
    """

    @abstractmethod
    def process(self, sample: float) -> float:
        """
        Filter one sample.

        Args:
            sample: Input sample

        Returns:
            float: Filtered sample
        """
        ...

    @abstractmethod
    def reset(self) -> None:
        """Zero all delay taps."""
        ...


class IQRSDetector(Protocol):
    """
    Adaptive QRS detector interface.
    """

    @abstractmethod
    def detect(self, data: np.ndarray,
               state: DetectorState) -> Tuple[List[int], DetectorState]:
        """
        Detect R-peaks starting from an explicit detector state.

        Args:
            data: Filtered signal block
            state: Adaptive state to start from (not mutated)

        Returns:
            Tuple[List[int], DetectorState]: Peak indices and the updated state
        """
        ...

    @abstractmethod
    def detect_qrs(self, data: np.ndarray) -> List[int]:
        """
        Detect R-peaks using the detector-owned state.

        Args:
            data: Filtered signal block

        Returns:
            List[int]: Peak indices
        """
        ...

    @abstractmethod
    def reset(self) -> None:
        """Restore initial thresholds and clear history."""
        ...


class IRPeakDetector(Protocol):
    """
    Unified R-peak detector interface.
    """

    @abstractmethod
    def detect(self, buffer: np.ndarray, sample_rate: float,
               options: Optional[RPeakOptions] = None) -> List[int]:
        """
        Detect R-peaks.

        Args:
            buffer: Signal buffer
            sample_rate: Sampling rate (Hz)
            options: Detector options

        Returns:
            List[int]: R-peak indices, empty on invalid input
        """
        ...


class IWaveDetector(Protocol):
    """
    PQRST fiducial-point detector interface.
    """

    @abstractmethod
    def detect_waves(self, data: np.ndarray, r_peaks: Sequence[int],
                     offset: int = 0) -> List[FiducialPoint]:
        """
        Locate P, Q, S and T around the given R-peaks.

        Args:
            data: Signal buffer
            r_peaks: Candidate R-peak indices
            offset: Absolute index of data[0]

        Returns:
            List[FiducialPoint]: Detected points
        """
        ...

    @abstractmethod
    def detect_direct_waves(self, data: np.ndarray,
                            offset: int = 0) -> List[FiducialPoint]:
        """
        Find R-peaks from amplitude statistics, then locate the other waves.

        Args:
            data: Signal buffer
            offset: Absolute index of data[0]

        Returns:
            List[FiducialPoint]: Detected points
        """
        ...


class IIntervalCalculator(Protocol):
    """
    Clinical interval calculator interface.
    """

    @abstractmethod
    def set_gender(self, gender: Gender) -> None:
        ...

    @abstractmethod
    def calculate_intervals(self, points: Sequence[FiducialPoint]) -> Optional[IntervalReading]:
        """
        Compute intervals of the latest complete complex.

        Args:
            points: Fiducial points

        Returns:
            Optional[IntervalReading]: Fresh or held reading, None before the first one
        """
        ...

    @abstractmethod
    def group_into_complexes(self, points: Sequence[FiducialPoint]) -> List[CardiacComplex]:
        ...

    @abstractmethod
    def validate_intervals(self, intervals: ECGIntervals) -> bool:
        ...

    @abstractmethod
    def reset(self) -> None:
        ...


class IHRVCalculator(Protocol):
    """
    HRV calculator interface.
    """

    @abstractmethod
    def add_rr_interval(self, interval_ms: float) -> bool:
        """
        Append one RR interval.

        Args:
            interval_ms: RR interval (ms)

        Returns:
            bool: True if the value was within the accepted range
        """
        ...

    @abstractmethod
    def extract_rr_from_peaks(self, peaks: Sequence[int], sample_rate: float) -> int:
        ...

    @abstractmethod
    def get_all_metrics(self) -> HRVMetrics:
        ...

    @abstractmethod
    def get_physiological_state(self) -> PhysiologicalState:
        ...

    @abstractmethod
    def reset(self) -> None:
        ...


class IBeatClassifier(Protocol):
    """
    External beat classifier.

    Receives one normalized 135-sample beat window and returns the
    probabilities of the five AAMI classes
    (Normal, Supraventricular, Ventricular, Fusion, Other).
    """

    @abstractmethod
    def predict(self, window: np.ndarray) -> Sequence[float]:
        ...
