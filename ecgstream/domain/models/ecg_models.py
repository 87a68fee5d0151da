"""
ECG Domain Models

Domain models for the streaming ECG feature-extraction core.
Designed along Clean Architecture lines.
Value objects are immutable (frozen=True); the only mutable model is the
adaptive detector state, which is owned by exactly one caller.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict
from enum import Enum
import numpy as np


class WaveType(str, Enum):
    """Fiducial point types of one heartbeat."""
    P = "P"
    Q = "Q"
    R = "R"
    S = "S"
    T = "T"


class Gender(str, Enum):
    """Selects gender-specific QT/QTc thresholds."""
    MALE = "male"
    FEMALE = "female"


class RRStatus(str, Enum):
    NORMAL = "normal"
    SHORT = "short"
    LONG = "long"
    UNKNOWN = "unknown"


class PRStatus(str, Enum):
    NORMAL = "normal"
    SHORT = "short"
    LONG = "long"
    UNKNOWN = "unknown"


class QRSStatus(str, Enum):
    NORMAL = "normal"
    WIDE = "wide"
    UNKNOWN = "unknown"


class QTStatus(str, Enum):
    """Shared by QT and QTc."""
    NORMAL = "normal"
    PROLONGED = "prolonged"
    UNKNOWN = "unknown"


class BPMStatus(str, Enum):
    NORMAL = "normal"
    BRADYCARDIA = "bradycardia"
    TACHYCARDIA = "tachycardia"
    UNKNOWN = "unknown"


class SignalQuality(str, Enum):
    """Coarse live signal quality."""
    GOOD = "good"
    POOR = "poor"
    NO_SIGNAL = "no-signal"


class PhysiologicalStateLabel(str, Enum):
    """Heuristic autonomic state labels."""
    HIGH_STRESS = "High Stress"
    RELAXED = "Relaxed"
    FOCUSED = "Focused"
    FATIGUE = "Fatigue"
    NEUTRAL = "Neutral"
    ANALYZING = "Analyzing"


@dataclass(frozen=True)
class FiducialPoint:
    """
    One detected wave landmark.

    Attributes:
        index: Position within the analyzed buffer
        absolute_position: Monotonic sample count since stream start
        amplitude: Signal value at index
        type: Wave type
    """
    index: int
    absolute_position: int
    amplitude: float
    type: WaveType

    def __post_init__(self):
        """Validation."""
        if self.index < 0:
            raise ValueError("Point index cannot be negative")
        if self.absolute_position < 0:
            raise ValueError("Absolute position cannot be negative")


@dataclass(frozen=True)
class CardiacComplex:
    """
    Fiducial points sharing one R-peak.

    Attributes:
        points: Points ordered by absolute position
    """
    points: List[FiducialPoint] = field(default_factory=list)

    def get_point(self, wave_type: WaveType) -> Optional[FiducialPoint]:
        """Return the first point of the given type."""
        for point in self.points:
            if point.type == wave_type:
                return point
        return None

    @property
    def is_complete(self) -> bool:
        """True when one point of every wave type is present."""
        types = {point.type for point in self.points}
        return all(wave_type in types for wave_type in WaveType)

    @property
    def r_peak(self) -> Optional[FiducialPoint]:
        return self.get_point(WaveType.R)


@dataclass(frozen=True)
class IntervalStatusSet:
    """Categorical status for each interval."""
    rr: RRStatus = RRStatus.UNKNOWN
    pr: PRStatus = PRStatus.UNKNOWN
    qrs: QRSStatus = QRSStatus.UNKNOWN
    qt: QTStatus = QTStatus.UNKNOWN
    qtc: QTStatus = QTStatus.UNKNOWN
    bpm: BPMStatus = BPMStatus.UNKNOWN


@dataclass(frozen=True)
class ECGIntervals:
    """
    Clinical intervals of the latest complete complex.

    Attributes:
        rr: RR interval (ms)
        pr: PR interval (ms)
        qrs: QRS duration (ms)
        qt: QT interval (ms)
        qtc: Bazett-corrected QT (ms)
        bpm: Heart rate (BPM)
        status: Status per interval
    """
    rr: float = 0.0
    pr: float = 0.0
    qrs: float = 0.0
    qt: float = 0.0
    qtc: float = 0.0
    bpm: float = 0.0
    status: IntervalStatusSet = field(default_factory=IntervalStatusSet)


@dataclass(frozen=True)
class IntervalReading:
    """
    Interval calculator result.

    fresh is False when the newest complex was unusable and the
    previously computed intervals are being held.
    """
    intervals: ECGIntervals
    fresh: bool = True

    @property
    def is_stale(self) -> bool:
        return not self.fresh


@dataclass(frozen=True)
class RPeakOptions:
    """
    Options of the unified R-peak detector.

    Attributes:
        adaptive_threshold: Rescale by peak amplitude and retry once on zero detections
    """
    adaptive_threshold: bool = True


@dataclass
class DetectorState:
    """
    Adaptive state of the QRS detector.

    Attributes:
        signal_threshold: Current signal threshold (integrated domain)
        noise_threshold: Current noise threshold (integrated domain)
        peak_amplitudes: Recent accepted peak amplitudes
        noise_amplitudes: Recent noise peak amplitudes
    """
    signal_threshold: float = 0.25
    noise_threshold: float = 0.1
    peak_amplitudes: List[float] = field(default_factory=list)
    noise_amplitudes: List[float] = field(default_factory=list)

    def copy(self) -> "DetectorState":
        return DetectorState(
            signal_threshold=self.signal_threshold,
            noise_threshold=self.noise_threshold,
            peak_amplitudes=list(self.peak_amplitudes),
            noise_amplitudes=list(self.noise_amplitudes),
        )


@dataclass(frozen=True)
class QRSIntermediateSignals:
    """Stage outputs of the last QRS detection, for inspection."""
    filtered: np.ndarray
    differentiated: np.ndarray
    squared: np.ndarray
    integrated: np.ndarray
    signal_threshold: float
    noise_threshold: float


@dataclass(frozen=True)
class WaveVisualization:
    """Per-type sparse arrays aligned to the analyzed buffer."""
    p_line: np.ndarray
    q_line: np.ndarray
    r_line: np.ndarray
    s_line: np.ndarray
    t_line: np.ndarray


@dataclass(frozen=True)
class LFHFRatio:
    """Approximate LF/HF (successive-difference proxy, not spectral)."""
    lf: float = 0.0
    hf: float = 0.0
    ratio: float = 0.0


@dataclass(frozen=True)
class HRVAssessment:
    status: str
    description: str


@dataclass(frozen=True)
class HRVMetrics:
    """
    Heart rate variability metrics.

    Attributes:
        rmssd: Root mean square of successive differences (ms)
        sdnn: Population standard deviation of RR (ms)
        pnn50: Percentage of successive differences > 50 ms
        triangular_index: RR count / tallest histogram bin
        lfhf: Approximate LF/HF
        sample_count: RR intervals in the history
        assessment: RMSSD-based assessment
    """
    rmssd: float
    sdnn: float
    pnn50: float
    triangular_index: float
    lfhf: LFHFRatio
    sample_count: int
    assessment: HRVAssessment


@dataclass(frozen=True)
class PhysiologicalState:
    """Heuristic state label with a confidence in [0, 1]."""
    state: PhysiologicalStateLabel
    confidence: float

    def __post_init__(self):
        """Validation."""
        if not 0 <= self.confidence <= 1:
            raise ValueError("Confidence must be between 0 and 1")


@dataclass(frozen=True)
class OptimizedHRVResult:
    """
    Result of the artifact-filtered HRV path.

    Spectral powers are not estimated; spectral_available stays False.
    """
    rmssd: float
    sdnn: float
    lf_power: float = 0.0
    hf_power: float = 0.0
    lfhf_ratio: float = 0.0
    filtered_count: int = 0
    spectral_available: bool = False


@dataclass(frozen=True)
class BeatPrediction:
    """Interpreted classifier output for one beat."""
    label: str
    confidence: float
    probabilities: List[float] = field(default_factory=list)


@dataclass(frozen=True)
class RhythmClassification:
    """Rhythm label aggregated over classified beats."""
    prediction: str
    confidence: float
    explanation: str
    beat_counts: Dict[str, int] = field(default_factory=dict)
    valid_predictions: int = 0


@dataclass(frozen=True)
class TickResult:
    """
    Output of one processing tick of the streaming pipeline.

    Attributes:
        r_peaks: R-peak indices within the snapshot
        absolute_r_peaks: R-peak absolute sample indices
        points: Fiducial points of the snapshot
        intervals: Interval reading (None before the first complete complex)
        intervals_valid: False when validate_intervals rejected the reading
        hrv: HRV metrics (None with fewer than two peaks)
        physiological_state: Current state estimate
        bpm: Smoothed heart rate (0 until two beats are seen)
        signal_quality: Live signal quality
        skipped: True when the tick was skipped for a weak/flat signal
    """
    r_peaks: List[int] = field(default_factory=list)
    absolute_r_peaks: List[int] = field(default_factory=list)
    points: List[FiducialPoint] = field(default_factory=list)
    intervals: Optional[IntervalReading] = None
    intervals_valid: bool = True
    hrv: Optional[HRVMetrics] = None
    physiological_state: Optional[PhysiologicalState] = None
    bpm: float = 0.0
    signal_quality: SignalQuality = SignalQuality.NO_SIGNAL
    skipped: bool = False


@dataclass(frozen=True)
class HeartRateStats:
    average: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0


@dataclass(frozen=True)
class Abnormality:
    type: str
    severity: str  # low | medium | high
    description: str


@dataclass(frozen=True)
class SessionAnalysisResult:
    """
    Offline analysis of one recorded session.

    Attributes:
        duration_seconds: Recording length (s)
        duration_label: Formatted m:ss
        r_peaks: R-peak indices
        heart_rate: Heart rate statistics
        heart_rate_status: normal/bradycardia/tachycardia/unknown
        irregular_beats: RR intervals deviating > 20 % from the median
        percent_irregular: Irregular share of all RR intervals
        intervals: Clinical intervals (None when no complete complex)
        hrv: HRV metrics
        physiological_state: HRV state estimate
        rhythm: Classifier-based rhythm (None without a classifier)
        abnormalities: Detected abnormalities
        recommendations: Consumer-facing advice
        processing_time_ms: Analysis time (ms)
    """
    duration_seconds: float
    duration_label: str
    r_peaks: List[int]
    heart_rate: HeartRateStats
    heart_rate_status: str
    irregular_beats: int
    percent_irregular: float
    intervals: Optional[ECGIntervals]
    hrv: HRVMetrics
    physiological_state: PhysiologicalState
    rhythm: Optional[RhythmClassification] = None
    abnormalities: List[Abnormality] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    processing_time_ms: float = 0.0
