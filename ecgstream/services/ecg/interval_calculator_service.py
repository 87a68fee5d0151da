"""
Interval Calculator Service

Groups fiducial points into cardiac complexes and derives RR, PR, QRS,
QT, QTc (Bazett) and heart rate with clinical normal-range status.
Designed along Clean Architecture and SOLID lines.
"""

from typing import List, Optional, Sequence, Dict
import bisect
import math
import logging

from ecgstream.config import constants
from ecgstream.config.app_config import IntervalConfig
from ecgstream.domain.models.ecg_models import (
    FiducialPoint, CardiacComplex, WaveType, Gender,
    ECGIntervals, IntervalReading, IntervalStatusSet,
    RRStatus, PRStatus, QRSStatus, QTStatus, BPMStatus
)
from ecgstream.domain.interfaces.ecg_interfaces import IIntervalCalculator

logger = logging.getLogger(__name__)

# Gender-specific prolongation thresholds (ms)
QT_THRESHOLDS = {Gender.MALE: 440.0, Gender.FEMALE: 460.0}
QTC_THRESHOLDS = {Gender.MALE: 450.0, Gender.FEMALE: 470.0}

# Physiologically plausible ranges; zero values are not checked.
# PR floor sits under the 27-sample P window; QTc floor allows slow rates.
VALID_RANGES = {
    "rr": (300.0, 3000.0),
    "pr": (20.0, 400.0),
    "qrs": (40.0, 200.0),
    "qt": (200.0, 600.0),
    "qtc": (200.0, 700.0),
    "bpm": (20.0, 300.0),
}

MIN_QTC_RR_MS = 100.0


class IntervalCalculatorService(IIntervalCalculator):
    """
    Clinical interval calculator.

    Keeps the last successfully computed intervals and returns them,
    marked stale, while the newest complex is incomplete.
    """

    def __init__(self, sample_rate: float = constants.DEFAULT_SAMPLE_RATE,
                 gender: Optional[Gender] = None,
                 config: Optional[IntervalConfig] = None):
        """
        IntervalCalculatorService constructor.

        Args:
            sample_rate: Sampling rate (Hz)
            gender: QT/QTc threshold set (overrides config)
            config: Interval settings, defaults when None
        """
        if not sample_rate > 0:
            raise ValueError("Sample rate must be positive")

        self._config = config or IntervalConfig()
        self.sample_rate = float(sample_rate)
        self.gender = Gender(gender) if gender is not None else self._config.gender
        self._min_rr_distance = math.floor(self.sample_rate * self._config.min_rr_distance_ms / 1000)
        self._last_intervals: Optional[ECGIntervals] = None
        logger.info(f"IntervalCalculatorService initialized (gender: {self.gender.value})")

    def set_gender(self, gender: Gender) -> None:
        self.gender = Gender(gender)

    def calculate_intervals(self, points: Sequence[FiducialPoint]) -> Optional[IntervalReading]:
        """
        Compute intervals of the most recent complete complex.

        Args:
            points: Fiducial points, any order

        Returns:
            Optional[IntervalReading]: Fresh reading, the held previous
            reading marked stale, or None when nothing was computed yet
        """
        complexes = self.group_into_complexes(points)
        if not complexes or not self.is_complete_complex(complexes[-1]):
            return self._held_reading()

        latest = complexes[-1]
        rr = 0.0
        if len(complexes) >= 2:
            current_r = latest.r_peak
            previous_r = complexes[-2].r_peak
            rr = abs(current_r.absolute_position - previous_r.absolute_position) / self.sample_rate * 1000

        if rr == 0 and self._last_intervals is not None and self._last_intervals.rr:
            rr = self._last_intervals.rr

        bpm = 60000.0 / rr if rr > 0 else 0.0

        p = latest.get_point(WaveType.P)
        q = latest.get_point(WaveType.Q)
        s = latest.get_point(WaveType.S)
        t = latest.get_point(WaveType.T)
        pr = self._duration_ms(p, q)
        qrs = self._duration_ms(q, s)
        qt = self._duration_ms(q, t)

        # Bazett
        qtc = qt / math.sqrt(rr / 1000) if qt > 0 and rr >= MIN_QTC_RR_MS else 0.0

        status = IntervalStatusSet(
            rr=self.get_rr_status(rr),
            pr=self.get_pr_status(pr),
            qrs=self.get_qrs_status(qrs),
            qt=self.get_qt_status(qt),
            qtc=self.get_qtc_status(qtc),
            bpm=self.get_bpm_status(bpm),
        )

        intervals = ECGIntervals(
            rr=rr, pr=pr, qrs=qrs, qt=qt, qtc=qtc, bpm=bpm, status=status
        )
        logger.debug(
            f"Intervals: RR {rr:.1f} PR {pr:.1f} QRS {qrs:.1f} "
            f"QT {qt:.1f} QTc {qtc:.1f} BPM {bpm:.1f}"
        )
        # Only plausible intervals are held and reused for the RR fallback
        if self.validate_intervals(intervals):
            self._last_intervals = intervals
        return IntervalReading(intervals=intervals, fresh=True)

    def group_into_complexes(self, points: Sequence[FiducialPoint]) -> List[CardiacComplex]:
        """
        Group points around their R-peak.

        R-peaks closer than the minimum RR distance to the previous accepted
        R are dropped. P and Q belong to the following R, S and T to the
        preceding one; the point nearest the R wins when a type repeats.

        Args:
            points: Fiducial points

        Returns:
            List[CardiacComplex]: Complexes in chronological order
        """
        if not points:
            return []

        ordered = sorted(points, key=lambda p: p.absolute_position)

        r_peaks: List[FiducialPoint] = []
        for point in ordered:
            if point.type != WaveType.R:
                continue
            if r_peaks and abs(point.absolute_position - r_peaks[-1].absolute_position) < self._min_rr_distance:
                continue
            r_peaks.append(point)

        if not r_peaks:
            return []

        members: List[Dict[WaveType, FiducialPoint]] = [{WaveType.R: r} for r in r_peaks]
        r_positions = [r.absolute_position for r in r_peaks]

        for point in ordered:
            if point.type == WaveType.R:
                continue
            position = point.absolute_position
            if point.type in (WaveType.P, WaveType.Q):
                # First R at or after the point; keep the latest candidate
                k = bisect.bisect_left(r_positions, position)
                if k == len(r_positions):
                    continue
                members[k][point.type] = point
            else:
                # Last R at or before the point; keep the earliest candidate
                k = bisect.bisect_right(r_positions, position) - 1
                if k < 0:
                    continue
                members[k].setdefault(point.type, point)

        return [
            CardiacComplex(points=sorted(m.values(), key=lambda p: p.absolute_position))
            for m in members
        ]

    def is_complete_complex(self, complex_: CardiacComplex) -> bool:
        return complex_.is_complete

    def validate_intervals(self, intervals: ECGIntervals) -> bool:
        """
        Reject physiologically impossible values.

        Args:
            intervals: Computed intervals

        Returns:
            bool: True when every non-zero value is in range
        """
        for name, (low, high) in VALID_RANGES.items():
            value = getattr(intervals, name)
            if value > 0 and not low <= value <= high:
                logger.warning(f"Implausible {name.upper()} interval: {value:.1f}")
                return False
            if value < 0:
                logger.warning(f"Negative {name.upper()} interval: {value:.1f}")
                return False
        return True

    def get_last_intervals(self) -> Optional[ECGIntervals]:
        return self._last_intervals

    def reset(self) -> None:
        self._last_intervals = None

    # Status classification

    def get_rr_status(self, rr: float) -> RRStatus:
        if rr == 0:
            return RRStatus.UNKNOWN
        if rr < 600:
            return RRStatus.SHORT
        if rr > 1000:
            return RRStatus.LONG
        return RRStatus.NORMAL

    def get_pr_status(self, pr: float) -> PRStatus:
        if pr == 0:
            return PRStatus.UNKNOWN
        if pr < 120:
            return PRStatus.SHORT
        if pr > 200:
            return PRStatus.LONG
        return PRStatus.NORMAL

    def get_qrs_status(self, qrs: float) -> QRSStatus:
        if qrs == 0:
            return QRSStatus.UNKNOWN
        if qrs > 120:
            return QRSStatus.WIDE
        return QRSStatus.NORMAL

    def get_qt_status(self, qt: float) -> QTStatus:
        if qt == 0:
            return QTStatus.UNKNOWN
        return QTStatus.PROLONGED if qt > QT_THRESHOLDS[self.gender] else QTStatus.NORMAL

    def get_qtc_status(self, qtc: float) -> QTStatus:
        if qtc == 0:
            return QTStatus.UNKNOWN
        return QTStatus.PROLONGED if qtc > QTC_THRESHOLDS[self.gender] else QTStatus.NORMAL

    def get_bpm_status(self, bpm: float) -> BPMStatus:
        if bpm == 0:
            return BPMStatus.UNKNOWN
        if bpm < 60:
            return BPMStatus.BRADYCARDIA
        if bpm > 100:
            return BPMStatus.TACHYCARDIA
        return BPMStatus.NORMAL

    def _held_reading(self) -> Optional[IntervalReading]:
        if self._last_intervals is None:
            return None
        return IntervalReading(intervals=self._last_intervals, fresh=False)

    def _duration_ms(self, start: Optional[FiducialPoint], end: Optional[FiducialPoint]) -> float:
        if start is None or end is None:
            return 0.0
        return (end.index - start.index) / self.sample_rate * 1000
