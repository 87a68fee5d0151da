"""Tests for complex grouping and clinical intervals."""

import math

import pytest

from ecgstream.domain.models.ecg_models import (
    Gender, WaveType, ECGIntervals, IntervalStatusSet,
    RRStatus, PRStatus, QRSStatus, QTStatus, BPMStatus
)
from ecgstream.services.ecg.interval_calculator_service import IntervalCalculatorService
from tests.conftest import make_beat, make_point


@pytest.fixture
def calculator():
    return IntervalCalculatorService(360)


class TestGrouping:

    def test_points_grouped_per_beat(self, calculator):
        points = make_beat(300) + make_beat(660)
        complexes = calculator.group_into_complexes(points)
        assert len(complexes) == 2
        assert all(c.is_complete for c in complexes)
        assert complexes[1].r_peak.index == 660

    def test_close_r_dropped(self, calculator):
        points = make_beat(300) + [make_point(400, WaveType.R, 0.8)]
        complexes = calculator.group_into_complexes(points)
        assert [c.r_peak.index for c in complexes] == [300]

    def test_unsorted_input(self, calculator):
        points = list(reversed(make_beat(300) + make_beat(660)))
        complexes = calculator.group_into_complexes(points)
        assert [c.r_peak.index for c in complexes] == [300, 660]

    def test_leading_s_and_t_without_r_ignored(self, calculator):
        points = [make_point(20, WaveType.S), make_point(80, WaveType.T)] + make_beat(300)
        complexes = calculator.group_into_complexes(points)
        assert len(complexes) == 1
        assert complexes[0].get_point(WaveType.S).index != 20

    def test_no_r_peaks(self, calculator):
        assert calculator.group_into_complexes([make_point(10, WaveType.P)]) == []
        assert calculator.group_into_complexes([]) == []


class TestCalculateIntervals:

    def test_durations(self, calculator):
        points = make_beat(300) + make_beat(660)
        reading = calculator.calculate_intervals(points)
        assert reading.fresh
        intervals = reading.intervals
        assert intervals.rr == pytest.approx(1000.0)
        assert intervals.bpm == pytest.approx(60.0)
        assert intervals.pr == pytest.approx(150.0)
        assert intervals.qrs == pytest.approx(29 / 360 * 1000)
        assert intervals.qt == pytest.approx(400.0)

    def test_qtc_equals_qt_at_one_second(self, calculator):
        reading = calculator.calculate_intervals(make_beat(300) + make_beat(660))
        assert reading.intervals.qtc == pytest.approx(reading.intervals.qt)

    def test_bazett(self, calculator):
        # RR 600 ms
        reading = calculator.calculate_intervals(make_beat(300) + make_beat(516))
        assert reading.intervals.rr == pytest.approx(600.0)
        assert reading.intervals.qtc == pytest.approx(400.0 / math.sqrt(0.6))

    def test_single_complex_has_no_rr(self, calculator):
        reading = calculator.calculate_intervals(make_beat(300))
        assert reading.intervals.rr == 0
        assert reading.intervals.qtc == 0
        assert reading.intervals.status.bpm == BPMStatus.UNKNOWN

    def test_cached_rr_reused(self, calculator):
        calculator.calculate_intervals(make_beat(300) + make_beat(660))
        reading = calculator.calculate_intervals(make_beat(1200))
        assert reading.intervals.rr == pytest.approx(1000.0)

    def test_incomplete_latest_holds_last(self, calculator):
        assert calculator.calculate_intervals(make_beat(300)[:3]) is None
        first = calculator.calculate_intervals(make_beat(300) + make_beat(660))
        incomplete = make_beat(300) + make_beat(660) + [make_point(1020, WaveType.R, 1.0)]
        held = calculator.calculate_intervals(incomplete)
        assert held.is_stale
        assert held.intervals == first.intervals

    def test_rejected_reading_not_held(self, calculator):
        good = calculator.calculate_intervals(make_beat(300) + make_beat(660))
        # QRS of 90 samples (250 ms) is outside the plausible range
        wide = calculator.calculate_intervals(make_beat(1200, qrs=90) + make_beat(1560, qrs=90))
        assert wide.fresh
        assert wide.intervals.qrs == pytest.approx(250.0)
        assert not calculator.validate_intervals(wide.intervals)

        held = calculator.calculate_intervals([make_point(2000, WaveType.R)])
        assert held.is_stale
        assert held.intervals == good.intervals
        assert calculator.validate_intervals(held.intervals)
        assert calculator.get_last_intervals() == good.intervals

    def test_rejected_reading_not_used_for_rr(self, calculator):
        calculator.calculate_intervals(make_beat(300) + make_beat(660))
        # RR 2000 ms would be plausible, but QRS makes the reading invalid
        calculator.calculate_intervals(make_beat(1200, qrs=90) + make_beat(1920, qrs=90))
        reading = calculator.calculate_intervals(make_beat(3000))
        assert reading.intervals.rr == pytest.approx(1000.0)

    def test_reset_clears_cache(self, calculator):
        calculator.calculate_intervals(make_beat(300) + make_beat(660))
        calculator.reset()
        assert calculator.get_last_intervals() is None
        assert calculator.calculate_intervals([make_point(300, WaveType.R)]) is None

    def test_absolute_positions_drive_rr(self, calculator):
        first = make_beat(300)
        # Same window-relative indices, 1000 samples later in absolute terms
        second = [make_point(p.index, p.type, p.amplitude, offset=1000) for p in make_beat(300)]
        reading = calculator.calculate_intervals(first + second)
        assert reading.intervals.rr == pytest.approx(1000 / 360 * 1000)


class TestStatus:

    def test_bradycardia(self, calculator):
        assert calculator.get_bpm_status(45) == BPMStatus.BRADYCARDIA
        assert calculator.get_bpm_status(120) == BPMStatus.TACHYCARDIA
        assert calculator.get_bpm_status(75) == BPMStatus.NORMAL
        assert calculator.get_bpm_status(0) == BPMStatus.UNKNOWN

    def test_rr_pr_qrs(self, calculator):
        assert calculator.get_rr_status(500) == RRStatus.SHORT
        assert calculator.get_rr_status(1200) == RRStatus.LONG
        assert calculator.get_pr_status(100) == PRStatus.SHORT
        assert calculator.get_pr_status(220) == PRStatus.LONG
        assert calculator.get_qrs_status(130) == QRSStatus.WIDE
        assert calculator.get_qrs_status(90) == QRSStatus.NORMAL

    def test_gender_thresholds(self, calculator):
        assert calculator.get_qt_status(450) == QTStatus.PROLONGED
        assert calculator.get_qtc_status(460) == QTStatus.PROLONGED
        calculator.set_gender(Gender.FEMALE)
        assert calculator.get_qt_status(450) == QTStatus.NORMAL
        assert calculator.get_qtc_status(460) == QTStatus.NORMAL
        assert calculator.get_qtc_status(480) == QTStatus.PROLONGED

    def test_gender_from_string(self):
        assert IntervalCalculatorService(360, gender="female").gender == Gender.FEMALE


class TestValidation:

    def make(self, **values):
        defaults = dict(rr=1000.0, pr=150.0, qrs=90.0, qt=400.0, qtc=400.0, bpm=60.0)
        defaults.update(values)
        return ECGIntervals(status=IntervalStatusSet(), **defaults)

    def test_plausible(self, calculator):
        assert calculator.validate_intervals(self.make())

    def test_zero_values_not_checked(self, calculator):
        assert calculator.validate_intervals(self.make(pr=0.0, qtc=0.0))

    @pytest.mark.parametrize("field,value", [
        ("rr", 200.0), ("rr", 3500.0), ("qrs", 250.0), ("qt", 900.0), ("bpm", 400.0), ("pr", -10.0),
    ])
    def test_implausible(self, calculator, field, value):
        assert not calculator.validate_intervals(self.make(**{field: value}))
