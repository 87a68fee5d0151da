"""Tests for the rolling window, heart-rate tracker and streaming pipeline."""

import numpy as np
import pytest

from ecgstream.config.app_config import ApplicationConfig, StreamConfig
from ecgstream.domain.models.ecg_models import SignalQuality, PhysiologicalStateLabel
from ecgstream.services.ecg.ecg_stream_service import (
    ECGStreamService, RollingWindow, HeartRateTracker
)

# Filter group delay at 360 Hz is a few samples
POSITION_TOLERANCE = 6


def stream_through(service, samples):
    ticks = []
    step = service.samples_per_tick
    for start in range(0, len(samples), step):
        service.push_samples(samples[start:start + step])
        ticks.append(service.process_tick())
    return ticks


class TestRollingWindow:

    def test_partial_fill(self):
        window = RollingWindow(5)
        window.extend([0.1, 0.2, 0.3])
        samples, absolute = window.snapshot()
        np.testing.assert_allclose(samples, [0.1, 0.2, 0.3])
        assert list(absolute) == [0, 1, 2]
        assert window.oldest_absolute_index == 0
        assert len(window) == 3

    def test_wrap_is_chronological(self):
        window = RollingWindow(5)
        window.extend([float(i) for i in range(7)])
        samples, absolute = window.snapshot()
        np.testing.assert_allclose(samples, [2, 3, 4, 5, 6])
        assert list(absolute) == [2, 3, 4, 5, 6]
        assert window.oldest_absolute_index == 2
        assert window.total_samples == 7

    def test_snapshot_is_a_copy(self):
        window = RollingWindow(3)
        window.extend([1.0, 2.0])
        samples, _ = window.snapshot()
        samples[0] = 99.0
        assert window.snapshot()[0][0] == 1.0

    def test_reset(self):
        window = RollingWindow(3)
        window.extend([1.0, 2.0, 3.0, 4.0])
        window.reset()
        assert window.total_samples == 0
        assert len(window.snapshot()[0]) == 0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            RollingWindow(0)


class TestHeartRateTracker:

    def feed(self, tracker, start, spacing, count):
        for k in range(count):
            tracker.add_peak(start + k * spacing)
        return start + (count - 1) * spacing

    def test_steady_rate(self):
        tracker = HeartRateTracker(360)
        last = self.feed(tracker, 0, 288, 10)
        assert tracker.update(last) == pytest.approx(75.0)

    def test_refractory(self):
        tracker = HeartRateTracker(360)
        assert tracker.add_peak(1000)
        assert not tracker.add_peak(1050)
        assert tracker.add_peak(1000 + 108)

    def test_smoothing(self):
        tracker = HeartRateTracker(360)
        last = self.feed(tracker, 0, 288, 10)
        tracker.update(last)
        last = self.feed(tracker, last + 216, 216, 10)
        assert tracker.update(last) == pytest.approx(75.0 + 0.1 * 25.0)

    def test_rate_limited_on_stream_clock(self):
        tracker = HeartRateTracker(360)
        first_update = self.feed(tracker, 0, 288, 10)
        tracker.update(first_update)
        self.feed(tracker, first_update + 216, 216, 10)
        assert tracker.update(first_update + 100) == pytest.approx(75.0)

    def test_poor_signal_freezes(self):
        tracker = HeartRateTracker(360)
        last = self.feed(tracker, 0, 288, 10)
        assert tracker.update(last, SignalQuality.POOR) == 0.0

    def test_long_intervals_ignored(self):
        tracker = HeartRateTracker(360)
        last = self.feed(tracker, 0, 600, 10)
        assert tracker.update(last) == 0.0

    def test_short_interval_averaged(self):
        tracker = HeartRateTracker(360)
        last = self.feed(tracker, 0, 288, 9)
        tracker.add_peak(last + 120)
        # Ten timestamps give nine intervals, too few for the 10 % trim
        expected = 60000.0 / ((8 * 800.0 + 120 / 360 * 1000) / 9)
        assert tracker.update(last + 120) == pytest.approx(expected)

    def test_no_signal_reports_zero(self):
        tracker = HeartRateTracker(360)
        last = self.feed(tracker, 0, 288, 10)
        tracker.update(last)
        assert tracker.update(last + 400, SignalQuality.NO_SIGNAL) == 0.0
        assert tracker.bpm == pytest.approx(75.0)

    def test_reset(self):
        tracker = HeartRateTracker(360)
        tracker.update(self.feed(tracker, 0, 288, 10))
        tracker.reset()
        assert tracker.bpm == 0.0


class TestECGStreamService:

    def test_slow_recording_end_to_end(self, slow_recording):
        signal, r_peaks = slow_recording
        service = ECGStreamService()
        ticks = stream_through(service, signal)

        detected = sorted({p for tick in ticks for p in tick.absolute_r_peaks})
        for peak in detected:
            assert min(abs(peak - r) for r in r_peaks) <= POSITION_TOLERANCE
        matched = [r for r in r_peaks if any(abs(p - r) <= POSITION_TOLERANCE for p in detected)]
        assert len(matched) >= len(r_peaks) - 1

        fresh = [t.intervals.intervals for t in ticks
                 if t.intervals is not None and t.intervals.fresh and t.intervals.intervals.rr > 0]
        assert fresh
        for intervals in fresh:
            assert intervals.rr == pytest.approx(1666.7, abs=0.1)
            assert intervals.bpm == pytest.approx(36.0, abs=0.1)

        history = service.hrv_calculator.get_rr_intervals()
        assert len(history) >= len(r_peaks) - 2
        assert history == pytest.approx([600 / 360 * 1000] * len(history))

        final = ticks[-1]
        assert final.signal_quality == SignalQuality.GOOD
        assert final.hrv is not None
        assert final.physiological_state.state != PhysiologicalStateLabel.ANALYZING

    def test_bpm_tracks_normal_rate(self, normal_recording):
        signal, _ = normal_recording
        service = ECGStreamService()
        ticks = stream_through(service, signal)
        assert ticks[-1].bpm == pytest.approx(75.0, abs=1.0)
        valid = [t for t in ticks if t.intervals is not None and t.intervals.fresh]
        assert valid
        assert all(t.intervals_valid for t in valid)

    def test_flat_signal_skipped(self):
        service = ECGStreamService()
        service.push_samples(np.zeros(500))
        result = service.process_tick()
        assert result.skipped
        assert result.signal_quality == SignalQuality.NO_SIGNAL
        assert result.r_peaks == []

    def test_empty_window_skipped(self):
        assert ECGStreamService().process_tick().skipped

    def test_reset(self, normal_recording):
        signal, _ = normal_recording
        service = ECGStreamService()
        stream_through(service, signal[:3000])
        service.reset()
        assert service.window.total_samples == 0
        assert service.hrv_calculator.get_rr_intervals() == []
        assert service.heart_rate.bpm == 0.0
        assert service.interval_calculator.get_last_intervals() is None

    def test_qrs_detector_option(self, normal_recording):
        signal, _ = normal_recording
        config = ApplicationConfig(stream=StreamConfig(use_qrs_detector=True))
        ticks = stream_through(ECGStreamService(config), signal)
        assert any(t.r_peaks for t in ticks)

    def test_samples_per_tick(self):
        assert ECGStreamService().samples_per_tick == 72

    def test_normalize_adc(self):
        assert ECGStreamService.normalize_adc(2048) == 0.0
        assert ECGStreamService.normalize_adc(0) == -1.0

    def test_signal_quality_levels(self):
        service = ECGStreamService()
        assert service.assess_signal_quality(np.zeros(100)) == SignalQuality.NO_SIGNAL
        assert service.assess_signal_quality(np.full(100, 0.1)) == SignalQuality.POOR
        assert service.assess_signal_quality(np.full(100, 0.5)) == SignalQuality.GOOD
