"""Tests for offline session analysis."""

import pytest

from ecgstream.domain.models.ecg_models import Gender, PhysiologicalStateLabel
from ecgstream.services.ecg.interval_calculator_service import IntervalCalculatorService
from ecgstream.services.ecg.pqrst_detector_service import PQRSTDetectorService
from ecgstream.services.ecg.session_analyzer_service import SessionAnalyzerService, DISCLAIMER
from ecgstream.services.ecg.beat_window_service import NORMAL_SINUS_RHYTHM


class NormalClassifier:

    def predict(self, window):
        return [0.9, 0.025, 0.025, 0.025, 0.025]


@pytest.fixture
def analyzer():
    return SessionAnalyzerService(360)


class TestSlowRecording:

    def test_r_peaks_exact(self, analyzer, slow_recording):
        signal, r_peaks = slow_recording
        result = analyzer.analyze_session(signal)
        assert len(result.r_peaks) == len(r_peaks)
        assert all(abs(found - expected) <= 2 for found, expected in zip(result.r_peaks, r_peaks))

    def test_rate_and_intervals(self, analyzer, slow_recording):
        signal, _ = slow_recording
        result = analyzer.analyze_session(signal)
        assert result.heart_rate.average == pytest.approx(36.0, abs=0.1)
        assert result.heart_rate_status == "bradycardia"
        assert result.intervals is not None
        assert result.intervals.rr == pytest.approx(1666.7, abs=0.1)
        assert result.intervals.bpm == pytest.approx(36.0, abs=0.1)
        assert result.irregular_beats == 0
        assert result.duration_label == "1:40"

    def test_every_interior_beat_complete(self, slow_recording):
        signal, r_peaks = slow_recording
        points = PQRSTDetectorService(360).detect_waves(signal, r_peaks)
        complexes = IntervalCalculatorService(360).group_into_complexes(points)
        assert len(complexes) == len(r_peaks)
        assert all(c.is_complete for c in complexes[1:-1])

    def test_findings(self, analyzer, slow_recording):
        signal, _ = slow_recording
        result = analyzer.analyze_session(signal)
        types = {a.type for a in result.abnormalities}
        assert "Bradycardia" in types
        assert result.recommendations[0] == DISCLAIMER
        assert len(result.recommendations) >= 2
        assert result.hrv.sample_count == 59

    def test_repeat_analysis_does_not_accumulate(self, analyzer, slow_recording):
        signal, _ = slow_recording
        analyzer.analyze_session(signal)
        assert analyzer.analyze_session(signal).hrv.sample_count == 59


class TestNormalRecording:

    def test_normal_sinus_with_classifier(self, analyzer, normal_recording):
        signal, _ = normal_recording
        result = analyzer.analyze_session(signal, Gender.FEMALE, classifier=NormalClassifier())
        assert result.rhythm.prediction == NORMAL_SINUS_RHYTHM
        assert result.heart_rate.average == pytest.approx(75.0, abs=0.1)
        assert result.heart_rate_status == "normal"
        assert result.abnormalities == []
        assert result.recommendations == [DISCLAIMER]

    def test_no_classifier_no_rhythm(self, analyzer, normal_recording):
        signal, _ = normal_recording
        assert analyzer.analyze_session(signal).rhythm is None

    def test_age_uses_stress_score(self, analyzer, normal_recording):
        signal, _ = normal_recording
        result = analyzer.analyze_session(signal, age=65)
        assert result.physiological_state.state != PhysiologicalStateLabel.ANALYZING


class TestHelpers:

    def test_empty_recording(self, analyzer):
        result = analyzer.analyze_session([])
        assert result.r_peaks == []
        assert result.heart_rate.average == 0
        assert result.heart_rate_status == "unknown"
        assert result.intervals is None
        assert result.duration_label == "0:00"

    def test_irregular_beats(self, analyzer):
        peaks = [0, 360, 720, 1200, 1560]
        assert analyzer.count_irregular_beats(peaks) == 1
        assert analyzer.calculate_percent_irregular(peaks) == pytest.approx(25.0)
        assert analyzer.count_irregular_beats([0, 360]) == 0

    def test_heart_rate_stats_filter_range(self, analyzer):
        stats = analyzer.calculate_heart_rate_stats([0, 360, 400, 760])
        assert stats.average == pytest.approx(60.0)
        assert stats.min == stats.max == pytest.approx(60.0)

    @pytest.mark.parametrize("seconds,label", [(0, "0:00"), (59.9, "0:59"), (125, "2:05")])
    def test_format_duration(self, seconds, label):
        assert SessionAnalyzerService.format_duration(seconds) == label

    def test_heart_rate_status(self):
        assert SessionAnalyzerService.determine_heart_rate_status(45) == "bradycardia"
        assert SessionAnalyzerService.determine_heart_rate_status(120) == "tachycardia"
        assert SessionAnalyzerService.determine_heart_rate_status(float("nan")) == "unknown"
