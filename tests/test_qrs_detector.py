"""Tests for the adaptive QRS detector."""

import numpy as np
import pytest

from ecgstream.config.app_config import QRSDetectorConfig
from ecgstream.domain.models.ecg_models import DetectorState
from ecgstream.services.ecg.qrs_detector_service import QRSDetectorService
from ecgstream.utils.synthetic_ecg import synthetic_ecg


@pytest.fixture
def detector():
    return QRSDetectorService(360)


def nearest_distance(peak, r_peaks):
    return min(abs(peak - r) for r in r_peaks)


class TestQRSDetector:

    def test_one_peak_per_beat(self, detector):
        signal, r_peaks = synthetic_ecg(10, rr_samples=288)
        peaks = detector.detect_qrs(signal)
        assert len(peaks) == len(r_peaks)
        owners = [int(np.argmin([abs(p - r) for r in r_peaks])) for p in peaks]
        assert owners == list(range(len(r_peaks)))

    def test_peaks_sit_on_refined_maximum(self, detector):
        signal, _ = synthetic_ecg(10, rr_samples=288)
        peaks = detector.detect_qrs(signal)
        stages = detector.get_intermediate_signals()
        magnitude = np.abs(stages.filtered)
        integrated = stages.integrated
        window = 11  # 30 ms at 360 Hz
        candidates = [i for i in range(1, integrated.size - 1)
                      if integrated[i] > integrated[i - 1] and integrated[i] >= integrated[i + 1]]

        for peak in peaks:
            sources = [c for c in candidates if abs(c - peak) <= window]
            assert sources
            assert any(
                max(0, c - window) + int(np.argmax(magnitude[max(0, c - window):c + window + 1])) == peak
                for c in sources
            )

    def test_refractory_invariant(self, detector):
        signal, _ = synthetic_ecg(20, rr_samples=250, noise_std=0.05, seed=7)
        peaks = detector.detect_qrs(signal)
        assert peaks == sorted(peaks)
        assert all(b - a >= detector.min_distance for a, b in zip(peaks, peaks[1:]))

    def test_refractory_is_200ms(self, detector):
        assert detector.min_distance == 72

    def test_empty_and_short_blocks(self, detector):
        assert detector.detect_qrs(np.array([])) == []
        assert detector.detect_qrs(np.zeros(3)) == []

    def test_flat_signal_has_no_peaks(self, detector):
        assert detector.detect_qrs(np.zeros(1000)) == []

    def test_non_finite_samples_tolerated(self, detector):
        signal, _ = synthetic_ecg(5, rr_samples=288)
        signal[100] = np.nan
        peaks = detector.detect_qrs(signal)
        assert len(peaks) >= 4

    def test_caller_state_not_mutated(self, detector):
        signal, _ = synthetic_ecg(6, rr_samples=288)
        state = detector.initial_state()
        peaks, new_state = detector.detect(signal, state)
        assert peaks
        assert state.peak_amplitudes == []
        assert state.signal_threshold == pytest.approx(0.25)
        assert new_state.peak_amplitudes

    def test_state_persists_and_resets(self, detector):
        signal, _ = synthetic_ecg(6, rr_samples=288)
        detector.detect_qrs(signal)
        assert detector.state.peak_amplitudes
        detector.reset()
        assert detector.state.peak_amplitudes == []
        assert detector.get_intermediate_signals() is None

    def test_amplitude_history_bounded(self):
        detector = QRSDetectorService(360, config=QRSDetectorConfig(history_length=4))
        signal, _ = synthetic_ecg(12, rr_samples=288)
        detector.detect_qrs(signal)
        assert len(detector.state.peak_amplitudes) <= 4

    def test_intermediate_signals(self, detector):
        signal, _ = synthetic_ecg(4, rr_samples=288)
        detector.detect_qrs(signal)
        stages = detector.get_intermediate_signals()
        assert stages is not None
        assert stages.integrated.shape == signal.shape
        assert np.all(stages.squared >= 0)

    def test_internal_bandpass_path(self):
        detector = QRSDetectorService(360, use_prefiltered=False)
        signal, r_peaks = synthetic_ecg(8, rr_samples=288)
        peaks = detector.detect_qrs(signal)
        assert 5 <= len(peaks) <= 8

    def test_invalid_sample_rate(self):
        with pytest.raises(ValueError):
            QRSDetectorService(0)

    def test_detector_state_copy_is_independent(self):
        state = DetectorState(peak_amplitudes=[1.0])
        clone = state.copy()
        clone.peak_amplitudes.append(2.0)
        assert state.peak_amplitudes == [1.0]
