"""Tests for the pydantic configuration layer."""

import pytest
from pydantic import ValidationError

from ecgstream.config.app_config import (
    ApplicationConfig, StreamConfig, FilterConfig, QRSDetectorConfig,
    IntervalConfig, get_config, reload_config
)
from ecgstream.domain.models.ecg_models import Gender


class TestDefaults:

    def test_canonical_values(self):
        config = ApplicationConfig()
        assert config.stream.sample_rate == 360
        assert config.stream.window_size == 1000
        assert config.qrs.refractory_ms == 200
        assert config.qrs.signal_learning_rate == pytest.approx(0.125)
        assert config.qrs.noise_learning_rate == pytest.approx(0.125)
        assert config.hrv.max_intervals == 300
        assert config.intervals.gender == Gender.MALE

    def test_nested_access(self):
        config = ApplicationConfig()
        assert config.get_nested("qrs.refractory_ms") == 200
        assert config.get_nested("qrs.missing", "fallback") == "fallback"
        assert config.set_nested("stream.use_qrs_detector", True)
        assert config.stream.use_qrs_detector
        assert not config.set_nested("nothing.here", 1)


class TestValidation:

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("STREAM_WINDOW_SIZE", "2000")
        monkeypatch.setenv("HRV_MAX_INTERVALS", "120")
        config = ApplicationConfig()
        assert config.stream.window_size == 2000
        assert config.hrv.max_intervals == 120

    def test_window_too_small(self):
        with pytest.raises(ValidationError):
            StreamConfig(window_size=10)

    def test_threshold_order(self):
        with pytest.raises(ValidationError):
            QRSDetectorConfig(initial_signal_threshold=0.1, initial_noise_threshold=0.2)

    def test_notch_band_order(self):
        with pytest.raises(ValidationError):
            FilterConfig(notch_band_hz=(52.0, 48.0))

    def test_gender_case_insensitive(self):
        assert IntervalConfig(gender="FEMALE").gender == Gender.FEMALE


class TestPersistence:

    def test_json_file(self, tmp_path):
        path = tmp_path / "settings.json"
        config = ApplicationConfig()
        config.stream.poll_interval_ms = 100
        config.save_to_json(path)
        loaded = ApplicationConfig.load_from_json(path)
        assert loaded.stream.poll_interval_ms == 100

    def test_missing_file_gives_defaults(self, tmp_path):
        loaded = ApplicationConfig.load_from_json(tmp_path / "absent.json")
        assert loaded.stream.window_size == 1000

    def test_singleton(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        first = reload_config()
        assert get_config() is first
