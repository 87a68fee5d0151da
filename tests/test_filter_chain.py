"""Tests for the per-sample filter chain."""

import math

import numpy as np
import pytest

from ecgstream.config.app_config import FilterConfig
from ecgstream.services.ecg.filter_chain_service import (
    FilterChainService, HighpassFilter, LowpassFilter, NotchFilter, BiquadSection
)


def run(filter_, samples):
    return np.array([filter_.process(s) for s in samples])


def sine(freq, seconds, sample_rate=360, amplitude=0.5):
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return amplitude * np.sin(2 * math.pi * freq * t)


class TestStages:

    def test_highpass_removes_dc(self):
        output = run(HighpassFilter(), np.ones(3600))
        assert abs(output[-1]) < 1e-3

    def test_lowpass_passes_dc(self):
        output = run(LowpassFilter(), np.full(1800, 0.4))
        assert output[-1] == pytest.approx(0.4, abs=1e-3)

    def test_notch_rejects_power_line(self):
        output = run(NotchFilter(), sine(50, 3))
        settled = output[-360:]
        assert np.sqrt(np.mean(settled ** 2)) < 0.05 * 0.5

    def test_notch_keeps_heart_band(self):
        output = run(NotchFilter(), sine(5, 3))
        assert np.max(np.abs(output[-360:])) == pytest.approx(0.5, rel=0.05)

    def test_other_sample_rate_is_designed(self):
        highpass = HighpassFilter(sample_rate=500)
        lowpass = LowpassFilter(sample_rate=500, cutoff_hz=40)
        assert abs(run(highpass, np.ones(5000))[-1]) < 1e-3
        assert run(lowpass, np.ones(2000))[-1] == pytest.approx(1.0, abs=1e-3)

    def test_cutoff_above_nyquist_rejected(self):
        with pytest.raises(ValueError):
            LowpassFilter(sample_rate=100, cutoff_hz=60)

    def test_biquad_needs_full_coefficients(self):
        with pytest.raises(ValueError):
            BiquadSection((1.0, 0.0), (0.0, 0.0))

    def test_reset_zeroes_taps(self):
        stage = LowpassFilter()
        run(stage, np.ones(10))
        assert any(tap != 0 for tap in stage.taps)
        stage.reset()
        assert all(tap == 0 for tap in stage.taps)


class TestFilterChainService:

    def test_output_clamped(self):
        chain = FilterChainService()
        output = chain.process_block(np.full(50, 5.0))
        assert np.all(np.abs(output) <= 1.0)

    def test_clamp_can_be_disabled(self):
        chain = FilterChainService(config=FilterConfig(clamp_output=False))
        output = chain.process_block(np.r_[np.zeros(10), np.full(20, 5.0)])
        assert np.max(np.abs(output)) > 1.0

    def test_non_finite_resets_chain(self):
        chain = FilterChainService()
        chain.process_block(sine(10, 0.5))
        assert chain.process(float("nan")) == 0.0
        assert all(tap == 0 for tap in chain.highpass.taps)
        assert all(tap == 0 for tap in chain.lowpass.taps)
        assert math.isfinite(chain.process(0.2))

    def test_heart_band_passes(self):
        output = FilterChainService().process_block(sine(10, 3, amplitude=0.5))
        assert np.max(np.abs(output[-360:])) > 0.4

    def test_block_matches_sample_path(self):
        samples = sine(7, 1)
        block = FilterChainService().process_block(samples)
        chain = FilterChainService()
        one_by_one = [chain.process(s) for s in samples]
        np.testing.assert_allclose(block, one_by_one)

    def test_invalid_sample_rate(self):
        with pytest.raises(ValueError):
            FilterChainService(sample_rate=0)
