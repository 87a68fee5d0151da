"""Shared fixtures for the ECG core tests."""

import logging

import numpy as np
import pytest

from ecgstream.config import constants
from ecgstream.domain.models.ecg_models import FiducialPoint, WaveType
from ecgstream.utils.synthetic_ecg import synthetic_ecg


@pytest.fixture(autouse=True)
def quiet_logging(caplog):
    caplog.set_level(logging.WARNING)


@pytest.fixture
def sample_rate():
    return constants.DEFAULT_SAMPLE_RATE


@pytest.fixture
def slow_recording():
    """60 beats, R every 600 samples (36 BPM at 360 Hz)."""
    return synthetic_ecg(60, rr_samples=600)


@pytest.fixture
def normal_recording():
    """30 beats at 75 BPM."""
    return synthetic_ecg(30, rr_samples=288)


def make_point(index, wave_type, amplitude=0.0, offset=0):
    return FiducialPoint(
        index=index,
        absolute_position=index + offset,
        amplitude=amplitude,
        type=wave_type,
    )


def make_beat(r_index, pr=54, qrs=29, qt=144, q_offset=10):
    """Points of one beat; durations in samples."""
    q = r_index - q_offset
    return [
        make_point(q - pr, WaveType.P, 0.1),
        make_point(q, WaveType.Q, -0.1),
        make_point(r_index, WaveType.R, 1.0),
        make_point(q + qrs, WaveType.S, -0.2),
        make_point(q + qt, WaveType.T, 0.3),
    ]


@pytest.fixture
def point_factory():
    return make_point


@pytest.fixture
def beat_factory():
    return make_beat


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
