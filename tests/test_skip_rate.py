#!/usr/bin/env python3
"""Decimated fits: the region of interest and skip_rate keep the frequency
in units of the full-rate sample index."""

import numpy as np
import pytest

from sinefit.fitting import create_session, FitStatus
from sinefit.fitting.config import SCOPE_BUFFER_SIZE
from sinefit.io import apply_roi, roi_num_points, generate_synthetic_samples


TRUTH = [1000.0, 2.03e-3, 0.25, 2040.0]
GUESS = [950.0, 2.0e-3, 0.0, 2000.0]


@pytest.fixture(scope='module')
def raw_capture():
    """A full scope buffer at the full sample rate."""
    return generate_synthetic_samples('amplitude_phase', TRUTH, SCOPE_BUFFER_SIZE)


@pytest.mark.parametrize("skip_rate", [1, 2, 4, 8, 16, 40])
def test_decimated_fit_recovers_full_rate_frequency(raw_capture, skip_rate):
    samples = apply_roi(raw_capture, skip_start=0, skip_end=100, skip_rate=skip_rate)
    n = roi_num_points(SCOPE_BUFFER_SIZE, 0, 100, skip_rate)
    assert len(samples) == n

    session = create_session('amplitude_phase', n, max_iterations=100, skip_rate=skip_rate)
    result = session.fit(samples, GUESS)

    assert result.status is FitStatus.CONVERGED
    np.testing.assert_allclose(result.params, TRUTH, rtol=1e-4)


def test_skip_start_shifts_phase_only(raw_capture):
    """Trimming the start moves the phase reference to the first kept sample."""
    skip_start = 500
    samples = apply_roi(raw_capture, skip_start=skip_start, skip_end=0, skip_rate=8)
    session = create_session('amplitude_phase', len(samples), max_iterations=100, skip_rate=8)

    expected_phase = TRUTH[2] - TRUTH[1] * skip_start
    result = session.fit(samples, [950.0, 2.0e-3, expected_phase + 0.2, 2000.0])

    assert result.converged
    A, freq, phase, offset = result.params
    np.testing.assert_allclose([A, freq, offset], [TRUTH[0], TRUTH[1], TRUTH[3]], rtol=1e-4)
    assert abs(phase - expected_phase) < 1e-4


def test_wrong_skip_rate_gives_scaled_frequency(raw_capture):
    """A session without the matching skip_rate sees a frequency skip_rate times larger."""
    samples = apply_roi(raw_capture, skip_rate=4)
    session = create_session('amplitude_phase', len(samples), max_iterations=100)
    result = session.fit(samples, [950.0, 4 * 2.0e-3, 0.0, 2000.0])

    assert result.converged
    np.testing.assert_allclose(result.params[1], 4 * TRUTH[1], rtol=1e-4)
