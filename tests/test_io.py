#!/usr/bin/env python3
"""Tests for capture loading, region of interest and synthetic data."""

import numpy as np
import pytest

from sinefit.io import (
    load_samples,
    load_text_samples,
    apply_roi,
    roi_num_points,
    generate_synthetic_samples,
    DEMO_PARAMS,
    DEMO_GUESS,
)
from sinefit.fitting import ModelVariant, InvalidConfiguration


VALUES = np.linspace(-1.5, 2.5, 12)


# ---------------------------------------------------------------------------
# Text and NumPy captures
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("suffix, delimiter", [
    ('.csv', ','),
    ('.txt', '\t'),
    ('.dat', ' '),
])
def test_load_delimited_two_columns(tmp_path, suffix, delimiter):
    path = tmp_path / f"capture{suffix}"
    lines = [f"{i}{delimiter}{v!r}" for i, v in enumerate(VALUES)]
    path.write_text('\n'.join(lines) + '\n')

    np.testing.assert_allclose(load_samples(path, column=1), VALUES)
    np.testing.assert_allclose(load_samples(path), np.arange(12))


def test_load_with_comments_and_header(tmp_path):
    path = tmp_path / "capture.csv"
    path.write_text(
        "# Red Pitaya capture, channel 1\n"
        "index,ch1\n"
        + ''.join(f"{i},{v!r}\n" for i, v in enumerate(VALUES))
    )
    np.testing.assert_allclose(load_samples(path, column=1), VALUES)


def test_load_semicolon_decimal_comma(tmp_path):
    path = tmp_path / "capture.csv"
    path.write_text(''.join(f"{i};{v:.4f}\n".replace('.', ',') for i, v in enumerate(VALUES)))
    np.testing.assert_allclose(load_samples(path, column=1), VALUES, atol=1e-4)


@pytest.mark.parametrize("delimiter", [';', '\t'])
def test_load_decimal_comma_in_every_column(tmp_path, delimiter):
    times = 0.001 * np.arange(12)
    path = tmp_path / "capture.csv"
    path.write_text(''.join(
        f"{t:.4f}{delimiter}{v:.4f}\n".replace('.', ',') for t, v in zip(times, VALUES)
    ))

    np.testing.assert_allclose(load_samples(path, column=0), times, atol=1e-4)
    np.testing.assert_allclose(load_samples(path, column=1), VALUES, atol=1e-4)


def test_load_single_column(tmp_path):
    path = tmp_path / "capture.txt"
    path.write_text(''.join(f"{v!r}\n" for v in VALUES))
    np.testing.assert_allclose(load_text_samples(path), VALUES)


def test_load_npy_one_and_two_dimensional(tmp_path):
    one = tmp_path / "one.npy"
    two = tmp_path / "two.npy"
    np.save(one, VALUES)
    np.save(two, np.column_stack([np.arange(12.0), VALUES]))

    np.testing.assert_array_equal(load_samples(one), VALUES)
    np.testing.assert_array_equal(load_samples(two, column=1), VALUES)
    with pytest.raises(ValueError, match="column 2 requested"):
        load_samples(two, column=2)


@pytest.mark.parametrize("content, message", [
    ("1\n2\n3\n", "at least"),
    ("# only comments\n", "No data"),
    ("".join(f"{v}\n" for v in [1, 2, 3, 'nan', 5, 6, 7, 8, 9]), "NaN or Inf"),
    ("1\n2\nthree\n4\n5\n6\n7\n8\n9\n", "Invalid value on line 3"),
])
def test_invalid_text_captures(tmp_path, content, message):
    path = tmp_path / "bad.csv"
    path.write_text(content)
    with pytest.raises(ValueError, match=message):
        load_samples(path)


def test_missing_column_raises(tmp_path):
    path = tmp_path / "capture.csv"
    path.write_text(''.join(f"{v!r}\n" for v in VALUES))
    with pytest.raises(ValueError, match="column 1 requested"):
        load_samples(path, column=1)


def test_missing_file_and_unknown_format(tmp_path):
    with pytest.raises(ValueError, match="File not found"):
        load_samples(tmp_path / "missing.csv")
    with pytest.raises(ValueError, match="Unsupported file format"):
        load_samples(tmp_path / "capture.wav")


# ---------------------------------------------------------------------------
# Region of interest
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("size, start, end, rate", [
    (16384, 0, 0, 1),
    (16384, 1000, 1000, 16),
    (16384, 1000, 1000, 1),
    (100, 3, 7, 9),
    (100, 0, 99, 5),
    (17, 0, 0, 16),
])
def test_apply_roi_length_matches_roi_num_points(size, start, end, rate):
    samples = np.arange(size, dtype=float)
    roi = apply_roi(samples, start, end, rate)
    assert len(roi) == roi_num_points(size, start, end, rate)
    assert roi[0] == start
    np.testing.assert_array_equal(np.diff(roi), rate)


def test_roi_num_points_for_scope_settings():
    assert roi_num_points(16384, 1000, 1000, 16) == 899
    assert roi_num_points(100, 60, 60, 1) == 0


def test_apply_roi_returns_copy():
    samples = np.arange(20.0)
    roi = apply_roi(samples, 2, 2)
    roi[:] = -1
    assert samples[2] == 2.0


@pytest.mark.parametrize("start, end, rate", [
    (-1, 0, 1),
    (0, -1, 1),
    (0, 0, 0),
    (10, 10, 1),
    (25, 0, 1),
])
def test_apply_roi_invalid(start, end, rate):
    with pytest.raises(ValueError):
        apply_roi(np.arange(20.0), start, end, rate)


# ---------------------------------------------------------------------------
# Synthetic data
# ---------------------------------------------------------------------------

def test_synthetic_noise_free_matches_model():
    from sinefit.fitting import make_model
    params = DEMO_PARAMS[ModelVariant.CHIRP]
    samples = generate_synthetic_samples('chirp', params, 300, skip_rate=16)
    np.testing.assert_array_equal(samples, make_model('chirp', 300, 16).evaluate(params))


def test_synthetic_noise_is_reproducible():
    params = DEMO_PARAMS[ModelVariant.AMPLITUDE_PHASE]
    a = generate_synthetic_samples('amplitude_phase', params, 5000, noise=20.0, seed=11)
    b = generate_synthetic_samples('amplitude_phase', params, 5000, noise=20.0, seed=11)
    clean = generate_synthetic_samples('amplitude_phase', params, 5000)

    np.testing.assert_array_equal(a, b)
    assert 18.0 < np.std(a - clean) < 22.0


def test_synthetic_negative_noise_raises():
    with pytest.raises(ValueError):
        generate_synthetic_samples('quadrature', [1.0, 1.0, 0.1, 0.0], 100, noise=-1.0)


def test_synthetic_unknown_variant_raises():
    with pytest.raises(InvalidConfiguration):
        generate_synthetic_samples('square', [1.0, 0.1, 0.0, 0.0], 100)


def test_demo_guess_shapes():
    for variant in ModelVariant:
        assert len(DEMO_PARAMS[variant]) == variant.n_params
        assert len(DEMO_GUESS[variant]) == variant.n_params
