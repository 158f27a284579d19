#!/usr/bin/env python3
"""Tests for the fit session lifecycle and result packaging.

Covers:
1. Configuration validation (FitConfig and create_session)
2. Exact recovery of every model variant
3. Status mapping (converged, max iterations, invalid input)
4. Normalization to canonical form and the low-contrast flag
5. Buffer reuse, release and the functional interface
"""

import numpy as np
import pytest

from sinefit.fitting import (
    FitConfig,
    FitSession,
    FitStatus,
    ModelVariant,
    create_session,
    fit,
    destroy_session,
    wrapped_angle_difference,
    InvalidConfiguration,
    DimensionMismatch,
    SessionReleased,
)
from sinefit.io import generate_synthetic_samples


N = 1000

TRUTH = {
    'amplitude_phase': [1000.0, 0.0203, 0.25, 2040.0],
    'quadrature': [600.0, -800.0, 0.0203, 2040.0],
    'chirp': [600.0, -800.0, 0.0202, 3e-7, 2040.0],
}

GUESS = {
    'amplitude_phase': [950.0, 0.02, 0.0, 2000.0],
    'quadrature': [500.0, -700.0, 0.02, 2000.0],
    'chirp': [500.0, -700.0, 0.0202, 0.0, 2000.0],
}


def clean_samples(variant, n=N):
    return generate_synthetic_samples(variant, TRUTH[variant], n)


@pytest.fixture
def ap_session():
    session = create_session('amplitude_phase', N, max_iterations=100)
    yield session
    destroy_session(session)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("kwargs", [
    dict(variant='sawtooth', num_points=100),
    dict(variant='chirp', num_points=0),
    dict(variant='chirp', num_points=100, max_iterations=0),
    dict(variant='chirp', num_points=100, skip_rate=0),
    dict(variant='chirp', num_points=100, xtol=0.0),
    dict(variant='chirp', num_points=100, gtol=-1e-8),
    dict(variant='chirp', num_points=100, ftol=np.nan),
    dict(variant='chirp', num_points=100, max_av_ratio=0.0),
    dict(variant='chirp', num_points=100, factor_up=1.0),
    dict(variant='chirp', num_points=100, low_contrast_threshold=-1.0),
    dict(variant='chirp', num_points=np.nan),
    dict(variant='chirp', num_points=np.inf),
    dict(variant='chirp', num_points=100.5),
    dict(variant='chirp', num_points='100'),
    dict(variant='chirp', num_points=100, max_iterations=None),
])
def test_invalid_config_raises(kwargs):
    with pytest.raises(InvalidConfiguration):
        FitSession(FitConfig(**kwargs))


def test_config_resolves_variant_string():
    config = FitConfig(variant='Quadrature', num_points=100)
    session = FitSession(config)
    assert session.variant is ModelVariant.QUADRATURE
    assert session.n_params == 4
    assert session.num_points == 100


def test_validate_normalizes_fields_in_place():
    config = FitConfig(variant='chirp', num_points=np.int64(100), skip_rate=4.0)
    config.validate()
    assert config.variant is ModelVariant.CHIRP
    assert type(config.num_points) is int
    assert type(config.skip_rate) is int and config.skip_rate == 4


def test_create_session_rejects_unknown_option():
    with pytest.raises(InvalidConfiguration, match="Unknown session options"):
        create_session('amplitude_phase', 100, damping=1.0)


def test_create_session_accepts_extra_config_fields():
    session = create_session('chirp', 100, 10, 1e-6, 1e-6, 1e-6, 2.0,
                             skip_rate=4, geodesic_acceleration=False)
    assert session.config.max_iterations == 10
    assert session.config.max_av_ratio == 2.0
    assert session.config.skip_rate == 4
    assert session.model.skip_rate == 4
    assert not session.config.geodesic_acceleration


# ---------------------------------------------------------------------------
# Exact recovery
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("variant", list(TRUTH))
def test_exact_recovery(variant):
    """Noise-free captures are fitted back to the generating parameters."""
    session = create_session(variant, N, max_iterations=100)
    result = fit(session, clean_samples(variant), GUESS[variant])

    assert result.status is FitStatus.CONVERGED, result.diagnostics.stop_reason
    assert result.converged
    assert result.variant is ModelVariant(variant)
    np.testing.assert_allclose(result.params, TRUTH[variant], rtol=1e-4)
    assert result.chi_squared / N < 1e-6
    assert result.iterations > 0
    assert result.n_data == N
    assert result.param_labels == ModelVariant(variant).param_labels
    assert not result.low_contrast


def test_fit_without_acceleration():
    session = create_session('amplitude_phase', N, max_iterations=200,
                             geodesic_acceleration=False)
    result = session.fit(clean_samples('amplitude_phase'), GUESS['amplitude_phase'])

    assert result.converged
    assert result.diagnostics.n_fvv_evals == 0
    assert not result.diagnostics.geodesic_acceleration
    np.testing.assert_allclose(result.params, TRUTH['amplitude_phase'], rtol=1e-4)


def test_fit_reports_solver_diagnostics(ap_session):
    result = ap_session.fit(clean_samples('amplitude_phase'), GUESS['amplitude_phase'])
    diag = result.diagnostics

    assert diag.stop_reason in ('xtol', 'gtol', 'ftol')
    assert diag.geodesic_acceleration
    assert diag.n_fvv_evals > 0
    assert diag.n_residual_evals >= result.iterations - diag.n_rejected
    assert diag.covariance_rank == 4
    assert result.cov.shape == (4, 4)


def test_callback_receives_every_iteration(ap_session):
    seen = []
    result = ap_session.fit(clean_samples('amplitude_phase'), GUESS['amplitude_phase'],
                            callback=lambda state: seen.append(state.iterations))
    assert seen == list(range(1, result.iterations + 1))


# ---------------------------------------------------------------------------
# Status mapping
# ---------------------------------------------------------------------------

def test_max_iterations_reached():
    session = create_session('amplitude_phase', N, max_iterations=1)
    result = session.fit(clean_samples('amplitude_phase'), GUESS['amplitude_phase'])

    assert result.status is FitStatus.MAX_ITERATIONS_REACHED
    assert not result.converged
    assert result.iterations == 1
    assert np.isfinite(result.chi_squared)
    assert any("Maximum iterations" in w for w in result.all_warnings)


@pytest.mark.parametrize("bad", ['samples', 'guess'])
def test_non_finite_input_is_invalid(ap_session, bad):
    samples = clean_samples('amplitude_phase')
    guess = np.array(GUESS['amplitude_phase'])
    if bad == 'samples':
        samples[10] = np.nan
    else:
        guess[1] = np.inf

    result = ap_session.fit(samples, guess)

    assert result.status is FitStatus.INVALID_INPUT
    assert result.iterations == 0
    assert np.isnan(result.chi_squared)
    assert np.all(np.isinf(result.params_stderr))
    assert result.all_warnings


@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_overflowing_guess_is_numerical_failure():
    """A finite but huge amplitude overflows the normal matrix before the first step."""
    guess = [1e152, 0.0, 0.0203, 2040.0]
    with FitSession(FitConfig('quadrature', 200)) as session:
        result = session.fit(clean_samples('quadrature', 200), guess)

    assert result.status is FitStatus.NUMERICAL_FAILURE
    assert not result.converged
    assert result.iterations == 0
    assert result.diagnostics.stop_reason == 'non_finite'
    np.testing.assert_array_equal(result.params, guess)
    assert any("Numerical failure" in w for w in result.all_warnings)


def test_zero_residual_start_converges_without_iterations(ap_session):
    result = ap_session.fit(clean_samples('amplitude_phase'), TRUTH['amplitude_phase'])
    assert result.status is FitStatus.CONVERGED
    assert result.iterations == 0
    assert result.chi_squared == 0.0


# ---------------------------------------------------------------------------
# Normalization and contrast
# ---------------------------------------------------------------------------

def test_mirrored_solution_is_normalized():
    """A fit that lands on A < 0 is reported with A > 0 and a shifted phase."""
    samples = clean_samples('amplitude_phase')
    mirrored_guess = [-950.0, 0.02, -np.pi, 2000.0]

    session = create_session('amplitude_phase', N, max_iterations=100)
    result = session.fit(samples, mirrored_guess)
    assert result.converged
    A, freq, phase, offset = result.params
    assert A > 0 and freq > 0
    assert -np.pi < phase <= np.pi
    np.testing.assert_allclose([A, freq, offset], [1000.0, 0.0203, 2040.0], rtol=1e-4)
    assert abs(wrapped_angle_difference(phase, 0.25)) < 1e-4

    raw = create_session('amplitude_phase', N, max_iterations=100, normalize=False)
    raw_result = raw.fit(samples, mirrored_guess)
    assert raw_result.params[0] < 0

    # Both describe the same waveform
    np.testing.assert_allclose(
        session.model.evaluate(result.params),
        raw.model.evaluate(raw_result.params),
        atol=1e-3,
    )


def test_normalized_stderr_is_finite():
    session = create_session('amplitude_phase', N, max_iterations=100)
    samples = generate_synthetic_samples('amplitude_phase', TRUTH['amplitude_phase'],
                                         N, noise=20.0, seed=7)
    result = session.fit(samples, [-950.0, 0.02, -np.pi, 2000.0])
    assert result.converged
    assert np.all(np.isfinite(result.params_stderr))
    assert np.all(result.params_stderr > 0)


@pytest.mark.parametrize("amplitude, expected", [(50.0, True), (1000.0, False)])
def test_low_contrast_flag(amplitude, expected):
    truth = [amplitude, 0.0203, 0.25, 2040.0]
    samples = generate_synthetic_samples('amplitude_phase', truth, N)
    session = create_session('amplitude_phase', N, max_iterations=100)
    result = session.fit(samples, [amplitude * 0.95, 0.02, 0.0, 2000.0])

    assert result.converged
    assert result.low_contrast is expected
    assert any("Low contrast" in w for w in result.all_warnings) is expected
    np.testing.assert_allclose(result.amplitude, amplitude, rtol=1e-4)


def test_low_contrast_threshold_is_configurable():
    samples = clean_samples('quadrature')
    session = create_session('quadrature', N, max_iterations=100,
                             low_contrast_threshold=2000.0)
    result = session.fit(samples, GUESS['quadrature'])
    # hypot(600, 800) = 1000 < 2000
    assert result.low_contrast


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

def test_repeated_fits_are_identical(ap_session):
    samples = clean_samples('amplitude_phase')
    first = ap_session.fit(samples, GUESS['amplitude_phase'])
    second = ap_session.fit(samples, GUESS['amplitude_phase'])

    np.testing.assert_allclose(first.params, second.params, rtol=1e-12)
    assert first.iterations == second.iterations
    assert ap_session.n_fits == 2
    assert ap_session.last_result is second


def test_samples_are_copied(ap_session):
    samples = clean_samples('amplitude_phase')
    original = samples.copy()
    ap_session.fit(samples, GUESS['amplitude_phase'])

    np.testing.assert_array_equal(samples, original)
    bound = ap_session.samples
    np.testing.assert_array_equal(bound, original)
    bound[:] = 0.0
    np.testing.assert_array_equal(ap_session.samples, original)


@pytest.mark.parametrize("n_samples, guess_len", [(N - 1, 4), (N, 3), (N, 5)])
def test_dimension_mismatch_leaves_session_unchanged(ap_session, n_samples, guess_len):
    samples = clean_samples('amplitude_phase')
    good = ap_session.fit(samples, GUESS['amplitude_phase'])

    with pytest.raises(DimensionMismatch):
        ap_session.fit(np.zeros(n_samples), np.ones(guess_len))

    assert ap_session.n_fits == 1
    assert ap_session.last_result is good
    np.testing.assert_array_equal(ap_session.samples, samples)


def test_release_is_idempotent_and_final():
    session = create_session('chirp', 100)
    assert not session.is_released
    destroy_session(session)
    destroy_session(session)
    assert session.is_released
    assert 'released' in repr(session)

    with pytest.raises(SessionReleased):
        session.fit(np.zeros(100), np.zeros(5))
    with pytest.raises(SessionReleased):
        session.samples


def test_context_manager_releases():
    with FitSession(FitConfig(variant='quadrature', num_points=N, max_iterations=100)) as session:
        result = session.fit(clean_samples('quadrature'), GUESS['quadrature'])
        assert result.converged
    assert session.is_released


def test_result_repr_mentions_status():
    session = create_session('amplitude_phase', N, max_iterations=100)
    result = session.fit(clean_samples('amplitude_phase'), GUESS['amplitude_phase'])
    text = repr(result)
    assert "amplitude_phase" in text
    assert "converged" in text
