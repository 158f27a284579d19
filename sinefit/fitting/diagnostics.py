"""
Post-processing and quality checks for sinusoid fits.

Canonical parameter form (normalization), phase helpers, the low-contrast
flag, parameter warnings and console reporting of fit results.
"""

import numpy as np
import logging
from typing import List, Optional, Sequence, Tuple
from numpy.typing import NDArray

from .config import LOW_CONTRAST_THRESHOLD
from .models import ModelVariant

logger = logging.getLogger(__name__)


# ============================================================================
# Phase Helpers
# ============================================================================

def wrap_phase(phase: float) -> float:
    """
    Wrap an angle to the interval (-pi, pi].
    """
    wrapped = float(np.arctan2(np.sin(phase), np.cos(phase)))
    if wrapped == -np.pi:
        wrapped = np.pi
    return wrapped


def wrapped_angle_difference(a: float, b: float) -> float:
    """
    Difference a - b of two angles, wrapped to [-pi, pi].

    Used to track the phase of consecutive captures without 2*pi jumps.
    """
    return float(np.arctan2(
        np.sin(a) * np.cos(b) - np.cos(a) * np.sin(b),
        np.cos(a) * np.cos(b) + np.sin(a) * np.sin(b),
    ))


def quadrature_to_amplitude_phase(a_cos: float, a_sin: float) -> Tuple[float, float]:
    """
    Convert quadrature amplitudes to amplitude and phase.

    a cos(theta) + b sin(theta) = A cos(theta - phi) with A = hypot(a, b)
    and phi = atan2(b, a).

    Returns
    -------
    amplitude : float
    phase : float
        In (-pi, pi]
    """
    return float(np.hypot(a_cos, a_sin)), wrap_phase(np.arctan2(a_sin, a_cos))


def fit_amplitude(variant: ModelVariant, params: NDArray[np.float64]) -> float:
    """Oscillation amplitude of a parameter vector (always >= 0)."""
    if variant is ModelVariant.AMPLITUDE_PHASE:
        return float(abs(params[0]))
    return float(np.hypot(params[0], params[1]))


# ============================================================================
# Normalization
# ============================================================================

def normalize_params(variant: ModelVariant,
                     params: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Bring a fitted parameter vector to canonical form.

    The model has symmetric equivalent solutions; the canonical one has a
    non-negative frequency and, for AmplitudePhase, a non-negative
    amplitude with the phase wrapped to (-pi, pi]:

    * A cos(w k - phi) = (-A) cos(w k - phi - pi)
    * A cos(-w k - phi) = A cos(w k + phi)
    * a cos(-w k) + b sin(-w k) = a cos(w k) - b sin(w k)

    Parameters
    ----------
    variant : ModelVariant
    params : ndarray, shape (p,)
        Fitted parameters (not modified)

    Returns
    -------
    params : ndarray
        Normalized copy, describing the same waveform
    """
    out = np.array(params, dtype=np.float64)

    if variant is ModelVariant.AMPLITUDE_PHASE:
        if out[1] < 0:
            out[1] = -out[1]
            out[2] = -out[2]
        if out[0] < 0:
            out[0] = -out[0]
            out[2] += np.pi
        out[2] = wrap_phase(out[2])
    elif variant is ModelVariant.QUADRATURE:
        if out[2] < 0:
            out[2] = -out[2]
            out[1] = -out[1]
    else:
        # theta = w k + q k^2 changes sign as a whole
        if out[2] < 0:
            out[2] = -out[2]
            out[3] = -out[3]
            out[1] = -out[1]

    return out


def is_low_contrast(variant: ModelVariant, params: NDArray[np.float64],
                    threshold: float = LOW_CONTRAST_THRESHOLD) -> bool:
    """True if the fitted amplitude is below threshold."""
    return fit_amplitude(variant, params) < threshold


# ============================================================================
# Parameter Checks
# ============================================================================

def check_parameter_diagnostics(
    params_opt: NDArray[np.float64],
    params_stderr: NDArray[np.float64],
    cov: Optional[NDArray[np.float64]],
    param_labels: Optional[Sequence[str]]
) -> List[str]:
    """
    Check for high uncertainties and strong correlations.

    Parameters
    ----------
    params_opt : ndarray
        Fitted parameters
    params_stderr : ndarray
        Standard errors of parameters
    cov : ndarray or None
        Covariance matrix
    param_labels : sequence of str or None
        Parameter labels for messages

    Returns
    -------
    warnings : list of str
        Human-readable warnings (empty if everything looks fine)
    """
    def label(i):
        if param_labels and i < len(param_labels):
            return param_labels[i]
        return f"p[{i}]"

    warnings = []

    # Uncertainty larger than the value itself. Parameters that are
    # legitimately close to zero (phase, offset) are skipped.
    finite = np.isfinite(params_stderr)
    relative_errors = np.full_like(params_stderr, np.nan)
    nonzero = finite & (np.abs(params_opt) > 1e-12)
    relative_errors[nonzero] = params_stderr[nonzero] / np.abs(params_opt[nonzero]) * 100
    for i in np.flatnonzero(relative_errors > 100):
        warnings.append(
            f"High uncertainty: {label(i)} = {params_opt[i]:.3e} "
            f"+/- {params_stderr[i]:.3e} ({relative_errors[i]:.1f}%)"
        )
    if not np.all(finite):
        warnings.append("Standard errors unavailable (singular Jacobian)")

    if cov is not None:
        n_params = len(params_stderr)
        for i in range(n_params):
            for j in range(i + 1, n_params):
                if not (finite[i] and finite[j]) or params_stderr[i] == 0 or params_stderr[j] == 0:
                    continue
                corr_ij = cov[i, j] / (params_stderr[i] * params_stderr[j])
                if abs(corr_ij) > 0.95:
                    warnings.append(
                        f"High correlation: {label(i)} <-> {label(j)}: corr = {corr_ij:+.3f}"
                    )

    return warnings


# ============================================================================
# Reporting
# ============================================================================

def log_fit_results(
    params_opt: NDArray[np.float64],
    params_stderr: NDArray[np.float64],
    ci_low: NDArray[np.float64],
    ci_high: NDArray[np.float64],
    chi_squared: float,
    n_data: int,
    param_labels: Optional[Sequence[str]]
) -> None:
    """
    Log fit results to console.

    Parameters
    ----------
    params_opt : ndarray
        Fitted parameters
    params_stderr : ndarray
        Standard errors
    ci_low : ndarray
        Lower 95% CI bounds
    ci_high : ndarray
        Upper 95% CI bounds
    chi_squared : float
        Sum of squared residuals
    n_data : int
        Number of samples
    param_labels : sequence of str or None
        Parameter labels
    """
    logger.info("")
    logger.info("Fit results:")
    logger.info("  Parameters:")

    for i, (param, stderr) in enumerate(zip(params_opt, params_stderr)):
        label = param_labels[i] if param_labels and i < len(param_labels) else f"p[{i}]"
        if np.isinf(ci_low[i]) or np.isinf(ci_high[i]):
            logger.info(f"    {label:7s} = {param:.6e} +/- {stderr:.6e}")
        else:
            logger.info(f"    {label:7s} = {param:.6e} +/- {stderr:.2e}  "
                        f"[95% CI: {ci_low[i]:.6e}, {ci_high[i]:.6e}]")

    rms = np.sqrt(chi_squared / max(n_data, 1))
    logger.info(f"  Chi-squared: {chi_squared:.6e} (RMS residual {rms:.4g})")


__all__ = [
    'wrap_phase',
    'wrapped_angle_difference',
    'quadrature_to_amplitude_phase',
    'fit_amplitude',
    'normalize_params',
    'is_low_contrast',
    'check_parameter_diagnostics',
    'log_fit_results',
]
