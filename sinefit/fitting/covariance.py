"""
Parameter covariance and confidence intervals at the converged point.

The Jacobian the solver already holds at the final iterate is enough to
estimate parameter uncertainties, so no extra model evaluations are needed.
"""

import numpy as np
import logging
from typing import Optional, Tuple
from numpy.typing import NDArray
from dataclasses import dataclass
from scipy.stats import t

logger = logging.getLogger(__name__)


@dataclass
class CovarianceResult:
    """
    Result of covariance matrix computation.

    Attributes
    ----------
    cov : ndarray or None
        Covariance matrix (None if computation failed)
    stderr : ndarray
        Standard errors of parameters (inf if computation failed)
    condition_number : float
        Condition number of the Jacobian
    rank : int
        Numerical rank of the Jacobian
    is_well_conditioned : bool
        True if condition number < 1e10
    warning_message : str or None
        Warning message if any issues detected
    """
    cov: Optional[NDArray[np.float64]]
    stderr: NDArray[np.float64]
    condition_number: float
    rank: int
    is_well_conditioned: bool
    warning_message: Optional[str]


def compute_covariance_matrix(
    jacobian: NDArray[np.float64],
    residuals: NDArray[np.float64],
    rcond: float = 1e-10
) -> CovarianceResult:
    """
    Compute the parameter covariance matrix with an SVD of the Jacobian.

    Mathematical background
    -----------------------
    With residual variance s^2 = RSS / (n - p):

        J = U @ S @ V^T
        cov = s^2 * (J^T J)^{-1} = s^2 * V @ S^{-2} @ V^T

    Singular values below rcond * max(S) are clamped to the threshold so
    that an unidentifiable direction shows up as a very large variance
    instead of a division by zero.

    Parameters
    ----------
    jacobian : ndarray of float, shape (n, p)
        Jacobian at the fitted parameters
    residuals : ndarray of float, shape (n,)
        Residuals at the fitted parameters
    rcond : float, optional
        Cutoff for small singular values (default: 1e-10)

    Returns
    -------
    result : CovarianceResult

    Notes
    -----
    A sinusoid fit becomes ill-conditioned when the capture holds much less
    than one period (frequency and phase trade off against each other) or
    when the amplitude is close to zero (frequency and phase are then not
    identifiable at all).
    """
    n_residuals, n_params = jacobian.shape
    dof = max(n_residuals - n_params, 1)
    residual_variance = float(residuals @ residuals) / dof

    warning_message = None

    try:
        _, S, Vt = np.linalg.svd(jacobian, full_matrices=False)
    except np.linalg.LinAlgError as e:
        logger.warning(f"SVD computation failed: {e}")
        return CovarianceResult(
            cov=None,
            stderr=np.full(n_params, np.inf),
            condition_number=np.inf,
            rank=0,
            is_well_conditioned=False,
            warning_message=f"SVD failed: {e}"
        )

    condition_number = S[0] / S[-1] if S[-1] > 0 else np.inf
    threshold = rcond * S[0]
    rank = int(np.sum(S > threshold))
    is_well_conditioned = bool(condition_number < 1e10)

    if not is_well_conditioned:
        warning_message = (
            f"Ill-conditioned Jacobian (cond={condition_number:.2e}). "
            f"Covariance estimates may be unreliable."
        )
    if rank < n_params:
        warning_message = (
            f"Rank-deficient Jacobian (rank={rank}/{n_params}). "
            f"Some parameters are not identifiable from data."
        )

    if threshold == 0:
        # All-zero Jacobian: nothing is identifiable
        return CovarianceResult(
            cov=None,
            stderr=np.full(n_params, np.inf),
            condition_number=np.inf,
            rank=0,
            is_well_conditioned=False,
            warning_message=warning_message
        )

    S_clamped = np.maximum(S, threshold)
    cov = residual_variance * (Vt.T / S_clamped**2) @ Vt
    stderr = np.sqrt(np.abs(np.diag(cov)))

    return CovarianceResult(
        cov=cov,
        stderr=stderr,
        condition_number=float(condition_number),
        rank=rank,
        is_well_conditioned=is_well_conditioned,
        warning_message=warning_message
    )


def compute_confidence_interval(
    params_opt: NDArray[np.float64],
    params_stderr: NDArray[np.float64],
    n_data: int,
    confidence_level: float = 0.95
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Compute confidence intervals for parameters using t-distribution.

    Parameters
    ----------
    params_opt : ndarray
        Fitted parameters
    params_stderr : ndarray
        Standard errors of parameters (from covariance matrix)
    n_data : int
        Number of samples (for degrees of freedom)
    confidence_level : float, optional
        Confidence level (0.95 for 95% CI, 0.99 for 99% CI), default 0.95

    Returns
    -------
    ci_low : ndarray
        Lower bounds of confidence intervals
    ci_high : ndarray
        Upper bounds of confidence intervals
    """
    dof = max(n_data - len(params_opt), 1)

    alpha = 1 - confidence_level
    t_critical = t.ppf(1 - alpha/2, dof)

    margin = t_critical * params_stderr
    return params_opt - margin, params_opt + margin


__all__ = [
    'CovarianceResult',
    'compute_covariance_matrix',
    'compute_confidence_interval',
]
