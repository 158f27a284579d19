"""
Trust-region Levenberg-Marquardt solver with geodesic acceleration.

The solver minimizes ||f(x)||^2 for a residual function f: R^p -> R^n with
an exact Jacobian, optionally using the second directional derivative fvv
to add a geodesic acceleration correction to every step [1].

Algorithm
---------
Each iteration solves the damped normal equations

    (J^T J + mu D^2) v = -J^T f

for the velocity v, where D is the Jacobian column-norm scaling [2] and mu
the Levenberg-Marquardt damping updated with Nielsen's rule [3]. The
velocity is truncated to the trust region ||D v|| <= radius. With
acceleration enabled, the same factorization gives

    (J^T J + mu D^2) a = -J^T fvv(x, v)

and the trial step is dx = v + a/2. Steps whose acceleration is large
compared to the velocity (||D a|| / ||D v|| > avmax) are rejected.

Step quality is the gain ratio rho = actual / predicted reduction of the
sum of squares. A step is accepted iff rho > 0; the trust radius grows by
factor_up when rho > 0.75 and shrinks by factor_down when rho < 0.25.

Every trial step, accepted or rejected, counts as one iteration.

All vectors and matrices live in a TrustRegionWorkspace that is allocated
once and reused across solves of the same size: the current and trial
point, residual and Jacobian are swapped instead of copied.

References
----------
.. [1] M. K. Transtrum, J. P. Sethna, "Improvements to the
       Levenberg-Marquardt algorithm for nonlinear least-squares
       minimization", arXiv:1201.5885 (2012)
.. [2] J. J. More, "The Levenberg-Marquardt algorithm: implementation and
       theory", Lecture Notes in Mathematics 630 (1978) 105-116
.. [3] H. B. Nielsen, "Damping parameter in Marquardt's method",
       IMM-REP-1999-05, DTU (1999)
"""

import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np
from numpy.typing import NDArray, ArrayLike
from scipy.linalg import cho_factor, cho_solve, LinAlgError

from .config import (
    DEFAULT_MAX_AV_RATIO,
    FACTOR_UP, FACTOR_DOWN,
    INITIAL_DAMPING, INITIAL_RADIUS_SCALE,
    GAIN_RATIO_GOOD, GAIN_RATIO_POOR,
)
from .errors import InvalidConfiguration, DimensionMismatch

logger = logging.getLogger(__name__)

# Callable signatures (x and v are length p, out is a preallocated buffer):
#   residual_fn(x, out) -> f (n,)
#   jacobian_fn(x, out) -> J (n, p)
#   fvv_fn(x, v, out)   -> fvv (n,)
ResidualFunction = Callable[[NDArray[np.float64], NDArray[np.float64]], NDArray[np.float64]]
JacobianFunction = Callable[[NDArray[np.float64], NDArray[np.float64]], NDArray[np.float64]]
FvvFunction = Callable[[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]],
                       NDArray[np.float64]]


# ============================================================================
# Parameters and Results
# ============================================================================

class StopReason(Enum):
    """Why the solver stopped."""
    XTOL = 'xtol'
    GTOL = 'gtol'
    FTOL = 'ftol'
    MAX_ITERATIONS = 'max_iterations'
    SINGULAR = 'singular'
    NON_FINITE = 'non_finite'

    @property
    def converged(self) -> bool:
        return self in (StopReason.XTOL, StopReason.GTOL, StopReason.FTOL)

    @property
    def numerical_failure(self) -> bool:
        return self in (StopReason.SINGULAR, StopReason.NON_FINITE)


@dataclass
class SolverParameters:
    """
    Tuning parameters of the trust-region iteration.

    Attributes
    ----------
    factor_up : float
        Trust radius growth factor after a very good step
    factor_down : float
        Trust radius shrink factor after a poor step
    avmax : float
        Maximum allowed acceleration/velocity ratio
    mu0 : float
        Initial damping relative to max_j (J^T J)_jj / D_j^2
    radius_scale : float
        Initial trust radius relative to max(1, ||D x0||)
    geodesic_acceleration : bool
        Use the fvv correction when an fvv function is supplied
    """
    factor_up: float = FACTOR_UP
    factor_down: float = FACTOR_DOWN
    avmax: float = DEFAULT_MAX_AV_RATIO
    mu0: float = INITIAL_DAMPING
    radius_scale: float = INITIAL_RADIUS_SCALE
    geodesic_acceleration: bool = True

    def validate(self) -> None:
        """Raise InvalidConfiguration for non-positive factors or ratios."""
        for name in ('factor_up', 'factor_down', 'avmax', 'mu0', 'radius_scale'):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise InvalidConfiguration(f"{name} must be positive and finite, got {value}")
        if self.factor_up <= 1 or self.factor_down <= 1:
            raise InvalidConfiguration(
                f"factor_up and factor_down must be > 1, "
                f"got {self.factor_up} and {self.factor_down}"
            )


class TrustRegionWorkspace:
    """
    Preallocated buffers for one problem size (n residuals, p parameters).

    The current/trial pairs (x, f, J) are swapped after an accepted step, so
    the attributes always name the current point.
    """

    def __init__(self, n_points: int, n_params: int):
        if n_points < 1 or n_params < 1:
            raise InvalidConfiguration(
                f"Workspace needs n_points >= 1 and n_params >= 1, "
                f"got {n_points} and {n_params}"
            )
        self.n_points = n_points
        self.n_params = n_params

        self.x = np.zeros(n_params)
        self.x_trial = np.zeros(n_params)
        self.f = np.zeros(n_points)
        self.f_trial = np.zeros(n_points)
        self.J = np.zeros((n_points, n_params))
        self.J_trial = np.zeros((n_points, n_params))
        self.fvv = np.zeros(n_points)

        self.g = np.zeros(n_params)
        self.D = np.ones(n_params)
        self.v = np.zeros(n_params)
        self.a = np.zeros(n_params)
        self.dx = np.zeros(n_params)
        self.normal_matrix = np.zeros((n_params, n_params))

    def swap_trial(self) -> None:
        """Make the trial point (x, f, J) the current one."""
        self.x, self.x_trial = self.x_trial, self.x
        self.f, self.f_trial = self.f_trial, self.f
        self.J, self.J_trial = self.J_trial, self.J

    def __repr__(self) -> str:
        return f"TrustRegionWorkspace(n_points={self.n_points}, n_params={self.n_params})"


def allocate_workspace(n_points: int, n_params: int) -> TrustRegionWorkspace:
    """Allocate solver buffers for n residuals and p parameters."""
    return TrustRegionWorkspace(n_points, n_params)


@dataclass
class TrustRegionState:
    """
    Solver state, updated in place during a solve.

    Array attributes reference the workspace buffers of the current point;
    copy them before reusing the workspace for another solve.
    """
    x: NDArray[np.float64]
    f: NDArray[np.float64]
    J: NDArray[np.float64]
    g: NDArray[np.float64]
    D: NDArray[np.float64]
    radius: float = 0.0
    mu: float = 0.0
    nu: float = 2.0
    avratio: float = 0.0
    rho: float = 0.0
    iterations: int = 0
    n_residual_evals: int = 0
    n_jacobian_evals: int = 0
    n_fvv_evals: int = 0
    n_rejected: int = 0
    last_step_accepted: bool = False
    stop_reason: Optional[StopReason] = None
    chi_squared_history: list = field(default_factory=list)

    @property
    def chi_squared(self) -> float:
        """Sum of squared residuals at the current point."""
        return float(self.f @ self.f)

    @property
    def converged(self) -> bool:
        return self.stop_reason is not None and self.stop_reason.converged


# ============================================================================
# Convergence Tests
# ============================================================================

def _scaled_norm(D: NDArray[np.float64], x: NDArray[np.float64]) -> float:
    return float(np.linalg.norm(D * x))


def _gradient_test(g: NDArray[np.float64], x: NDArray[np.float64],
                   f: NDArray[np.float64], gtol: float) -> bool:
    # max_i |g_i| * max(|x_i|, 1) <= gtol * max(chi2/2, 1)
    gnorm = np.max(np.abs(g) * np.maximum(np.abs(x), 1.0))
    return bool(gnorm <= gtol * max(0.5 * float(f @ f), 1.0))


def _step_test(D: NDArray[np.float64], dx: NDArray[np.float64],
               x: NDArray[np.float64], xtol: float) -> bool:
    return _scaled_norm(D, dx) <= xtol * (_scaled_norm(D, x) + xtol)


def _all_finite(arr: NDArray[np.float64]) -> bool:
    return bool(np.all(np.isfinite(arr)))


# ============================================================================
# Driver
# ============================================================================

def solve(
    residual_fn: ResidualFunction,
    jacobian_fn: JacobianFunction,
    x0: ArrayLike,
    workspace: TrustRegionWorkspace,
    *,
    fvv_fn: Optional[FvvFunction] = None,
    max_iterations: int,
    xtol: float,
    gtol: float,
    ftol: float,
    parameters: Optional[SolverParameters] = None,
    callback: Optional[Callable[[TrustRegionState], None]] = None
) -> TrustRegionState:
    """
    Drive x0 to a least-squares minimum of ||residual_fn(x)||^2.

    Parameters
    ----------
    residual_fn : callable
        residual_fn(x, out) -> f, writes n residuals into out
    jacobian_fn : callable
        jacobian_fn(x, out) -> J, writes the (n, p) Jacobian into out
    x0 : array_like, shape (p,)
        Initial guess (copied into the workspace)
    workspace : TrustRegionWorkspace
        Buffers sized for (n, p), reused across calls
    fvv_fn : callable, optional
        fvv_fn(x, v, out) -> fvv, second directional derivative of the
        residuals. Without it the solver takes first-order steps only.
    max_iterations : int
        Maximum number of trial steps (>= 1)
    xtol, gtol, ftol : float
        Step, gradient and residual-reduction tolerances
    parameters : SolverParameters, optional
        Trust-region tuning (defaults: SolverParameters())
    callback : callable, optional
        callback(state), called after every iteration

    Returns
    -------
    state : TrustRegionState
        Final state; ``stop_reason`` tells how the solve ended. On numerical
        failure the state holds the last point with finite residual and
        Jacobian.

    Raises
    ------
    DimensionMismatch
        If x0 does not match the workspace parameter count
    InvalidConfiguration
        If max_iterations < 1 or a tolerance is negative
    """
    params = parameters if parameters is not None else SolverParameters()
    params.validate()
    if max_iterations < 1:
        raise InvalidConfiguration(f"max_iterations must be >= 1, got {max_iterations}")
    for name, tol in (('xtol', xtol), ('gtol', gtol), ('ftol', ftol)):
        if not tol >= 0:
            raise InvalidConfiguration(f"{name} must be >= 0, got {tol}")

    ws = workspace
    x0 = np.asarray(x0, dtype=np.float64)
    if x0.shape != (ws.n_params,):
        raise DimensionMismatch(
            f"Initial guess has shape {x0.shape}, expected ({ws.n_params},)"
        )
    use_accel = params.geodesic_acceleration and fvv_fn is not None

    # --- Init ---
    ws.x[:] = x0
    state = TrustRegionState(x=ws.x, f=ws.f, J=ws.J, g=ws.g, D=ws.D)

    residual_fn(ws.x, ws.f)
    state.n_residual_evals += 1
    if not _all_finite(ws.f):
        logger.warning("Non-finite residual at initial guess")
        state.stop_reason = StopReason.NON_FINITE
        return state

    jacobian_fn(ws.x, ws.J)
    state.n_jacobian_evals += 1
    if not _all_finite(ws.J):
        logger.warning("Non-finite Jacobian at initial guess")
        state.stop_reason = StopReason.NON_FINITE
        return state

    col_norms = np.linalg.norm(ws.J, axis=0)
    ws.D[:] = np.where(col_norms > 0, col_norms, 1.0)
    np.dot(ws.J.T, ws.f, out=ws.g)

    state.radius = params.radius_scale * max(1.0, _scaled_norm(ws.D, ws.x))
    state.mu = params.mu0 * float(np.max(col_norms**2 / ws.D**2))
    if state.mu == 0.0:
        state.mu = params.mu0
    state.nu = 2.0
    state.chi_squared_history.append(state.chi_squared)

    logger.debug(
        f"init: chi2={state.chi_squared:.6e}, mu={state.mu:.3e}, "
        f"radius={state.radius:.3e}, accel={'on' if use_accel else 'off'}"
    )

    if _gradient_test(ws.g, ws.x, ws.f, gtol):
        state.stop_reason = StopReason.GTOL
        logger.debug("init: gradient test satisfied, nothing to do")
        return state

    # --- Iterate ---
    while True:
        accepted = False
        stop: Optional[StopReason] = None

        # Damped normal equations (J^T J + mu D^2), factorized once per trial
        np.dot(ws.J.T, ws.J, out=ws.normal_matrix)
        ws.normal_matrix[np.diag_indices_from(ws.normal_matrix)] += state.mu * ws.D**2
        try:
            factor = cho_factor(ws.normal_matrix, overwrite_a=True)
        except LinAlgError as e:
            logger.warning(f"Cholesky factorization failed at iteration {state.iterations}: {e}")
            state.stop_reason = StopReason.SINGULAR
            return state
        except ValueError as e:
            # Overflow in J^T J or in the damping
            logger.warning(f"Non-finite normal matrix at iteration {state.iterations}: {e}")
            state.stop_reason = StopReason.NON_FINITE
            return state

        ws.v[:] = -cho_solve(factor, ws.g)
        dv_norm = _scaled_norm(ws.D, ws.v)
        if dv_norm > state.radius:
            ws.v *= state.radius / dv_norm
            dv_norm = state.radius

        # Geodesic acceleration
        state.avratio = 0.0
        if use_accel:
            fvv_fn(ws.x, ws.v, ws.fvv)
            state.n_fvv_evals += 1
            if not _all_finite(ws.fvv):
                logger.warning(f"Non-finite fvv at iteration {state.iterations}")
                state.stop_reason = StopReason.NON_FINITE
                return state
            ws.a[:] = -cho_solve(factor, ws.J.T @ ws.fvv)
            if dv_norm > 0:
                state.avratio = _scaled_norm(ws.D, ws.a) / dv_norm
            np.add(ws.v, 0.5 * ws.a, out=ws.dx)
        else:
            ws.dx[:] = ws.v

        chi2 = state.chi_squared
        actual = -1.0
        predicted = 0.0

        if state.avratio > params.avmax:
            state.rho = -1.0
        else:
            np.add(ws.x, ws.dx, out=ws.x_trial)
            residual_fn(ws.x_trial, ws.f_trial)
            state.n_residual_evals += 1
            if not _all_finite(ws.f_trial):
                logger.warning(f"Non-finite residual at iteration {state.iterations}")
                state.stop_reason = StopReason.NON_FINITE
                return state

            chi2_trial = float(ws.f_trial @ ws.f_trial)
            if chi2 > 0 and chi2_trial < chi2:
                actual = 1.0 - chi2_trial / chi2

            Jv = ws.J @ ws.v
            if chi2 > 0:
                predicted = -(2.0 * float(ws.g @ ws.v) + float(Jv @ Jv)) / chi2
            state.rho = actual / predicted if predicted > 0 else -1.0

        # Trust radius
        if state.rho > GAIN_RATIO_GOOD:
            state.radius *= params.factor_up
        elif state.rho < GAIN_RATIO_POOR:
            state.radius /= params.factor_down

        if state.rho > 0:
            jacobian_fn(ws.x_trial, ws.J_trial)
            state.n_jacobian_evals += 1
            if not _all_finite(ws.J_trial):
                logger.warning(f"Non-finite Jacobian at iteration {state.iterations}")
                state.stop_reason = StopReason.NON_FINITE
                return state

            ws.swap_trial()
            state.x, state.f, state.J = ws.x, ws.f, ws.J
            np.maximum(ws.D, np.linalg.norm(ws.J, axis=0), out=ws.D)
            np.dot(ws.J.T, ws.f, out=ws.g)

            state.mu *= max(1.0 / 3.0, 1.0 - (2.0 * state.rho - 1.0)**3)
            state.nu = 2.0
            accepted = True
            state.chi_squared_history.append(state.chi_squared)
        else:
            state.mu *= state.nu
            state.nu *= 2.0
            state.n_rejected += 1

        state.iterations += 1
        state.last_step_accepted = accepted

        if _step_test(ws.D, ws.dx, ws.x, xtol):
            stop = StopReason.XTOL
        elif accepted and _gradient_test(ws.g, ws.x, ws.f, gtol):
            stop = StopReason.GTOL
        elif accepted and actual <= ftol and predicted <= ftol:
            stop = StopReason.FTOL

        logger.debug(
            f"iter {state.iterations:3d}: chi2={state.chi_squared:.6e}, "
            f"rho={state.rho:+.3f}, mu={state.mu:.3e}, radius={state.radius:.3e}, "
            f"av={state.avratio:.3f} {'accepted' if accepted else 'rejected'}"
        )

        if callback is not None:
            callback(state)

        if stop is not None:
            state.stop_reason = stop
            break
        if state.iterations >= max_iterations:
            state.stop_reason = StopReason.MAX_ITERATIONS
            break

    logger.debug(
        f"stop: {state.stop_reason.value} after {state.iterations} iterations "
        f"({state.n_rejected} rejected), chi2={state.chi_squared:.6e}"
    )
    return state


__all__ = [
    'StopReason',
    'SolverParameters',
    'TrustRegionWorkspace',
    'TrustRegionState',
    'allocate_workspace',
    'solve',
]
