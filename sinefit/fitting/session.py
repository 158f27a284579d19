"""
Fit session: configure once, fit many captures, release.

Clean design: no console output in the fitting path, all diagnostics are
returned as data. The CLI layer is responsible for user output.

Usage:
    from sinefit.fitting import FitConfig, FitSession

    config = FitConfig(variant='amplitude_phase', num_points=1000)
    with FitSession(config) as session:
        result = session.fit(samples, [1000.0, 0.02, 0.0, 2000.0])
        print(result.status, result.params)

or with the functional interface:

    session = create_session('amplitude_phase', 1000, 32, 1e-8, 1e-8, 1e-8, 1.5)
    result = fit(session, samples, guess)
    destroy_session(session)
"""

import numpy as np
import logging
from enum import Enum
from dataclasses import dataclass, field, fields
from typing import Callable, List, Optional, Tuple, Union
from numpy.typing import NDArray, ArrayLike

from .config import (
    DEFAULT_MAX_ITERATIONS, DEFAULT_XTOL, DEFAULT_GTOL, DEFAULT_FTOL,
    DEFAULT_MAX_AV_RATIO, FACTOR_UP, FACTOR_DOWN, LOW_CONTRAST_THRESHOLD,
)
from .errors import InvalidConfiguration, DimensionMismatch, SessionReleased
from .models import ModelVariant, SinusoidModel, make_model
from .trust_region import (
    StopReason, SolverParameters, TrustRegionState, TrustRegionWorkspace,
    allocate_workspace, solve,
)
from .covariance import compute_covariance_matrix, compute_confidence_interval
from .diagnostics import (
    normalize_params, is_low_contrast, fit_amplitude, check_parameter_diagnostics,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration
# ============================================================================

@dataclass
class FitConfig:
    """
    Configuration of a fit session.

    Attributes
    ----------
    variant : ModelVariant or str
        Sinusoid parametrization
    num_points : int
        Number of samples per capture (n)
    max_iterations : int
        Maximum solver iterations per fit
    xtol, gtol, ftol : float
        Step, gradient and residual-reduction tolerances
    max_av_ratio : float
        Maximum geodesic acceleration/velocity ratio
    skip_rate : int
        Decimation factor; the model uses the sample index k = skip_rate * i
    factor_up, factor_down : float
        Trust radius growth/shrink factors
    geodesic_acceleration : bool
        Use second-order (fvv) step corrections
    low_contrast_threshold : float
        Amplitude below which a fit is flagged as low contrast
    normalize : bool
        Return parameters in canonical form (A >= 0, freq >= 0,
        phase in (-pi, pi])
    """
    variant: Union[ModelVariant, str]
    num_points: int
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    xtol: float = DEFAULT_XTOL
    gtol: float = DEFAULT_GTOL
    ftol: float = DEFAULT_FTOL
    max_av_ratio: float = DEFAULT_MAX_AV_RATIO
    skip_rate: int = 1
    factor_up: float = FACTOR_UP
    factor_down: float = FACTOR_DOWN
    geodesic_acceleration: bool = True
    low_contrast_threshold: float = LOW_CONTRAST_THRESHOLD
    normalize: bool = True

    def validate(self) -> None:
        """
        Check the configuration and resolve the variant.

        Updates the config in place: ``variant`` becomes a ModelVariant and
        the counts (num_points, max_iterations, skip_rate) become ints.

        Raises
        ------
        InvalidConfiguration
            On zero points or iterations, skip_rate < 1, non-integral counts,
            non-positive tolerances, factors or av ratio, or an unknown variant
        """
        self.variant = ModelVariant.parse(self.variant)

        for name in ('num_points', 'max_iterations', 'skip_rate'):
            value = getattr(self, name)
            try:
                integral = not isinstance(value, bool) and int(value) == value
            except (TypeError, ValueError, OverflowError):
                integral = False
            if not integral or value < 1:
                raise InvalidConfiguration(f"{name} must be a positive integer, got {value}")
            setattr(self, name, int(value))

        for name in ('xtol', 'gtol', 'ftol', 'max_av_ratio'):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise InvalidConfiguration(f"{name} must be positive, got {value}")

        if not self.low_contrast_threshold >= 0:
            raise InvalidConfiguration(
                f"low_contrast_threshold must be >= 0, got {self.low_contrast_threshold}"
            )

        self.solver_parameters().validate()

    def solver_parameters(self) -> SolverParameters:
        return SolverParameters(
            factor_up=self.factor_up,
            factor_down=self.factor_down,
            avmax=self.max_av_ratio,
            geodesic_acceleration=self.geodesic_acceleration,
        )


# ============================================================================
# Results
# ============================================================================

class FitStatus(Enum):
    """Outcome of a fit."""
    CONVERGED = 'converged'
    MAX_ITERATIONS_REACHED = 'max_iterations_reached'
    NUMERICAL_FAILURE = 'numerical_failure'
    INVALID_INPUT = 'invalid_input'


STOP_REASON_STATUS = {
    StopReason.XTOL: FitStatus.CONVERGED,
    StopReason.GTOL: FitStatus.CONVERGED,
    StopReason.FTOL: FitStatus.CONVERGED,
    StopReason.MAX_ITERATIONS: FitStatus.MAX_ITERATIONS_REACHED,
    StopReason.SINGULAR: FitStatus.NUMERICAL_FAILURE,
    StopReason.NON_FINITE: FitStatus.NUMERICAL_FAILURE,
}


@dataclass
class FitDiagnostics:
    """Diagnostics from a sinusoid fit."""
    # Solver info
    stop_reason: Optional[str]
    n_residual_evals: int = 0
    n_jacobian_evals: int = 0
    n_fvv_evals: int = 0
    n_rejected: int = 0
    geodesic_acceleration: bool = True
    final_mu: float = 0.0
    final_radius: float = 0.0

    # Covariance info
    condition_number: float = np.inf
    covariance_rank: int = 0
    covariance_warning: Optional[str] = None

    # Parameter diagnostics
    param_warnings: List[str] = field(default_factory=list)

    # General warnings
    warnings: List[str] = field(default_factory=list)


@dataclass
class FitResult:
    """
    Result from a sinusoid fit.

    Attributes
    ----------
    status : FitStatus
        How the fit ended
    iterations : int
        Solver iterations (accepted and rejected trial steps)
    params : ndarray of float, shape (p,)
        Fitted parameters (normalized if the session normalizes)
    chi_squared : float
        Sum of squared residuals at params
    variant : ModelVariant
        Model parametrization of params
    params_stderr : ndarray of float
        Standard errors of parameters (inf if unavailable)
    cov : ndarray of float or None
        Covariance matrix of parameters
    low_contrast : bool
        Fitted amplitude below the session threshold
    diagnostics : FitDiagnostics or None
        Detailed diagnostics
    param_labels : tuple of str
        Parameter names
    _n_data : int
        Number of samples (internal, for CI computation)
    """
    status: FitStatus
    iterations: int
    params: NDArray[np.float64]
    chi_squared: float
    variant: ModelVariant = ModelVariant.AMPLITUDE_PHASE
    params_stderr: Optional[NDArray[np.float64]] = None
    cov: Optional[NDArray[np.float64]] = None
    low_contrast: bool = False
    diagnostics: Optional[FitDiagnostics] = None
    param_labels: Tuple[str, ...] = ()
    _n_data: int = 0

    def __post_init__(self):
        if self.params_stderr is None:
            self.params_stderr = np.full(len(self.params), np.inf)

    @property
    def converged(self) -> bool:
        return self.status is FitStatus.CONVERGED

    @property
    def n_data(self) -> int:
        """Number of fitted samples."""
        return self._n_data

    @property
    def amplitude(self) -> float:
        """Oscillation amplitude, for any variant."""
        return fit_amplitude(self.variant, self.params)

    def _confidence_interval(self, level: float) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        if not np.all(np.isfinite(self.params_stderr)):
            return (
                np.full_like(self.params, -np.inf),
                np.full_like(self.params, np.inf)
            )
        return compute_confidence_interval(
            self.params, self.params_stderr, self._n_data, level
        )

    @property
    def params_ci_95(self) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        """95% confidence intervals for parameters."""
        return self._confidence_interval(0.95)

    @property
    def params_ci_99(self) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        """99% confidence intervals for parameters."""
        return self._confidence_interval(0.99)

    @property
    def all_warnings(self) -> List[str]:
        """Collect all warnings from diagnostics."""
        if self.diagnostics is None:
            return []
        warnings = []
        warnings.extend(self.diagnostics.warnings)
        warnings.extend(self.diagnostics.param_warnings)
        if self.diagnostics.covariance_warning:
            warnings.append(self.diagnostics.covariance_warning)
        return warnings

    def __repr__(self) -> str:
        lines = []
        lines.append("Fit Result:")
        lines.append(f"  Model: {self.variant.value}")
        lines.append(f"  Status: {self.status.value} after {self.iterations} iterations")
        lines.append(f"  Parameters: {self.params}")
        lines.append(f"  Std errors: {self.params_stderr}")

        ci_low, ci_high = self.params_ci_95
        if not np.all(np.isinf(ci_low)):
            lines.append(f"  95% CI low: {ci_low}")
            lines.append(f"  95% CI high: {ci_high}")

        lines.append(f"  Chi-squared: {self.chi_squared:.6e}")
        if self.low_contrast:
            lines.append("  Low contrast: yes")
        return '\n'.join(lines)


# ============================================================================
# Session
# ============================================================================

class FitSession:
    """
    Reusable fitting context for one model variant and capture length.

    Owns the model, the solver workspace and the sample buffer. Each
    :meth:`fit` copies the samples in, drives the solver and packages a
    :class:`FitResult`; buffers are reused across fits. Not thread-safe.

    Parameters
    ----------
    config : FitConfig
        Session configuration (validated here)

    Raises
    ------
    InvalidConfiguration
        If the configuration is unusable
    """

    def __init__(self, config: FitConfig):
        config.validate()
        self.config = config
        self.model: SinusoidModel = make_model(config.variant, config.num_points, config.skip_rate)
        self._workspace: Optional[TrustRegionWorkspace] = allocate_workspace(
            config.num_points, self.model.n_params
        )
        self._samples: Optional[NDArray[np.float64]] = np.zeros(config.num_points)
        self._solver_parameters = config.solver_parameters()

        self.state: Optional[TrustRegionState] = None
        self.last_result: Optional[FitResult] = None
        self.n_fits = 0

        logger.debug(
            f"Session created: {config.variant.value}, n={config.num_points}, "
            f"p={self.model.n_params}, skip_rate={config.skip_rate}"
        )

    @property
    def variant(self) -> ModelVariant:
        return self.config.variant

    @property
    def num_points(self) -> int:
        return self.config.num_points

    @property
    def n_params(self) -> int:
        return self.model.n_params

    @property
    def is_released(self) -> bool:
        return self._workspace is None

    @property
    def samples(self) -> NDArray[np.float64]:
        """Copy of the samples bound by the last fit."""
        self._check_alive()
        return self._samples.copy()

    def _check_alive(self) -> None:
        if self._workspace is None:
            raise SessionReleased("Fit session has been released")

    def fit(
        self,
        samples: ArrayLike,
        initial_guess: ArrayLike,
        callback: Optional[Callable[[TrustRegionState], None]] = None
    ) -> FitResult:
        """
        Fit one capture.

        Parameters
        ----------
        samples : array_like, shape (n,)
            Sample amplitudes (copied, never modified)
        initial_guess : array_like, shape (p,)
            Starting parameters
        callback : callable, optional
            callback(state), called after every solver iteration

        Returns
        -------
        result : FitResult
            CONVERGED, MAX_ITERATIONS_REACHED (best point so far),
            NUMERICAL_FAILURE (last valid point) or INVALID_INPUT
            (non-finite samples or guess, solver not run)

        Raises
        ------
        SessionReleased
            If release() was called before
        DimensionMismatch
            If samples or guess have the wrong length; the session is left
            unchanged
        """
        self._check_alive()

        y = np.asarray(samples, dtype=np.float64)
        if y.shape != (self.num_points,):
            raise DimensionMismatch(
                f"Expected {self.num_points} samples, got shape {y.shape}"
            )
        x0 = np.asarray(initial_guess, dtype=np.float64)
        if x0.shape != (self.n_params,):
            raise DimensionMismatch(
                f"Initial guess for {self.variant.value} needs {self.n_params} "
                f"parameters, got shape {x0.shape}"
            )

        self.n_fits += 1

        if not (np.all(np.isfinite(y)) and np.all(np.isfinite(x0))):
            logger.debug("Non-finite samples or initial guess, solver not run")
            result = FitResult(
                status=FitStatus.INVALID_INPUT,
                iterations=0,
                params=x0.copy(),
                chi_squared=np.nan,
                variant=self.variant,
                diagnostics=FitDiagnostics(
                    stop_reason=None,
                    geodesic_acceleration=self.config.geodesic_acceleration,
                    warnings=["Non-finite samples or initial guess"],
                ),
                param_labels=self.model.param_labels,
                _n_data=self.num_points,
            )
            self.last_result = result
            return result

        np.copyto(self._samples, y)
        buffer = self._samples
        model = self.model

        def residual(x, out):
            return model.residual(x, buffer, out=out)

        state = solve(
            residual, model.jacobian, x0, self._workspace,
            fvv_fn=model.fvv if model.has_fvv else None,
            max_iterations=self.config.max_iterations,
            xtol=self.config.xtol,
            gtol=self.config.gtol,
            ftol=self.config.ftol,
            parameters=self._solver_parameters,
            callback=callback,
        )
        self.state = state

        result = self._package_result(state)
        self.last_result = result

        logger.debug(
            f"Fit {self.n_fits}: {result.status.value} "
            f"({state.stop_reason.value}), {result.iterations} iterations, "
            f"chi2={result.chi_squared:.6e}"
        )
        return result

    def _package_result(self, state: TrustRegionState) -> FitResult:
        status = STOP_REASON_STATUS[state.stop_reason]
        variant = self.variant
        params = state.x.copy()
        chi_squared = state.chi_squared

        diagnostics = FitDiagnostics(
            stop_reason=state.stop_reason.value,
            n_residual_evals=state.n_residual_evals,
            n_jacobian_evals=state.n_jacobian_evals,
            n_fvv_evals=state.n_fvv_evals,
            n_rejected=state.n_rejected,
            geodesic_acceleration=self.config.geodesic_acceleration and self.model.has_fvv,
            final_mu=state.mu,
            final_radius=state.radius,
        )

        if status is FitStatus.MAX_ITERATIONS_REACHED:
            diagnostics.warnings.append(
                f"Maximum iterations ({self.config.max_iterations}) reached without convergence"
            )
        elif status is FitStatus.NUMERICAL_FAILURE:
            diagnostics.warnings.append(
                f"Numerical failure ({state.stop_reason.value}), "
                f"returning last valid iterate"
            )

        if self.config.normalize and np.all(np.isfinite(params)):
            params = normalize_params(variant, params)

        # Uncertainties need a finite residual and Jacobian at the final point
        stderr = np.full(len(params), np.inf)
        cov = None
        if np.all(np.isfinite(state.f)) and np.all(np.isfinite(state.J)):
            jacobian = state.J
            if not np.array_equal(params, state.x):
                jacobian = self.model.jacobian(params)
            cov_result = compute_covariance_matrix(jacobian, state.f)
            stderr = cov_result.stderr
            cov = cov_result.cov
            diagnostics.condition_number = cov_result.condition_number
            diagnostics.covariance_rank = cov_result.rank
            diagnostics.covariance_warning = cov_result.warning_message
            diagnostics.param_warnings = check_parameter_diagnostics(
                params, stderr, cov, self.model.param_labels
            )

        low_contrast = bool(
            np.all(np.isfinite(params))
            and is_low_contrast(variant, params, self.config.low_contrast_threshold)
        )
        if low_contrast:
            diagnostics.warnings.append(
                f"Low contrast: amplitude {fit_amplitude(variant, params):.3g} "
                f"below {self.config.low_contrast_threshold:g}"
            )

        return FitResult(
            status=status,
            iterations=state.iterations,
            params=params,
            chi_squared=chi_squared,
            variant=variant,
            params_stderr=stderr,
            cov=cov,
            low_contrast=low_contrast,
            diagnostics=diagnostics,
            param_labels=self.model.param_labels,
            _n_data=self.num_points,
        )

    def release(self) -> None:
        """Drop the working buffers. Idempotent; later fits raise SessionReleased."""
        if self._workspace is not None:
            logger.debug(f"Session released after {self.n_fits} fits")
        self._workspace = None
        self._samples = None
        self.state = None

    def __enter__(self) -> 'FitSession':
        self._check_alive()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()

    def __repr__(self) -> str:
        status = 'released' if self.is_released else f'{self.n_fits} fits'
        return (f"FitSession({self.variant.value}, num_points={self.num_points}, "
                f"skip_rate={self.config.skip_rate}, {status})")


# ============================================================================
# Functional Interface
# ============================================================================

# FitConfig fields accepted through create_session(**options)
_CONFIG_OPTIONS = {f.name for f in fields(FitConfig)} - {
    'variant', 'num_points', 'max_iterations', 'xtol', 'gtol', 'ftol',
    'max_av_ratio', 'skip_rate',
}


def create_session(
    model_variant: Union[ModelVariant, str],
    num_points: int,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    xtol: float = DEFAULT_XTOL,
    gtol: float = DEFAULT_GTOL,
    ftol: float = DEFAULT_FTOL,
    max_av_ratio: float = DEFAULT_MAX_AV_RATIO,
    skip_rate: int = 1,
    **options
) -> FitSession:
    """
    Create a fit session.

    Parameters
    ----------
    model_variant : ModelVariant or str
        'amplitude_phase', 'quadrature' or 'chirp'
    num_points : int
        Samples per capture
    max_iterations : int, optional
        Solver iteration limit (default: 32)
    xtol, gtol, ftol : float, optional
        Solver tolerances (default: 1e-8)
    max_av_ratio : float, optional
        Acceleration/velocity bound (default: 1.5)
    skip_rate : int, optional
        Decimation factor (default: 1)
    **options
        Any other FitConfig field (factor_up, geodesic_acceleration, ...)

    Returns
    -------
    session : FitSession

    Raises
    ------
    InvalidConfiguration
        On invalid values or unknown options
    """
    unknown = set(options) - _CONFIG_OPTIONS
    if unknown:
        raise InvalidConfiguration(f"Unknown session options: {sorted(unknown)}")

    config = FitConfig(
        variant=model_variant,
        num_points=num_points,
        max_iterations=max_iterations,
        xtol=xtol,
        gtol=gtol,
        ftol=ftol,
        max_av_ratio=max_av_ratio,
        skip_rate=skip_rate,
        **options
    )
    return FitSession(config)


def fit(session: FitSession, samples: ArrayLike, initial_guess: ArrayLike) -> FitResult:
    """Fit one capture with an existing session (see FitSession.fit)."""
    return session.fit(samples, initial_guess)


def destroy_session(session: FitSession) -> None:
    """Release a session's buffers."""
    session.release()


__all__ = [
    'FitConfig',
    'FitStatus',
    'FitDiagnostics',
    'FitResult',
    'FitSession',
    'create_session',
    'fit',
    'destroy_session',
]
