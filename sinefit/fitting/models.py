"""
Sinusoid model functions with analytic derivatives.

Each model maps a parameter vector to n predicted samples and provides the
three quantities the trust-region solver needs: residuals, the exact
Jacobian and the exact second directional derivative (fvv) used for the
geodesic acceleration correction.

Theory
------
Residuals are r_i = y_model(i) - y_i, so the Jacobian and fvv are those of
the model itself:

    J[i,j] = d(y_model_i) / d(p_j)
    fvv_i  = sum_jk v_j v_k d2(y_model_i) / (d(p_j) d(p_k))

The sample index enters through the effective index k_i = skip_rate * i,
which lets a decimated capture (every skip_rate-th oscilloscope sample) be
fitted with the frequency of the full-rate capture.

Model Derivatives
-----------------
AmplitudePhase [A, w, phi, c], theta = w*k - phi:
    y = A cos(theta) + c
    J = [cos(theta), -A k sin(theta), A sin(theta), 1]

Quadrature [a, b, w, c], theta = w*k:
    y = a cos(theta) + b sin(theta) + c
    J = [cos(theta), sin(theta), k g, 1],   g = -a sin(theta) + b cos(theta)

Chirp [a, b, w, q, c], theta = w*k + q*k^2:
    y = a cos(theta) + b sin(theta) + c
    J = [cos(theta), sin(theta), k g, k^2 g, 1]

In all three variants theta is linear in the parameters, so along a
direction v with s = dtheta/dt the second directional derivative reduces to

    AmplitudePhase: fvv = -2 v_A s sin(theta) - A s^2 cos(theta)
    Quadrature/Chirp: fvv = 2 s (-v_a sin(theta) + v_b cos(theta))
                            - s^2 (a cos(theta) + b sin(theta))

with s = v_w k - v_phi (AmplitudePhase), s = v_w k (Quadrature) and
s = v_w k + v_q k^2 (Chirp). Expanding these gives the usual cross terms
(e.g. d2y/dA dw = -k sin(theta), d2y/dw dphi = A k cos(theta)).
"""

from enum import Enum
from abc import ABC, abstractmethod
from typing import Optional, Tuple, Union

import numpy as np
from numpy.typing import NDArray, ArrayLike

from .errors import InvalidConfiguration, DimensionMismatch


# ============================================================================
# Variants
# ============================================================================

class ModelVariant(Enum):
    """Sinusoid parametrization used by a fit session."""
    AMPLITUDE_PHASE = 'amplitude_phase'
    QUADRATURE = 'quadrature'
    CHIRP = 'chirp'

    @property
    def n_params(self) -> int:
        """Number of model parameters p."""
        return len(PARAM_LABELS[self])

    @property
    def param_labels(self) -> Tuple[str, ...]:
        return PARAM_LABELS[self]

    @classmethod
    def parse(cls, value: Union['ModelVariant', str]) -> 'ModelVariant':
        """
        Convert a variant or its string value to ModelVariant.

        Raises
        ------
        InvalidConfiguration
            If the value does not name a known variant
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = [v.value for v in cls]
            raise InvalidConfiguration(
                f"Unknown model variant '{value}'. Valid: {valid}"
            ) from None


PARAM_LABELS = {
    ModelVariant.AMPLITUDE_PHASE: ('A', 'freq', 'phase', 'offset'),
    ModelVariant.QUADRATURE: ('A_cos', 'A_sin', 'freq', 'offset'),
    ModelVariant.CHIRP: ('A_cos', 'A_sin', 'freq', 'quad', 'offset'),
}


# ============================================================================
# Helpers
# ============================================================================

def _as_vector(values: ArrayLike, size: int, name: str) -> NDArray[np.float64]:
    vec = np.asarray(values, dtype=np.float64)
    if vec.shape != (size,):
        raise DimensionMismatch(
            f"{name} has shape {vec.shape}, expected ({size},)"
        )
    return vec


def _prepare_output(out: Optional[NDArray[np.float64]],
                    shape: Tuple[int, ...]) -> NDArray[np.float64]:
    if out is None:
        return np.empty(shape, dtype=np.float64)
    if out.shape != shape:
        raise DimensionMismatch(
            f"Output buffer has shape {out.shape}, expected {shape}"
        )
    return out


# ============================================================================
# Base Class
# ============================================================================

class SinusoidModel(ABC):
    """
    Abstract base class for sinusoid models.

    A model is built for a fixed number of samples and decimation rate and
    precomputes the effective sample index k = skip_rate * i. All
    evaluation methods are pure with respect to their inputs; the optional
    ``out`` argument lets a caller reuse a preallocated buffer.

    Attributes
    ----------
    num_points : int
        Number of samples n
    skip_rate : int
        Decimation factor applied to the sample index
    k : ndarray of float, shape (n,)
        Effective sample index
    """

    variant: ModelVariant
    has_fvv = True

    def __init__(self, num_points: int, skip_rate: int = 1):
        if int(num_points) < 1:
            raise InvalidConfiguration(f"num_points must be >= 1, got {num_points}")
        if int(skip_rate) < 1:
            raise InvalidConfiguration(f"skip_rate must be >= 1, got {skip_rate}")
        self.num_points = int(num_points)
        self.skip_rate = int(skip_rate)
        self.k = self.skip_rate * np.arange(self.num_points, dtype=np.float64)

    @property
    def n_params(self) -> int:
        return self.variant.n_params

    @property
    def param_labels(self) -> Tuple[str, ...]:
        return self.variant.param_labels

    @abstractmethod
    def evaluate(self, params: ArrayLike,
                 out: Optional[NDArray[np.float64]] = None) -> NDArray[np.float64]:
        """
        Evaluate the model at every sample.

        Parameters
        ----------
        params : array_like, shape (p,)
            Model parameters
        out : ndarray, shape (n,), optional
            Buffer for the result

        Returns
        -------
        y_model : ndarray of float, shape (n,)
        """
        pass

    @abstractmethod
    def jacobian(self, params: ArrayLike,
                 out: Optional[NDArray[np.float64]] = None) -> NDArray[np.float64]:
        """
        Exact Jacobian of the residuals, shape (n, p).
        """
        pass

    @abstractmethod
    def fvv(self, params: ArrayLike, v: ArrayLike,
            out: Optional[NDArray[np.float64]] = None) -> NDArray[np.float64]:
        """
        Second directional derivative of the residuals along v, shape (n,).
        """
        pass

    def residual(self, params: ArrayLike, y: NDArray[np.float64],
                 out: Optional[NDArray[np.float64]] = None) -> NDArray[np.float64]:
        """
        Residuals r = y_model - y.

        Parameters
        ----------
        params : array_like, shape (p,)
            Model parameters
        y : ndarray, shape (n,)
            Observed samples (not modified)
        out : ndarray, shape (n,), optional
            Buffer for the result

        Returns
        -------
        r : ndarray of float, shape (n,)
        """
        if np.shape(y) != (self.num_points,):
            raise DimensionMismatch(
                f"samples have shape {np.shape(y)}, expected ({self.num_points},)"
            )
        r = self.evaluate(params, out=out)
        r -= y
        return r

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(num_points={self.num_points}, "
                f"skip_rate={self.skip_rate})")


# ============================================================================
# AmplitudePhase: A cos(w k - phi) + c
# ============================================================================

class AmplitudePhaseModel(SinusoidModel):
    """Single tone with explicit amplitude and phase: [A, freq, phase, offset]."""

    variant = ModelVariant.AMPLITUDE_PHASE

    def evaluate(self, params, out=None):
        A, freq, phase, offset = _as_vector(params, 4, 'params')
        y = _prepare_output(out, (self.num_points,))
        np.cos(freq * self.k - phase, out=y)
        y *= A
        y += offset
        return y

    def jacobian(self, params, out=None):
        A, freq, phase, _ = _as_vector(params, 4, 'params')
        J = _prepare_output(out, (self.num_points, 4))
        theta = freq * self.k - phase
        sin_t = np.sin(theta)

        J[:, 0] = np.cos(theta)
        J[:, 1] = -A * self.k * sin_t
        J[:, 2] = A * sin_t
        J[:, 3] = 1.0
        return J

    def fvv(self, params, v, out=None):
        A, freq, phase, _ = _as_vector(params, 4, 'params')
        vA, vw, vphi, _ = _as_vector(v, 4, 'v')
        result = _prepare_output(out, (self.num_points,))
        theta = freq * self.k - phase

        # Offset is linear and amplitude enters linearly: only A-w, A-phi,
        # w-w, w-phi and phi-phi second derivatives are non-zero
        s = vw * self.k - vphi
        result[:] = -2.0 * vA * s * np.sin(theta) - A * s * s * np.cos(theta)
        return result


# ============================================================================
# Quadrature: a cos(w k) + b sin(w k) + c
# ============================================================================

class QuadratureModel(SinusoidModel):
    """Single tone in cos/sin quadrature form: [A_cos, A_sin, freq, offset]."""

    variant = ModelVariant.QUADRATURE

    def evaluate(self, params, out=None):
        a, b, freq, offset = _as_vector(params, 4, 'params')
        y = _prepare_output(out, (self.num_points,))
        theta = freq * self.k
        y[:] = a * np.cos(theta) + b * np.sin(theta) + offset
        return y

    def jacobian(self, params, out=None):
        a, b, freq, _ = _as_vector(params, 4, 'params')
        J = _prepare_output(out, (self.num_points, 4))
        theta = freq * self.k
        cos_t = np.cos(theta)
        sin_t = np.sin(theta)

        J[:, 0] = cos_t
        J[:, 1] = sin_t
        J[:, 2] = self.k * (-a * sin_t + b * cos_t)
        J[:, 3] = 1.0
        return J

    def fvv(self, params, v, out=None):
        a, b, freq, _ = _as_vector(params, 4, 'params')
        va, vb, vw, _ = _as_vector(v, 4, 'v')
        result = _prepare_output(out, (self.num_points,))
        theta = freq * self.k
        cos_t = np.cos(theta)
        sin_t = np.sin(theta)

        s = vw * self.k
        result[:] = 2.0 * s * (-va * sin_t + vb * cos_t) - s * s * (a * cos_t + b * sin_t)
        return result


# ============================================================================
# Chirp: a cos(w k + q k^2) + b sin(w k + q k^2) + c
# ============================================================================

class ChirpModel(SinusoidModel):
    """Linear chirp in quadrature form: [A_cos, A_sin, freq, quad, offset]."""

    variant = ModelVariant.CHIRP

    def evaluate(self, params, out=None):
        a, b, freq, quad, offset = _as_vector(params, 5, 'params')
        y = _prepare_output(out, (self.num_points,))
        theta = (freq + quad * self.k) * self.k
        y[:] = a * np.cos(theta) + b * np.sin(theta) + offset
        return y

    def jacobian(self, params, out=None):
        a, b, freq, quad, _ = _as_vector(params, 5, 'params')
        J = _prepare_output(out, (self.num_points, 5))
        theta = (freq + quad * self.k) * self.k
        cos_t = np.cos(theta)
        sin_t = np.sin(theta)
        g = -a * sin_t + b * cos_t

        J[:, 0] = cos_t
        J[:, 1] = sin_t
        J[:, 2] = self.k * g
        J[:, 3] = self.k * self.k * g
        J[:, 4] = 1.0
        return J

    def fvv(self, params, v, out=None):
        a, b, freq, quad, _ = _as_vector(params, 5, 'params')
        va, vb, vw, vq, _ = _as_vector(v, 5, 'v')
        result = _prepare_output(out, (self.num_points,))
        theta = (freq + quad * self.k) * self.k
        cos_t = np.cos(theta)
        sin_t = np.sin(theta)

        s = (vw + vq * self.k) * self.k
        result[:] = 2.0 * s * (-va * sin_t + vb * cos_t) - s * s * (a * cos_t + b * sin_t)
        return result


# ============================================================================
# Factory
# ============================================================================

MODEL_CLASSES = {
    ModelVariant.AMPLITUDE_PHASE: AmplitudePhaseModel,
    ModelVariant.QUADRATURE: QuadratureModel,
    ModelVariant.CHIRP: ChirpModel,
}


def make_model(
    variant: Union[ModelVariant, str],
    num_points: int,
    skip_rate: int = 1
) -> SinusoidModel:
    """
    Create the model for a variant.

    Parameters
    ----------
    variant : ModelVariant or str
        Model parametrization ('amplitude_phase', 'quadrature', 'chirp')
    num_points : int
        Number of samples n
    skip_rate : int, optional
        Decimation factor applied to the sample index (default: 1)

    Returns
    -------
    model : SinusoidModel

    Raises
    ------
    InvalidConfiguration
        Unknown variant, num_points < 1 or skip_rate < 1
    """
    variant = ModelVariant.parse(variant)
    return MODEL_CLASSES[variant](num_points, skip_rate)


__all__ = [
    'ModelVariant',
    'PARAM_LABELS',
    'SinusoidModel',
    'AmplitudePhaseModel',
    'QuadratureModel',
    'ChirpModel',
    'make_model',
]
