"""
Sinusoid fitting with a geodesic-accelerated trust-region solver.

Architecture:
- models.py: Sinusoid model variants with analytic Jacobian and fvv
- trust_region.py: Levenberg-Marquardt trust-region driver
- session.py: Fit session lifecycle and result packaging
- covariance.py: Parameter uncertainties at the converged point
- diagnostics.py: Normalization, phase helpers, quality checks
- config.py: Configuration constants with documentation
- errors.py: Exception hierarchy

Public API
----------
Model variants:
- AMPLITUDE_PHASE: [A, freq, phase, offset]
- QUADRATURE: [A_cos, A_sin, freq, offset]
- CHIRP: [A_cos, A_sin, freq, quad, offset]

Main Functions:
- FitSession / FitConfig: configure once, fit many captures
- create_session, fit, destroy_session: functional interface

Usage Example
-------------
```python
from sinefit.fitting import create_session, fit, destroy_session

session = create_session('amplitude_phase', 1000, 32, 1e-8, 1e-8, 1e-8, 1.5)
result = fit(session, samples, [1000.0, 0.02, 0.0, 2000.0])
print(result.status, result.params)
destroy_session(session)
```
"""

# Errors
from .errors import (
    SineFitError,
    InvalidConfiguration,
    DimensionMismatch,
    SessionReleased,
)

# Models
from .models import (
    ModelVariant,
    SinusoidModel,
    AmplitudePhaseModel,
    QuadratureModel,
    ChirpModel,
    make_model,
)

# Solver driver
from .trust_region import (
    StopReason,
    SolverParameters,
    TrustRegionWorkspace,
    TrustRegionState,
    allocate_workspace,
    solve,
)

# Sessions and results
from .session import (
    FitConfig,
    FitStatus,
    FitDiagnostics,
    FitResult,
    FitSession,
    create_session,
    fit,
    destroy_session,
)

# Covariance for advanced users
from .covariance import (
    CovarianceResult,
    compute_covariance_matrix,
    compute_confidence_interval,
)

# Post-processing
from .diagnostics import (
    wrap_phase,
    wrapped_angle_difference,
    quadrature_to_amplitude_phase,
    fit_amplitude,
    normalize_params,
    is_low_contrast,
    log_fit_results,
)

__all__ = [
    # Errors
    'SineFitError',
    'InvalidConfiguration',
    'DimensionMismatch',
    'SessionReleased',
    # Models
    'ModelVariant',
    'SinusoidModel',
    'AmplitudePhaseModel',
    'QuadratureModel',
    'ChirpModel',
    'make_model',
    # Solver
    'StopReason',
    'SolverParameters',
    'TrustRegionWorkspace',
    'TrustRegionState',
    'allocate_workspace',
    'solve',
    # Sessions
    'FitConfig',
    'FitStatus',
    'FitDiagnostics',
    'FitResult',
    'FitSession',
    'create_session',
    'fit',
    'destroy_session',
    # Covariance
    'CovarianceResult',
    'compute_covariance_matrix',
    'compute_confidence_interval',
    # Post-processing
    'wrap_phase',
    'wrapped_angle_difference',
    'quadrature_to_amplitude_phase',
    'fit_amplitude',
    'normalize_params',
    'is_low_contrast',
    'log_fit_results',
]
