"""
sinefit
=======

Sinusoid fitting for oscilloscope captures: nonlinear least squares with a
geodesic-accelerated trust-region Levenberg-Marquardt solver.

Modules:
- fitting: Models, solver, fit sessions, uncertainties
- io: Capture loading, region of interest, synthetic data, TOML settings
- visualization: Fit plots
- cli: Command-line front end (sfit.py)

Version is imported from sinefit.version (single source of truth).
"""

# Import version from single source of truth
from .version import __version__, __version_info__, get_version_string

# Fitting
from .fitting import (
    # Errors
    SineFitError,
    InvalidConfiguration,
    DimensionMismatch,
    SessionReleased,
    # Models
    ModelVariant,
    make_model,
    # Sessions
    FitConfig,
    FitSession,
    FitResult,
    FitStatus,
    create_session,
    fit,
    destroy_session,
    # Solver
    solve,
    allocate_workspace,
    SolverParameters,
    StopReason,
    # Post-processing
    wrapped_angle_difference,
)

# I/O
from .io import (
    load_samples,
    apply_roi,
    generate_synthetic_samples,
    load_fit_config,
)

# Visualization
from .visualization import plot_sinusoid_fit

__all__ = [
    # Version
    '__version__',
    '__version_info__',
    'get_version_string',
    # Errors
    'SineFitError',
    'InvalidConfiguration',
    'DimensionMismatch',
    'SessionReleased',
    # Models
    'ModelVariant',
    'make_model',
    # Sessions
    'FitConfig',
    'FitSession',
    'FitResult',
    'FitStatus',
    'create_session',
    'fit',
    'destroy_session',
    # Solver
    'solve',
    'allocate_workspace',
    'SolverParameters',
    'StopReason',
    # Post-processing
    'wrapped_angle_difference',
    # I/O
    'load_samples',
    'apply_roi',
    'generate_synthetic_samples',
    'load_fit_config',
    # Visualization
    'plot_sinusoid_fit',
]
