"""
Exception classes for sinusoid fitting.

Configuration and dimension problems are raised immediately and are never
retried inside the fitting core. Numerical trouble during a fit is NOT an
exception: it is reported through FitResult.status so that the caller still
gets the last valid iterate and its chi-squared.
"""


class SineFitError(Exception):
    """Base exception for sinefit errors."""
    pass


class InvalidConfiguration(SineFitError, ValueError):
    """Session or solver configuration is unusable (zero points, zero iterations, ...)."""
    pass


class DimensionMismatch(SineFitError, ValueError):
    """Samples or initial guess do not match the session configuration."""
    pass


class SessionReleased(SineFitError, RuntimeError):
    """Fit requested on a session whose buffers were already released."""
    pass


__all__ = [
    'SineFitError',
    'InvalidConfiguration',
    'DimensionMismatch',
    'SessionReleased',
]
