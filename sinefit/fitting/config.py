"""
Configuration constants for sinusoid fitting.

Defaults mirror the settings used for interferometer captures on the
Red Pitaya oscilloscope (16384-sample buffer, float32 samples in ADC
counts). Every constant can be overridden per session through FitConfig.

References
----------
.. [1] K. Madsen, H. B. Nielsen, O. Tingleff, "Methods for Non-Linear
       Least Squares Problems", IMM DTU (2004)
.. [2] M. K. Transtrum, J. P. Sethna, "Improvements to the
       Levenberg-Marquardt algorithm for nonlinear least-squares
       minimization", arXiv:1201.5885 (2012)
.. [3] J. J. More, "The Levenberg-Marquardt algorithm: implementation and
       theory", Lecture Notes in Mathematics 630 (1978) 105-116
"""

# =============================================================================
# Stopping Criteria
# =============================================================================

DEFAULT_MAX_ITERATIONS = 32
"""
Maximum number of solver iterations (accepted and rejected trial steps).

A well-seeded single-tone fit converges in well under 16 iterations.
Hitting the limit usually means the initial frequency guess is outside the
basin of attraction.
"""

DEFAULT_XTOL = 1e-8
"""
Step tolerance: stop when ||D dx|| <= xtol * (||D x|| + xtol).

D is the scaling diagonal (column norms of the Jacobian), so the test is
relative and independent of parameter units.
"""

DEFAULT_GTOL = 1e-8
"""
Gradient tolerance: stop when max_i |g_i| * max(|x_i|, 1) <= gtol * max(chi2/2, 1).
"""

DEFAULT_FTOL = 1e-8
"""
Residual tolerance: stop when both the actual and the predicted relative
reduction of the sum of squares fall below ftol.
"""

# =============================================================================
# Trust Region / Damping
# =============================================================================

DEFAULT_MAX_AV_RATIO = 1.5
"""
Maximum allowed ratio ||a|| / ||v|| of geodesic acceleration to velocity.

Steps above this ratio are rejected because the second-order correction
is no longer a small perturbation of the Gauss-Newton step [2].
Transtrum and Sethna recommend 0.75; sinusoid fits tolerate more.
"""

FACTOR_UP = 5.0
"""
Trust-region growth factor applied after a very good step (rho > 0.75).
"""

FACTOR_DOWN = 2.0
"""
Trust-region shrink factor applied after a poor step (rho < 0.25).
"""

INITIAL_DAMPING = 1e-3
"""
Initial Levenberg-Marquardt damping relative to max_j (J^T J)_jj / D_j^2 [1].
"""

INITIAL_RADIUS_SCALE = 0.3
"""
Initial trust radius as a fraction of max(1, ||D x0||).
"""

GAIN_RATIO_GOOD = 0.75
"""
Gain ratio above which the trust region is enlarged.
"""

GAIN_RATIO_POOR = 0.25
"""
Gain ratio below which the trust region is shrunk.
"""

# =============================================================================
# Result Post-processing
# =============================================================================

LOW_CONTRAST_THRESHOLD = 100.0
"""
Amplitude [ADC counts] below which a fringe is flagged as low contrast.

A low-contrast fit is not necessarily wrong, but its phase is dominated
by noise and should not drive a lock loop.
"""

SCOPE_BUFFER_SIZE = 16384
"""
Number of samples in one oscilloscope acquisition buffer.
"""

# =============================================================================
# Export all constants
# =============================================================================

__all__ = [
    # Stopping criteria
    'DEFAULT_MAX_ITERATIONS',
    'DEFAULT_XTOL',
    'DEFAULT_GTOL',
    'DEFAULT_FTOL',

    # Trust region
    'DEFAULT_MAX_AV_RATIO',
    'FACTOR_UP',
    'FACTOR_DOWN',
    'INITIAL_DAMPING',
    'INITIAL_RADIUS_SCALE',
    'GAIN_RATIO_GOOD',
    'GAIN_RATIO_POOR',

    # Post-processing
    'LOW_CONTRAST_THRESHOLD',
    'SCOPE_BUFFER_SIZE',
]
