"""
Fit workflow handlers for the sfit CLI.

- run_fit: Configure a session, fit the capture, report and plot
- report_fit: Log a FitResult
"""

import argparse
import logging
from typing import Optional, Tuple

import numpy as np
import matplotlib.pyplot as plt

from .logging import log_separator
from .utils import SineFitCLIError, LoadedSamples, FitSetup, save_figure
from .data_handling import resolve_guess
from ..fitting import (
    FitConfig,
    FitSession,
    FitResult,
    FitStatus,
    ModelVariant,
    SineFitError,
    log_fit_results,
    quadrature_to_amplitude_phase,
)
from ..visualization import plot_sinusoid_fit

logger = logging.getLogger(__name__)


def report_fit(result: FitResult, true_params: Optional[np.ndarray] = None) -> None:
    """
    Log fit status, parameters with uncertainties and warnings.

    Parameters
    ----------
    result : FitResult
        Fit to report
    true_params : ndarray, optional
        Generating parameters (synthetic data), logged for comparison
    """
    diag = result.diagnostics

    logger.info(f"Status: {result.status.value} after {result.iterations} iterations"
                + (f" ({diag.stop_reason})" if diag is not None and diag.stop_reason else ""))
    if diag is not None:
        logger.debug(f"Evaluations: residual={diag.n_residual_evals}, "
                     f"jacobian={diag.n_jacobian_evals}, fvv={diag.n_fvv_evals}, "
                     f"rejected steps={diag.n_rejected}")

    if result.status is FitStatus.INVALID_INPUT:
        for warning in result.all_warnings:
            logger.warning(warning)
        return

    ci_low, ci_high = result.params_ci_95
    log_fit_results(
        result.params, result.params_stderr, ci_low, ci_high,
        result.chi_squared, result.n_data, result.param_labels
    )
    logger.info(f"  Amplitude: {result.amplitude:.4g}"
                + (" (low contrast)" if result.low_contrast else ""))
    if result.variant is not ModelVariant.AMPLITUDE_PHASE:
        _, phase = quadrature_to_amplitude_phase(result.params[0], result.params[1])
        logger.info(f"  Phase at first sample: {phase:+.6f} rad")

    if true_params is not None:
        logger.info(f"  True parameters: {true_params}")

    for warning in result.all_warnings:
        logger.warning(warning)


def run_fit(
    data: LoadedSamples,
    setup: FitSetup,
    args: argparse.Namespace
) -> Tuple[FitResult, Optional[plt.Figure]]:
    """
    Fit a loaded capture.

    Parameters
    ----------
    data : LoadedSamples
        Capture after region of interest
    setup : FitSetup
        Resolved fit settings
    args : argparse.Namespace
        CLI arguments (uses: no_accel, no_plot, save, format)

    Returns
    -------
    result : FitResult
        Fit result
    fig : Figure or None
        Fit figure (None with --no-plot)

    Raises
    ------
    SineFitCLIError
        On configuration errors or when the fit does not produce a usable
        result (invalid input or numerical failure)
    """
    guess = resolve_guess(data, setup)

    log_separator(title=f"Sinusoid fit: {setup.variant.value}")
    logger.info(f"Samples: {len(data.samples)}, skip rate {setup.skip_rate}")
    logger.info(f"Initial guess: {guess}")
    if args.no_accel:
        logger.info("Geodesic acceleration disabled")

    config = FitConfig(
        variant=setup.variant,
        num_points=len(data.samples),
        max_iterations=setup.max_iterations,
        xtol=setup.xtol,
        gtol=setup.gtol,
        ftol=setup.ftol,
        max_av_ratio=setup.max_av_ratio,
        skip_rate=setup.skip_rate,
        geodesic_acceleration=not args.no_accel,
        low_contrast_threshold=setup.low_contrast_threshold,
    )

    try:
        with FitSession(config) as session:
            result = session.fit(data.samples, guess)
    except SineFitError as e:
        raise SineFitCLIError(f"Fit setup error: {e}") from e

    report_fit(result, data.true_params)

    if result.status is FitStatus.INVALID_INPUT:
        raise SineFitCLIError("Fit not run: capture or guess contains NaN/Inf")
    if result.status is FitStatus.NUMERICAL_FAILURE:
        raise SineFitCLIError(
            "Fit failed numerically. Try a better --guess or --no-accel"
        )
    if result.status is FitStatus.MAX_ITERATIONS_REACHED:
        logger.warning("Try a closer --guess or a larger --max-iterations")

    fig = None
    if not args.no_plot:
        fitted = session.model.evaluate(result.params)
        fig = plot_sinusoid_fit(
            data.samples, fitted,
            skip_rate=data.skip_rate,
            skip_start=data.skip_start,
            title=f"{data.title}: {setup.variant.value} ({result.status.value})",
            param_labels=result.param_labels,
            params=result.params,
        )
        save_figure(fig, args.save, 'fit', args.format)

    return result, fig
