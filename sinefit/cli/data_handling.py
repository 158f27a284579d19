"""
Fit settings and data loading for the sfit CLI.

Contains:
- resolve_fit_setup: Merge defaults, --config file and command line options
- load_capture: Load from file or generate a synthetic capture, then apply
  the region of interest
"""

import argparse
import logging
import os

import numpy as np

from .utils import SineFitCLIError, LoadedSamples, FitSetup, parse_guess
from ..fitting import ModelVariant, SineFitError
from ..fitting.config import (
    DEFAULT_MAX_ITERATIONS, DEFAULT_XTOL, DEFAULT_GTOL, DEFAULT_FTOL,
    DEFAULT_MAX_AV_RATIO, LOW_CONTRAST_THRESHOLD, SCOPE_BUFFER_SIZE,
)
from ..io import (
    load_samples,
    load_fit_config,
    apply_roi,
    generate_synthetic_samples,
    DEMO_PARAMS,
    DEMO_GUESS,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Synthetic Data Configuration
# =============================================================================
# The demo capture is a full scope buffer fitted at 1/16 of the sample rate,
# the decimation used for live lock-loop fits.

SYNTHETIC_SKIP_RATE = 16


# =============================================================================
# Settings
# =============================================================================

def resolve_fit_setup(args: argparse.Namespace) -> FitSetup:
    """
    Merge fit settings: command line over --config file over defaults.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments

    Returns
    -------
    FitSetup

    Raises
    ------
    SineFitCLIError
        If the config file is invalid or --guess cannot be parsed
    """
    file_values = {}
    file_guess = None

    if args.config is not None:
        try:
            settings = load_fit_config(args.config)
        except SineFitError as e:
            raise SineFitCLIError(f"Config error: {e}") from e
        cfg = settings.fit_config
        file_values = {
            'variant': cfg.variant,
            'skip_start': settings.samples_skip_start,
            'skip_end': settings.samples_skip_end,
            'skip_rate': cfg.skip_rate,
            'max_iterations': cfg.max_iterations,
            'xtol': cfg.xtol,
            'gtol': cfg.gtol,
            'ftol': cfg.ftol,
            'max_av_ratio': cfg.max_av_ratio,
            'low_contrast_threshold': cfg.low_contrast_threshold,
        }
        file_guess = settings.initial_guess
        logger.info(f"Settings from {args.config} [multifit]")

    default_skip_rate = SYNTHETIC_SKIP_RATE if args.input is None else 1
    defaults = {
        'variant': ModelVariant.AMPLITUDE_PHASE,
        'skip_start': 0,
        'skip_end': 0,
        'skip_rate': default_skip_rate,
        'max_iterations': DEFAULT_MAX_ITERATIONS,
        'xtol': DEFAULT_XTOL,
        'gtol': DEFAULT_GTOL,
        'ftol': DEFAULT_FTOL,
        'max_av_ratio': DEFAULT_MAX_AV_RATIO,
        'low_contrast_threshold': LOW_CONTRAST_THRESHOLD,
    }
    cli_values = {
        'variant': ModelVariant.parse(args.model) if args.model else None,
        'skip_start': args.skip_start,
        'skip_end': args.skip_end,
        'skip_rate': args.skip_rate,
        'max_iterations': args.max_iterations,
        'xtol': args.xtol,
        'gtol': args.gtol,
        'ftol': args.ftol,
        'max_av_ratio': args.max_av_ratio,
        'low_contrast_threshold': args.low_contrast,
    }

    merged = {}
    for key, default in defaults.items():
        if cli_values[key] is not None:
            merged[key] = cli_values[key]
        else:
            merged[key] = file_values.get(key, default)

    variant = merged['variant']
    if args.guess is not None:
        guess = parse_guess(args.guess, variant)
    elif file_guess is not None and variant is file_values.get('variant'):
        guess = file_guess
    else:
        guess = None

    return FitSetup(guess=guess, **merged)


# =============================================================================
# Data Loading
# =============================================================================

def load_capture(args: argparse.Namespace, setup: FitSetup) -> LoadedSamples:
    """
    Load a capture from file or generate a synthetic one.

    The region of interest and decimation of ``setup`` are applied in both
    cases.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments. Uses:
        - args.input: Capture file path (None for synthetic)
        - args.column: Column of a multi-column file
        - args.noise, args.seed: Synthetic noise
    setup : FitSetup
        Resolved fit settings

    Returns
    -------
    LoadedSamples

    Raises
    ------
    SineFitCLIError
        If the file does not exist, cannot be parsed, or the region of
        interest leaves too few samples
    """
    true_params = None

    if args.input is None:
        true_params = np.array(DEMO_PARAMS[setup.variant])
        try:
            raw = generate_synthetic_samples(
                setup.variant, true_params, SCOPE_BUFFER_SIZE,
                noise=args.noise, seed=args.seed
            )
        except ValueError as e:
            raise SineFitCLIError(f"Synthetic data error: {e}") from e
        title = "Synthetic data"
        logger.info(f"Synthetic {setup.variant.value} capture: {SCOPE_BUFFER_SIZE} samples, "
                    f"noise {args.noise:g}")
        logger.info(f"  True parameters: {true_params}")
    else:
        if not os.path.exists(args.input):
            raise SineFitCLIError(f"File '{args.input}' does not exist!")
        try:
            raw = load_samples(args.input, column=args.column)
        except ValueError as e:
            raise SineFitCLIError(f"Error loading file: {e}") from e
        title = os.path.basename(args.input)

    try:
        samples = apply_roi(raw, setup.skip_start, setup.skip_end, setup.skip_rate)
    except ValueError as e:
        raise SineFitCLIError(f"Region of interest error: {e}") from e

    n_params = setup.variant.n_params
    if len(samples) <= n_params:
        raise SineFitCLIError(
            f"Only {len(samples)} samples left after --skip-start/--skip-end/--skip-rate, "
            f"model '{setup.variant.value}' needs more than {n_params}"
        )

    if setup.skip_start or setup.skip_end or setup.skip_rate > 1:
        logger.info(f"Region of interest: {len(raw)} -> {len(samples)} samples "
                    f"(skip {setup.skip_start}/{setup.skip_end}, rate {setup.skip_rate})")

    return LoadedSamples(
        samples=samples,
        title=title,
        skip_start=setup.skip_start,
        skip_rate=setup.skip_rate,
        true_params=true_params,
    )


def resolve_guess(data: LoadedSamples, setup: FitSetup) -> np.ndarray:
    """
    Initial guess for the fit.

    Raises
    ------
    SineFitCLIError
        For file input without --guess (no automatic pre-estimation)
    """
    if setup.guess is not None:
        return np.array(setup.guess, dtype=np.float64)
    if data.true_params is not None:
        return np.array(DEMO_GUESS[setup.variant], dtype=np.float64)
    labels = ', '.join(setup.variant.param_labels)
    raise SineFitCLIError(
        f"No initial guess. Use --guess with {setup.variant.n_params} values ({labels}) "
        f"or set 'guess' in the [multifit] table"
    )
