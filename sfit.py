#!/usr/bin/env python3
"""
Sinusoid Fitting
================

CLI tool for fitting sinusoidal fringes in oscilloscope captures.

Version: Imported from sinefit.version (single source of truth)

Features:
- Amplitude/phase, quadrature and linear chirp models
- Trust-region Levenberg-Marquardt with geodesic acceleration
- Region of interest and decimation (--skip-start/--skip-end/--skip-rate)
- [multifit] settings from a TOML file (--config)
- Parameter uncertainties and 95% confidence intervals

Usage:
    sfit                                        # synthetic data demo
    sfit --model chirp --noise 50               # chirped demo fringe
    sfit capture.csv --guess 1000,2e-3,0,2000   # fit a capture
    sfit capture.npy --config rp.toml -v        # solver trace on stderr

    sfit --help                                 # help
"""

import argparse
import logging
import sys

import matplotlib.pyplot as plt

from sinefit import get_version_string
from sinefit.cli import (
    SineFitCLIError,
    setup_logging,
    log_separator,
    parse_arguments,
    resolve_fit_setup,
    load_capture,
    run_fit,
)

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    """Main CLI entry point. Returns the process exit status."""
    args = parse_arguments(argv)
    setup_logging(args)

    try:
        _run_analysis(args)
    except SineFitCLIError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Fit interrupted by user")
        return 130
    return 0


def _run_analysis(args: argparse.Namespace) -> None:
    """Load, fit, report."""
    log_separator(title=f"Sinusoid fitting ({get_version_string()})")

    setup = resolve_fit_setup(args)
    data = load_capture(args, setup)

    _, fig = run_fit(data, setup, args)

    if fig is not None and not args.no_show:
        plt.show()

    log_separator(title="Fit complete")


if __name__ == "__main__":
    sys.exit(main())
