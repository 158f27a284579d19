"""
CLI module for sinefit.

This module provides the command-line interface components:
- logging: Level-split log handlers and setup
- parser: Argument parsing
- data_handling: Settings resolution and capture loading
- handlers: Fit workflow
- utils: Helper functions and dataclasses

The main entry point is in the root sfit.py script.
"""

from .logging import setup_logging, log_separator
from .parser import build_parser, parse_arguments
from .data_handling import resolve_fit_setup, load_capture, resolve_guess
from .handlers import run_fit, report_fit
from .utils import (
    SineFitCLIError,
    LoadedSamples,
    FitSetup,
    save_figure,
    parse_guess,
)

__all__ = [
    # Logging
    'setup_logging',
    'log_separator',
    # Parser
    'build_parser',
    'parse_arguments',
    # Data handling
    'resolve_fit_setup',
    'load_capture',
    'resolve_guess',
    # Handlers
    'run_fit',
    'report_fit',
    # Utils
    'SineFitCLIError',
    'LoadedSamples',
    'FitSetup',
    'save_figure',
    'parse_guess',
]
