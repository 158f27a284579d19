"""
Utility functions and dataclasses for the sfit CLI.

Contains:
- Exception classes
- Data containers (dataclasses)
- Helper functions (save_figure, parse_guess)
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import matplotlib.pyplot as plt
from numpy.typing import NDArray

from ..fitting import ModelVariant

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class SineFitCLIError(Exception):
    """Error that ends a CLI run with exit status 1."""
    pass


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class LoadedSamples:
    """
    Container for a capture ready to be fitted.

    Attributes
    ----------
    samples : ndarray
        Samples after region of interest and decimation
    title : str
        Data title (filename or "Synthetic data")
    skip_start : int
        Raw index of the first sample
    skip_rate : int
        Decimation factor
    true_params : ndarray or None
        Generating parameters of synthetic data
    """
    samples: NDArray[np.float64]
    title: str
    skip_start: int = 0
    skip_rate: int = 1
    true_params: Optional[NDArray[np.float64]] = None


@dataclass
class FitSetup:
    """
    Resolved fit settings (config file merged with command line).

    Attributes
    ----------
    variant : ModelVariant
        Model parametrization
    skip_start, skip_end, skip_rate : int
        Region of interest and decimation
    max_iterations : int
    xtol, gtol, ftol : float
    max_av_ratio : float
    low_contrast_threshold : float
    guess : list of float or None
        Initial guess, None if not given
    """
    variant: ModelVariant
    skip_start: int
    skip_end: int
    skip_rate: int
    max_iterations: int
    xtol: float
    gtol: float
    ftol: float
    max_av_ratio: float
    low_contrast_threshold: float
    guess: Optional[List[float]] = field(default=None)


# =============================================================================
# Helper Functions
# =============================================================================

def save_figure(
    fig: Optional[plt.Figure],
    prefix: Optional[str],
    suffix: str,
    fmt: str = 'png'
) -> None:
    """
    Save figure to file if fig and prefix are provided.

    Parameters
    ----------
    fig : Figure or None
        Matplotlib figure to save
    prefix : str or None
        File prefix (from --save argument)
    suffix : str
        File suffix (e.g., 'fit')
    fmt : str
        Output format: 'png', 'pdf', 'svg', 'eps' (default: 'png')
    """
    if fig is None or prefix is None:
        return

    filepath = f"{prefix}_{suffix}.{fmt}"
    try:
        # Bitmap output needs an explicit resolution
        if fmt == 'png':
            fig.savefig(filepath, dpi=150, bbox_inches='tight')
        else:
            fig.savefig(filepath, bbox_inches='tight')
        logger.info(f"Saved: {filepath}")
    except OSError as e:
        raise SineFitCLIError(f"Error saving figure {filepath}: {e}") from e


def parse_guess(text: str, variant: ModelVariant) -> List[float]:
    """
    Parse a comma-separated initial guess.

    Parameters
    ----------
    text : str
        Values, e.g. "1000,0.002,0,2000"
    variant : ModelVariant
        Model the guess is for (sets the expected length)

    Returns
    -------
    guess : list of float

    Raises
    ------
    SineFitCLIError
        If a value is not a number or the count does not match the model

    Examples
    --------
    >>> parse_guess("1000, 2e-3, 0, 2000", ModelVariant.AMPLITUDE_PHASE)
    [1000.0, 0.002, 0.0, 2000.0]
    """
    try:
        guess = [float(v) for v in text.replace(';', ',').split(',') if v.strip()]
    except ValueError as e:
        raise SineFitCLIError(f"Cannot parse --guess '{text}': {e}") from e

    if len(guess) != variant.n_params:
        labels = ', '.join(variant.param_labels)
        raise SineFitCLIError(
            f"--guess has {len(guess)} values, model '{variant.value}' "
            f"needs {variant.n_params} ({labels})"
        )
    return guess
