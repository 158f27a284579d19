"""
Synthetic capture generation for testing and demonstration.
"""

import numpy as np
import logging
from typing import Dict, List, Optional, Union
from numpy.typing import NDArray, ArrayLike

from ..fitting.models import ModelVariant, make_model

logger = logging.getLogger(__name__)

# Demo fringes: about 5 periods over a full 16384-sample buffer, 1000 counts
# amplitude on a 2040-count offset. Frequencies are in rad per full-rate sample.
DEMO_PARAMS: Dict[ModelVariant, List[float]] = {
    ModelVariant.AMPLITUDE_PHASE: [1000.0, 2.03e-3, 0.25, 2040.0],
    ModelVariant.QUADRATURE: [600.0, -800.0, 2.03e-3, 2040.0],
    ModelVariant.CHIRP: [600.0, -800.0, 2.02e-3, 2e-9, 2040.0],
}

# Starting points inside the basin of attraction of DEMO_PARAMS
DEMO_GUESS: Dict[ModelVariant, List[float]] = {
    ModelVariant.AMPLITUDE_PHASE: [900.0, 2.0e-3, 0.0, 2000.0],
    ModelVariant.QUADRATURE: [500.0, -700.0, 2.0e-3, 2000.0],
    ModelVariant.CHIRP: [500.0, -700.0, 2.02e-3, 0.0, 2000.0],
}


def generate_synthetic_samples(
    variant: Union[ModelVariant, str],
    params: ArrayLike,
    num_points: int,
    skip_rate: int = 1,
    noise: float = 0.0,
    seed: Optional[int] = None
) -> NDArray[np.float64]:
    """
    Generate a sinusoid capture with additive Gaussian noise.

    Parameters
    ----------
    variant : ModelVariant or str
        Model parametrization of params
    params : array_like
        Model parameters
    num_points : int
        Number of samples
    skip_rate : int, optional
        Decimation factor, sample i is taken at full-rate index
        skip_rate * i (default: 1)
    noise : float, optional
        Standard deviation of the additive noise, in sample units
        (default: 0, noise-free)
    seed : int, optional
        Seed for the noise generator

    Returns
    -------
    samples : ndarray of float, shape (num_points,)
    """
    if noise < 0:
        raise ValueError(f"noise must be >= 0, got {noise}")

    model = make_model(variant, num_points, skip_rate)
    samples = model.evaluate(params)

    if noise > 0:
        rng = np.random.default_rng(seed)
        samples += rng.normal(0.0, noise, num_points)

    logger.debug(
        f"Synthetic {model.variant.value} capture: n={num_points}, "
        f"skip_rate={skip_rate}, noise={noise:g}"
    )
    return samples


__all__ = [
    'DEMO_PARAMS',
    'DEMO_GUESS',
    'generate_synthetic_samples',
]
