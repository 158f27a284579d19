"""
Visualization functions for sinusoid fits.
"""

import numpy as np
import matplotlib.pyplot as plt
from typing import Optional, Sequence
from numpy.typing import NDArray

PLOT_GRID_ALPHA = 0.3


def plot_sinusoid_fit(
    samples: NDArray[np.float64],
    fitted: NDArray[np.float64],
    skip_rate: int = 1,
    skip_start: int = 0,
    title: Optional[str] = None,
    param_labels: Optional[Sequence[str]] = None,
    params: Optional[NDArray[np.float64]] = None,
    figsize: tuple = (12, 7)
) -> plt.Figure:
    """
    Plot a capture with its fitted model and the residuals.

    Parameters
    ----------
    samples : ndarray of float
        Fitted samples (after region of interest and decimation)
    fitted : ndarray of float
        Model evaluated at the fitted parameters, same length as samples
    skip_rate : int, optional
        Decimation factor, used to label the x axis in raw sample indices
    skip_start : int, optional
        Offset of the first fitted sample in the raw capture
    title : str, optional
        Custom plot title
    param_labels : sequence of str, optional
        Parameter names for the legend box
    params : ndarray, optional
        Fitted parameters for the legend box
    figsize : tuple, optional
        Figure size (default: (12, 7))

    Returns
    -------
    fig : matplotlib.figure.Figure
        Figure with data/fit panel on top and residuals below
    """
    index = skip_start + skip_rate * np.arange(len(samples))
    residuals = samples - fitted
    rms = np.sqrt(np.mean(residuals**2))

    fig, (ax1, ax2) = plt.subplots(
        2, 1, figsize=figsize, sharex=True,
        gridspec_kw={'height_ratios': [3, 1]}
    )

    # Data and fit
    ax1.plot(index, samples, '.', label='Data', markersize=3, alpha=0.6)
    ax1.plot(index, fitted, '-', label='Fit', linewidth=1.5, color='#d62728')
    ax1.set_ylabel('Amplitude')
    ax1.set_title(title if title else 'Sinusoid fit')
    ax1.legend(loc='upper right')
    ax1.grid(True, alpha=PLOT_GRID_ALPHA)

    if params is not None:
        labels = param_labels if param_labels else [f'p[{i}]' for i in range(len(params))]
        text = '\n'.join(f'{label} = {value:.5g}' for label, value in zip(labels, params))
        ax1.text(0.02, 0.98, text, transform=ax1.transAxes, fontsize=9,
                 verticalalignment='top', family='monospace',
                 bbox=dict(boxstyle='round', facecolor='white', alpha=0.8))

    # Residuals
    ax2.plot(index, residuals, '.', markersize=2, color='#1f77b4')
    ax2.axhline(y=0, color='k', linestyle='--', alpha=0.5)
    ax2.set_xlabel('Sample index')
    ax2.set_ylabel('Residual')
    ax2.set_title(f'Residuals (RMS {rms:.3g})')
    ax2.grid(True, alpha=PLOT_GRID_ALPHA)

    plt.tight_layout()
    return fig


__all__ = [
    'PLOT_GRID_ALPHA',
    'plot_sinusoid_fit',
]
