"""
Visualization module for sinusoid fits.
"""

from .plots import plot_sinusoid_fit

__all__ = [
    'plot_sinusoid_fit',
]
