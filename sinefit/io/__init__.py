"""
I/O module for loading captures, generating synthetic data and reading
fit settings.
"""

from .data_loading import (
    load_text_samples,
    load_samples,
    roi_num_points,
    apply_roi,
)
from .synthetic import (
    DEMO_PARAMS,
    DEMO_GUESS,
    generate_synthetic_samples,
)
from .config_file import (
    MultifitSettings,
    parse_multifit_table,
    load_fit_config,
)

__all__ = [
    'load_text_samples',
    'load_samples',
    'roi_num_points',
    'apply_roi',
    'DEMO_PARAMS',
    'DEMO_GUESS',
    'generate_synthetic_samples',
    'MultifitSettings',
    'parse_multifit_table',
    'load_fit_config',
]
