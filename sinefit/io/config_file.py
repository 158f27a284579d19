"""
Fit settings from a TOML configuration file.

The ``[multifit]`` table describes how a raw oscilloscope buffer is turned
into a fit: the region of interest, the decimation and the solver limits.

    [multifit]
    samples_skip_start = 1000
    samples_skip_end = 1000
    skip_rate = 16
    max_iterations = 32
    xtol = 1e-8
    gtol = 1e-8
    ftol = 1e-8
    max_av_ratio = 1.5
    low_contrast_threshold = 100.0   # optional
    buffer_size = 16384              # optional
    model = "amplitude_phase"        # optional
    guess = [1000.0, 2.0e-3, 0.0, 2000.0]  # optional

Other tables in the file are ignored.
"""

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..fitting.config import LOW_CONTRAST_THRESHOLD, SCOPE_BUFFER_SIZE
from ..fitting.errors import InvalidConfiguration
from ..fitting.models import ModelVariant
from ..fitting.session import FitConfig
from .data_loading import roi_num_points

logger = logging.getLogger(__name__)

SECTION = 'multifit'

REQUIRED_INT_KEYS = ('samples_skip_start', 'samples_skip_end', 'skip_rate', 'max_iterations')
REQUIRED_FLOAT_KEYS = ('xtol', 'gtol', 'ftol', 'max_av_ratio')


@dataclass
class MultifitSettings:
    """
    Settings read from the [multifit] table.

    Attributes
    ----------
    fit_config : FitConfig
        Validated session configuration; num_points is derived from the
        buffer size and the region of interest
    samples_skip_start, samples_skip_end : int
        Samples trimmed from the raw buffer before fitting
    buffer_size : int
        Raw capture length the region of interest applies to
    initial_guess : list of float or None
        Starting parameters, if given in the file
    """
    fit_config: FitConfig
    samples_skip_start: int
    samples_skip_end: int
    buffer_size: int = SCOPE_BUFFER_SIZE
    initial_guess: Optional[List[float]] = None

    @property
    def skip_rate(self) -> int:
        return self.fit_config.skip_rate


def _get(table: Dict[str, Any], key: str, kind: type, default: Any = None,
         required: bool = True) -> Any:
    if key not in table:
        if required:
            raise InvalidConfiguration(f"Missing key '{key}' in [{SECTION}]")
        return default

    value = table[key]
    # TOML booleans are not numbers here
    if isinstance(value, bool):
        raise InvalidConfiguration(f"[{SECTION}] {key} must be {kind.__name__}, got bool")
    if kind is float and isinstance(value, int):
        value = float(value)
    if not isinstance(value, kind):
        raise InvalidConfiguration(
            f"[{SECTION}] {key} must be {kind.__name__}, got {type(value).__name__}"
        )
    return value


def parse_multifit_table(table: Dict[str, Any]) -> MultifitSettings:
    """
    Build MultifitSettings from an already parsed [multifit] table.

    Raises
    ------
    InvalidConfiguration
        On missing keys, wrong types, or a region of interest that leaves
        no samples
    """
    ints = {key: _get(table, key, int) for key in REQUIRED_INT_KEYS}
    floats = {key: _get(table, key, float) for key in REQUIRED_FLOAT_KEYS}

    buffer_size = _get(table, 'buffer_size', int, SCOPE_BUFFER_SIZE, required=False)
    low_contrast = _get(table, 'low_contrast_threshold', float,
                        LOW_CONTRAST_THRESHOLD, required=False)
    variant = _get(table, 'model', str, ModelVariant.AMPLITUDE_PHASE.value, required=False)
    guess = _get(table, 'guess', list, None, required=False)

    skip_start = ints['samples_skip_start']
    skip_end = ints['samples_skip_end']
    skip_rate = ints['skip_rate']
    if skip_start < 0 or skip_end < 0:
        raise InvalidConfiguration(
            f"samples_skip_start and samples_skip_end must be >= 0, "
            f"got {skip_start} and {skip_end}"
        )
    if skip_rate < 1:
        raise InvalidConfiguration(f"skip_rate must be >= 1, got {skip_rate}")

    num_points = roi_num_points(buffer_size, skip_start, skip_end, skip_rate)

    config = FitConfig(
        variant=variant,
        num_points=num_points,
        max_iterations=ints['max_iterations'],
        xtol=floats['xtol'],
        gtol=floats['gtol'],
        ftol=floats['ftol'],
        max_av_ratio=floats['max_av_ratio'],
        skip_rate=skip_rate,
        low_contrast_threshold=low_contrast,
    )
    config.validate()

    if guess is not None:
        try:
            guess = [float(v) for v in guess]
        except (TypeError, ValueError):
            raise InvalidConfiguration(f"[{SECTION}] guess must be a list of numbers, got {guess}")
        if len(guess) != config.variant.n_params:
            raise InvalidConfiguration(
                f"[{SECTION}] guess has {len(guess)} values, "
                f"{config.variant.value} needs {config.variant.n_params}"
            )

    return MultifitSettings(
        fit_config=config,
        samples_skip_start=skip_start,
        samples_skip_end=skip_end,
        buffer_size=buffer_size,
        initial_guess=guess,
    )


def load_fit_config(filename: Union[str, Path]) -> MultifitSettings:
    """
    Load fit settings from the [multifit] table of a TOML file.

    Parameters
    ----------
    filename : str or Path
        Path to the TOML file

    Returns
    -------
    settings : MultifitSettings

    Raises
    ------
    InvalidConfiguration
        If the file cannot be read or parsed, or the table is incomplete
    """
    try:
        with open(filename, 'rb') as f:
            document = tomllib.load(f)
    except FileNotFoundError:
        raise InvalidConfiguration(f"Config file not found: {filename}")
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise InvalidConfiguration(f"Error reading config file {filename}: {e}")

    table = document.get(SECTION)
    if not isinstance(table, dict):
        raise InvalidConfiguration(f"No [{SECTION}] table in {filename}")

    settings = parse_multifit_table(table)
    logger.debug(
        f"Config {filename}: {settings.fit_config.variant.value}, "
        f"n={settings.fit_config.num_points}, skip_rate={settings.skip_rate}"
    )
    return settings


__all__ = [
    'MultifitSettings',
    'parse_multifit_table',
    'load_fit_config',
]
