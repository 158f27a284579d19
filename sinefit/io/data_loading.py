"""
Data loading functions for oscilloscope captures.

Captures are single-channel sample amplitudes (ADC counts or volts) stored
as text columns (.csv, .txt, .dat) or as NumPy arrays (.npy). Multi-column
text files are supported by selecting a column.
"""

import numpy as np
import logging
from pathlib import Path
from typing import List, Optional, Union
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

# Validation constants
MIN_SAMPLES = 8  # Fewer samples cannot constrain a 5-parameter chirp

TEXT_SUFFIXES = ('.csv', '.txt', '.dat')


def _detect_delimiter(line: str) -> Optional[str]:
    """
    Auto-detect the column delimiter of a data line.

    Tab and semicolon take precedence over comma, which is then read as
    a decimal separator. Returns None (whitespace) when no delimiter
    occurs in the line.
    """
    for delim in ['\t', ';', ',']:
        if delim in line:
            return delim

    return None


def _parse_float(text: str) -> float:
    return float(text.strip().replace(',', '.'))


def load_text_samples(filename: Union[str, Path], column: int = 0) -> NDArray[np.float64]:
    """
    Load one column of samples from a delimited text file.

    Lines starting with '#' are comments. A first non-comment line that
    does not parse as numbers is treated as a header. The delimiter (tab,
    semicolon, comma or whitespace) is detected from the last data line;
    tab and semicolon files may use a decimal comma.

    Parameters
    ----------
    filename : str or Path
        Path to the text file
    column : int, optional
        Zero-based column index (default: 0)

    Returns
    -------
    samples : ndarray of float

    Raises
    ------
    ValueError
        If the file cannot be read or holds no samples in the column
    """
    try:
        with open(filename, 'r', encoding='utf-8') as f:
            lines = f.readlines()
    except UnicodeDecodeError:
        with open(filename, 'r', encoding='ISO-8859-1') as f:
            lines = f.readlines()
    except FileNotFoundError:
        raise ValueError(f"File not found: {filename}")
    except OSError as e:
        raise ValueError(f"Error reading file {filename}: {e}")

    data_lines = [
        (num, line.strip()) for num, line in enumerate(lines, start=1)
        if line.strip() and not line.strip().startswith('#')
    ]
    if not data_lines:
        raise ValueError(f"No data found in {filename}")

    delimiter = _detect_delimiter(data_lines[-1][1])
    logger.debug(f"Text delimiter: {repr(delimiter)}")

    samples: List[float] = []
    for i, (line_num, line) in enumerate(data_lines):
        parts = line.split(delimiter)
        try:
            samples.append(_parse_float(parts[column]))
        except IndexError:
            raise ValueError(
                f"Line {line_num} of {filename} has {len(parts)} columns, "
                f"column {column} requested"
            )
        except ValueError:
            if i == 0:
                logger.debug(f"Skipping header line: {line}")
                continue
            raise ValueError(f"Invalid value on line {line_num} of {filename}: {line}")

    return np.array(samples, dtype=np.float64)


def load_samples(filename: Union[str, Path], column: int = 0) -> NDArray[np.float64]:
    """
    Load a capture from a text or .npy file.

    Parameters
    ----------
    filename : str or Path
        Path to a .csv/.txt/.dat or .npy file
    column : int, optional
        Column for text files or 2-D arrays (default: 0)

    Returns
    -------
    samples : ndarray of float, shape (n,)

    Raises
    ------
    ValueError
        If the format is unsupported or the data is invalid (too short,
        NaN or Inf values)
    """
    path = Path(filename)
    suffix = path.suffix.lower()

    if suffix == '.npy':
        try:
            data = np.load(path, allow_pickle=False)
        except FileNotFoundError:
            raise ValueError(f"File not found: {filename}")
        except (OSError, ValueError) as e:
            raise ValueError(f"Error reading file {filename}: {e}")
        data = np.asarray(data, dtype=np.float64)
        if data.ndim == 2:
            if not 0 <= column < data.shape[1]:
                raise ValueError(
                    f"{filename} has {data.shape[1]} columns, column {column} requested"
                )
            data = data[:, column]
        elif data.ndim != 1:
            raise ValueError(f"Expected a 1-D or 2-D array in {filename}, got {data.ndim}-D")
        samples = data
    elif suffix in TEXT_SUFFIXES:
        samples = load_text_samples(path, column)
    else:
        raise ValueError(
            f"Unsupported file format '{suffix}'. Supported: "
            f"{', '.join(TEXT_SUFFIXES + ('.npy',))}"
        )

    if len(samples) < MIN_SAMPLES:
        raise ValueError(f"Capture must have at least {MIN_SAMPLES} samples, got {len(samples)}")

    if np.any(~np.isfinite(samples)):
        raise ValueError("Data contains NaN or Inf values")

    logger.info(f"Loaded {len(samples)} samples from {filename}")
    logger.info(f"Sample range: {samples.min():.4g} .. {samples.max():.4g}")
    return samples


def roi_num_points(buffer_size: int, skip_start: int, skip_end: int, skip_rate: int) -> int:
    """
    Number of samples left after trimming and decimating a capture.

    Equal to len(apply_roi(...)) for a capture of buffer_size samples.
    """
    return max((buffer_size - skip_start - skip_end + skip_rate - 1) // skip_rate, 0)


def apply_roi(
    samples: NDArray[np.float64],
    skip_start: int = 0,
    skip_end: int = 0,
    skip_rate: int = 1
) -> NDArray[np.float64]:
    """
    Restrict a capture to its region of interest.

    Drops skip_start samples at the beginning and skip_end at the end
    (ramp turn-around regions), then keeps every skip_rate-th sample. A
    session fitting the result must use the same skip_rate so that the
    model frequency stays in units of the full-rate sample index.

    Parameters
    ----------
    samples : ndarray
        Full capture
    skip_start, skip_end : int, optional
        Samples trimmed at both ends (default: 0)
    skip_rate : int, optional
        Decimation factor (default: 1)

    Returns
    -------
    roi : ndarray
        Copy of the selected samples

    Raises
    ------
    ValueError
        On negative trims, skip_rate < 1, or an empty region
    """
    if skip_start < 0 or skip_end < 0:
        raise ValueError(f"Trims must be >= 0, got start={skip_start}, end={skip_end}")
    if skip_rate < 1:
        raise ValueError(f"skip_rate must be >= 1, got {skip_rate}")

    samples = np.asarray(samples, dtype=np.float64)
    stop = len(samples) - skip_end
    if stop <= skip_start:
        raise ValueError(
            f"Region of interest is empty: {len(samples)} samples, "
            f"skip_start={skip_start}, skip_end={skip_end}"
        )

    roi = samples[skip_start:stop:skip_rate].copy()
    logger.debug(
        f"ROI: samples {skip_start}..{stop - 1} every {skip_rate} -> {len(roi)} points"
    )
    return roi


__all__ = [
    'load_text_samples',
    'load_samples',
    'roi_num_points',
    'apply_roi',
]
