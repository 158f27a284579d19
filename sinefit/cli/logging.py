"""
Custom logging configuration for the sfit CLI.

Each level gets its own handler, stream and prefix:
- DEBUG: stderr, "[DEBUG] " (only with -v)
- INFO: stdout, no prefix (hidden with -q)
- WARNING: stdout, "! "
- ERROR/CRITICAL: stderr, "!! "
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

LEVEL_PREFIXES = {
    logging.DEBUG: '[DEBUG] ',
    logging.INFO: '',
    logging.WARNING: '! ',
    logging.ERROR: '!! ',
    logging.CRITICAL: '!! ',
}

# Third-party loggers that flood the debug output (font cache, backends)
NOISY_LOGGERS = ('matplotlib', 'PIL')


# =============================================================================
# Formatter and Filter
# =============================================================================

class PrefixFormatter(logging.Formatter):
    """Formatter that prepends the per-level prefix to the bare message."""

    def format(self, record):
        message = record.getMessage()
        if record.exc_info and record.levelno == logging.DEBUG:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return f"{LEVEL_PREFIXES.get(record.levelno, '')}{message}"


class LevelFilter(logging.Filter):
    """Filter that accepts only specific log levels."""

    def __init__(self, levels: Sequence[int]):
        super().__init__()
        self.levels = set(levels)

    def filter(self, record):
        return record.levelno in self.levels


def _add_handler(root: logging.Logger, stream, levels: Sequence[int]) -> None:
    handler = logging.StreamHandler(stream)
    handler.setLevel(min(levels))
    handler.addFilter(LevelFilter(levels))
    handler.setFormatter(PrefixFormatter())
    root.addHandler(handler)


# =============================================================================
# Setup Functions
# =============================================================================

def setup_logging(args: argparse.Namespace) -> None:
    """
    Configure logging based on command line arguments.

    Output behavior:
    - Default: INFO + WARNING on stdout, ERROR on stderr
    - Quiet (-q): WARNING on stdout, ERROR on stderr (no INFO)
    - Verbose (-v): DEBUG on stderr + default behavior; -vv also shows
      matplotlib debug output

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments with 'quiet' and 'verbose' attributes
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Filtering happens per handler
    root_logger.handlers.clear()

    if args.verbose >= 1:
        _add_handler(root_logger, sys.stderr, [logging.DEBUG])
    if not args.quiet:
        _add_handler(root_logger, sys.stdout, [logging.INFO])
    _add_handler(root_logger, sys.stdout, [logging.WARNING])
    _add_handler(root_logger, sys.stderr, [logging.ERROR, logging.CRITICAL])

    noisy_level = logging.DEBUG if args.verbose >= 2 else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


def log_separator(length: int = 60, char: str = "=", title: Optional[str] = None) -> None:
    """
    Log a separator line, or a titled block framed by two separators.

    Parameters
    ----------
    length : int
        Length of separator line (default: 60)
    char : str
        Character to use for separator (default: "=")
    title : str, optional
        Heading logged between two separator lines
    """
    logger.info(char * length)
    if title is not None:
        logger.info(title)
        logger.info(char * length)
