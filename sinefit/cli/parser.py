"""
Argument parsing for the sfit CLI.

Options are grouped:
- Input/Output options
- Region of interest
- Model and initial guess
- Solver options
- Synthetic data
"""

import argparse

from ..version import get_version_string
from ..fitting import ModelVariant


class OnePerLineHelpFormatter(argparse.RawDescriptionHelpFormatter):
    """Custom formatter that puts each option on a separate line in usage."""

    def _format_usage(self, usage, actions, groups, prefix):
        if prefix is None:
            prefix = 'usage: '

        if usage is not None:
            usage = usage % dict(prog=self._prog)
            return f'{prefix}{usage}\n\n'

        prog = '%(prog)s' % dict(prog=self._prog)
        indent = ' ' * (len(prefix) + len(prog) + 1)
        lines = [f'{prefix}{prog}']

        for action in actions:
            if action.option_strings:
                option = action.option_strings[0]
                if action.nargs == 0:
                    lines.append(f'{indent}[{option}]')
                else:
                    metavar = action.metavar or action.dest.upper()
                    lines.append(f'{indent}[{option} {metavar}]')
            elif action.dest != 'help':
                if action.nargs == '?':
                    lines.append(f'{indent}[{action.dest}]')
                else:
                    lines.append(f'{indent}{action.dest}')

        return '\n'.join(lines) + '\n\n'


def build_parser() -> argparse.ArgumentParser:
    """
    Build the sfit argument parser.

    Options that can also come from a --config file default to None so
    that the handler can tell "not given" from an explicit value.
    """
    parser = argparse.ArgumentParser(
        prog='sfit',
        description=f'Sinusoid fitting of oscilloscope captures ({get_version_string()})',
        usage='sfit [input] [options]',
        formatter_class=OnePerLineHelpFormatter,
        epilog="""
Examples:
  sfit                                   Synthetic capture demo
  sfit --model chirp --noise 50          Demo with a chirped fringe
  sfit capture.csv --guess 1000,2e-3,0,2000
                                         Fit a capture
  sfit capture.npy --config rp.toml      Region of interest and solver
                                         settings from [multifit]
        """
    )

    parser.add_argument('--version', action='version',
                        version=f'%(prog)s {get_version_string()}')

    # ==========================================================================
    # Input/Output Group
    # ==========================================================================
    io_group = parser.add_argument_group('Input/Output')

    io_group.add_argument('input', nargs='?', default=None,
                          help='Capture file (.csv, .txt, .dat or .npy). '
                               'Without argument, a synthetic capture is used.')
    io_group.add_argument('--column', type=int, default=0,
                          help='Column of a multi-column capture file (default: 0)')
    io_group.add_argument('--config', type=str, default=None, metavar='TOML',
                          help='Read region of interest and solver settings from '
                               'the [multifit] table of a TOML file')

    io_group.add_argument('--save', '-s', type=str, default=None,
                          help='Save plots to files with this prefix')
    io_group.add_argument('--format', '-f', type=str, default='png',
                          choices=['png', 'pdf', 'svg', 'eps'],
                          help='Output format for saved plots (default: png)')
    io_group.add_argument('--no-show', action='store_true',
                          help='Do not display plots (useful with --save)')
    io_group.add_argument('--no-plot', action='store_true',
                          help='Do not create plots at all')

    io_group.add_argument('--verbose', '-v', action='count', default=0,
                          help='Show debug messages on stderr (solver trace)')
    io_group.add_argument('--quiet', '-q', action='store_true',
                          help='Quiet mode - hide INFO messages, show only warnings and errors')

    # ==========================================================================
    # Region of Interest Group
    # ==========================================================================
    roi_group = parser.add_argument_group('Region of Interest')

    roi_group.add_argument('--skip-start', type=int, default=None, metavar='N',
                           help='Drop N samples at the start of the capture (default: 0)')
    roi_group.add_argument('--skip-end', type=int, default=None, metavar='N',
                           help='Drop N samples at the end of the capture (default: 0)')
    roi_group.add_argument('--skip-rate', type=int, default=None, metavar='N',
                           help='Fit every N-th sample (default: 1; demo: 16)')

    # ==========================================================================
    # Model Group
    # ==========================================================================
    model_group = parser.add_argument_group('Model')

    model_group.add_argument('--model', '-m', type=str, default=None,
                             choices=[v.value for v in ModelVariant],
                             help='Sinusoid model (default: amplitude_phase)')
    model_group.add_argument('--guess', '-g', type=str, default=None,
                             help='Initial guess, comma-separated in model parameter '
                                  'order, e.g. 1000,2e-3,0,2000 for amplitude_phase '
                                  '[A, freq, phase, offset]. Frequency in rad per '
                                  'raw sample. Required for file input unless the '
                                  'config file has one.')

    # ==========================================================================
    # Solver Group
    # ==========================================================================
    solver_group = parser.add_argument_group('Solver')

    solver_group.add_argument('--max-iterations', type=int, default=None,
                              help='Maximum solver iterations (default: 32)')
    solver_group.add_argument('--xtol', type=float, default=None,
                              help='Step tolerance (default: 1e-8)')
    solver_group.add_argument('--gtol', type=float, default=None,
                              help='Gradient tolerance (default: 1e-8)')
    solver_group.add_argument('--ftol', type=float, default=None,
                              help='Residual reduction tolerance (default: 1e-8)')
    solver_group.add_argument('--max-av-ratio', type=float, default=None,
                              help='Maximum acceleration/velocity ratio (default: 1.5)')
    solver_group.add_argument('--no-accel', action='store_true',
                              help='Disable geodesic acceleration (first-order steps)')
    solver_group.add_argument('--low-contrast', type=float, default=None, metavar='AMPLITUDE',
                              help='Low-contrast amplitude threshold (default: 100)')

    # ==========================================================================
    # Synthetic Data Group
    # ==========================================================================
    synth_group = parser.add_argument_group('Synthetic Data')

    synth_group.add_argument('--noise', type=float, default=20.0,
                             help='Noise standard deviation of the demo capture '
                                  '(default: 20)')
    synth_group.add_argument('--seed', type=int, default=None,
                             help='Random seed for the demo noise')

    return parser


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Parameters
    ----------
    argv : list of str, optional
        Arguments (default: sys.argv[1:])

    Returns
    -------
    args : argparse.Namespace
        Parsed command line arguments
    """
    return build_parser().parse_args(argv)
