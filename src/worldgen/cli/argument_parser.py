"""
worldgen CLI Argument Parser.

Builds the command-line parser. Every subcommand shares the global options
(--config, --debug) through a parent parser:

    worldgen generate --config worldgen.yaml [--overwrite] [--no-progress]
    worldgen inspect --config worldgen.yaml
"""

import argparse
from typing import List, Optional

try:
    from worldgen.worldgen_version import __version__
except ImportError:
    __version__ = "0+unknown"


class CLIParser:
    """
    Main CLI parser.

    Attributes:
        common_parser: Parent parser with global options (--config, --debug)
        parser: Main argument parser with all subcommands registered
    """

    def __init__(self):
        """Initialize the CLI parser with common options and all subcommands."""
        self.common_parser = self._create_common_parser()
        self.parser = self._create_parser()

    def _create_common_parser(self) -> argparse.ArgumentParser:
        """Create a parent parser with common arguments."""
        # Use SUPPRESS to avoid overwriting global flags with subcommand defaults
        parser = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)

        parser.add_argument('--config', type=str,
                            help='Path to configuration file (default: ./worldgen.yaml)')
        parser.add_argument('--debug', action='store_true',
                            help='Enable debug logging')
        return parser

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the main parser with global options and subparsers."""
        parser = argparse.ArgumentParser(
            prog='worldgen',
            description='RHESSys worldfile generator',
            formatter_class=argparse.RawDescriptionHelpFormatter,
            parents=[self.common_parser],
            epilog="""
Examples:
  worldgen generate --config worldgen.yaml
  worldgen generate --config worldgen.yaml --overwrite --no-progress
  worldgen inspect --config worldgen.yaml

For more help on a specific command:
  worldgen <action> --help
"""
        )

        parser.add_argument('--version', action='version',
                            version=f'worldgen {__version__}')

        subparsers = parser.add_subparsers(
            dest='action',
            required=True,
            help='Action',
            metavar='<action>'
        )
        self._register_worldfile_commands(subparsers)
        return parser

    def _register_worldfile_commands(self, subparsers):
        """Register worldfile commands."""
        from .commands import WorldfileCommands

        generate_parser = subparsers.add_parser(
            'generate',
            help='Generate a worldfile',
            description='Build a worldfile from the configured template and cell table',
            parents=[self.common_parser]
        )
        generate_parser.add_argument('--overwrite', action='store_true',
                                     help='Replace an existing worldfile')
        generate_parser.add_argument('--no-progress', action='store_true', dest='no_progress',
                                     help='Disable the progress bar')
        generate_parser.set_defaults(func=WorldfileCommands.generate)

        inspect_parser = subparsers.add_parser(
            'inspect',
            help='Show the level hierarchy and aggregation plan',
            description='Report unit counts and template variables without writing a worldfile',
            parents=[self.common_parser]
        )
        inspect_parser.set_defaults(func=WorldfileCommands.inspect)

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """
        Parse command-line arguments.

        Args:
            args: List of argument strings (for testing). If None, uses sys.argv.

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)
