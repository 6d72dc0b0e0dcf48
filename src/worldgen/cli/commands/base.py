"""
Base command class for worldgen CLI commands.

Provides configuration loading, logging setup and the exception handling
every command handler shares.
"""

import functools
import logging
import os
import sys
from abc import ABC, abstractmethod
from argparse import Namespace
from pathlib import Path
from typing import Any, Callable, Dict

from ...config import WorldGenConfig
from ...exceptions import ConfigurationError, WorldGenError
from ...logging_setup import configure_logging
from ..exit_codes import ExitCode

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.environ.get('WORLDGEN_DEFAULT_CONFIG', './worldgen.yaml')


def cli_exception_handler(func: Callable[[Namespace], int]) -> Callable[[Namespace], int]:
    """
    Turn exceptions raised by a command handler into exit codes.

    Exit codes:
    - ConfigurationError or a missing config file: ExitCode.CONFIG_ERROR
    - Any other WorldGenError: ExitCode.ERROR
    - KeyboardInterrupt: ExitCode.INTERRUPTED

    Each failure is reported as one line on stderr.
    """
    @functools.wraps(func)
    def wrapper(args: Namespace) -> int:
        try:
            return func(args)
        except KeyboardInterrupt:
            print("\nInterrupted by user", file=sys.stderr)
            return ExitCode.INTERRUPTED
        except (ConfigurationError, FileNotFoundError) as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return ExitCode.CONFIG_ERROR
        except WorldGenError as e:
            print(f"Error: {e}", file=sys.stderr)
            if getattr(args, 'debug', False):
                logger.exception("Worldfile generation failed")
            return ExitCode.ERROR
    return wrapper


class BaseCommand(ABC):
    """
    Base class for all CLI command handlers.

    Provides common functionality for loading configuration and setting up
    logging before a command runs.
    """

    @staticmethod
    def get_config_path(args: Namespace) -> Path:
        """Configuration file from ``--config``, falling back to DEFAULT_CONFIG_PATH."""
        if getattr(args, 'config', None):
            return Path(args.config)
        return Path(DEFAULT_CONFIG_PATH)

    @staticmethod
    def cli_overrides(args: Namespace) -> Dict[str, Any]:
        """Configuration keys set by command-line flags."""
        overrides: Dict[str, Any] = {}
        if getattr(args, 'overwrite', False):
            overrides['OVERWRITE'] = True
        if getattr(args, 'no_progress', False):
            overrides['SHOW_PROGRESS'] = False
        if getattr(args, 'debug', False):
            overrides['LOG_LEVEL'] = 'DEBUG'
        return overrides

    @classmethod
    def load_config(cls, args: Namespace) -> WorldGenConfig:
        """
        Load the configuration and configure logging from it.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the configuration is invalid.
        """
        config = WorldGenConfig.from_file(cls.get_config_path(args), overrides=cls.cli_overrides(args))
        configure_logging(config.log_level, config.log_file)
        logger.debug(f"Loaded configuration from {cls.get_config_path(args)}")
        return config

    @staticmethod
    @abstractmethod
    def execute(args: Namespace) -> int:
        """
        Execute the command.

        Args:
            args: Parsed arguments namespace

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        pass
