"""
worldgen CLI Command Handlers

Each module implements handlers for a group of subcommands.
"""

from .base import BaseCommand, cli_exception_handler
from .worldfile_commands import WorldfileCommands

__all__ = ["BaseCommand", "cli_exception_handler", "WorldfileCommands"]
