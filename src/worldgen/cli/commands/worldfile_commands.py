"""
Worldfile CLI command handlers.

Provides the ``worldgen generate`` and ``worldgen inspect`` subcommands.
"""

import logging
from argparse import Namespace

from ...aspatial import AspatialPatchExpander
from ...generator import WorldfileGenerator
from ...writer import TqdmProgress
from ..exit_codes import ExitCode
from .base import BaseCommand, cli_exception_handler

logger = logging.getLogger(__name__)


class WorldfileCommands(BaseCommand):
    """Command handlers for worldfile generation."""

    @staticmethod
    @cli_exception_handler
    def generate(args: Namespace) -> int:
        """Build the worldfile described by the configuration."""
        config = WorldfileCommands.load_config(args)
        progress = TqdmProgress() if config.show_progress else None

        generator = WorldfileGenerator.from_config(config, progress=progress)
        result = generator.generate(config.worldfile_path, overwrite=config.overwrite)

        summary = ', '.join(f"{count} {level}" for level, count in result.counts.items())
        print(f"Worldfile written to {result.worldfile} ({summary})")
        return ExitCode.SUCCESS

    @staticmethod
    @cli_exception_handler
    def inspect(args: Namespace) -> int:
        """Report unit counts and the aggregation plan without writing."""
        config = WorldfileCommands.load_config(args)
        plan = WorldfileGenerator.from_config(config).build()

        print("Level hierarchy:")
        for level, count in plan.tree.counts().items():
            print(f"  {level:<10} {count}")

        print("Template variables:")
        for definition in plan.definitions:
            status = 'skipped' if plan.aggregates.is_skipped(definition) else definition.kind.value
            operands = ' '.join(str(op) for op in definition.operands)
            print(f"  {definition.line:>4}  {definition.level.marker_name:<10} "
                  f"{definition.name:<28} {status:<8} {operands}")

        mode = 'aspatial' if isinstance(plan.patch_resolver, AspatialPatchExpander) else 'spatial'
        print(f"Patch mode: {mode}")
        return ExitCode.SUCCESS

    @staticmethod
    def execute(args: Namespace) -> int:
        return WorldfileCommands.generate(args)
