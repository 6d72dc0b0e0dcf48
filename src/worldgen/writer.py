# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Hierarchical Writer

Writes the worldfile in one depth-first pass over the level tree:

    <world>             world_ID
    <n>                 num_basins
        <basin>         basin_ID
        ...             basin state variables
        <n>             num_hillslopes
            <hillslope> hillslope_ID
            ...
                        zone > patch > canopy stratum

Each line is ``<tabs><value>\\t\\t\\t<name>``, with one tab per nesting
level. The writer only reads resolved values; it never aggregates.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, TextIO

import numpy as np
import pandas as pd
from tqdm import tqdm

from .aggregation import AggregationResult
from .blocks import PatchBlock, PatchResolver, resolve_lines
from .exceptions import WorldfileWriteError
from .levels import LevelTree, UnitKey
from .template import Level, VariableDefinition

logger = logging.getLogger(__name__)

INDENT = '\t'
FIELD_SEPARATOR = '\t\t\t'


def format_value(value) -> str:
    """
    Render a number the way the simulator's reader expects it.

    Integral values are written as integers, everything else in fixed
    notation with seven significant digits. Integer digits are never
    dropped, so large values only lose fractional digits. Missing values
    become ``NA``.
    """
    if value is None or pd.isna(value):
        return 'NA'
    if isinstance(value, (bool, np.bool_, int, np.integer)):
        return str(int(value))
    value = float(value)
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    if abs(value) < 1:
        return np.format_float_positional(value, precision=7, unique=False, fractional=False, trim='-')
    digits = len(str(int(abs(value))))
    return np.format_float_positional(
        value, precision=max(7 - digits, 0), unique=False, fractional=True, trim='-'
    )


def format_line(depth: int, value, name: str) -> str:
    return f"{INDENT * depth}{format_value(value)}{FIELD_SEPARATOR}{name}\n"


class ProgressObserver(Protocol):
    """Notified as top-level units are written; independent of the sink."""

    def start(self, total: int) -> None:
        ...

    def advance(self) -> None:
        ...

    def finish(self) -> None:
        ...


class TqdmProgress:
    """Progress bar over hillslopes."""

    def __init__(self, desc: str = "Writing worldfile"):
        self.desc = desc
        self._bar = None

    def start(self, total: int) -> None:
        self._bar = tqdm(total=total, desc=self.desc, unit="hillslope")

    def advance(self) -> None:
        if self._bar is not None:
            self._bar.update(1)

    def finish(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


class WorldfileWriter:
    """
    Serialises the resolved hierarchy.

    Args:
        tree: Level traversal tree (fixes unit order).
        aggregates: Aggregated template variables.
        definitions: Template variables grouped by level.
        patch_resolver: Produces the patch blocks of each spatial patch.
        progress: Optional observer notified after each hillslope.
    """

    def __init__(
        self,
        tree: LevelTree,
        aggregates: AggregationResult,
        definitions: Dict[Level, List[VariableDefinition]],
        patch_resolver: PatchResolver,
        progress: Optional[ProgressObserver] = None,
    ):
        self.tree = tree
        self.aggregates = aggregates
        self.definitions = definitions
        self.patch_resolver = patch_resolver
        self.progress = progress

    def write(self, path: Path) -> Dict[str, int]:
        """
        Write the worldfile to ``path``.

        The file is closed on every exit path; after a failure the partial
        file is removed before the error propagates.

        Returns:
            Number of blocks written per level.
        """
        path = Path(path)
        try:
            with open(path, 'w', encoding='utf-8') as sink:
                counts = self.write_to(sink)
        except OSError as e:
            self._discard(path)
            raise WorldfileWriteError(f"Could not write worldfile {path}: {e}") from e
        except Exception:
            self._discard(path)
            raise
        logger.info(f"Created worldfile: {path}")
        return counts

    @staticmethod
    def _discard(path: Path) -> None:
        if path.exists():
            path.unlink()
            logger.error(f"Worldfile generation aborted; removed incomplete output {path}")

    def write_to(self, sink: TextIO) -> Dict[str, int]:
        counts = {'basin': 0, 'hillslope': 0, 'zone': 0, 'patch': 0, 'stratum': 0}
        world = self.tree.world_id
        world_key: UnitKey = (world,)
        basins = self.tree.children(world_key)

        if self.progress is not None:
            self.progress.start(len(self.tree.keys_at(Level.HILLSLOPE)))
        try:
            sink.write(format_line(0, world, 'world_ID'))
            sink.write(format_line(0, len(basins), 'num_basins'))
            for basin in basins:
                self._write_basin(sink, world_key + (basin,), counts)
        finally:
            if self.progress is not None:
                self.progress.finish()
        return counts

    def _write_unit(self, sink: TextIO, key: UnitKey, level: Level, id_name: str) -> None:
        depth = int(level) - 1
        sink.write(format_line(depth, key[-1], id_name))
        for value, name in resolve_lines(self.definitions[level], self.aggregates, key):
            sink.write(format_line(depth, value, name))

    def _write_basin(self, sink: TextIO, key: UnitKey, counts: Dict[str, int]) -> None:
        counts['basin'] += 1
        self._write_unit(sink, key, Level.BASIN, 'basin_ID')
        hillslopes = self.tree.children(key)
        sink.write(format_line(1, len(hillslopes), 'num_hillslopes'))
        for hillslope in hillslopes:
            self._write_hillslope(sink, key + (hillslope,), counts)
            if self.progress is not None:
                self.progress.advance()

    def _write_hillslope(self, sink: TextIO, key: UnitKey, counts: Dict[str, int]) -> None:
        counts['hillslope'] += 1
        self._write_unit(sink, key, Level.HILLSLOPE, 'hillslope_ID')
        zones = self.tree.children(key)
        sink.write(format_line(2, len(zones), 'num_zones'))
        for zone in zones:
            self._write_zone(sink, key + (zone,), counts)

    def _write_zone(self, sink: TextIO, key: UnitKey, counts: Dict[str, int]) -> None:
        counts['zone'] += 1
        self._write_unit(sink, key, Level.ZONE, 'zone_ID')
        blocks: List[PatchBlock] = []
        for patch in self.tree.children(key):
            blocks.extend(self.patch_resolver.resolve(key + (patch,)))
        sink.write(format_line(3, len(blocks), 'num_patches'))
        for block in blocks:
            self._write_patch(sink, block, counts)

    def _write_patch(self, sink: TextIO, block: PatchBlock, counts: Dict[str, int]) -> None:
        counts['patch'] += 1
        sink.write(format_line(4, block.patch_id, 'patch_ID'))
        if block.family_id is not None:
            sink.write(format_line(4, block.family_id, 'patch_family'))
        self._write_lines(sink, 4, block.lines)
        sink.write(format_line(4, len(block.strata), 'num_stratum'))
        for stratum in block.strata:
            counts['stratum'] += 1
            sink.write(format_line(5, stratum.stratum_id, 'canopy_strata_ID'))
            self._write_lines(sink, 5, stratum.lines)

    @staticmethod
    def _write_lines(sink: TextIO, depth: int, lines: Sequence) -> None:
        for value, name in lines:
            sink.write(format_line(depth, value, name))
