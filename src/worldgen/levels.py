# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Level Hierarchy Deriver

Builds the per-cell level-ID matrix (world, basin, hillslope, zone, patch,
stratum) and the traversal tree the writer walks. Sibling order is the
order in which units first appear in the cell table, never numeric order,
because the worldfile lists units in that sequence.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .cell_table import CellTable
from .exceptions import HierarchyError, InputError, require
from .template import Level, LevelBoundary, Operand, as_number

logger = logging.getLogger(__name__)

LEVEL_COLUMNS: Tuple[str, ...] = ('world', 'basin', 'hillslope', 'zone', 'patch', 'stratum')

UnitKey = Tuple[int, ...]


@dataclass(frozen=True)
class LevelMatrix:
    """
    Level IDs of every in-domain cell.

    Attributes:
        ids: Integer array of shape (n_cells, 6), one column per level.
        cells: Cell table aligned row-for-row with ``ids``.
        rule_ids: Per-cell aspatial rule ID (NaN where unset), or None when
            aspatial patches are not in use.
    """
    ids: np.ndarray
    cells: CellTable
    rule_ids: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return self.ids.shape[0]

    @property
    def has_rule_column(self) -> bool:
        return self.rule_ids is not None

    def column(self, level: Level) -> np.ndarray:
        return self.ids[:, level - 1]

    def key_frame(self, depth: int) -> pd.DataFrame:
        """Level-ID columns from world down to ``depth`` (inclusive)."""
        return pd.DataFrame(self.ids[:, :depth], columns=list(LEVEL_COLUMNS[:depth]))

    def patch_rule_ids(self) -> Dict[UnitKey, List[float]]:
        """Distinct rule IDs found under each spatial patch."""
        if self.rule_ids is None:
            return {}
        frame = self.key_frame(Level.PATCH)
        frame['rule'] = self.rule_ids
        grouped = frame.groupby(list(LEVEL_COLUMNS[:Level.PATCH]), sort=False)['rule']
        return {
            tuple(int(k) for k in key): list(values)
            for key, values in grouped.unique().items()
        }


class LevelTree:
    """
    Hierarchy traversal state.

    For every unit (addressed by its full key from world down) keeps the
    distinct child IDs in first-seen order.
    """

    def __init__(self, matrix: LevelMatrix):
        self._children: Dict[UnitKey, Dict[int, None]] = {}
        unique_rows = pd.DataFrame(matrix.ids).drop_duplicates()
        for row in unique_rows.itertuples(index=False, name=None):
            row = tuple(int(v) for v in row)
            for depth in range(len(LEVEL_COLUMNS)):
                self._children.setdefault(row[:depth], {})[row[depth]] = None
        self._validate()

    def _validate(self):
        worlds = self.children(())
        require(
            len(worlds) == 1,
            f"Expected exactly one world ID in the cell table, found {len(worlds)}: {worlds}",
            HierarchyError,
        )
        for key in self.keys_at(Level.PATCH):
            strata = self.children(key)
            if len(strata) != 1:
                raise HierarchyError(
                    f"Patch {key[-1]} (basin {key[1]}, hillslope {key[2]}, zone {key[3]}) "
                    f"has {len(strata)} canopy stratum IDs {strata}; expected exactly one"
                )

    def children(self, key: UnitKey) -> List[int]:
        return list(self._children.get(tuple(key), {}))

    @property
    def world_id(self) -> int:
        return self.children(())[0]

    def keys_at(self, level: Level) -> List[UnitKey]:
        """Full keys of every unit at ``level``, in traversal order."""
        keys: List[UnitKey] = [()]
        for _ in range(level):
            keys = [key + (child,) for key in keys for child in self.children(key)]
        return keys

    def stratum_id(self, patch_key: UnitKey) -> int:
        return self.children(patch_key)[0]

    def counts(self) -> Dict[str, int]:
        """Number of distinct units at every level."""
        return {name: len(self.keys_at(Level(i + 1))) for i, name in enumerate(LEVEL_COLUMNS)}


@dataclass
class LevelHierarchyDeriver:
    """
    Derives the LevelMatrix from the cell table.

    Args:
        boundary: Level markers naming the level-ID map of each level.
    """
    boundary: LevelBoundary
    dropped_cells: int = field(default=0, init=False)

    def derive(self, cells: CellTable, rule_source: Optional[Operand] = None) -> LevelMatrix:
        """
        Build the level matrix.

        Cells with a missing level ID lie outside the modelled domain and are
        dropped (together with their rows in the cell table).

        Args:
            cells: Cell table holding every level-ID map.
            rule_source: ``asp_rule`` operand when aspatial patches are active;
                a number applies to every cell, a string names a map column.
        """
        level_maps = self.boundary.level_maps
        cells.require_columns(level_maps)

        raw = np.column_stack([cells.column(map_name) for map_name in level_maps])
        in_domain = ~np.isnan(raw).any(axis=1)
        self.dropped_cells = int((~in_domain).sum())
        if self.dropped_cells:
            logger.info(f"Dropping {self.dropped_cells} cells with missing level IDs")
        if not in_domain.any():
            raise InputError("No cell carries a complete set of level IDs")

        domain_cells = cells.subset(in_domain) if self.dropped_cells else cells
        ids = raw[in_domain].astype(np.int64)

        rule_ids = None
        if rule_source is not None:
            constant = as_number(rule_source)
            if constant is not None:
                rule_ids = np.full(ids.shape[0], constant, dtype=float)
                logger.info(f"Using aspatial rule {constant:g} for every cell")
            else:
                rule_ids = domain_cells.column(str(rule_source))
                logger.info(f"Reading aspatial rule IDs from map '{rule_source}'")

        logger.debug(f"Level matrix built: {ids.shape[0]} cells x {ids.shape[1]} levels")
        return LevelMatrix(ids=ids, cells=domain_cells, rule_ids=rule_ids)
