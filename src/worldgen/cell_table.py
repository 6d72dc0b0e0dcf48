# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Per-cell input table: one row per grid cell, one column per map.
"""

from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd

from .exceptions import InputError


@dataclass(frozen=True)
class CellTable:
    """
    Materialised grid data shared by every level and variable.

    Attributes:
        frame: One row per grid cell, columns keyed by map name.
        cell_width: Grid cell width in map units.
        cell_height: Grid cell height in map units.
    """
    frame: pd.DataFrame
    cell_width: float
    cell_height: float

    def __post_init__(self):
        if self.cell_width <= 0 or self.cell_height <= 0:
            raise InputError(
                f"Cell size must be positive, got {self.cell_width} x {self.cell_height}"
            )

    @property
    def cell_area(self) -> float:
        return float(self.cell_width) * float(self.cell_height)

    @property
    def cell_length(self) -> float:
        """Cell edge length reported to the flow network builder."""
        return float(self.cell_width)

    def __len__(self) -> int:
        return len(self.frame)

    def require_columns(self, columns: Iterable[str]) -> None:
        missing = [c for c in dict.fromkeys(columns) if c not in self.frame.columns]
        if missing:
            raise InputError(
                f"Map(s) referenced by the template are missing from the cell table: {', '.join(missing)}"
            )

    def column(self, name: str) -> np.ndarray:
        """Values of one map as a float array (missing values are NaN)."""
        self.require_columns([name])
        return pd.to_numeric(self.frame[name], errors='coerce').to_numpy(dtype=float)

    def subset(self, mask: np.ndarray) -> 'CellTable':
        """Table restricted to the cells where ``mask`` is True."""
        return CellTable(
            frame=self.frame.loc[mask].reset_index(drop=True),
            cell_width=self.cell_width,
            cell_height=self.cell_height,
        )
