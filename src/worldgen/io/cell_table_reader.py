# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Cell table readers.

Two sources are supported:
- Tabular files (CSV or Parquet) with one row per grid cell; the cell size
  comes from configuration.
- A directory of single-band GeoTIFFs named ``<map>.tif``; rasters are
  flattened row-major, nodata becomes NaN and the cell size is read from
  the raster resolution.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
import pandas as pd
import rasterio

from ..cell_table import CellTable
from ..exceptions import InputError, worldgen_error_handler

logger = logging.getLogger(__name__)

RASTER_SUFFIXES = ('.tif', '.tiff')


def read_tabular_cell_table(path: Path, cell_width: float, cell_height: float,
                            columns: Optional[Iterable[str]] = None, fmt: str = 'auto') -> CellTable:
    """
    Read a CSV or Parquet cell table.

    Args:
        path: Table file.
        cell_width: Grid cell width.
        cell_height: Grid cell height.
        columns: Maps that must be present.
        fmt: ``csv``, ``parquet`` or ``auto`` (``.parquet``/``.pq`` suffixes
            are read as Parquet, anything else as CSV).
    """
    path = Path(path)
    if not path.is_file():
        raise InputError(f"Cell table not found: {path}")

    with worldgen_error_handler(f"reading cell table {path}", logger, error_type=InputError):
        if fmt == 'parquet' or (fmt == 'auto' and path.suffix.lower() in ('.parquet', '.pq')):
            frame = pd.read_parquet(path)
        else:
            frame = pd.read_csv(path)

    table = CellTable(frame=frame, cell_width=float(cell_width), cell_height=float(cell_height))
    if columns is not None:
        table.require_columns(columns)
    logger.info(f"Loaded cell table {path.name}: {len(frame)} cells, {frame.shape[1]} maps")
    return table


def _raster_path(directory: Path, name: str) -> Path:
    for suffix in RASTER_SUFFIXES:
        candidate = directory / f"{name}{suffix}"
        if candidate.is_file():
            return candidate
    raise InputError(f"No raster for map '{name}' in {directory} (looked for {name}.tif/.tiff)")


def read_raster_cell_table(directory: Path, maps: Iterable[str]) -> CellTable:
    """
    Stack GeoTIFF maps into a cell table.

    All rasters must share one shape and resolution so that every cell has
    a consistent level assignment.

    Raises:
        InputError: If a raster is missing or the grids disagree.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise InputError(f"Raster directory not found: {directory}")

    columns = {}
    shape = None
    resolution = None
    for name in dict.fromkeys(maps):
        path = _raster_path(directory, name)
        with rasterio.open(path) as src:
            band = src.read(1, masked=True)
            grid_shape = (src.height, src.width)
            grid_res = tuple(abs(r) for r in src.res)

        if shape is None:
            shape, resolution = grid_shape, grid_res
        elif grid_shape != shape or not np.allclose(grid_res, resolution):
            raise InputError(
                f"Map '{name}' has grid {grid_shape} at resolution {grid_res}; expected "
                f"{shape} at {resolution} like the other maps"
            )
        columns[name] = np.ma.filled(band.astype(float), np.nan).ravel()

    if shape is None:
        raise InputError("No maps requested from the raster directory")

    logger.info(
        f"Loaded {len(columns)} rasters from {directory}: {shape[0]}x{shape[1]} cells "
        f"at {resolution[0]:g} x {resolution[1]:g}"
    )
    return CellTable(frame=pd.DataFrame(columns), cell_width=resolution[0], cell_height=resolution[1])


def read_cell_table(path: Path, maps: Iterable[str], fmt: str = 'auto',
                    cell_width: Optional[float] = None,
                    cell_height: Optional[float] = None) -> CellTable:
    """
    Read a cell table from a table file or a raster directory.

    Args:
        path: Table file or GeoTIFF directory.
        maps: Maps the template references.
        fmt: ``auto``, ``csv``, ``parquet`` or ``geotiff``; ``auto`` picks
            ``geotiff`` for directories and the file suffix otherwise.
        cell_width: Cell width for tabular inputs.
        cell_height: Cell height for tabular inputs (defaults to the width).
    """
    path = Path(path)
    maps = list(maps)
    if fmt == 'geotiff' or (fmt == 'auto' and path.is_dir()):
        return read_raster_cell_table(path, maps)

    if cell_width is None:
        raise InputError("CELL_WIDTH is required for tabular cell tables")
    height = cell_height if cell_height is not None else cell_width
    return read_tabular_cell_table(path, cell_width, height, columns=maps, fmt=fmt)
