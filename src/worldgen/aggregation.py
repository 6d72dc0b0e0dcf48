# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Variable Aggregator

Reduces per-cell map values to one value per level unit for every template
variable. The grouping key is the level-ID columns from world down to the
level the variable is declared under; variables declared below the strata
marker are aggregated once per stratum index.

Supported operators:
    value   literal number
    dvalue  literal truncated to an integer
    aver    arithmetic mean of a map
    mode    most frequent map value (ties go to the value seen first)
    eqn     mean of a map times a literal scale factor
    spavg   circular mean of a degree-valued map, in [0, 360)
    area    number of cells times the cell area
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from .exceptions import AggregationError, TemplateError
from .levels import LEVEL_COLUMNS, LevelMatrix, UnitKey
from .template import AggregationKind, VariableDefinition, as_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregatedVariable:
    """
    Aggregated values of one variable for one stratum index.

    Exactly one of ``scalar`` (same value everywhere) or ``values`` (value per
    level-ID key of the variable's declared depth) is set.
    """
    definition: VariableDefinition
    stratum: int = 1
    scalar: Optional[float] = None
    values: Optional[Mapping[UnitKey, float]] = None

    @property
    def is_scalar(self) -> bool:
        return self.values is None

    @property
    def depth(self) -> int:
        return int(self.definition.level)

    def lookup(self, key: UnitKey) -> float:
        """
        Value for the unit addressed by ``key`` (world first).

        Keys longer than the declared depth are truncated, so a patch key
        can be used to read a zone-level variable.

        Raises:
            AggregationError: If no group matches the key.
        """
        if self.values is None:
            return self.scalar
        if len(key) < self.depth:
            raise AggregationError(
                f"Key {key} is too short for '{self.definition.name}' "
                f"(template line {self.definition.line}, depth {self.depth})"
            )
        try:
            return self.values[tuple(key[:self.depth])]
        except KeyError:
            raise AggregationError(
                f"No aggregated value of '{self.definition.name}' (template line "
                f"{self.definition.line}, stratum {self.stratum}) for level IDs {tuple(key[:self.depth])}"
            ) from None


class AggregationResult:
    """Aggregated variables addressed by VariableDefinition.key and stratum index."""

    def __init__(
        self,
        variables: Dict[str, Dict[int, AggregatedVariable]],
        skipped: List[VariableDefinition],
    ):
        self._variables = variables
        self.skipped = list(skipped)
        self._skipped_keys = {d.key for d in skipped}

    def __contains__(self, definition: VariableDefinition) -> bool:
        return definition.key in self._variables

    def __len__(self) -> int:
        return len(self._variables)

    def is_skipped(self, definition: VariableDefinition) -> bool:
        return definition.key in self._skipped_keys

    def get(self, definition: VariableDefinition, stratum: int = 1) -> AggregatedVariable:
        try:
            return self._variables[definition.key][stratum]
        except KeyError:
            raise AggregationError(
                f"'{definition.name}' (template line {definition.line}) has no aggregate "
                f"for stratum {stratum}"
            ) from None

    def value(self, definition: VariableDefinition, key: UnitKey, stratum: int = 1) -> float:
        return self.get(definition, stratum).lookup(key)


class VariableAggregator:
    """
    Computes an AggregatedVariable for every template variable.

    Args:
        matrix: Level matrix with its aligned cell table.
        stratum_count: Canopy strata declared on the strata marker.
    """

    def __init__(self, matrix: LevelMatrix, stratum_count: int = 1):
        self.matrix = matrix
        self.stratum_count = stratum_count
        self._aggregators: Dict[AggregationKind, Callable] = {
            AggregationKind.VALUE: self._value,
            AggregationKind.DVALUE: self._dvalue,
            AggregationKind.AVER: self._aver,
            AggregationKind.MODE: self._mode,
            AggregationKind.EQN: self._eqn,
            AggregationKind.SPAVG: self._spavg,
            AggregationKind.AREA: self._area,
        }

    def aggregate(self, definitions: List[VariableDefinition]) -> AggregationResult:
        """
        Aggregate every definition.

        Unsupported operators are logged and skipped; every other failure is
        fatal.
        """
        variables: Dict[str, Dict[int, AggregatedVariable]] = {}
        skipped: List[VariableDefinition] = []

        for definition in definitions:
            if definition.kind == AggregationKind.UNSUPPORTED:
                logger.warning(
                    f"Unexpected operator '{definition.operator}' for '{definition.name}' "
                    f"on template line {definition.line}; variable skipped"
                )
                skipped.append(definition)
                continue

            strata = range(1, self.stratum_count + 1) if definition.is_stratum else range(1, 2)
            variables[definition.key] = {
                s: self.aggregate_variable(definition, s) for s in strata
            }

        logger.info(
            f"Aggregated {len(variables)} template variables"
            + (f" ({len(skipped)} skipped)" if skipped else "")
        )
        return AggregationResult(variables, skipped)

    def aggregate_variable(self, definition: VariableDefinition, stratum: int = 1) -> AggregatedVariable:
        aggregator = self._aggregators[definition.kind]
        return aggregator(definition, stratum)

    # ------------------------------------------------------------------
    # Grouping helpers
    # ------------------------------------------------------------------

    def _frame(self, definition: VariableDefinition, values: np.ndarray) -> pd.DataFrame:
        frame = self.matrix.key_frame(int(definition.level))
        frame['x'] = values
        return frame

    @staticmethod
    def _group_columns(definition: VariableDefinition) -> List[str]:
        return list(LEVEL_COLUMNS[:int(definition.level)])

    def _grouped(self, definition: VariableDefinition, values: np.ndarray):
        frame = self._frame(definition, values)
        return frame.groupby(self._group_columns(definition), sort=False)['x']

    @staticmethod
    def _to_mapping(series: pd.Series) -> Mapping[UnitKey, float]:
        mapping = {}
        for key, value in series.items():
            key = key if isinstance(key, tuple) else (key,)
            mapping[tuple(int(k) for k in key)] = float(value)
        return MappingProxyType(mapping)

    def _mapped(self, definition: VariableDefinition, stratum: int, series: pd.Series) -> AggregatedVariable:
        return AggregatedVariable(definition=definition, stratum=stratum, values=self._to_mapping(series))

    def _map_values(self, definition: VariableDefinition, stratum: int) -> np.ndarray:
        return self.matrix.cells.column(definition.map_for(stratum))

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    @staticmethod
    def _literal(definition: VariableDefinition, stratum: int) -> float:
        operand = definition.operand_for(stratum)
        number = as_number(operand)
        if number is None:
            raise TemplateError(
                f"\"{operand}\" on template line {definition.line} is not a valid value."
            )
        return number

    def _value(self, definition, stratum):
        return AggregatedVariable(definition=definition, stratum=stratum,
                                  scalar=self._literal(definition, stratum))

    def _dvalue(self, definition, stratum):
        return AggregatedVariable(definition=definition, stratum=stratum,
                                  scalar=int(self._literal(definition, stratum)))

    def _aver(self, definition, stratum):
        grouped = self._grouped(definition, self._map_values(definition, stratum))
        return self._mapped(definition, stratum, grouped.mean())

    def _mode(self, definition, stratum):
        grouped = self._grouped(definition, self._map_values(definition, stratum))
        return self._mapped(definition, stratum, grouped.agg(first_mode))

    def _eqn(self, definition, stratum):
        scale = definition.eqn_scale
        grouped = self._grouped(definition, self._map_values(definition, stratum))
        return self._mapped(definition, stratum, grouped.mean() * scale)

    def _spavg(self, definition, stratum):
        radians = np.radians(self._map_values(definition, stratum))
        sin_mean = self._grouped(definition, np.sin(radians)).mean()
        cos_mean = self._grouped(definition, np.cos(radians)).mean()
        degrees = np.degrees(np.arctan2(sin_mean, cos_mean))
        return self._mapped(definition, stratum, normalize_degrees(degrees))

    def _area(self, definition, stratum):
        frame = self._frame(definition, np.ones(len(self.matrix)))
        counts = frame.groupby(self._group_columns(definition), sort=False).size()
        return self._mapped(definition, stratum, counts * self.matrix.cells.cell_area)


def first_mode(values: pd.Series) -> float:
    """Most frequent value; on ties, the one that appears first."""
    values = values.dropna().to_numpy()
    if values.size == 0:
        return np.nan
    codes, uniques = pd.factorize(values)
    return float(uniques[np.argmax(np.bincount(codes))])


def normalize_degrees(degrees: pd.Series) -> pd.Series:
    """Shift atan2 output from (-180, 180] into [0, 360)."""
    degrees = degrees.where(degrees >= 0, degrees + 360.0)
    return degrees.mask(np.isclose(degrees, 360.0, rtol=0.0, atol=1e-9), 0.0)
