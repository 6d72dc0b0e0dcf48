# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Parsed worldfile template model.

A template is an ordered list of entries. Six level markers
(world > basin > hillslope > zone > patch > strata) split it into
contiguous ranges; every variable line belongs to the level whose marker
most recently precedes it.

- LevelMarker / VariableLine / ParsedTemplate: the parsed input (Pydantic)
- Level, AggregationKind: closed enumerations
- LevelBoundary: the six markers and their template positions
- VariableDefinition: one variable line resolved against the boundary
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Set, Tuple, Union

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import TemplateError

logger = logging.getLogger(__name__)

# Entries are told apart by their fields, so unknown keys must be rejected
TEMPLATE_CONFIG = ConfigDict(extra='forbid', populate_by_name=True, frozen=True)

Operand = Union[int, float, str]


class Level(IntEnum):
    """Nesting depth of a spatial level (world is the coarsest)."""
    WORLD = 1
    BASIN = 2
    HILLSLOPE = 3
    ZONE = 4
    PATCH = 5
    STRATUM = 6

    @property
    def marker_name(self) -> str:
        return LEVEL_MARKER_NAMES[self]


LEVEL_MARKER_NAMES: Dict[Level, str] = {
    Level.WORLD: 'world',
    Level.BASIN: 'basin',
    Level.HILLSLOPE: 'hillslope',
    Level.ZONE: 'zone',
    Level.PATCH: 'patch',
    Level.STRATUM: 'strata',
}

_MARKER_ALIASES = {'stratum': 'strata'}


class AggregationKind(Enum):
    """Closed set of template operators."""
    VALUE = 'value'
    DVALUE = 'dvalue'
    AVER = 'aver'
    MODE = 'mode'
    EQN = 'eqn'
    SPAVG = 'spavg'
    AREA = 'area'
    UNSUPPORTED = 'unsupported'

    @classmethod
    def from_operator(cls, operator: str) -> 'AggregationKind':
        """Map a template operator keyword to its kind, UNSUPPORTED if unknown."""
        try:
            kind = cls(operator.strip().lower())
        except ValueError:
            return cls.UNSUPPORTED
        return kind

    @property
    def is_literal(self) -> bool:
        return self in (AggregationKind.VALUE, AggregationKind.DVALUE)


def as_number(operand: Operand) -> Optional[float]:
    """Return the operand as a finite float, or None if it is not a usable number."""
    if isinstance(operand, bool):
        return None
    if isinstance(operand, (int, float)):
        number = float(operand)
        return number if math.isfinite(number) else None
    try:
        number = float(str(operand).strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


class LevelMarker(BaseModel):
    """Level separator line: ``_<level> <map> [<count>]``."""
    model_config = TEMPLATE_CONFIG

    level: str = Field(..., description='Level name (world, basin, hillslope, zone, patch, strata)')
    map: str = Field(..., description='Cell table column holding the level IDs')
    count: int = Field(default=1, ge=1, description='Number of canopy strata (strata marker only)')

    @field_validator('level')
    @classmethod
    def normalize_level(cls, v):
        name = v.strip().lstrip('_').lower()
        return _MARKER_ALIASES.get(name, name)


class VariableLine(BaseModel):
    """State variable line: ``<name> <operator> <operands...>``."""
    model_config = TEMPLATE_CONFIG

    name: str
    operator: str
    operands: List[Operand] = Field(default_factory=list)


class ParsedTemplate(BaseModel):
    """Ordered template entries as produced by the template parser."""
    model_config = TEMPLATE_CONFIG

    entries: List[Union[LevelMarker, VariableLine]]

    def level_boundary(self) -> 'LevelBoundary':
        """
        Locate the six level markers.

        Raises:
            TemplateError: If markers are missing, repeated, out of order, or
                the template does not start with the world marker.
        """
        markers = []
        positions = []
        for position, entry in enumerate(self.entries):
            if isinstance(entry, LevelMarker):
                markers.append(entry)
                positions.append(position)

        expected = [LEVEL_MARKER_NAMES[level] for level in Level]
        found = [m.level for m in markers]
        if found != expected:
            raise TemplateError(
                f"Template level markers must be {', '.join(expected)} in that order, "
                f"found: {', '.join(found) if found else 'none'}"
            )
        if positions[0] != 0:
            raise TemplateError(
                f"Template line 1 must be the world level marker, got '{self.entries[0].name}'"
            )
        return LevelBoundary(markers=tuple(markers), positions=tuple(positions))

    def variable_definitions(self, boundary: Optional['LevelBoundary'] = None) -> List['VariableDefinition']:
        """Resolve every variable line to the level it is declared under."""
        boundary = boundary or self.level_boundary()
        definitions = []
        for position, entry in enumerate(self.entries):
            if isinstance(entry, VariableLine):
                definitions.append(VariableDefinition(
                    line=position + 1,
                    name=entry.name,
                    kind=AggregationKind.from_operator(entry.operator),
                    operator=entry.operator,
                    operands=tuple(entry.operands),
                    level=boundary.level_at(position),
                ))
        return definitions

    def variable_names(self) -> Set[str]:
        return {e.name for e in self.entries if isinstance(e, VariableLine)}

    def find_variable(self, name: str) -> Optional['VariableDefinition']:
        for definition in self.variable_definitions():
            if definition.name == name:
                return definition
        return None

    def map_reference_table(self) -> pd.DataFrame:
        """
        Table of every map the template references.

        One row per level marker (level name, map) followed by one row per
        map-backed variable (variable name, map), in template order.
        """
        rows = []
        for entry in self.entries:
            if isinstance(entry, LevelMarker):
                rows.append((entry.level, entry.map))
        for definition in self.variable_definitions():
            for map_name in definition.map_columns():
                rows.append((definition.name, map_name))
        return pd.DataFrame(rows, columns=['name', 'map'])

    def referenced_maps(self) -> List[str]:
        """Unique map columns the cell table must provide, in template order."""
        return list(dict.fromkeys(self.map_reference_table()['map']))


@dataclass(frozen=True)
class LevelBoundary:
    """The six level markers and the template positions they occupy."""
    markers: Tuple[LevelMarker, ...]
    positions: Tuple[int, ...]

    def marker(self, level: Level) -> LevelMarker:
        return self.markers[level - 1]

    def map_for(self, level: Level) -> str:
        return self.marker(level).map

    @property
    def level_maps(self) -> List[str]:
        return [m.map for m in self.markers]

    @property
    def stratum_count(self) -> int:
        return self.marker(Level.STRATUM).count

    def level_at(self, position: int) -> Level:
        """Level a template entry at ``position`` (0-based) is declared under."""
        depth = sum(1 for p in self.positions if p < position)
        if depth < 1:
            raise TemplateError(f"Template line {position + 1} precedes the world level marker")
        return Level(depth)


@dataclass(frozen=True)
class VariableDefinition:
    """
    One template variable resolved against the level boundary.

    Attributes:
        line: 1-based template line (entry position)
        name: Output state variable name
        kind: Aggregation kind
        operator: Operator keyword exactly as written in the template
        operands: Literal values or cell table column names
        level: Level the variable is declared under
    """
    line: int
    name: str
    kind: AggregationKind
    operator: str
    operands: Tuple[Operand, ...]
    level: Level

    @property
    def key(self) -> str:
        """Stable identifier used to address aggregated results."""
        return f"{self.line}:{self.name}"

    @property
    def is_stratum(self) -> bool:
        return self.level == Level.STRATUM

    def operand_for(self, stratum: int = 1) -> Operand:
        """
        Operand used for a stratum; the first operand covers missing strata.

        Raises:
            TemplateError: If the variable has no operands at all.
        """
        if not self.operands:
            raise TemplateError(
                f"'{self.name}' on template line {self.line} has no operand for operator '{self.operator}'"
            )
        if stratum <= len(self.operands):
            return self.operands[stratum - 1]
        return self.operands[0]

    @property
    def eqn_scale(self) -> float:
        scale = as_number(self.operands[0]) if self.operands else None
        if scale is None:
            raise TemplateError(
                f"'{self.operands[0] if self.operands else ''}' on template line {self.line} "
                f"is not a valid eqn scale factor."
            )
        return scale

    def map_for(self, stratum: int = 1) -> str:
        """Cell table column aggregated for a stratum."""
        if self.kind == AggregationKind.EQN:
            if len(self.operands) < 2:
                raise TemplateError(
                    f"'{self.name}' on template line {self.line}: eqn needs a scale and a map"
                )
            return str(self.operands[-1])
        return str(self.operand_for(stratum))

    def map_columns(self) -> List[str]:
        """All cell table columns this variable reads."""
        if self.kind in (AggregationKind.AVER, AggregationKind.MODE, AggregationKind.SPAVG):
            return list(dict.fromkeys(
                str(op) for op in self.operands if as_number(op) is None
            ))
        if self.kind == AggregationKind.EQN and len(self.operands) >= 2:
            return [str(self.operands[-1])]
        return []
