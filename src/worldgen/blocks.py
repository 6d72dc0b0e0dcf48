# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Resolved patch and stratum blocks.

A patch resolver turns one spatial patch into the patch blocks the writer
emits beneath a zone. The spatial resolver emits one block per patch; the
aspatial expander (see aspatial.py) emits one block per rule family.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from .aggregation import AggregationResult
from .levels import LevelTree, UnitKey
from .template import Level, VariableDefinition

# (value, state variable name) pair written as one worldfile line
Line = Tuple[float, str]


@dataclass(frozen=True)
class StratumBlock:
    stratum_id: int
    lines: Tuple[Line, ...]


@dataclass(frozen=True)
class PatchBlock:
    """
    One patch as written to the worldfile.

    ``family_id`` is the spatial patch ID for aspatial sub-patches and None
    for plain spatial patches.
    """
    patch_id: int
    lines: Tuple[Line, ...]
    strata: Tuple[StratumBlock, ...]
    family_id: Optional[int] = None


class PatchResolver(Protocol):
    def resolve(self, patch_key: UnitKey) -> List[PatchBlock]:
        ...


def definitions_by_level(definitions: Sequence[VariableDefinition]) -> Dict[Level, List[VariableDefinition]]:
    """Template variables grouped by level, declaration order preserved."""
    grouped: Dict[Level, List[VariableDefinition]] = {level: [] for level in Level}
    for definition in definitions:
        grouped[definition.level].append(definition)
    return grouped


def resolve_lines(
    definitions: Sequence[VariableDefinition],
    aggregates: AggregationResult,
    key: UnitKey,
    stratum: int = 1,
) -> List[Line]:
    """Template-derived lines for one unit, skipping unsupported variables."""
    return [
        (aggregates.value(d, key, stratum), d.name)
        for d in definitions
        if not aggregates.is_skipped(d)
    ]


class SpatialPatchResolver:
    """
    Emits one block per spatial patch with the template's stratum count.

    Args:
        tree: Level traversal tree.
        aggregates: Aggregated template variables.
        patch_vars: Variables declared at patch level.
        stratum_vars: Variables declared at stratum level.
        stratum_count: Strata declared on the strata marker.
    """

    def __init__(
        self,
        tree: LevelTree,
        aggregates: AggregationResult,
        patch_vars: Sequence[VariableDefinition],
        stratum_vars: Sequence[VariableDefinition],
        stratum_count: int,
    ):
        self.tree = tree
        self.aggregates = aggregates
        self.patch_vars = list(patch_vars)
        self.stratum_vars = list(stratum_vars)
        self.stratum_count = stratum_count

    def resolve(self, patch_key: UnitKey) -> List[PatchBlock]:
        stratum_id = self.tree.stratum_id(patch_key)
        stratum_key = tuple(patch_key) + (stratum_id,)
        strata = tuple(
            StratumBlock(
                stratum_id=stratum_id,
                lines=tuple(resolve_lines(self.stratum_vars, self.aggregates, stratum_key, s)),
            )
            for s in range(1, self.stratum_count + 1)
        )
        return [PatchBlock(
            patch_id=patch_key[-1],
            lines=tuple(resolve_lines(self.patch_vars, self.aggregates, patch_key)),
            strata=strata,
        )]
