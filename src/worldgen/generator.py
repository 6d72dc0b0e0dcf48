# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Worldfile Generator

Runs the whole conversion as one linear pass:

    template + cell table (+ rules)
        -> level matrix and traversal tree
        -> aggregated variables
        -> patch resolution (spatial or aspatial families)
        -> worldfile

Everything up to patch resolution is computed before the output file is
opened, so most input problems abort without touching the disk.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .aggregation import AggregationResult, VariableAggregator
from .aspatial import RULE_VARIABLE, AspatialPatchExpander, AspatialRuleSet
from .blocks import PatchResolver, SpatialPatchResolver, definitions_by_level
from .cell_table import CellTable
from .exceptions import InputError, TemplateError
from .levels import LevelHierarchyDeriver, LevelMatrix, LevelTree
from .template import Level, LevelBoundary, ParsedTemplate, VariableDefinition
from .writer import ProgressObserver, WorldfileWriter

logger = logging.getLogger(__name__)

# Auxiliary maps the flow network builder expects; none are derived here
FLOWNET_PLACEHOLDERS = ('streams', 'roads', 'impervious', 'roofs')


@dataclass(frozen=True)
class WorldPlan:
    """Fully resolved hierarchy, ready to be written."""
    boundary: LevelBoundary
    definitions: List[VariableDefinition]
    by_level: Dict[Level, List[VariableDefinition]]
    matrix: LevelMatrix
    tree: LevelTree
    aggregates: AggregationResult
    patch_resolver: PatchResolver


@dataclass(frozen=True)
class WorldGenResult:
    """
    Metadata handed to the flow network construction step.

    Attributes:
        worldfile: Path of the written worldfile.
        flownet_maps: Map reference table plus cell length and placeholder
            rows for streams, roads, impervious surfaces and roofs.
        rules: Aspatial rules used, if any.
        counts: Blocks written per level.
    """
    worldfile: Path
    flownet_maps: pd.DataFrame
    rules: Optional[AspatialRuleSet]
    counts: Dict[str, int]


class WorldfileGenerator:
    """
    Builds a worldfile from a parsed template and a cell table.

    Args:
        template: Parsed template.
        cells: Per-cell map values.
        rules: Aspatial rules; used when the template declares asp_rule.
        progress: Optional progress observer for the writing pass.
    """

    def __init__(
        self,
        template: ParsedTemplate,
        cells: CellTable,
        rules: Optional[AspatialRuleSet] = None,
        progress: Optional[ProgressObserver] = None,
    ):
        self.template = template
        self.cells = cells
        self.rules = rules
        self.progress = progress

    @classmethod
    def from_config(cls, config, progress: Optional[ProgressObserver] = None) -> 'WorldfileGenerator':
        """Read every input named by a WorldGenConfig."""
        from .io import read_aspatial_rules, read_cell_table, read_parsed_template

        template = read_parsed_template(config.template_path)
        cells = read_cell_table(
            config.cell_table_path,
            template.referenced_maps(),
            fmt=config.cell_table_format,
            cell_width=config.cell_width,
            cell_height=config.effective_cell_height,
        )
        rules = None
        if config.aspatial_rules_path is not None:
            rules = read_aspatial_rules(config.aspatial_rules_path)
        return cls(template, cells, rules=rules, progress=progress)

    def _rule_definition(self, definitions: List[VariableDefinition]) -> Optional[VariableDefinition]:
        """The asp_rule variable when aspatial patches are enabled."""
        if self.rules is None:
            return None
        for definition in definitions:
            if definition.name == RULE_VARIABLE:
                return definition
        raise TemplateError(f"Missing {RULE_VARIABLE} state variable in template")

    def build(self) -> WorldPlan:
        """Derive levels, aggregate variables and set up patch resolution."""
        boundary = self.template.level_boundary()
        definitions = self.template.variable_definitions(boundary)
        by_level = definitions_by_level(definitions)
        if by_level[Level.WORLD]:
            logger.warning(
                f"World-level variables are not written to the worldfile: "
                f"{', '.join(d.name for d in by_level[Level.WORLD])}"
            )

        self.cells.require_columns(self.template.referenced_maps())

        rule_definition = self._rule_definition(definitions)
        rule_source = rule_definition.operand_for(1) if rule_definition is not None else None

        matrix = LevelHierarchyDeriver(boundary).derive(self.cells, rule_source=rule_source)
        tree = LevelTree(matrix)
        logger.info(
            "Hierarchy: " + ", ".join(f"{count} {name}" for name, count in tree.counts().items())
        )

        aggregates = VariableAggregator(matrix, boundary.stratum_count).aggregate(definitions)

        if rule_definition is not None:
            logger.info(f"Aspatial patches enabled with {len(self.rules)} rules")
            resolver = AspatialPatchExpander(
                tree=tree,
                matrix=matrix,
                aggregates=aggregates,
                rules=self.rules,
                patch_vars=by_level[Level.PATCH],
                stratum_vars=by_level[Level.STRATUM],
                template_names=self.template.variable_names(),
                stratum_count=boundary.stratum_count,
            )
        else:
            resolver = SpatialPatchResolver(
                tree=tree,
                aggregates=aggregates,
                patch_vars=by_level[Level.PATCH],
                stratum_vars=by_level[Level.STRATUM],
                stratum_count=boundary.stratum_count,
            )

        return WorldPlan(
            boundary=boundary,
            definitions=definitions,
            by_level=by_level,
            matrix=matrix,
            tree=tree,
            aggregates=aggregates,
            patch_resolver=resolver,
        )

    def flownet_maps(self) -> pd.DataFrame:
        """Map reference table augmented for the flow network builder."""
        extra = [('cell_length', self.cells.cell_length)]
        extra += [(name, 'none') for name in FLOWNET_PLACEHOLDERS]
        return pd.concat(
            [self.template.map_reference_table(), pd.DataFrame(extra, columns=['name', 'map'])],
            ignore_index=True,
        )

    def generate(self, worldfile: Path, overwrite: bool = False) -> WorldGenResult:
        """
        Write the worldfile.

        Raises:
            InputError: If ``worldfile`` exists and ``overwrite`` is False.
            WorldGenError: Any fatal template, hierarchy or rule error; no
                valid output is left behind.
        """
        worldfile = Path(worldfile)
        if worldfile.exists() and not overwrite:
            raise InputError(f"Worldfile {worldfile} already exists.")

        plan = self.build()

        logger.info("Writing worldfile")
        worldfile.parent.mkdir(parents=True, exist_ok=True)
        writer = WorldfileWriter(
            tree=plan.tree,
            aggregates=plan.aggregates,
            definitions=plan.by_level,
            patch_resolver=plan.patch_resolver,
            progress=self.progress,
        )
        counts = writer.write(worldfile)

        return WorldGenResult(
            worldfile=worldfile,
            flownet_maps=self.flownet_maps(),
            rules=self.rules if isinstance(plan.patch_resolver, AspatialPatchExpander) else None,
            counts=counts,
        )
