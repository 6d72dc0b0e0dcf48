# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Aspatial Patch Expander

Splits every spatial patch into rule-defined families of sub-patches that
share the patch's location but carry their own state. Each spatial patch
resolves to exactly one rule ID; the rule's patch-level table has one column
per family and its per-family stratum tables one column per stratum.

Family sub-patch IDs are ``patch_id * 100 + family``, so a rule may define at
most 99 families.

Value resolution per variable and family:
1. A non-blank entry in the rule table for that family wins.
2. Otherwise the template aggregate is used; ``area`` is then scaled by the
   family's ``pct_family_area``.
Rule variables the template does not declare are written before the
template variables and must have a value for every family.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

import pandas as pd

from .aggregation import AggregationResult
from .blocks import Line, PatchBlock, StratumBlock
from .exceptions import AspatialRuleError
from .levels import LevelMatrix, LevelTree, UnitKey
from .template import VariableDefinition

logger = logging.getLogger(__name__)

MAX_FAMILIES = 99
AREA_VARIABLE = 'area'
FAMILY_AREA_VARIABLE = 'pct_family_area'
RULE_VARIABLE = 'asp_rule'


def _normalize_table(table: pd.DataFrame, label: str) -> pd.DataFrame:
    """
    Index an override table by variable name.

    The first column holds the variable names; the remaining columns are
    renumbered 1..N. Blank cells become NaN.
    """
    if table.shape[1] < 1:
        raise AspatialRuleError(f"{label} has no variable name column")
    names = table.iloc[:, 0].astype(str).str.strip()
    values = table.iloc[:, 1:]
    if values.shape[1]:
        values = values.apply(pd.to_numeric, errors='coerce')
    values = values.reset_index(drop=True)
    values.index = pd.Index(names, name='variable')
    values.columns = range(1, values.shape[1] + 1)
    return values


@dataclass(frozen=True)
class AspatialRule:
    """
    Override tables of one rule.

    Attributes:
        rule_id: Rule identifier referenced by the asp_rule map or value.
        patch_level_vars: Rows are variable names, columns families 1..K.
        strata_level_vars: One table per family; rows are variable names,
            columns strata 1..M.
    """
    rule_id: int
    patch_level_vars: pd.DataFrame
    strata_level_vars: Tuple[pd.DataFrame, ...] = ()

    @classmethod
    def from_tables(
        cls,
        rule_id: int,
        patch_level_vars: pd.DataFrame,
        strata_level_vars: Sequence[pd.DataFrame] = (),
    ) -> 'AspatialRule':
        """Build a rule from tables whose first column names the variables."""
        return cls(
            rule_id=rule_id,
            patch_level_vars=_normalize_table(patch_level_vars, f"Rule {rule_id} patch table"),
            strata_level_vars=tuple(
                _normalize_table(t, f"Rule {rule_id} family {i} stratum table")
                for i, t in enumerate(strata_level_vars, start=1)
            ),
        )

    @property
    def family_count(self) -> int:
        return self.patch_level_vars.shape[1]

    @property
    def patch_variable_names(self) -> List[str]:
        return list(self.patch_level_vars.index)

    def has_patch_variable(self, name: str) -> bool:
        return name in self.patch_level_vars.index

    @staticmethod
    def _cell(table: pd.DataFrame, name: str, column: int) -> Optional[float]:
        if name not in table.index or column not in table.columns:
            return None
        value = table.loc[name, column]
        if isinstance(value, pd.Series):
            # Repeated variable rows: the first one wins
            value = value.iloc[0]
        return None if pd.isna(value) else float(value)

    def patch_value(self, name: str, family: int) -> Optional[float]:
        """Override for a patch variable, None when absent or blank."""
        return self._cell(self.patch_level_vars, name, family)

    def stratum_table(self, family: int) -> pd.DataFrame:
        if family > len(self.strata_level_vars):
            raise AspatialRuleError(
                f"Rule {self.rule_id} defines {self.family_count} families but no stratum "
                f"table for family {family}"
            )
        return self.strata_level_vars[family - 1]

    def stratum_count(self, family: int) -> int:
        return self.stratum_table(family).shape[1]

    def stratum_value(self, family: int, name: str, stratum: int) -> Optional[float]:
        return self._cell(self.stratum_table(family), name, stratum)


class AspatialRuleSet(Mapping):
    """Rules keyed by rule identifier."""

    def __init__(self, rules: Sequence[AspatialRule]):
        self._rules: Dict[int, AspatialRule] = {}
        for rule in rules:
            if rule.rule_id in self._rules:
                raise AspatialRuleError(f"Rule {rule.rule_id} is defined more than once")
            self._rules[rule.rule_id] = rule

    def __getitem__(self, rule_id) -> AspatialRule:
        return self._rules[rule_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def rule(self, rule_id: int) -> AspatialRule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise AspatialRuleError(
                f"Rule {rule_id} is used by the asp_rule map but not defined in the rules; "
                f"defined rules: {sorted(self._rules)}"
            ) from None


class AspatialPatchExpander:
    """
    Resolves each spatial patch into its family sub-patch blocks.

    Args:
        tree: Level traversal tree.
        matrix: Level matrix carrying the per-cell rule IDs.
        aggregates: Aggregated template variables.
        rules: Rule set.
        patch_vars: Template variables declared at patch level.
        stratum_vars: Template variables declared at stratum level.
        template_names: Names of every template variable.
        stratum_count: Strata declared on the template's strata marker.
    """

    def __init__(
        self,
        tree: LevelTree,
        matrix: LevelMatrix,
        aggregates: AggregationResult,
        rules: AspatialRuleSet,
        patch_vars: Sequence[VariableDefinition],
        stratum_vars: Sequence[VariableDefinition],
        template_names: Set[str],
        stratum_count: int,
    ):
        if not matrix.has_rule_column:
            raise AspatialRuleError("Aspatial expansion needs per-cell rule IDs")
        self.tree = tree
        self.aggregates = aggregates
        self.rules = rules
        self.patch_vars = list(patch_vars)
        self.stratum_vars = list(stratum_vars)
        self.template_names = set(template_names)
        self.stratum_count = stratum_count
        self._patch_rule_ids = matrix.patch_rule_ids()
        self._fallback_warned: Set[Tuple[int, int]] = set()

    def rule_for(self, patch_key: UnitKey) -> AspatialRule:
        """
        The single rule governing a spatial patch.

        Raises:
            AspatialRuleError: If the patch has no rule ID, several rule IDs,
                or a rule ID the rule set does not define.
        """
        found = self._patch_rule_ids.get(tuple(patch_key), [])
        distinct = list(dict.fromkeys(found))
        if len(distinct) != 1 or pd.isna(distinct[0]):
            raise AspatialRuleError(
                f"Patch {patch_key[-1]} (basin {patch_key[1]}, hillslope {patch_key[2]}, "
                f"zone {patch_key[3]}) maps to rule IDs {distinct}; expected exactly one"
            )
        rule_id = distinct[0]
        if float(rule_id).is_integer():
            rule_id = int(rule_id)
        return self.rules.rule(rule_id)

    def resolve(self, patch_key: UnitKey) -> List[PatchBlock]:
        rule = self.rule_for(patch_key)
        if rule.family_count < 1:
            raise AspatialRuleError(f"Rule {rule.rule_id} defines no families")
        if rule.family_count > MAX_FAMILIES:
            raise AspatialRuleError(
                f"Rule {rule.rule_id} defines {rule.family_count} families; at most "
                f"{MAX_FAMILIES} fit in a patch ID"
            )
        return [self._family_block(patch_key, rule, family)
                for family in range(1, rule.family_count + 1)]

    def _family_block(self, patch_key: UnitKey, rule: AspatialRule, family: int) -> PatchBlock:
        patch_id = patch_key[-1]

        lines: List[Line] = []
        for name in rule.patch_variable_names:
            if name in self.template_names:
                continue
            value = rule.patch_value(name, family)
            if value is None:
                raise AspatialRuleError(
                    f"{name} cannot be NA since a default isn't specified in the template, "
                    f"please set it explicitly for family {family} of rule {rule.rule_id}."
                )
            lines.append((value, name))

        for definition in self.patch_vars:
            if self.aggregates.is_skipped(definition):
                continue
            value = rule.patch_value(definition.name, family)
            if value is None:
                value = self.aggregates.value(definition, patch_key)
                if definition.name == AREA_VARIABLE:
                    value = value * self._family_fraction(rule, family)
            lines.append((value, definition.name))

        stratum_id = self.tree.stratum_id(patch_key)
        stratum_key = tuple(patch_key) + (stratum_id,)
        strata = tuple(
            StratumBlock(stratum_id=stratum_id,
                         lines=tuple(self._stratum_lines(stratum_key, rule, family, s)))
            for s in range(1, rule.stratum_count(family) + 1)
        )

        return PatchBlock(
            patch_id=patch_id * 100 + family,
            lines=tuple(lines),
            strata=strata,
            family_id=patch_id,
        )

    @staticmethod
    def _family_fraction(rule: AspatialRule, family: int) -> float:
        fraction = rule.patch_value(FAMILY_AREA_VARIABLE, family)
        if fraction is None:
            raise AspatialRuleError(
                f"Rule {rule.rule_id} has no {FAMILY_AREA_VARIABLE} for family {family}; "
                f"it is needed to split the patch area"
            )
        return fraction

    def _template_stratum(self, rule: AspatialRule, family: int, stratum: int) -> int:
        """Template stratum supplying defaults for a rule stratum."""
        if stratum <= self.stratum_count:
            return stratum
        if (rule.rule_id, family) not in self._fallback_warned:
            self._fallback_warned.add((rule.rule_id, family))
            logger.warning(
                f"Rule {rule.rule_id} family {family} defines {rule.stratum_count(family)} strata "
                f"but the template declares {self.stratum_count}; missing strata use the "
                f"template's first stratum values"
            )
        return 1

    def _stratum_lines(self, stratum_key: UnitKey, rule: AspatialRule, family: int, stratum: int) -> List[Line]:
        table = rule.stratum_table(family)
        lines: List[Line] = []
        for name in table.index:
            if name in self.template_names:
                continue
            value = rule.stratum_value(family, name, stratum)
            if value is None:
                raise AspatialRuleError(
                    f"{name} cannot be NA since a default isn't specified in the template, "
                    f"please set it explicitly for stratum {stratum} of family {family} "
                    f"in rule {rule.rule_id}."
                )
            lines.append((value, name))

        template_stratum = self._template_stratum(rule, family, stratum)
        for definition in self.stratum_vars:
            if self.aggregates.is_skipped(definition):
                continue
            value = rule.stratum_value(family, definition.name, stratum)
            if value is None:
                value = self.aggregates.value(definition, stratum_key, template_stratum)
            lines.append((value, definition.name))
        return lines
