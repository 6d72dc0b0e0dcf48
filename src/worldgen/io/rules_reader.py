# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Reader for aspatial rule tables stored as YAML.

Example::

    rules:
      - rule_id: 1
        patch_level_vars:
          pct_family_area: [0.6, 0.4]
          leaf_area_index: [null, 3.2]
        strata_level_vars:
          - {cover_fraction: [0.8]}
          - {cover_fraction: [0.5]}

Each list position is a family (patch table) or a stratum (stratum table);
``null`` leaves the template value in place.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping

import numpy as np
import pandas as pd
import yaml

from ..aspatial import AspatialRule, AspatialRuleSet
from ..exceptions import AspatialRuleError, InputError

logger = logging.getLogger(__name__)


def _table(values: Mapping[str, Any], label: str) -> pd.DataFrame:
    """Variable -> list of values, as a table with the names in the first column."""
    if not isinstance(values, Mapping):
        raise AspatialRuleError(f"{label} must map variable names to value lists")
    rows = {}
    for name, entry in values.items():
        entry = entry if isinstance(entry, list) else [entry]
        rows[str(name)] = [np.nan if v is None else v for v in entry]
    width = max((len(v) for v in rows.values()), default=0)
    records = [[name] + v + [np.nan] * (width - len(v)) for name, v in rows.items()]
    return pd.DataFrame(records, columns=['variable'] + list(range(1, width + 1)))


def _rule_id(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise AspatialRuleError(f"Rule ID '{value}' is not a number") from None
    if not number.is_integer():
        raise AspatialRuleError(f"Rule ID '{value}' is not an integer")
    return int(number)


def rules_from_mapping(data: Mapping[str, Any]) -> AspatialRuleSet:
    """Build a rule set from an already-loaded rules document."""
    entries = data.get('rules') if isinstance(data, Mapping) else None
    if not isinstance(entries, list):
        raise AspatialRuleError("Rules document must contain a 'rules' list")

    rules: List[AspatialRule] = []
    for entry in entries:
        rule_id = _rule_id(entry.get('rule_id'))
        patch_vars: Dict[str, Any] = entry.get('patch_level_vars') or {}
        strata_vars = entry.get('strata_level_vars') or []
        rules.append(AspatialRule.from_tables(
            rule_id,
            _table(patch_vars, f"Rule {rule_id} patch_level_vars"),
            [_table(s, f"Rule {rule_id} strata_level_vars[{i}]") for i, s in enumerate(strata_vars)],
        ))
    return AspatialRuleSet(rules)


def read_aspatial_rules(path: Path) -> AspatialRuleSet:
    """
    Load the aspatial rules file.

    Raises:
        InputError: If the file is missing or unreadable.
        AspatialRuleError: If the document is structurally invalid.
    """
    path = Path(path)
    if not path.is_file():
        raise InputError(f"Aspatial rules file not found: {path}")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise InputError(f"Failed to read aspatial rules {path}: {exc}") from exc

    rule_set = rules_from_mapping(data or {})
    logger.info(f"Loaded {len(rule_set)} aspatial rules from {path.name}")
    return rule_set
