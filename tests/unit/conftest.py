"""
Unit test fixtures and configuration.

The shared dataset is a small two-basin world on a 10 x 10 grid (cell area
100). Cell 5 has no patch ID and lies outside the domain.

    basin 1 -> hillslope 11 -> zone 101 -> patches 1001 (2 cells), 1002
            -> hillslope 12 -> zone 102 -> patch 1003
    basin 2 -> hillslope 21 -> zone 201 -> patch 2001
"""

import numpy as np
import pandas as pd
import pytest

from worldgen.cell_table import CellTable
from worldgen.io import rules_from_mapping
from worldgen.levels import LevelHierarchyDeriver, LevelTree
from worldgen.template import ParsedTemplate

# ============================================================================
# Templates
# ============================================================================

TEMPLATE_ENTRIES = [
    {'level': 'world', 'map': 'world'},
    {'level': 'basin', 'map': 'basin'},
    {'name': 'latitude', 'operator': 'aver', 'operands': ['lat']},
    {'level': 'hillslope', 'map': 'hill'},
    {'name': 'slope_h', 'operator': 'aver', 'operands': ['slope']},
    {'level': 'zone', 'map': 'zone'},
    {'name': 'z', 'operator': 'aver', 'operands': ['dem']},
    {'level': 'patch', 'map': 'patch'},
    {'name': 'area', 'operator': 'area', 'operands': []},
    {'name': 'soil', 'operator': 'mode', 'operands': ['soil']},
    {'name': 'x', 'operator': 'value', 'operands': [0.25]},
    {'name': 'y', 'operator': 'dvalue', 'operands': [3.9]},
    {'name': 'elev', 'operator': 'eqn', 'operands': [0.001, 'dem']},
    {'level': 'strata', 'map': 'stratum', 'count': 1},
    {'name': 'veg', 'operator': 'value', 'operands': [42]},
]


def make_template(entries):
    return ParsedTemplate.model_validate({'entries': entries})


@pytest.fixture
def template_entries():
    return [dict(e) for e in TEMPLATE_ENTRIES]


@pytest.fixture
def parsed_template(template_entries):
    return make_template(template_entries)


@pytest.fixture
def aspatial_template(template_entries):
    """Template with an asp_rule variable read from the 'asprule' map."""
    entries = list(template_entries)
    position = next(i for i, e in enumerate(entries) if e.get('level') == 'strata')
    entries.insert(position, {'name': 'asp_rule', 'operator': 'mode', 'operands': ['asprule']})
    return make_template(entries)


# ============================================================================
# Cell tables
# ============================================================================

@pytest.fixture
def cell_frame():
    return pd.DataFrame({
        'world':   [1, 1, 1, 1, 1, 1],
        'basin':   [1, 1, 1, 1, 2, 1],
        'hill':    [11, 11, 11, 12, 21, 11],
        'zone':    [101, 101, 101, 102, 201, 101],
        'patch':   [1001, 1001, 1002, 1003, 2001, np.nan],
        'stratum': [1, 1, 1, 1, 1, 1],
        'lat':     [45.0, 47.0, 46.0, 44.0, 50.0, 99.0],
        'slope':   [10.0, 20.0, 30.0, 40.0, 50.0, 99.0],
        'dem':     [100.0, 200.0, 300.0, 400.0, 500.0, 999.0],
        'soil':    [3, 3, 4, 5, 6, 9],
        'asprule': [1, 1, 1, 1, 1, 1],
    })


@pytest.fixture
def cell_table(cell_frame):
    return CellTable(frame=cell_frame, cell_width=10.0, cell_height=10.0)


def derive(template, cells, rule_source=None):
    """Level matrix and tree for a template and cell table."""
    matrix = LevelHierarchyDeriver(template.level_boundary()).derive(cells, rule_source=rule_source)
    return matrix, LevelTree(matrix)


# ============================================================================
# Aspatial rules
# ============================================================================

RULES_DOCUMENT = {
    'rules': [
        {
            'rule_id': 1,
            'patch_level_vars': {
                'pct_family_area': [0.6, 0.4],
                'soil': [None, 7],
                'new_var': [5, 6],
            },
            'strata_level_vars': [
                {'veg': [None]},
                {'veg': [11]},
            ],
        },
    ],
}


@pytest.fixture
def rules_document():
    return RULES_DOCUMENT


@pytest.fixture
def rule_set():
    return rules_from_mapping(RULES_DOCUMENT)


@pytest.fixture
def template_factory():
    """Build a ParsedTemplate from a list of entry dicts."""
    return make_template


@pytest.fixture
def derive_levels():
    """Callable returning (LevelMatrix, LevelTree) for a template and cell table."""
    return derive
