"""
Input adapters.

Readers that turn files on disk into the three inputs worldfile generation
consumes: the parsed template, the per-cell table and the aspatial rules.
"""

from .cell_table_reader import read_cell_table, read_raster_cell_table, read_tabular_cell_table
from .rules_reader import read_aspatial_rules, rules_from_mapping
from .template_reader import read_parsed_template

__all__ = [
    "read_cell_table",
    "read_raster_cell_table",
    "read_tabular_cell_table",
    "read_aspatial_rules",
    "rules_from_mapping",
    "read_parsed_template",
]
