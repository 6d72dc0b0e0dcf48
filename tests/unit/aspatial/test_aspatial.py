"""Unit tests for aspatial patch expansion."""

import logging

import pandas as pd
import pytest

from worldgen.aggregation import VariableAggregator
from worldgen.aspatial import AspatialPatchExpander, AspatialRule, AspatialRuleSet
from worldgen.blocks import definitions_by_level
from worldgen.cell_table import CellTable
from worldgen.exceptions import AspatialRuleError
from worldgen.io import rules_from_mapping
from worldgen.template import Level

pytestmark = [pytest.mark.unit, pytest.mark.quick]

PATCH_1001 = (1, 1, 11, 101, 1001)
PATCH_1002 = (1, 1, 11, 101, 1002)


@pytest.fixture
def make_expander(aspatial_template, cell_table, derive_levels):
    """Expander over the shared dataset for a given rule set and cell table."""
    def _make(rules, cells=cell_table):
        matrix, tree = derive_levels(aspatial_template, cells, rule_source='asprule')
        boundary = aspatial_template.level_boundary()
        definitions = aspatial_template.variable_definitions(boundary)
        by_level = definitions_by_level(definitions)
        aggregates = VariableAggregator(matrix, boundary.stratum_count).aggregate(definitions)
        return AspatialPatchExpander(
            tree=tree,
            matrix=matrix,
            aggregates=aggregates,
            rules=rules,
            patch_vars=by_level[Level.PATCH],
            stratum_vars=by_level[Level.STRATUM],
            template_names=aspatial_template.variable_names(),
            stratum_count=boundary.stratum_count,
        )
    return _make


def _single_rule(patch_level_vars, strata_level_vars):
    return rules_from_mapping({'rules': [{
        'rule_id': 1,
        'patch_level_vars': patch_level_vars,
        'strata_level_vars': strata_level_vars,
    }]})


class TestFamilyExpansion:
    """Test sub-patch generation for the shared rule."""

    def test_family_ids(self, make_expander, rule_set):
        blocks = make_expander(rule_set).resolve(PATCH_1001)
        assert [b.patch_id for b in blocks] == [100101, 100102]
        assert all(b.family_id == 1001 for b in blocks)

    def test_rule_only_variables_first(self, make_expander, rule_set):
        family = make_expander(rule_set).resolve(PATCH_1001)[0]
        names = [name for _, name in family.lines]
        assert names == ['pct_family_area', 'new_var', 'area', 'soil', 'x', 'y', 'elev', 'asp_rule']

    def test_override_and_default(self, make_expander, rule_set):
        first, second = make_expander(rule_set).resolve(PATCH_1001)
        first_values = {name: value for value, name in first.lines}
        second_values = {name: value for value, name in second.lines}
        # Blank override keeps the aggregated mode
        assert first_values['soil'] == 3.0
        assert second_values['soil'] == 7.0
        assert first_values['new_var'] == 5.0
        assert second_values['new_var'] == 6.0

    def test_area_split_by_family_fraction(self, make_expander, rule_set):
        blocks = make_expander(rule_set).resolve(PATCH_1001)
        areas = [dict((name, value) for value, name in b.lines)['area'] for b in blocks]
        assert areas == pytest.approx([120.0, 80.0])
        assert sum(areas) == pytest.approx(200.0 * (0.6 + 0.4))

    def test_stratum_override(self, make_expander, rule_set):
        first, second = make_expander(rule_set).resolve(PATCH_1001)
        assert first.strata[0].lines == ((42.0, 'veg'),)
        assert second.strata[0].lines == ((11.0, 'veg'),)
        assert first.strata[0].stratum_id == 1

    def test_area_override_not_scaled(self, make_expander):
        rules = _single_rule(
            {'pct_family_area': [0.5, 0.5], 'area': [500, None]},
            [{'veg': [None]}, {'veg': [None]}],
        )
        first, second = make_expander(rules).resolve(PATCH_1002)
        assert dict((n, v) for v, n in first.lines)['area'] == 500.0
        assert dict((n, v) for v, n in second.lines)['area'] == pytest.approx(50.0)


class TestRuleResolution:
    """Test rule lookup per spatial patch."""

    def test_mixed_rule_ids_in_patch(self, make_expander, rule_set, cell_frame):
        frame = cell_frame.assign(asprule=[1, 2, 1, 1, 1, 1])
        cells = CellTable(frame=frame, cell_width=10.0, cell_height=10.0)
        expander = make_expander(rule_set, cells)
        with pytest.raises(AspatialRuleError, match="expected exactly one"):
            expander.resolve(PATCH_1001)
        # Other patches are unaffected
        assert len(expander.resolve(PATCH_1002)) == 2

    def test_missing_rule_id(self, make_expander, rule_set, cell_frame):
        frame = cell_frame.assign(asprule=[None, None, 1, 1, 1, 1])
        cells = CellTable(frame=frame, cell_width=10.0, cell_height=10.0)
        with pytest.raises(AspatialRuleError):
            make_expander(rule_set, cells).resolve(PATCH_1001)

    def test_undefined_rule(self, make_expander, rule_set, cell_frame):
        cells = CellTable(frame=cell_frame.assign(asprule=3), cell_width=10.0, cell_height=10.0)
        with pytest.raises(AspatialRuleError, match="Rule 3"):
            make_expander(rule_set, cells).resolve(PATCH_1001)


class TestRuleValidation:
    """Test fatal rule table problems."""

    def test_blank_rule_only_variable(self, make_expander):
        rules = _single_rule(
            {'pct_family_area': [0.5, 0.5], 'new_var': [1, None]},
            [{'veg': [None]}, {'veg': [None]}],
        )
        with pytest.raises(AspatialRuleError, match="new_var cannot be NA"):
            make_expander(rules).resolve(PATCH_1001)

    def test_blank_rule_only_stratum_variable(self, make_expander):
        rules = _single_rule({'pct_family_area': [1.0]}, [{'cover': [None]}])
        with pytest.raises(AspatialRuleError, match="cover cannot be NA"):
            make_expander(rules).resolve(PATCH_1001)

    def test_missing_family_fraction(self, make_expander):
        rules = _single_rule({'soil': [1, 2]}, [{'veg': [None]}, {'veg': [None]}])
        with pytest.raises(AspatialRuleError, match="pct_family_area"):
            make_expander(rules).resolve(PATCH_1001)

    def test_missing_stratum_table(self, make_expander):
        rules = _single_rule({'pct_family_area': [0.5, 0.5]}, [{'veg': [None]}])
        with pytest.raises(AspatialRuleError, match="no stratum table for family 2"):
            make_expander(rules).resolve(PATCH_1001)

    def test_too_many_families(self, make_expander):
        rules = _single_rule({'pct_family_area': [0.01] * 100}, [{'veg': [None]}] * 100)
        with pytest.raises(AspatialRuleError, match="at most 99"):
            make_expander(rules).resolve(PATCH_1001)

    def test_duplicate_rule_ids(self):
        table = pd.DataFrame({'variable': ['pct_family_area'], 1: [1.0]})
        rule = AspatialRule.from_tables(1, table)
        with pytest.raises(AspatialRuleError, match="more than once"):
            AspatialRuleSet([rule, rule])


class TestStrataFallback:
    """Test rules that define more strata than the template."""

    def test_extra_strata_use_template_stratum_one(self, make_expander, caplog):
        rules = _single_rule({'pct_family_area': [1.0]}, [{'veg': [7, None]}])
        with caplog.at_level(logging.WARNING):
            blocks = make_expander(rules).resolve(PATCH_1001)
            make_expander(rules).resolve(PATCH_1002)
        strata = blocks[0].strata
        assert len(strata) == 2
        assert strata[0].lines == ((7.0, 'veg'),)
        assert strata[1].lines == ((42.0, 'veg'),)
        assert any("first stratum" in record.message for record in caplog.records)

    def test_warning_once_per_family(self, make_expander, caplog):
        rules = _single_rule({'pct_family_area': [1.0]}, [{'veg': [None, None, None]}])
        expander = make_expander(rules)
        with caplog.at_level(logging.WARNING):
            expander.resolve(PATCH_1001)
            expander.resolve(PATCH_1002)
        warnings = [r for r in caplog.records if "first stratum" in r.message]
        assert len(warnings) == 1


class TestAspatialRule:
    """Test the rule table accessors."""

    def test_blank_cells_are_none(self, rule_set):
        rule = rule_set.rule(1)
        assert rule.family_count == 2
        assert rule.patch_value('soil', 1) is None
        assert rule.patch_value('soil', 2) == 7.0
        assert rule.patch_value('unknown', 1) is None
        assert rule.stratum_count(1) == 1

    def test_rule_set_mapping(self, rule_set):
        assert list(rule_set) == [1]
        assert len(rule_set) == 1
        assert rule_set[1].rule_id == 1
