"""Unit tests for the parsed template model."""

import pytest
from pydantic import ValidationError

from worldgen.exceptions import TemplateError
from worldgen.template import AggregationKind, Level, LevelMarker, as_number

pytestmark = [pytest.mark.unit, pytest.mark.quick]


class TestLevelBoundary:
    """Test level marker validation."""

    def test_markers_in_order(self, parsed_template):
        boundary = parsed_template.level_boundary()
        assert boundary.level_maps == ['world', 'basin', 'hill', 'zone', 'patch', 'stratum']
        assert boundary.map_for(Level.HILLSLOPE) == 'hill'
        assert boundary.stratum_count == 1

    def test_missing_marker(self, template_entries, template_factory):
        entries = [e for e in template_entries if e.get('level') != 'zone']
        with pytest.raises(TemplateError, match="in that order"):
            template_factory(entries).level_boundary()

    def test_markers_out_of_order(self, template_entries, template_factory):
        entries = list(template_entries)
        zone = next(i for i, e in enumerate(entries) if e.get('level') == 'zone')
        patch = next(i for i, e in enumerate(entries) if e.get('level') == 'patch')
        entries[zone], entries[patch] = entries[patch], entries[zone]
        with pytest.raises(TemplateError):
            template_factory(entries).level_boundary()

    def test_variable_before_world(self, template_entries, template_factory):
        entries = [{'name': 'early', 'operator': 'value', 'operands': [1]}] + template_entries
        with pytest.raises(TemplateError, match="world level marker"):
            template_factory(entries).level_boundary()

    def test_stratum_alias(self):
        assert LevelMarker(level='_stratum', map='s').level == 'strata'

    def test_level_at(self, parsed_template):
        boundary = parsed_template.level_boundary()
        # Entry 2 (latitude) follows the basin marker
        assert boundary.level_at(2) == Level.BASIN
        assert boundary.level_at(len(parsed_template.entries) - 1) == Level.STRATUM


class TestVariableDefinitions:
    """Test resolution of variable lines against the boundary."""

    def test_levels_and_lines(self, parsed_template):
        definitions = {d.name: d for d in parsed_template.variable_definitions()}
        assert definitions['latitude'].level == Level.BASIN
        assert definitions['latitude'].line == 3
        assert definitions['slope_h'].level == Level.HILLSLOPE
        assert definitions['z'].level == Level.ZONE
        assert definitions['soil'].level == Level.PATCH
        assert definitions['veg'].level == Level.STRATUM
        assert definitions['veg'].is_stratum

    def test_kinds(self, parsed_template):
        kinds = {d.name: d.kind for d in parsed_template.variable_definitions()}
        assert kinds['area'] == AggregationKind.AREA
        assert kinds['y'] == AggregationKind.DVALUE
        assert kinds['elev'] == AggregationKind.EQN

    def test_unknown_operator(self):
        assert AggregationKind.from_operator('median') == AggregationKind.UNSUPPORTED
        assert AggregationKind.from_operator(' AVER ') == AggregationKind.AVER

    def test_operand_fallback_to_first(self, parsed_template):
        veg = parsed_template.find_variable('veg')
        assert veg.operand_for(1) == 42
        assert veg.operand_for(3) == 42

    def test_eqn_scale_and_map(self, parsed_template):
        elev = parsed_template.find_variable('elev')
        assert elev.eqn_scale == pytest.approx(0.001)
        assert elev.map_for(1) == 'dem'
        assert elev.map_columns() == ['dem']

    def test_find_variable_missing(self, parsed_template):
        assert parsed_template.find_variable('nope') is None


class TestMapReferences:
    """Test the map reference table."""

    def test_reference_table(self, parsed_template):
        table = parsed_template.map_reference_table()
        assert list(table.columns) == ['name', 'map']
        assert table.iloc[0].tolist() == ['world', 'world']
        assert table.iloc[5].tolist() == ['strata', 'stratum']
        assert ['elev', 'dem'] in table.values.tolist()
        assert 'area' not in table['name'].tolist()

    def test_referenced_maps_unique(self, parsed_template):
        maps = parsed_template.referenced_maps()
        assert maps == ['world', 'basin', 'hill', 'zone', 'patch', 'stratum', 'lat', 'slope', 'dem', 'soil']


class TestParsing:
    """Test pydantic validation of template entries."""

    def test_unknown_entry_rejected(self, template_factory):
        with pytest.raises(ValidationError):
            template_factory([{'level': 'world', 'map': 'w', 'bogus': 1}])

    def test_as_number(self):
        assert as_number(3) == 3.0
        assert as_number('2.5') == 2.5
        assert as_number('dem') is None
        assert as_number(True) is None
