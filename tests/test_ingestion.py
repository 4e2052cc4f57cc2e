"""
tests/test_ingestion.py - Eurostat Loader Tests

Covers:
1. Header resolution by name (aliases, missing and ambiguous columns)
2. Entity Filter accounting (age label, entity, year)
3. Strict vs lenient handling of malformed rows
4. SHA-256 audit trail

Author: Demographic Rates Project
License: MIT
"""

import hashlib
import json

import pytest

from eurostat_rates.age_bands import AgeDomain
from eurostat_rates.config import MeasureKind, SourceFilter, get_merge_preset
from eurostat_rates.exceptions import MalformedInputError, SchemaError
from eurostat_rates.filters import DropReason, EntityFilter
from eurostat_rates.ingestion import EurostatLoader, load_eurostat_file


class TestEntityFilter:
    """Scope decisions are lookups in the configured sets."""

    def test_drop_reasons(self):
        entity_filter = EntityFilter(SourceFilter(
            excluded_entities=frozenset({'Germany'}),
            min_year=2015,
            excluded_years=frozenset({2024}),
        ))
        assert entity_filter.drop_reason('Sweden', 2019, 'Total') is DropReason.AGE_LABEL
        assert entity_filter.drop_reason('Germany', 2019, '1 year') is DropReason.ENTITY
        assert entity_filter.drop_reason('Sweden', 2014, '1 year') is DropReason.YEAR
        assert entity_filter.drop_reason('Sweden', 2024, '1 year') is DropReason.YEAR
        assert entity_filter.drop_reason('Sweden', 2019, '1 year') is None

    def test_germany_only_excluded_from_fertility(self):
        mortality = EntityFilter(get_merge_preset('mortality').numerator_filter)
        fertility = EntityFilter(get_merge_preset('fertility').numerator_filter)
        assert mortality.accept('Germany', 2019, '30 years')
        assert not fertility.accept('Germany', 2019, '30 years')
        assert fertility.summary()['entity'] == 1


class TestLoaderFiltering:
    """Rows are filtered, normalised and counted."""

    def test_mortality_load(self, write_export):
        path = write_export('deaths.csv', [
            ('Sweden', 'Less than 1 year', 2019, 10),
            ('Sweden', '1 year', 2019, 2),
            ('Sweden', 'Total', 2019, 999),
            ('Romania', '1 year', 2019, 5),
            ('Sweden', '1 year', 2024, 7),
            ('Sweden', 'Open-ended age class', 2019, 40),
        ])
        preset = get_merge_preset('mortality')
        result = load_eurostat_file(path, MeasureKind.DEATHS, AgeDomain.MORTALITY,
                                    preset.numerator_filter)

        assert result.total_rows == 6
        assert result.kept_rows == 3, f"Expected 3 kept rows, got {result.kept_rows}"
        assert result.dropped == {'age_label': 1, 'entity': 1, 'year': 1}
        groups = [obs.age_group for obs in result.observations]
        assert groups == ['0-4', '0-4', '85+']
        assert all(obs.measure_kind is MeasureKind.DEATHS for obs in result.observations)
        assert result.observations[0].measure_value == 10.0

    def test_fertility_out_of_domain_counted(self, write_export):
        path = write_export('population.csv', [
            ('Sweden', 'From 10 to 14 years', 2019, 500),
            ('Sweden', 'From 15 to 19 years', 2019, 400),
            ('Sweden', 'From 50 to 54 years', 2019, 300),
        ])
        result = load_eurostat_file(path, MeasureKind.POPULATION, AgeDomain.FERTILITY)
        assert result.kept_rows == 1
        assert result.out_of_domain == 2
        assert result.observations[0].age_group == '15-19'

    def test_minimal_header_aliases(self, tmp_path):
        path = tmp_path / 'minimal.csv'
        path.write_text(
            "geo_entity,age_label,TIME_PERIOD,OBS_VALUE\n"
            "Sweden,From 5 to 9 years,2019,1200\n",
            encoding='utf-8',
        )
        result = load_eurostat_file(path, MeasureKind.POPULATION)
        assert result.kept_rows == 1
        assert result.observations[0].geo_entity == 'Sweden'
        assert result.observations[0].age_group == '5-9'


class TestSchemaValidation:
    """Columns are resolved once per file; drift fails fast."""

    def test_missing_column(self, tmp_path):
        path = tmp_path / 'bad.csv'
        path.write_text("geo_entity,age_label,TIME_PERIOD\nSweden,1 year,2019\n",
                        encoding='utf-8')
        with pytest.raises(SchemaError, match="obs_value"):
            load_eurostat_file(path, MeasureKind.DEATHS)

    def test_ambiguous_column(self, tmp_path):
        path = tmp_path / 'ambiguous.csv'
        path.write_text(
            "Geopolitical entity (reporting),geo_entity,age_label,TIME_PERIOD,OBS_VALUE\n"
            "Sweden,Sweden,1 year,2019,3\n",
            encoding='utf-8',
        )
        with pytest.raises(SchemaError, match="Ambiguous"):
            load_eurostat_file(path, MeasureKind.DEATHS)


class TestMalformedRows:
    """Strict mode raises with file and line; lenient mode records a rejection."""

    def test_strict_raises_with_location(self, write_export):
        path = write_export('deaths.csv', [
            ('Sweden', '1 year', 2019, 2),
            ('Sweden', '2 years', 2019, 'abc'),
        ])
        with pytest.raises(MalformedInputError) as info:
            load_eurostat_file(path, MeasureKind.DEATHS)
        assert info.value.line == 3, "Header is line 1, second data row is line 3"
        assert 'deaths.csv:3' in str(info.value)

    def test_strict_unknown_age_label_has_location(self, write_export):
        path = write_export('deaths.csv', [('Sweden', 'about thirty', 2019, 2)])
        with pytest.raises(MalformedInputError) as info:
            load_eurostat_file(path, MeasureKind.DEATHS)
        assert info.value.line == 2
        assert info.value.source == 'deaths.csv'

    def test_lenient_records_rejections(self, write_export):
        path = write_export('deaths.csv', [
            ('Sweden', '1 year', 2019, 2),
            ('Sweden', '2 years', 2019, 'abc'),
            ('Sweden', 'about thirty', 2019, 4),
            ('Sweden', '3 years', 'twenty', 4),
            ('Sweden', '4 years', 2019, -1),
        ])
        result = load_eurostat_file(path, MeasureKind.DEATHS, strict=False)
        assert result.kept_rows == 1
        fields = [(r.line, r.field_name) for r in result.rejections]
        assert fields == [(3, 'OBS_VALUE'), (4, 'age_label'), (5, 'TIME_PERIOD'),
                          (6, 'OBS_VALUE')], f"Unexpected rejections {fields}"


class TestAuditTrail:
    """The snapshot hash and summary travel with the observations."""

    def test_hash_and_audit_json(self, write_export, tmp_path):
        path = write_export('deaths.csv', [('Sweden', '1 year', 2019, 2)])
        loader = EurostatLoader(MeasureKind.DEATHS)
        result = loader.load_file(path)

        assert result.input_hash == hashlib.sha256(path.read_bytes()).hexdigest()

        audit_path = tmp_path / 'audit.json'
        result.to_audit_json(audit_path)
        audit = json.loads(audit_path.read_text(encoding='utf-8'))
        assert audit['summary']['kept_rows'] == 1
        assert audit['summary']['measure_kind'] == 'deaths'
        assert audit['rejections'] == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
