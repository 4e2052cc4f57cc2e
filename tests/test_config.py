"""
tests/test_config.py - Configuration Tests

Exclusion lists, windows and analysis settings are data; these tests pin
the presets reproducing the published analyses and the validation rules.

Author: Demographic Rates Project
License: MIT
"""

import json

import pytest
from pydantic import ValidationError

from eurostat_rates.age_bands import AgeDomain
from eurostat_rates.config import (
    ANALYSIS_PRESETS,
    AnalysisConfig,
    MeasureKind,
    MergeConfig,
    OutputWindow,
    ReferenceStrategy,
    YearWindow,
    get_analysis_preset,
    get_merge_preset,
    load_analysis_config,
    load_merge_config,
)


class TestYearWindow:
    def test_years(self):
        window = YearWindow(first=2017, last=2019)
        assert window.years() == [2017, 2018, 2019]
        assert window.contains(2018) and not window.contains(2020)
        assert window.label == "2017-2019"

    def test_inverted_rejected(self):
        with pytest.raises(ValidationError):
            YearWindow(first=2019, last=2015)


class TestMergePresets:
    """The mortality and fertility merges keep separate exclusion lists."""

    def test_mortality(self):
        config = get_merge_preset('mortality')
        assert config.numerator_kind is MeasureKind.DEATHS
        assert 'Romania' in config.numerator_filter.excluded_entities
        assert 'Germany' not in config.numerator_filter.excluded_entities
        assert 'Total' in config.numerator_filter.excluded_age_labels
        assert [w.name for w in config.output_windows] == ['2011-2023', '1998-2023']
        assert 2024 in config.numerator_filter.excluded_years, "Incomplete year filtered on load"
        assert 2024 in config.population_filter.excluded_years

    def test_fertility(self):
        config = get_merge_preset('fertility')
        assert config.domain is AgeDomain.FERTILITY
        assert 'Germany' in config.numerator_filter.excluded_entities
        assert 'Romania' not in config.numerator_filter.excluded_entities
        assert config.numerator_filter.min_year == 2015
        assert 2024 in config.numerator_filter.excluded_years

    def test_presets_are_copies(self):
        config = get_merge_preset('mortality')
        config.output_windows.clear()
        assert len(get_merge_preset('mortality').output_windows) == 2

    def test_unknown_preset(self):
        with pytest.raises(ValueError, match="Unknown merge preset"):
            get_merge_preset('suicide')

    def test_population_is_not_a_numerator(self):
        with pytest.raises(ValidationError):
            MergeConfig(name='bad', numerator_kind=MeasureKind.POPULATION)

    def test_output_window_includes(self):
        window = OutputWindow(name='w', filename='w.csv', first_year=2011,
                              excluded_countries=frozenset({'Latvia'}),
                              excluded_years=frozenset({2024}))
        assert window.includes('Sweden', 2011)
        assert not window.includes('Sweden', 2010)
        assert not window.includes('Sweden', 2024)
        assert not window.includes('Latvia', 2015)


class TestAnalysisPresets:
    def test_three_published_analyses(self):
        assert set(ANALYSIS_PRESETS) == {'asmr-linear-trend', 'asmr-0-19-baseline',
                                         'asfr-baseline'}
        linear = get_analysis_preset('asmr-linear-trend')
        assert linear.strategy is ReferenceStrategy.LINEAR_TREND
        assert linear.fit_window.label == '2015-2019'
        assert linear.rate_name == 'ASMR'

        young = get_analysis_preset('asmr-0-19-baseline')
        assert young.age_groups == ['0-4', '5-9', '10-14', '15-19']
        assert young.fit_window.label == '2017-2019'

        fertility = get_analysis_preset('asfr-baseline')
        assert fertility.rate_name == 'ASFR'
        assert fertility.weights == 'esp2013_women_15_49'

    def test_report_years_inside_output_range(self):
        with pytest.raises(ValidationError):
            AnalysisConfig(
                name='bad',
                fit_window=YearWindow(first=2015, last=2019),
                output_range=YearWindow(first=2011, last=2020),
                report_years=YearWindow(first=2020, last=2023),
            )


class TestJsonConfig:
    def test_load_analysis_config(self, tmp_path):
        path = tmp_path / 'analysis.json'
        path.write_text(json.dumps({
            'name': 'custom',
            'domain': 'mortality',
            'strategy': 'mean_baseline',
            'on_insufficient': 'exclude',
            'fit_window': {'first': 2016, 'last': 2019},
            'output_range': {'first': 2016, 'last': 2023},
            'report_years': {'first': 2020, 'last': 2023},
        }), encoding='utf-8')
        config = load_analysis_config(path)
        assert config.strategy is ReferenceStrategy.MEAN_BASELINE
        assert config.weights == 'us2000'

    def test_load_merge_config(self, tmp_path):
        path = tmp_path / 'merge.json'
        path.write_text(json.dumps({
            'name': 'nordic',
            'numerator_kind': 'deaths',
            'numerator_filter': {'excluded_entities': ['Norway'], 'min_year': 2000},
            'output_windows': [{'name': 'all', 'filename': 'nordic.csv'}],
        }), encoding='utf-8')
        config = load_merge_config(path)
        assert config.numerator_filter.excluded_entities == frozenset({'Norway'})
        assert config.numerator_filter.excluded_age_labels == frozenset(
            {'Total', 'Unknown', '75 years or over', '80 years or over'}
        )


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
