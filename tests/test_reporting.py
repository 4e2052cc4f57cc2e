"""
tests/test_reporting.py - Deviation Report Tests

Covers:
1. Colour band boundaries (< -10 .. >= 10)
2. Mortality palette and its fertility reversal
3. Deviation labels (%+.1f %)
4. Workbook layout

Author: Demographic Rates Project
License: MIT
"""

import math

import pytest
from openpyxl import load_workbook

from conftest import make_tidy
from eurostat_rates.age_bands import AgeDomain
from eurostat_rates.config import AnalysisConfig, ReferenceStrategy, YearWindow
from eurostat_rates.pipeline import AnalysisPipeline
from eurostat_rates.reporting import (
    FERTILITY_PALETTE,
    MORTALITY_PALETTE,
    deviation_band,
    format_deviation,
    palette_for,
)


class TestColourBands:
    """Band edges are closed on the left."""

    @pytest.mark.parametrize("value, band", [
        (-25.0, 0),
        (-10.0, 1),
        (-5.01, 1),
        (-5.0, 2),
        (-0.1, 2),
        (0.0, 3),
        (0.99, 3),
        (1.0, 4),
        (3.0, 5),
        (9.99, 5),
        (10.0, 6),
        (40.0, 6),
    ])
    def test_band(self, value, band):
        assert deviation_band(value) == band, f"{value} should fall in band {band}"

    def test_missing_has_no_band(self):
        assert deviation_band(float('nan')) is None

    def test_palettes(self):
        assert palette_for(AgeDomain.MORTALITY)[0] == ("0D47A1", "FFFFFF"), \
            "Strong mortality deficit is dark blue"
        assert palette_for(AgeDomain.MORTALITY)[6] == ("B71C1C", "FFFFFF")
        assert palette_for(AgeDomain.FERTILITY)[0] == ("B71C1C", "FFFFFF"), \
            "Strong birth deficit is dark red"
        assert FERTILITY_PALETTE == tuple(reversed(MORTALITY_PALETTE))

    def test_labels(self):
        assert format_deviation(10.0) == "+10.0 %"
        assert format_deviation(-15.0) == "-15.0 %"
        assert format_deviation(0.04) == "+0.0 %"
        assert format_deviation(math.nan) == ""


class TestWorkbook:
    """The workbook carries the four report sheets."""

    def test_generate(self, tmp_path):
        rows = []
        for year in range(2015, 2021):
            deaths = 100 + 2 * (year - 2015) if year < 2020 else 132
            rows.append(('Sweden', year, '0-4', deaths, 100000))
        config = AnalysisConfig(
            name="test",
            domain=AgeDomain.MORTALITY,
            age_groups=["0-4"],
            strategy=ReferenceStrategy.LINEAR_TREND,
            fit_window=YearWindow(first=2015, last=2019),
            output_range=YearWindow(first=2015, last=2020),
            report_years=YearWindow(first=2019, last=2020),
        )
        result = AnalysisPipeline(config).run(make_tidy(rows))
        path = result.to_excel(tmp_path / 'report.xlsx')

        workbook = load_workbook(path)
        assert workbook.sheetnames == ["Deviation", "Rates", "Reference Fits", "Summary"]

        sheet = workbook["Deviation"]
        assert sheet['A4'].value == 'Sweden'
        assert sheet['C4'].value == pytest.approx(20.0)
        assert sheet['C4'].fill.start_color.rgb.endswith("B71C1C"), \
            "+20 % excess mortality is the darkest red"

        rates = workbook["Rates"]
        assert rates['C1'].value == 'ASMR'
        assert rates.max_row == 7, "Header plus six output years"

        fits = workbook["Reference Fits"]
        assert fits['E2'].value == pytest.approx(2.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
