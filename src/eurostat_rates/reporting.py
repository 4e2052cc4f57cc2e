"""
eurostat_rates/reporting.py - Deviation Excel Reporting

Produces an Excel workbook from an analysis run:
1. Deviation - wide country × year table of the report years, colour banded
2. Rates - long table of rate, reference and deviation per country-year
3. Reference Fits - intercept, slope and points used per country
4. Summary - analysis configuration and counts

Colour bands (percent deviation):
    < -10 | [-10, -5) | [-5, 0) | [0, 1) | [1, 3) | [3, 10) | >= 10
Mortality reads blue as deficit and red as excess; fertility reverses the
palette, since a birth deficit is the adverse outcome.

Author: Demographic Rates Project
License: MIT
"""

import bisect
import math
import pandas as pd
from typing import Dict, List, Optional, Tuple, Any, Union
from pathlib import Path
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill
from openpyxl.utils import get_column_letter

from .age_bands import AgeDomain

logger = logging.getLogger(__name__)


# =============================================================================
# COLOUR BANDS
# =============================================================================

BAND_EDGES: Tuple[float, ...] = (-10.0, -5.0, 0.0, 1.0, 3.0, 10.0)

BAND_LABELS: Tuple[str, ...] = (
    "< -10%", "-10% to -5%", "-5% to 0%", "0% to 1%", "1% to 3%", "3% to 10%", ">= 10%",
)

WHITE = "FFFFFF"
BLACK = "000000"

# (fill, font colour) per band, lowest band first
MORTALITY_PALETTE: Tuple[Tuple[str, str], ...] = (
    ("0D47A1", WHITE),
    ("42A5F5", BLACK),
    ("BBDEFB", BLACK),
    ("FFFFFF", BLACK),
    ("FFCCCB", BLACK),
    ("EF5350", WHITE),
    ("B71C1C", WHITE),
)

FERTILITY_PALETTE: Tuple[Tuple[str, str], ...] = tuple(reversed(MORTALITY_PALETTE))


def deviation_band(value: float) -> Optional[int]:
    """Index of the colour band of a deviation, None when it is missing."""
    if value is None or math.isnan(value):
        return None
    return bisect.bisect_right(BAND_EDGES, value)


def palette_for(domain: AgeDomain) -> Tuple[Tuple[str, str], ...]:
    return FERTILITY_PALETTE if domain is AgeDomain.FERTILITY else MORTALITY_PALETTE


def format_deviation(value: float) -> str:
    """Signed one-decimal label, e.g. '+10.0 %'; empty when missing."""
    if value is None or math.isnan(value):
        return ""
    return f"{value:+.1f} %"


def pivot_deviations(deviations: pd.DataFrame, years: List[int]) -> pd.DataFrame:
    """Wide table: one row per country, one column per report year."""
    subset = deviations[deviations['year'].isin(years)]
    wide = subset.pivot(index='country', columns='year', values='deviation_pct')
    wide = wide.reindex(columns=years).sort_index()
    wide.columns = [int(c) for c in wide.columns]
    return wide


# =============================================================================
# DEVIATION REPORT GENERATOR
# =============================================================================

class DeviationReportGenerator:
    """
    Generates the deviation workbook of one analysis.

    The generator only reads the result it is given: `deviations`,
    `reference.fits`, `reference.excluded` and `config`.
    """

    SHEETS = ["Deviation", "Rates", "Reference Fits", "Summary"]

    def __init__(self):
        self.workbook = None

        self.deviation_format = '+0.0" %";-0.0" %";0.0" %"'
        self.rate_format = '0.00'

        self.title_font = Font(bold=True, size=14)
        self.header_font = Font(bold=True, size=11)
        self.header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        self.header_font_white = Font(bold=True, size=11, color="FFFFFF")

    def create_new_workbook(self) -> None:
        """Create a new workbook with the report sheets."""
        self.workbook = Workbook()
        if 'Sheet' in self.workbook.sheetnames:
            del self.workbook['Sheet']
        for sheet_name in self.SHEETS:
            self.workbook.create_sheet(sheet_name)
        logger.info(f"Created workbook with {len(self.SHEETS)} sheets")

    def _write_header(self, sheet, row: int, headers: List[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = sheet.cell(row=row, column=col, value=header)
            cell.font = self.header_font_white
            cell.fill = self.header_fill
            cell.alignment = Alignment(horizontal='center')

    @staticmethod
    def _cell_value(value: Any) -> Optional[float]:
        if value is None:
            return None
        value = float(value)
        return None if math.isnan(value) else value

    def populate_from_result(self, result) -> None:
        """Fill every sheet from an AnalysisResult."""
        if self.workbook is None:
            self.create_new_workbook()

        self._populate_deviation(result)
        self._populate_rates(result)
        self._populate_fits(result)
        self._populate_summary(result)

    def _populate_deviation(self, result) -> None:
        config = result.config
        sheet = self.workbook["Deviation"]
        years = config.report_years.years()
        palette = palette_for(config.domain)

        sheet['A1'] = f"{config.rate_name} deviation from reference ({config.name})"
        sheet['A1'].font = self.title_font

        self._write_header(sheet, 3, ["Country"] + [str(y) for y in years])

        wide = pivot_deviations(result.deviations, years)
        row = 4
        for country, values in wide.iterrows():
            sheet.cell(row=row, column=1, value=country)
            for col, year in enumerate(years, start=2):
                value = values[year]
                cell = sheet.cell(row=row, column=col, value=self._cell_value(value))
                band = deviation_band(value)
                if band is None:
                    continue
                fill, font_colour = palette[band]
                cell.fill = PatternFill(start_color=fill, end_color=fill, fill_type="solid")
                cell.font = Font(color=font_colour)
                cell.number_format = self.deviation_format
                cell.alignment = Alignment(horizontal='center')
            row += 1

        # Legend
        row += 1
        sheet.cell(row=row, column=1, value="Legend").font = self.header_font
        for band, label in enumerate(BAND_LABELS):
            fill, font_colour = palette[band]
            cell = sheet.cell(row=row + 1 + band, column=1, value=label)
            cell.fill = PatternFill(start_color=fill, end_color=fill, fill_type="solid")
            cell.font = Font(color=font_colour)

        sheet.column_dimensions['A'].width = 24
        for col in range(2, len(years) + 2):
            sheet.column_dimensions[get_column_letter(col)].width = 12

    def _populate_rates(self, result) -> None:
        config = result.config
        sheet = self.workbook["Rates"]
        self._write_header(sheet, 1, ["Country", "Year", config.rate_name,
                                      "Reference", "Deviation"])

        for row, record in enumerate(result.deviations.itertuples(index=False), start=2):
            sheet.cell(row=row, column=1, value=record.country)
            sheet.cell(row=row, column=2, value=int(record.year))
            for col, value in ((3, record.rate), (4, record.reference)):
                cell = sheet.cell(row=row, column=col, value=self._cell_value(value))
                cell.number_format = self.rate_format
            cell = sheet.cell(row=row, column=5, value=self._cell_value(record.deviation_pct))
            cell.number_format = self.deviation_format

        sheet.column_dimensions['A'].width = 24
        for letter in "BCDE":
            sheet.column_dimensions[letter].width = 14

    def _populate_fits(self, result) -> None:
        sheet = self.workbook["Reference Fits"]
        headers = ["Country", "Strategy", "Window", "Intercept", "Slope", "Points"]
        self._write_header(sheet, 1, headers)

        fits = result.reference.fits
        for row, country in enumerate(sorted(fits), start=2):
            fitted = fits[country]
            values = [country, fitted.strategy.value, fitted.window.label,
                      fitted.intercept, fitted.slope, fitted.n_points]
            for col, value in enumerate(values, start=1):
                sheet.cell(row=row, column=col, value=value)

        sheet.column_dimensions['A'].width = 24
        sheet.column_dimensions['B'].width = 16

    def _populate_summary(self, result) -> None:
        config = result.config
        sheet = self.workbook["Summary"]

        sheet['A1'] = f"{config.rate_name} Analysis Summary"
        sheet['A1'].font = self.title_font

        summary_data = [
            ("Analysis", config.name),
            ("Domain", config.domain.value),
            ("Weight table", result.weights_name),
            ("Reference strategy", config.strategy.value),
            ("Fitting window", config.fit_window.label),
            ("Output range", config.output_range.label),
            ("Report years", config.report_years.label),
            ("Countries fitted", len(result.reference.fits)),
            ("Countries excluded", ", ".join(result.reference.excluded) or "none"),
        ]
        for i, (label, value) in enumerate(summary_data, start=3):
            sheet[f'A{i}'] = label
            sheet[f'A{i}'].font = self.header_font
            sheet[f'B{i}'] = value

        sheet.column_dimensions['A'].width = 22
        sheet.column_dimensions['B'].width = 40

    def save(self, output_path: Union[str, Path]) -> Path:
        """
        Save the workbook to file.

        Args:
            output_path: Path to save the Excel file

        Returns:
            Path to saved file
        """
        output_path = Path(output_path)

        if self.workbook is None:
            raise ValueError("No workbook to save - call create_new_workbook() first")

        self.workbook.save(output_path)
        logger.info(f"Saved report to: {output_path}")

        return output_path


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def generate_deviation_report(result, output_path: Union[str, Path]) -> Path:
    """
    Generate the deviation workbook of an analysis.

    Args:
        result: AnalysisResult from AnalysisPipeline.run
        output_path: Path to save the Excel file

    Returns:
        Path to saved file
    """
    generator = DeviationReportGenerator()
    generator.create_new_workbook()
    generator.populate_from_result(result)
    return generator.save(output_path)


def band_counts(deviations: pd.DataFrame, years: List[int]) -> Dict[str, int]:
    """Number of report-year deviations falling in each colour band."""
    counts = {label: 0 for label in BAND_LABELS}
    for value in deviations.loc[deviations['year'].isin(years), 'deviation_pct']:
        band = deviation_band(value)
        if band is not None:
            counts[BAND_LABELS[band]] += 1
    return counts
