"""
tests/conftest.py - Shared fixtures

Writes small Eurostat-shaped SDMX-CSV exports into tmp_path.

Author: Demographic Rates Project
License: MIT
"""

import csv

import pandas as pd
import pytest

from eurostat_rates.aggregation import TidyDataset
from eurostat_rates.config import MeasureKind


EXPORT_HEADER = [
    'STRUCTURE', 'STRUCTURE_ID', 'freq', 'unit', 'sex', 'age', 'Age class',
    'geo', 'Geopolitical entity (reporting)', 'TIME_PERIOD', 'OBS_VALUE', 'OBS_FLAG',
]

# One single-year label per mortality group, then the open-ended class.
DEATHS_LABELS = (
    ["Less than 1 year"]
    + [f"{lower + 2} years" for lower in range(5, 85, 5)]
    + ["Open-ended age class"]
)

POPULATION_LABELS = (
    ["Less than 5 years"]
    + [f"From {lower} to {lower + 4} years" for lower in range(5, 85, 5)]
    + ["85 years or over"]
)


def write_export_file(path, rows):
    """rows: iterable of (geo, age_label, year, value)."""
    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(EXPORT_HEADER)
        for geo, age_label, year, value in rows:
            writer.writerow([
                'dataflow', 'ESTAT:TEST(1.0)', 'A', 'NR', 'T', 'Y_X', age_label,
                'XX', geo, year, value, '',
            ])
    return path


def full_mortality_rows(countries, years, deaths=10, population=100000):
    """Complete deaths and population rows: every mortality group present."""
    death_rows = [(c, label, y, deaths) for c in countries for y in years
                  for label in DEATHS_LABELS]
    population_rows = [(c, label, y, population) for c in countries for y in years
                       for label in POPULATION_LABELS]
    return death_rows, population_rows


def make_tidy(rows, kind=MeasureKind.DEATHS):
    """rows: iterable of (country, year, age_group, numerator, population)."""
    data = pd.DataFrame(rows, columns=['country', 'year', 'age_group_5',
                                       kind.value, 'population'])
    data = data.astype({'year': int, kind.value: float, 'population': float})
    return TidyDataset(data, kind)


@pytest.fixture
def write_export(tmp_path):
    """Factory fixture: write_export(name, rows) -> Path."""
    def _write(name, rows):
        return write_export_file(tmp_path / name, rows)
    return _write
