"""
eurostat_rates/aggregation.py - Record Aggregator and Tidy Dataset Builder

Accumulates normalised observations under an explicit composite key
(country, year, age_group) and joins numerators against population.

Invariants:
- Numerators (deaths, births) landing on the same key are summed:
  "Less than 1 year" and "1 year" .. "4 years" all collapse into "0-4".
- A population key is assigned exactly once; a second value is an
  IntegrityViolationError, never an overwrite.
- Every tidy row carries both a numerator and a population; a numerator
  without population is an IntegrityViolationError, never a zero.

Author: Demographic Rates Project
License: MIT
"""

import pandas as pd
from typing import Dict, Iterable, List, Optional, Tuple, Union
from dataclasses import dataclass
from pathlib import Path
import logging

from .config import MeasureKind, OutputWindow
from .exceptions import IntegrityViolationError, SchemaError
from .ingestion import LoadResult, RawObservation

logger = logging.getLogger(__name__)

RecordKey = Tuple[str, int, str]

AGE_GROUP_COLUMN = 'age_group_5'


@dataclass
class CountryYearAgeRecord:
    """Accumulated values for one (country, year, age_group) key."""
    numerator: Optional[float] = None
    population: Optional[float] = None


# =============================================================================
# RECORD AGGREGATOR
# =============================================================================

class RecordAggregator:
    """
    Composite-key accumulator.

    One aggregator holds a single numerator kind; mixing deaths and births in
    one key space is refused.
    """

    def __init__(self, numerator_kind: MeasureKind = MeasureKind.DEATHS):
        if not numerator_kind.is_numerator:
            raise ValueError("numerator_kind must be deaths or births")
        self.numerator_kind = numerator_kind
        self.records: Dict[RecordKey, CountryYearAgeRecord] = {}

    def __len__(self) -> int:
        return len(self.records)

    def _record(self, key: RecordKey) -> CountryYearAgeRecord:
        record = self.records.get(key)
        if record is None:
            record = CountryYearAgeRecord()
            self.records[key] = record
        return record

    def add_numerator(self, country: str, year: int, age_group: str, value: float) -> None:
        """Add a deaths/births contribution to a key."""
        record = self._record((country, year, age_group))
        record.numerator = (record.numerator or 0.0) + value

    def set_population(self, country: str, year: int, age_group: str, value: float) -> None:
        """Assign the population of a key; a second assignment is fatal."""
        key = (country, year, age_group)
        record = self._record(key)
        if record.population is not None:
            raise IntegrityViolationError("Duplicate population value", key)
        record.population = value

    def add_observation(self, obs: RawObservation) -> None:
        if obs.measure_kind is MeasureKind.POPULATION:
            self.set_population(obs.geo_entity, obs.time_period, obs.age_group, obs.measure_value)
        elif obs.measure_kind is self.numerator_kind:
            self.add_numerator(obs.geo_entity, obs.time_period, obs.age_group, obs.measure_value)
        else:
            raise ValueError(
                f"Cannot aggregate {obs.measure_kind.value} into a "
                f"{self.numerator_kind.value} dataset"
            )

    def add_observations(self, observations: Iterable[RawObservation]) -> None:
        for obs in observations:
            self.add_observation(obs)

    def add_load_result(self, result: LoadResult) -> None:
        before = len(self.records)
        self.add_observations(result.observations)
        logger.info(
            f"Aggregated {result.kept_rows} {result.measure_kind.value} rows from "
            f"{result.input_filename} ({len(self.records) - before} new keys)"
        )

    def numerator_keys(self) -> List[RecordKey]:
        """Keys holding a numerator, sorted country, year, age group as written."""
        return sorted(k for k, r in self.records.items() if r.numerator is not None)


# =============================================================================
# TIDY DATASET
# =============================================================================

def format_count(value: float) -> str:
    """Render a count without a spurious '.0' for whole numbers."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


class TidyDataset:
    """
    One row per (country, year, age_group) with numerator and population.

    Columns: country, year, age_group_5, <deaths|births>, population
    """

    def __init__(self, data: pd.DataFrame, numerator_kind: MeasureKind):
        self.numerator_kind = numerator_kind
        self.data = data

    @property
    def numerator_column(self) -> str:
        return self.numerator_kind.value

    @property
    def columns(self) -> List[str]:
        return ['country', 'year', AGE_GROUP_COLUMN, self.numerator_column, 'population']

    def __len__(self) -> int:
        return len(self.data)

    def countries(self) -> List[str]:
        return sorted(self.data['country'].unique())

    def coverage(self) -> Dict[str, Dict]:
        """Row counts by country, age group and year."""
        return {
            column: {
                (int(k) if column == 'year' else k): int(v)
                for k, v in sorted(self.data[column].value_counts().items())
            }
            for column in ('country', AGE_GROUP_COLUMN, 'year')
        }

    def to_csv(self, filepath: Union[str, Path]) -> Path:
        """Write the canonical CSV; identical data gives identical bytes."""
        filepath = Path(filepath)
        out = pd.DataFrame({
            'country': self.data['country'],
            'year': self.data['year'].astype(int).astype(str),
            AGE_GROUP_COLUMN: self.data[AGE_GROUP_COLUMN],
            self.numerator_column: self.data[self.numerator_column].map(format_count),
            'population': self.data['population'].map(format_count),
        }, columns=self.columns)
        out.to_csv(filepath, index=False, lineterminator='\n')
        logger.info(f"Wrote {len(out)} rows to {filepath}")
        return filepath


def build_tidy_dataset(aggregator: RecordAggregator,
                       window: Optional[OutputWindow] = None) -> TidyDataset:
    """
    Join numerators against population.

    Args:
        aggregator: Filled RecordAggregator
        window: Optional output window restricting countries and years

    Returns:
        TidyDataset sorted by country, year and age group

    Raises:
        IntegrityViolationError: a numerator key has no population
    """
    numerator_column = aggregator.numerator_kind.value
    rows = []
    for key in aggregator.numerator_keys():
        country, year, age_group = key
        if window is not None and not window.includes(country, year):
            continue
        record = aggregator.records[key]
        if record.population is None:
            raise IntegrityViolationError("Missing population for numerator", key)
        rows.append((country, year, age_group, record.numerator, record.population))

    data = pd.DataFrame(
        rows, columns=['country', 'year', AGE_GROUP_COLUMN, numerator_column, 'population']
    )
    data = data.astype({'year': int, numerator_column: float, 'population': float})

    label = window.name if window is not None else "all years"
    logger.info(
        f"Tidy dataset ({label}): {len(data)} rows, "
        f"{data['country'].nunique()} countries"
    )
    return TidyDataset(data, aggregator.numerator_kind)


def read_tidy_csv(filepath: Union[str, Path]) -> TidyDataset:
    """
    Read a tidy CSV written by TidyDataset.to_csv (or the same layout).

    Raises:
        SchemaError: header is not country,year,age_group_5,<deaths|births>,population
    """
    filepath = Path(filepath)
    data = pd.read_csv(filepath, dtype={'country': str, AGE_GROUP_COLUMN: str})
    header = list(data.columns)

    numerator_kind = None
    for kind in (MeasureKind.DEATHS, MeasureKind.BIRTHS):
        if header == ['country', 'year', AGE_GROUP_COLUMN, kind.value, 'population']:
            numerator_kind = kind
    if numerator_kind is None:
        raise SchemaError(f"Unexpected tidy header {header}", value=header, source=filepath.name)

    data = data.astype({'year': int, numerator_kind.value: float, 'population': float})
    logger.info(f"Read {len(data)} tidy rows ({numerator_kind.value}) from {filepath.name}")
    return TidyDataset(data, numerator_kind)
