"""
eurostat_rates/config.py - Analysis Configuration

DESIGN PRINCIPLE: No hardcoded exclusion rules.
The loaders ask the SourceFilter: "Is this row in scope?"
The pipelines ask the AnalysisConfig: "Which weights, which window, which strategy?"

Everything that differs between the mortality and fertility analyses lives
here as data: excluded entities, excluded age classes, year windows, weight
table names, reference strategy. A new age restriction or measure type is a
new preset, not a new code path.

Author: Demographic Rates Project
License: MIT
"""

from typing import Dict, FrozenSet, List, Optional, Union, Any
from pathlib import Path
from enum import Enum
import json
from pydantic import BaseModel, Field, field_validator, model_validator
import logging

from .age_bands import AgeDomain

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================

class MeasureKind(Enum):
    """What the OBS_VALUE column of an input file counts."""
    DEATHS = "deaths"
    BIRTHS = "births"
    POPULATION = "population"

    @property
    def is_numerator(self) -> bool:
        return self is not MeasureKind.POPULATION


class ReferenceStrategy(Enum):
    """How the expected rate is derived from a country's history."""
    LINEAR_TREND = "linear_trend"
    MEAN_BASELINE = "mean_baseline"


class InsufficientDataPolicy(Enum):
    """What to do with a country that cannot be fitted."""
    RAISE = "raise"
    EXCLUDE = "exclude"


# =============================================================================
# EXCLUSION TABLES
# =============================================================================

# Aggregate and unknown age classes; the 75+/80+ umbrellas overlap the 5-year bands.
DEFAULT_EXCLUDED_AGE_LABELS: FrozenSet[str] = frozenset({
    'Total',
    'Unknown',
    '75 years or over',
    '80 years or over',
})

EUROSTAT_AGGREGATES: FrozenSet[str] = frozenset({
    'Euro area - 19 countries  (2015-2022)',
    'Euro area – 20 countries (from 2023)',
    'European Economic Area (EU27 - 2007-2013 and IS, LI, NO)',
    'European Economic Area (EU28 - 2013-2020 and IS, LI, NO)',
    'European Free Trade Association',
    'European Union - 27 countries (from 2020)',
    'European Union - 27 countries (2007-2013)',
    'European Union - 28 countries (2013-2020)',
})

# Non-target, defunct or incomplete-series entities shared by both analyses.
COMMON_EXCLUDED_ENTITIES: FrozenSet[str] = frozenset({
    'Albania',
    'Andorra',
    'Armenia',
    'Azerbaijan',
    'Belarus',
    'Bosnia and Herzegovina',
    'Bulgaria',
    'Georgia',
    'Germany including former GDR',
    'Kosovo*',
    'Liechtenstein',
    'Lithuania',
    'Luxembourg',
    'Malta',
    'Metropolitan France',
    'Moldova',
    'Monaco',
    'Montenegro',
    'North Macedonia',
    'Russia',
    'San Marino',
    'Serbia',
    'Türkiye',
    'Ukraine',
    'United Kingdom',
})

MORTALITY_EXCLUDED_ENTITIES: FrozenSet[str] = (
    COMMON_EXCLUDED_ENTITIES | EUROSTAT_AGGREGATES | {'Romania'}
)

FERTILITY_EXCLUDED_ENTITIES: FrozenSet[str] = (
    COMMON_EXCLUDED_ENTITIES | EUROSTAT_AGGREGATES | {'Germany'}
)

INCOMPLETE_YEAR = 2024


# =============================================================================
# PYDANTIC MODELS FOR CONFIGURATION
# =============================================================================

class YearWindow(BaseModel):
    """Closed range of calendar years."""
    first: int
    last: int

    @model_validator(mode='after')
    def check_order(self) -> 'YearWindow':
        if self.first > self.last:
            raise ValueError(f"Year window {self.first}-{self.last} is inverted")
        return self

    def years(self) -> List[int]:
        return list(range(self.first, self.last + 1))

    def contains(self, year: int) -> bool:
        return self.first <= year <= self.last

    @property
    def label(self) -> str:
        return f"{self.first}-{self.last}"


class SourceFilter(BaseModel):
    """Entity Filter settings for one input file."""
    excluded_age_labels: FrozenSet[str] = Field(
        default=DEFAULT_EXCLUDED_AGE_LABELS,
        description="Age classes dropped before normalisation"
    )
    excluded_entities: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Geographic entities dropped (countries, aggregates, defunct entities)"
    )
    min_year: Optional[int] = Field(
        default=None,
        description="Rows with TIME_PERIOD below this year are dropped"
    )
    excluded_years: FrozenSet[int] = Field(
        default_factory=frozenset,
        description="Individual years dropped, e.g. an incomplete latest year"
    )


class OutputWindow(BaseModel):
    """One tidy CSV written by the merge stage."""
    name: str
    filename: str
    first_year: Optional[int] = None
    last_year: Optional[int] = None
    excluded_countries: FrozenSet[str] = Field(default_factory=frozenset)
    excluded_years: FrozenSet[int] = Field(default_factory=frozenset)

    def includes(self, country: str, year: int) -> bool:
        if country in self.excluded_countries:
            return False
        if year in self.excluded_years:
            return False
        if self.first_year is not None and year < self.first_year:
            return False
        if self.last_year is not None and year > self.last_year:
            return False
        return True


class MergeConfig(BaseModel):
    """Configuration of the ETL stage (raw files -> tidy dataset)."""
    name: str
    domain: AgeDomain = AgeDomain.MORTALITY
    numerator_kind: MeasureKind = MeasureKind.DEATHS
    numerator_filter: SourceFilter = Field(default_factory=SourceFilter)
    population_filter: SourceFilter = Field(default_factory=SourceFilter)
    output_windows: List[OutputWindow] = Field(default_factory=list)
    strict: bool = Field(
        default=True,
        description="Raise on the first malformed row instead of rejecting it"
    )

    @field_validator('numerator_kind')
    @classmethod
    def numerator_only(cls, value: MeasureKind) -> MeasureKind:
        if not value.is_numerator:
            raise ValueError("numerator_kind must be deaths or births")
        return value


class AnalysisConfig(BaseModel):
    """Configuration of the rate / reference / deviation stage."""
    name: str
    domain: AgeDomain = AgeDomain.MORTALITY
    weights: str = Field(default="us2000", description="Name of a built-in weight table")
    age_groups: Optional[List[str]] = Field(
        default=None,
        description="Restrict (and rescale) the weight table to these age groups"
    )
    strategy: ReferenceStrategy = ReferenceStrategy.LINEAR_TREND
    fit_window: YearWindow
    output_range: YearWindow
    report_years: YearWindow
    on_insufficient: InsufficientDataPolicy = InsufficientDataPolicy.RAISE
    require_complete: bool = Field(
        default=True,
        description="A (country, year) missing a weighted age group has no rate"
    )

    @model_validator(mode='after')
    def check_windows(self) -> 'AnalysisConfig':
        if not (self.output_range.contains(self.report_years.first)
                and self.output_range.contains(self.report_years.last)):
            raise ValueError(
                f"Report years {self.report_years.label} outside output range "
                f"{self.output_range.label}"
            )
        return self

    @property
    def rate_name(self) -> str:
        return "ASFR" if self.domain is AgeDomain.FERTILITY else "ASMR"


# =============================================================================
# PRESETS
# =============================================================================

MORTALITY_MERGE = MergeConfig(
    name="mortality",
    domain=AgeDomain.MORTALITY,
    numerator_kind=MeasureKind.DEATHS,
    numerator_filter=SourceFilter(
        excluded_entities=MORTALITY_EXCLUDED_ENTITIES,
        excluded_years=frozenset({INCOMPLETE_YEAR}),
    ),
    population_filter=SourceFilter(
        excluded_entities=MORTALITY_EXCLUDED_ENTITIES,
        excluded_years=frozenset({INCOMPLETE_YEAR}),
    ),
    output_windows=[
        OutputWindow(
            name="2011-2023",
            filename="pop_deaths_eurostats_2011_2023.csv",
            first_year=2011,
            excluded_years=frozenset({INCOMPLETE_YEAR}),
        ),
        OutputWindow(
            name="1998-2023",
            filename="pop_deaths_eurostats_1998_2023.csv",
            excluded_countries=frozenset({'Croatia', 'Latvia'}),
            excluded_years=frozenset({INCOMPLETE_YEAR}),
        ),
    ],
)

FERTILITY_MERGE = MergeConfig(
    name="fertility",
    domain=AgeDomain.FERTILITY,
    numerator_kind=MeasureKind.BIRTHS,
    numerator_filter=SourceFilter(
        excluded_age_labels=frozenset({'Total', 'Unknown'}),
        excluded_entities=FERTILITY_EXCLUDED_ENTITIES,
        min_year=2015,
        excluded_years=frozenset({INCOMPLETE_YEAR}),
    ),
    population_filter=SourceFilter(
        excluded_entities=FERTILITY_EXCLUDED_ENTITIES,
        min_year=2015,
        excluded_years=frozenset({INCOMPLETE_YEAR}),
    ),
    output_windows=[
        OutputWindow(name="2011-2023", filename="pop_births_eurostats_2011_2023.csv"),
    ],
)

MERGE_PRESETS: Dict[str, MergeConfig] = {
    MORTALITY_MERGE.name: MORTALITY_MERGE,
    FERTILITY_MERGE.name: FERTILITY_MERGE,
}

_OUTPUT_RANGE = YearWindow(first=2011, last=2023)
_REPORT_YEARS = YearWindow(first=2020, last=2023)

ANALYSIS_PRESETS: Dict[str, AnalysisConfig] = {
    "asmr-linear-trend": AnalysisConfig(
        name="asmr-linear-trend",
        domain=AgeDomain.MORTALITY,
        weights="us2000",
        strategy=ReferenceStrategy.LINEAR_TREND,
        fit_window=YearWindow(first=2015, last=2019),
        output_range=_OUTPUT_RANGE,
        report_years=_REPORT_YEARS,
    ),
    "asmr-0-19-baseline": AnalysisConfig(
        name="asmr-0-19-baseline",
        domain=AgeDomain.MORTALITY,
        weights="us2000",
        age_groups=["0-4", "5-9", "10-14", "15-19"],
        strategy=ReferenceStrategy.MEAN_BASELINE,
        fit_window=YearWindow(first=2017, last=2019),
        output_range=_OUTPUT_RANGE,
        report_years=_REPORT_YEARS,
    ),
    "asfr-baseline": AnalysisConfig(
        name="asfr-baseline",
        domain=AgeDomain.FERTILITY,
        weights="esp2013_women_15_49",
        strategy=ReferenceStrategy.MEAN_BASELINE,
        fit_window=YearWindow(first=2017, last=2019),
        output_range=_OUTPUT_RANGE,
        report_years=_REPORT_YEARS,
    ),
}


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def get_merge_preset(name: str) -> MergeConfig:
    """Return a private copy of a built-in merge configuration."""
    if name not in MERGE_PRESETS:
        raise ValueError(f"Unknown merge preset '{name}'. Available: {sorted(MERGE_PRESETS)}")
    return MERGE_PRESETS[name].model_copy(deep=True)


def get_analysis_preset(name: str) -> AnalysisConfig:
    """Return a private copy of a built-in analysis configuration."""
    if name not in ANALYSIS_PRESETS:
        raise ValueError(f"Unknown analysis preset '{name}'. Available: {sorted(ANALYSIS_PRESETS)}")
    return ANALYSIS_PRESETS[name].model_copy(deep=True)


def _read_json(filepath: Union[str, Path]) -> Dict[str, Any]:
    with open(filepath, encoding='utf-8') as f:
        return json.load(f)


def load_merge_config(filepath: Union[str, Path]) -> MergeConfig:
    """Load a merge configuration from a JSON file."""
    config = MergeConfig.model_validate(_read_json(filepath))
    logger.info(f"Loaded merge config '{config.name}' from {Path(filepath).name}")
    return config


def load_analysis_config(filepath: Union[str, Path]) -> AnalysisConfig:
    """Load an analysis configuration from a JSON file."""
    config = AnalysisConfig.model_validate(_read_json(filepath))
    logger.info(f"Loaded analysis config '{config.name}' from {Path(filepath).name}")
    return config
