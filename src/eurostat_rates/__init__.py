"""
Eurostat Age-Standardised Rates

Batch pipeline turning raw Eurostat demographic exports (deaths, births,
population by country, year and age class) into tidy per country-year-age
datasets, age-standardised mortality and fertility rates (ASMR, ASFR), a
per-country reference (linear trend or mean baseline) and the percent
deviation of each observed rate from its reference.

Version: 1.0.0

Standards:
- US 2000 standard population (NCHS Statistical Notes No. 20)
- European Standard Population 2013 (Eurostat)

Author: Demographic Rates Project
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Demographic Rates Project"

from .exceptions import (
    RateAnalysisError,
    MalformedInputError,
    SchemaError,
    IntegrityViolationError,
    InsufficientDataError,
)

from .age_bands import (
    AgeDomain,
    AgeBandNormalizer,
    MORTALITY_AGE_GROUPS,
    FERTILITY_AGE_GROUPS,
    parse_age_label,
)

from .config import (
    MeasureKind,
    ReferenceStrategy,
    InsufficientDataPolicy,
    YearWindow,
    SourceFilter,
    OutputWindow,
    MergeConfig,
    AnalysisConfig,
    get_merge_preset,
    get_analysis_preset,
    load_merge_config,
    load_analysis_config,
)

from .filters import EntityFilter, DropReason

from .ingestion import (
    EurostatLoader,
    RawObservation,
    LoadResult,
    load_eurostat_file,
)

from .aggregation import (
    RecordAggregator,
    CountryYearAgeRecord,
    TidyDataset,
    build_tidy_dataset,
    read_tidy_csv,
)

from .standardization import (
    ReferenceWeights,
    RateStandardizer,
    US2000_WEIGHTS,
    ESP2013_WOMEN_15_49,
    get_weight_table,
    compute_standardized_rates,
    create_standardizer,
)

from .reference import (
    ReferenceEstimator,
    LinearTrendEstimator,
    MeanBaselineEstimator,
    FittedReference,
    ReferenceResult,
    create_estimator,
    estimate_references,
)

from .deviation import compute_deviations, percent_deviation

from .reporting import (
    DeviationReportGenerator,
    generate_deviation_report,
    format_deviation,
)

from .pipeline import (
    MergePipeline,
    MergeResult,
    AnalysisPipeline,
    AnalysisResult,
    create_merge_pipeline,
    create_analysis_pipeline,
)

__all__ = [
    # Errors
    "RateAnalysisError",
    "MalformedInputError",
    "SchemaError",
    "IntegrityViolationError",
    "InsufficientDataError",

    # Age bands
    "AgeDomain",
    "AgeBandNormalizer",
    "MORTALITY_AGE_GROUPS",
    "FERTILITY_AGE_GROUPS",
    "parse_age_label",

    # Configuration
    "MeasureKind",
    "ReferenceStrategy",
    "InsufficientDataPolicy",
    "YearWindow",
    "SourceFilter",
    "OutputWindow",
    "MergeConfig",
    "AnalysisConfig",
    "get_merge_preset",
    "get_analysis_preset",
    "load_merge_config",
    "load_analysis_config",

    # ETL
    "EntityFilter",
    "DropReason",
    "EurostatLoader",
    "RawObservation",
    "LoadResult",
    "load_eurostat_file",
    "RecordAggregator",
    "CountryYearAgeRecord",
    "TidyDataset",
    "build_tidy_dataset",
    "read_tidy_csv",

    # Standardisation
    "ReferenceWeights",
    "RateStandardizer",
    "US2000_WEIGHTS",
    "ESP2013_WOMEN_15_49",
    "get_weight_table",
    "compute_standardized_rates",
    "create_standardizer",

    # Reference and deviation
    "ReferenceEstimator",
    "LinearTrendEstimator",
    "MeanBaselineEstimator",
    "FittedReference",
    "ReferenceResult",
    "create_estimator",
    "estimate_references",
    "compute_deviations",
    "percent_deviation",

    # Reporting
    "DeviationReportGenerator",
    "generate_deviation_report",
    "format_deviation",

    # Pipelines
    "MergePipeline",
    "MergeResult",
    "AnalysisPipeline",
    "AnalysisResult",
    "create_merge_pipeline",
    "create_analysis_pipeline",
]
