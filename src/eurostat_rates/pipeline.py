"""
eurostat_rates/pipeline.py - Batch Pipelines

Two one-shot batch stages:

MergePipeline (ETL):
    numerator file + population file
      -> EurostatLoader (header validation, Entity Filter, Age-Band Normalizer)
      -> RecordAggregator
      -> one TidyDataset per output window

AnalysisPipeline:
    TidyDataset
      -> RateStandardizer        (one rate per country-year)
      -> ReferenceEstimator      (one fit per country, evaluated over the output range)
      -> compute_deviations      (percent deviation per country-year)

Both read their inputs completely before processing and fail fast on
integrity violations. Countries are processed in sorted order, so two runs
on identical input give identical output.

Author: Demographic Rates Project
License: MIT
"""

import pandas as pd
from datetime import datetime
from typing import Dict, List, Union, Any
from dataclasses import dataclass, field
from pathlib import Path
import logging

from .age_bands import AgeDomain
from .aggregation import RecordAggregator, TidyDataset, build_tidy_dataset
from .config import (
    AnalysisConfig,
    MeasureKind,
    MergeConfig,
    get_analysis_preset,
    get_merge_preset,
)
from .deviation import compute_deviations
from .ingestion import EurostatLoader, LoadResult
from .reference import ReferenceResult, create_estimator, estimate_references
from .reporting import band_counts, generate_deviation_report, pivot_deviations
from .standardization import create_standardizer

logger = logging.getLogger(__name__)

DOMAIN_NUMERATOR = {
    AgeDomain.MORTALITY: MeasureKind.DEATHS,
    AgeDomain.FERTILITY: MeasureKind.BIRTHS,
}


# =============================================================================
# MERGE PIPELINE
# =============================================================================

@dataclass
class MergeResult:
    """Tidy datasets of a merge run plus the audit of both loads."""
    config: MergeConfig
    numerator_load: LoadResult
    population_load: LoadResult
    datasets: Dict[str, TidyDataset] = field(default_factory=dict)
    filenames: Dict[str, str] = field(default_factory=dict)

    def write(self, output_dir: Union[str, Path]) -> List[Path]:
        """Write every window's tidy CSV into a directory."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        return [self.datasets[name].to_csv(output_dir / self.filenames[name])
                for name in self.datasets]

    def get_summary(self) -> Dict[str, Any]:
        return {
            'merge': self.config.name,
            'numerator': self.numerator_load.get_summary(),
            'population': self.population_load.get_summary(),
            'windows': {
                name: {
                    'filename': self.filenames[name],
                    'rows': len(dataset),
                    'countries': len(dataset.countries()),
                }
                for name, dataset in self.datasets.items()
            },
        }


class MergePipeline:
    """Raw Eurostat exports -> tidy per country-year-age datasets."""

    def __init__(self, config: MergeConfig):
        self.config = config
        self.numerator_loader = EurostatLoader(
            config.numerator_kind, config.domain, config.numerator_filter, config.strict
        )
        self.population_loader = EurostatLoader(
            MeasureKind.POPULATION, config.domain, config.population_filter, config.strict
        )
        logger.info(
            f"MergePipeline initialized: {config.name} "
            f"({config.numerator_kind.value}, {len(config.output_windows)} output windows)"
        )

    def run(self, numerator_path: Union[str, Path],
            population_path: Union[str, Path]) -> MergeResult:
        """
        Load both files, aggregate and build the tidy datasets.

        Raises:
            SchemaError: a required column is missing
            MalformedInputError: malformed row in strict mode
            IntegrityViolationError: duplicate population, or numerator without population
        """
        numerator_load = self.numerator_loader.load_file(numerator_path)
        population_load = self.population_loader.load_file(population_path)

        aggregator = RecordAggregator(self.config.numerator_kind)
        aggregator.add_load_result(numerator_load)
        aggregator.add_load_result(population_load)

        result = MergeResult(self.config, numerator_load, population_load)
        if self.config.output_windows:
            for window in self.config.output_windows:
                result.datasets[window.name] = build_tidy_dataset(aggregator, window)
                result.filenames[window.name] = window.filename
        else:
            result.datasets['all'] = build_tidy_dataset(aggregator)
            result.filenames['all'] = (
                f"pop_{self.config.numerator_kind.value}_{self.config.name}.csv"
            )
        return result


# =============================================================================
# ANALYSIS PIPELINE
# =============================================================================

@dataclass
class AnalysisResult:
    """
    Output of an analysis run.

    `deviations` has one row per (country, year) of the output range for
    every fitted country: country, year, rate, reference, deviation_pct.
    """
    config: AnalysisConfig
    weights_name: str
    rates: pd.DataFrame
    reference: ReferenceResult
    deviations: pd.DataFrame
    processing_timestamp: datetime = field(default_factory=datetime.now)

    def to_frame(self) -> pd.DataFrame:
        """Output table with the rate column named after the measure (ASMR/ASFR)."""
        return self.deviations.rename(columns={'rate': self.config.rate_name})

    def to_csv(self, filepath: Union[str, Path]) -> Path:
        """Write country,year,<ASMR|ASFR>,reference,deviation_pct; missing values empty."""
        filepath = Path(filepath)
        self.to_frame().to_csv(filepath, index=False, na_rep='', lineterminator='\n')
        logger.info(f"Wrote {len(self.deviations)} rows to {filepath}")
        return filepath

    def to_excel(self, filepath: Union[str, Path]) -> Path:
        return generate_deviation_report(self, filepath)

    def report_table(self) -> pd.DataFrame:
        """Wide deviation table of the report years."""
        return pivot_deviations(self.deviations, self.config.report_years.years())

    def get_summary(self) -> Dict[str, Any]:
        return {
            'analysis': self.config.name,
            'rate': self.config.rate_name,
            'weights': self.weights_name,
            'strategy': self.config.strategy.value,
            'fit_window': self.config.fit_window.label,
            'countries_fitted': len(self.reference.fits),
            'countries_excluded': list(self.reference.excluded),
            'country_years': len(self.deviations),
            'deviations_defined': int(self.deviations['deviation_pct'].notna().sum()),
            'report_bands': band_counts(self.deviations, self.config.report_years.years()),
        }


class AnalysisPipeline:
    """Tidy dataset -> standardised rates -> references -> deviations."""

    def __init__(self, config: AnalysisConfig):
        self.config = config
        self.standardizer = create_standardizer(
            config.domain, config.weights, config.age_groups, config.require_complete
        )
        self.estimator = create_estimator(config.strategy, config.fit_window)
        logger.info(
            f"AnalysisPipeline initialized: {config.name} "
            f"({config.rate_name}, {self.estimator.describe()})"
        )

    def run(self, tidy: TidyDataset) -> AnalysisResult:
        """
        Run the analysis on a tidy dataset.

        Raises:
            ValueError: the dataset's numerator does not match the analysis domain
            InsufficientDataError: a country cannot be fitted and the policy is RAISE
        """
        expected = DOMAIN_NUMERATOR[self.config.domain]
        if tidy.numerator_kind is not expected:
            raise ValueError(
                f"{self.config.name} expects a {expected.value} dataset, "
                f"got {tidy.numerator_kind.value}"
            )

        logger.info(f"Starting analysis: {len(tidy)} rows, {len(tidy.countries())} countries")

        rates = self.standardizer.compute(tidy)
        reference = estimate_references(
            rates, self.estimator, self.config.output_range, self.config.on_insufficient
        )
        deviations = compute_deviations(rates, reference.references)

        result = AnalysisResult(
            config=self.config,
            weights_name=self.standardizer.weights.name,
            rates=rates,
            reference=reference,
            deviations=deviations,
        )
        logger.info(
            f"Analysis complete: {len(reference.fits)} countries, "
            f"{result.get_summary()['deviations_defined']} deviations"
        )
        return result


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_merge_pipeline(config: Union[str, Dict, MergeConfig]) -> MergePipeline:
    """
    Create a merge pipeline from a preset name, a dict or a MergeConfig.
    """
    if isinstance(config, str):
        config = get_merge_preset(config)
    elif isinstance(config, dict):
        config = MergeConfig.model_validate(config)
    return MergePipeline(config)


def create_analysis_pipeline(config: Union[str, Dict, AnalysisConfig]) -> AnalysisPipeline:
    """
    Create an analysis pipeline from a preset name, a dict or an AnalysisConfig.
    """
    if isinstance(config, str):
        config = get_analysis_preset(config)
    elif isinstance(config, dict):
        config = AnalysisConfig.model_validate(config)
    return AnalysisPipeline(config)
