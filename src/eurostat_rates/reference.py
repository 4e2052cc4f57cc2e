"""
eurostat_rates/reference.py - Reference Estimator

Fits, per country, the rate that would have been expected without a shock,
and evaluates it over the whole output range (fitting years included).

Strategies:
- Linear trend: OLS rate = a + b × year over the fitting window
      b = Σ(x - x̄)(y - ȳ) / Σ(x - x̄)²,  a = ȳ - b × x̄
- Mean baseline: arithmetic mean over the baseline window, flat

Countries are fitted independently; nothing is pooled. Missing rates in the
window are ignored, so a country with a gap is fitted on the points it has.

Author: Demographic Rates Project
License: MIT
"""

import numpy as np
import pandas as pd
from abc import ABC, abstractmethod
from typing import Dict, List, Any
from dataclasses import dataclass, field
import logging

from .config import InsufficientDataPolicy, ReferenceStrategy, YearWindow
from .exceptions import InsufficientDataError

logger = logging.getLogger(__name__)


@dataclass
class FittedReference:
    """Fitted reference line of one country: reference(year) = intercept + slope × year."""
    country: str
    strategy: ReferenceStrategy
    window: YearWindow
    intercept: float
    slope: float
    n_points: int

    def predict(self, year: int) -> float:
        return self.intercept + self.slope * year

    def to_dict(self) -> Dict[str, Any]:
        return {
            'country': self.country,
            'strategy': self.strategy.value,
            'window': self.window.label,
            'intercept': self.intercept,
            'slope': self.slope,
            'n_points': self.n_points,
        }


# =============================================================================
# ABSTRACT REFERENCE ESTIMATOR (STRATEGY INTERFACE)
# =============================================================================

class ReferenceEstimator(ABC):
    """
    Abstract interface for reference estimation.

    STRATEGY PATTERN: the pipeline does not know HOW a reference is derived.
    It calls fit() once per country and predict() on the result for every
    output year.
    """

    strategy: ReferenceStrategy
    min_points: int = 1

    def __init__(self, window: YearWindow):
        self.window = window

    def window_points(self, years, rates):
        """Finite (year, rate) pairs inside the fitting window."""
        x = np.asarray(years, dtype=np.float64)
        y = np.asarray(rates, dtype=np.float64)
        mask = (x >= self.window.first) & (x <= self.window.last) & np.isfinite(y)
        return x[mask], y[mask]

    @abstractmethod
    def fit(self, country: str, years, rates) -> FittedReference:
        """
        Fit the reference of one country.

        Args:
            country: Country label, used in errors and the result
            years: Calendar years of the country's rates
            rates: Standardised rates aligned with `years`

        Raises:
            InsufficientDataError: too few usable points in the window
        """
        pass

    def describe(self) -> str:
        return f"{self.strategy.value} over {self.window.label}"


# =============================================================================
# CONCRETE ESTIMATORS
# =============================================================================

class LinearTrendEstimator(ReferenceEstimator):
    """Ordinary least squares line through the window's rates."""

    strategy = ReferenceStrategy.LINEAR_TREND
    min_points = 2

    def fit(self, country: str, years, rates) -> FittedReference:
        x, y = self.window_points(years, rates)
        distinct = len(np.unique(x))
        if distinct < self.min_points:
            raise InsufficientDataError(country, (self.window.first, self.window.last),
                                        distinct, self.min_points)

        # Centred on the mean year of the window
        x_mean = x.mean()
        y_mean = y.mean()
        dx = x - x_mean
        slope = float(np.sum(dx * (y - y_mean)) / np.sum(dx * dx))
        intercept = float(y_mean - slope * x_mean)

        return FittedReference(country, self.strategy, self.window,
                               intercept, slope, len(x))


class MeanBaselineEstimator(ReferenceEstimator):
    """Flat reference equal to the mean rate of the baseline window."""

    strategy = ReferenceStrategy.MEAN_BASELINE
    min_points = 1

    def fit(self, country: str, years, rates) -> FittedReference:
        x, y = self.window_points(years, rates)
        if len(y) < self.min_points:
            raise InsufficientDataError(country, (self.window.first, self.window.last),
                                        len(y), self.min_points)
        return FittedReference(country, self.strategy, self.window,
                               float(y.mean()), 0.0, len(y))


_ESTIMATORS = {
    ReferenceStrategy.LINEAR_TREND: LinearTrendEstimator,
    ReferenceStrategy.MEAN_BASELINE: MeanBaselineEstimator,
}


def create_estimator(strategy: ReferenceStrategy, window: YearWindow) -> ReferenceEstimator:
    """Factory function to create the estimator of a strategy."""
    strategy = ReferenceStrategy(strategy)
    return _ESTIMATORS[strategy](window)


# =============================================================================
# PER-COUNTRY ESTIMATION
# =============================================================================

@dataclass
class ReferenceResult:
    """References over the output range plus the fit behind each country."""
    references: pd.DataFrame
    fits: Dict[str, FittedReference] = field(default_factory=dict)
    excluded: List[str] = field(default_factory=list)

    def fits_frame(self) -> pd.DataFrame:
        columns = ['country', 'strategy', 'window', 'intercept', 'slope', 'n_points']
        return pd.DataFrame([self.fits[c].to_dict() for c in sorted(self.fits)],
                            columns=columns)


def estimate_references(rates: pd.DataFrame, estimator: ReferenceEstimator,
                        output_range: YearWindow,
                        on_insufficient: InsufficientDataPolicy = InsufficientDataPolicy.RAISE
                        ) -> ReferenceResult:
    """
    Fit every country and evaluate its reference over the output range.

    Args:
        rates: DataFrame with columns country, year, rate
        estimator: Strategy used for every country
        output_range: Years the reference is evaluated for
        on_insufficient: Raise, or exclude the country with a warning

    Returns:
        ReferenceResult whose `references` has columns country, year, reference
    """
    rows = []
    fits: Dict[str, FittedReference] = {}
    excluded: List[str] = []

    for country in sorted(rates['country'].unique()):
        country_rates = rates[rates['country'] == country]
        try:
            fitted = estimator.fit(country, country_rates['year'], country_rates['rate'])
        except InsufficientDataError as exc:
            if on_insufficient is InsufficientDataPolicy.RAISE:
                raise
            logger.warning(f"Excluding {country}: {exc}")
            excluded.append(country)
            continue

        fits[country] = fitted
        for year in output_range.years():
            rows.append((country, year, fitted.predict(year)))

    references = pd.DataFrame(rows, columns=['country', 'year', 'reference'])
    references = references.astype({'year': int, 'reference': float})
    logger.info(
        f"Fitted {len(fits)} countries ({estimator.describe()}), "
        f"{len(excluded)} excluded"
    )
    return ReferenceResult(references, fits, excluded)
