"""
eurostat_rates/standardization.py - Rate Standardizer

Direct age standardisation of tidy count data.

Mathematical Framework:
- Age-specific rate: r(a) = numerator(a) / population(a)
- Standardised rate: R = Σ_a w(a) × r(a) × scale
- scale = 100,000 for mortality (ASMR), 1,000 for fertility (ASFR)

Weight tables:
- US 2000 standard population (NCHS), "<1" and "1-4" merged into "0-4"
- European Standard Population 2013, women 15-49, normalised to Σ = 1

Author: Demographic Rates Project
License: MIT
"""

import numpy as np
import pandas as pd
from typing import Dict, Iterable, List, Optional, Tuple
from dataclasses import dataclass
import logging

from .age_bands import AgeDomain, FERTILITY_AGE_GROUPS, MORTALITY_AGE_GROUPS
from .aggregation import AGE_GROUP_COLUMN, TidyDataset
from .exceptions import IntegrityViolationError

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-9

RATE_SCALE: Dict[AgeDomain, float] = {
    AgeDomain.MORTALITY: 100_000.0,
    AgeDomain.FERTILITY: 1_000.0,
}


# =============================================================================
# REFERENCE WEIGHTS
# =============================================================================

@dataclass(frozen=True)
class ReferenceWeights:
    """
    Ordered age-group weights summing to 1.0.

    The declared order of `age_groups` is the summation order of the
    standardised rate, so results do not depend on input row order.
    """
    name: str
    age_groups: Tuple[str, ...]
    values: Tuple[float, ...]

    def __post_init__(self):
        if len(self.age_groups) != len(self.values):
            raise ValueError(f"{self.name}: {len(self.age_groups)} age groups but "
                             f"{len(self.values)} weights")
        if not self.age_groups:
            raise ValueError(f"{self.name}: empty weight table")
        if len(set(self.age_groups)) != len(self.age_groups):
            raise ValueError(f"{self.name}: duplicate age group")
        values = np.asarray(self.values, dtype=np.float64)
        if not np.all(np.isfinite(values)) or np.any(values < 0):
            raise ValueError(f"{self.name}: weights must be finite and non-negative")
        if abs(values.sum() - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"{self.name}: weights sum to {values.sum():.12f}, expected 1.0")

    @classmethod
    def from_mapping(cls, name: str, weights: Dict[str, float]) -> 'ReferenceWeights':
        return cls(name, tuple(weights), tuple(float(v) for v in weights.values()))

    @classmethod
    def from_counts(cls, name: str, counts: Dict[str, float]) -> 'ReferenceWeights':
        """Build weights from standard population counts, normalised to Σ = 1."""
        total = float(sum(counts.values()))
        if total <= 0:
            raise ValueError(f"{name}: standard population counts sum to {total}")
        return cls(name, tuple(counts), tuple(float(v) / total for v in counts.values()))

    def total(self) -> float:
        return float(np.sum(self.values))

    def as_dict(self) -> Dict[str, float]:
        return dict(zip(self.age_groups, self.values))

    def weight(self, age_group: str) -> Optional[float]:
        return self.as_dict().get(age_group)

    def restrict(self, age_groups: Iterable[str]) -> 'ReferenceWeights':
        """
        Keep only the given age groups and rescale them to Σ = 1.

        The table's declared order is preserved regardless of the order in
        which `age_groups` is given.

        Raises:
            ValueError: unknown age group, or the retained weights sum to zero
        """
        wanted = list(age_groups)
        unknown = [g for g in wanted if g not in self.age_groups]
        if unknown:
            raise ValueError(f"{self.name}: age groups {unknown} not in weight table")

        kept = [(g, w) for g, w in zip(self.age_groups, self.values) if g in wanted]
        retained = sum(w for _, w in kept)
        if retained <= 0:
            raise ValueError(f"{self.name}: retained weights sum to zero")

        name = f"{self.name}[{kept[0][0]}..{kept[-1][0]}]"
        return ReferenceWeights(name, tuple(g for g, _ in kept),
                                tuple(w / retained for _, w in kept))


# US 2000 standard population, proportions. Source: NCHS Statistical Notes No. 20
US2000_WEIGHTS = ReferenceWeights.from_mapping("us2000", dict(zip(MORTALITY_AGE_GROUPS, (
    0.013818 + 0.055317,    # 0-4 (<1 and 1-4)
    0.072533, 0.073032,     # 5-9, 10-14
    0.072169, 0.066478,     # 15-19, 20-24
    0.064529, 0.071044,     # 25-29, 30-34
    0.080762, 0.081851,     # 35-39, 40-44
    0.072118, 0.062716,     # 45-49, 50-54
    0.048454, 0.038793,     # 55-59, 60-64
    0.034264, 0.031773,     # 65-69, 70-74
    0.026999, 0.017842,     # 75-79, 80-84
    0.015508,               # 85+
))))

# European Standard Population 2013, per 100,000
ESP2013_WOMEN_15_49 = ReferenceWeights.from_counts("esp2013_women_15_49", dict(zip(
    FERTILITY_AGE_GROUPS, (5500, 6000, 6000, 6500, 7000, 7000, 7000)
)))

WEIGHT_TABLES: Dict[str, ReferenceWeights] = {
    US2000_WEIGHTS.name: US2000_WEIGHTS,
    ESP2013_WOMEN_15_49.name: ESP2013_WOMEN_15_49,
}


def get_weight_table(name: str, age_groups: Optional[List[str]] = None) -> ReferenceWeights:
    """Look up a built-in weight table, optionally restricted to a sub-range."""
    if name not in WEIGHT_TABLES:
        raise ValueError(f"Unknown weight table '{name}'. Available: {sorted(WEIGHT_TABLES)}")
    table = WEIGHT_TABLES[name]
    if age_groups:
        table = table.restrict(age_groups)
    return table


# =============================================================================
# RATE STANDARDIZER
# =============================================================================

class RateStandardizer:
    """
    Computes one standardised rate per (country, year).

    Terms:
    - An age group without a weight contributes nothing.
    - An age group with zero population has an undefined term, which is
      left out of the sum.
    - A weighted age group with no record makes the whole rate missing
      (NaN) when `require_complete` is set, otherwise it is skipped.
    - A (country, year) with no usable term has a missing rate.
    """

    def __init__(self, weights: ReferenceWeights, scale: float,
                 require_complete: bool = True):
        self.weights = weights
        self.scale = scale
        self.require_complete = require_complete
        logger.info(f"RateStandardizer initialized: weights={weights.name}, scale={scale:g}")

    def standardize(self, counts: Dict[str, Tuple[float, float]]) -> float:
        """
        Standardised rate of one (country, year).

        Args:
            counts: age_group -> (numerator, population)
        """
        total = 0.0
        terms = 0
        for age_group, weight in zip(self.weights.age_groups, self.weights.values):
            if age_group not in counts:
                if self.require_complete:
                    return float('nan')
                continue
            numerator, population = counts[age_group]
            if population == 0 or np.isnan(population) or np.isnan(numerator):
                continue
            total += weight * numerator / population * self.scale
            terms += 1
        return total if terms else float('nan')

    def compute(self, tidy: TidyDataset) -> pd.DataFrame:
        """
        Standardised rates of every (country, year) in a tidy dataset.

        Returns:
            DataFrame with columns country, year, rate sorted by country, year

        Raises:
            IntegrityViolationError: the dataset repeats a (country, year, age_group)
        """
        data = tidy.data
        numerator_column = tidy.numerator_column

        duplicated = data.duplicated(['country', 'year', AGE_GROUP_COLUMN])
        if duplicated.any():
            row = data[duplicated].iloc[0]
            raise IntegrityViolationError(
                "Duplicate tidy row",
                (row['country'], int(row['year']), row[AGE_GROUP_COLUMN])
            )

        rows = []
        for (country, year), group in data.groupby(['country', 'year'], sort=True):
            counts = {
                age: (float(num), float(pop))
                for age, num, pop in zip(group[AGE_GROUP_COLUMN],
                                         group[numerator_column],
                                         group['population'])
            }
            rows.append((country, int(year), self.standardize(counts)))

        rates = pd.DataFrame(rows, columns=['country', 'year', 'rate'])
        rates = rates.astype({'year': int, 'rate': float})
        missing = int(rates['rate'].isna().sum())
        logger.info(f"Standardised {len(rates)} country-years ({missing} missing)")
        return rates


def compute_standardized_rates(tidy: TidyDataset, weights: ReferenceWeights,
                               scale: float, require_complete: bool = True) -> pd.DataFrame:
    """Convenience wrapper around RateStandardizer.compute."""
    return RateStandardizer(weights, scale, require_complete).compute(tidy)


def create_standardizer(domain: AgeDomain, weights: str = "us2000",
                        age_groups: Optional[List[str]] = None,
                        require_complete: bool = True) -> RateStandardizer:
    """
    Factory function for a standardizer of a given domain.

    Args:
        domain: Mortality (per 100,000) or fertility (per 1,000)
        weights: Built-in weight table name
        age_groups: Optional sub-range; the table is rescaled to it
        require_complete: Missing weighted age group -> missing rate
    """
    table = get_weight_table(weights, age_groups)
    return RateStandardizer(table, RATE_SCALE[domain], require_complete)


if __name__ == "__main__":
    print("=" * 60)
    print("WEIGHT TABLES")
    print("=" * 60)
    for table in (US2000_WEIGHTS, US2000_WEIGHTS.restrict(["0-4", "5-9", "10-14", "15-19"]),
                  ESP2013_WOMEN_15_49):
        print(f"\n{table.name} (Σ = {table.total():.12f})")
        for group, weight in table.as_dict().items():
            print(f"  {group:<6} {weight:.6f}")
