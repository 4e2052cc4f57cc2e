"""
eurostat_rates/deviation.py - Deviation Calculator

deviation_pct = (observed - reference) / reference × 100

Defined only where the reference is non-zero and the observed rate exists;
every other (country, year) of the output range carries NaN.

Author: Demographic Rates Project
License: MIT
"""

import numpy as np
import pandas as pd
import logging

logger = logging.getLogger(__name__)


def percent_deviation(observed: float, reference: float) -> float:
    """Percent deviation of one observation, NaN where undefined."""
    if observed is None or reference is None:
        return float('nan')
    if np.isnan(observed) or np.isnan(reference) or reference == 0:
        return float('nan')
    return (observed - reference) / reference * 100.0


def compute_deviations(rates: pd.DataFrame, references: pd.DataFrame) -> pd.DataFrame:
    """
    Join observed rates onto the reference grid and compute deviations.

    Args:
        rates: country, year, rate
        references: country, year, reference (one row per output year)

    Returns:
        DataFrame with columns country, year, rate, reference, deviation_pct,
        one row per reference row, sorted by country and year
    """
    merged = references.merge(rates[['country', 'year', 'rate']],
                              on=['country', 'year'], how='left')
    merged = merged[['country', 'year', 'rate', 'reference']]

    observed = merged['rate'].to_numpy(dtype=np.float64)
    expected = merged['reference'].to_numpy(dtype=np.float64)
    defined = np.isfinite(observed) & np.isfinite(expected) & (expected != 0)

    deviation = np.full(len(merged), np.nan)
    deviation[defined] = (observed[defined] - expected[defined]) / expected[defined] * 100.0
    merged['deviation_pct'] = deviation

    merged = merged.sort_values(['country', 'year'], kind='mergesort').reset_index(drop=True)
    logger.info(
        f"Computed {int(defined.sum())} deviations over {len(merged)} country-years"
    )
    return merged
