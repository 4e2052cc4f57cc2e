"""
eurostat_rates/filters.py - Entity Filter

Decides whether a raw row is in scope before any parsing happens.
All decisions are lookups in a SourceFilter; swapping the configured sets
changes the behaviour without touching this module.

Author: Demographic Rates Project
License: MIT
"""

from collections import Counter
from enum import Enum
from typing import Dict, Optional
import logging

from .config import SourceFilter

logger = logging.getLogger(__name__)


class DropReason(Enum):
    """Why a row was filtered out."""
    AGE_LABEL = "age_label"
    ENTITY = "entity"
    YEAR = "year"


class EntityFilter:
    """
    Row-level scope filter.

    Checks run cheapest-first: age label, entity, then year. The year is
    compared as an integer, so callers parse TIME_PERIOD before asking.
    """

    def __init__(self, source_filter: SourceFilter):
        self.config = source_filter
        self.dropped: Counter = Counter()

    def drop_reason(self, geo_entity: str, year: int, age_label: str) -> Optional[DropReason]:
        """Return why the row is out of scope, or None if it is kept."""
        if age_label in self.config.excluded_age_labels:
            return DropReason.AGE_LABEL
        if geo_entity in self.config.excluded_entities:
            return DropReason.ENTITY
        if self.config.min_year is not None and year < self.config.min_year:
            return DropReason.YEAR
        if year in self.config.excluded_years:
            return DropReason.YEAR
        return None

    def accept(self, geo_entity: str, year: int, age_label: str) -> bool:
        """Filter a row, counting the reason when it is dropped."""
        reason = self.drop_reason(geo_entity, year, age_label)
        if reason is None:
            return True
        self.dropped[reason] += 1
        return False

    def summary(self) -> Dict[str, int]:
        return {reason.value: self.dropped.get(reason, 0) for reason in DropReason}
