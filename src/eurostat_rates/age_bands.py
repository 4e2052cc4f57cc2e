"""
eurostat_rates/age_bands.py - Age-Band Normalizer

Maps the free-text age classes of Eurostat exports onto the canonical
5-year age-group vocabulary used by every downstream stage.

Raw vocabularies handled:
- Single year of age (demo_magec, demo_fordagec):
    "Less than 1 year", "1 year", "N years", "Open-ended age class"
- Explicit ranges (demo_pjangroup):
    "Less than 5 years", "From X to Y years", "85 years or over"

Single years are bucketed as floor(age/5)*5 .. +4, with age >= 85 top-coded
to "85+". Ranges are reformatted as "X-Y". A label whose band falls outside
the closed vocabulary of the analysis domain is dropped (None); a label that
matches no pattern at all raises MalformedInputError.

Author: Demographic Rates Project
License: MIT
"""

import re
from enum import Enum
from typing import Dict, Optional, Tuple
import logging

from .exceptions import MalformedInputError

logger = logging.getLogger(__name__)


OPEN_AGE = 85
OPEN_GROUP = "85+"


def _five_year_groups(first: int, last: int) -> Tuple[str, ...]:
    return tuple(f"{lower}-{lower + 4}" for lower in range(first, last + 1, 5))


MORTALITY_AGE_GROUPS: Tuple[str, ...] = _five_year_groups(0, 80) + (OPEN_GROUP,)
FERTILITY_AGE_GROUPS: Tuple[str, ...] = _five_year_groups(15, 45)


class AgeDomain(Enum):
    """Target population of an analysis, with its closed age vocabulary."""
    MORTALITY = "mortality"
    FERTILITY = "fertility"

    @property
    def age_groups(self) -> Tuple[str, ...]:
        if self is AgeDomain.FERTILITY:
            return FERTILITY_AGE_GROUPS
        return MORTALITY_AGE_GROUPS


# =============================================================================
# RAW LABEL PATTERNS
# =============================================================================

_SINGLE_YEAR = re.compile(r'^(\d+) years?$')
_LESS_THAN = re.compile(r'^Less than (\d+) years?$')
_RANGE = re.compile(r'^From (\d+) to (\d+) years$')
_OR_OVER = re.compile(r'^(\d+) years or over$')
_OPEN_ENDED = 'Open-ended age class'


def age_group_from_age(age: int) -> str:
    """Bucket a single year of age into its 5-year group."""
    if age < 0:
        raise MalformedInputError("Negative age", value=age)
    if age >= OPEN_AGE:
        return OPEN_GROUP
    lower = (age // 5) * 5
    return f"{lower}-{lower + 4}"


def _format_range(lower: int, upper: int, label: str) -> str:
    if upper < lower:
        raise MalformedInputError("Inverted age range", value=label)
    return f"{lower}-{upper}"


def parse_age_label(label: str) -> str:
    """
    Convert one raw Eurostat age class to an age-group label.

    The result is not checked against any vocabulary: "Less than 15 years"
    yields "0-14", which no domain accepts.

    Raises:
        MalformedInputError: label matches none of the known patterns
    """
    text = str(label).strip()

    if text == _OPEN_ENDED:
        return OPEN_GROUP

    match = _SINGLE_YEAR.match(text)
    if match:
        return age_group_from_age(int(match.group(1)))

    match = _LESS_THAN.match(text)
    if match:
        bound = int(match.group(1))
        if bound == 1:
            return age_group_from_age(0)
        return _format_range(0, bound - 1, text)

    match = _RANGE.match(text)
    if match:
        return _format_range(int(match.group(1)), int(match.group(2)), text)

    match = _OR_OVER.match(text)
    if match:
        lower = int(match.group(1))
        if lower == OPEN_AGE:
            return OPEN_GROUP
        return f"{lower}+"

    raise MalformedInputError("Unrecognised age label", value=label)


class AgeBandNormalizer:
    """
    Domain-aware normalizer.

    normalize() returns the canonical group, or None when the band is valid
    but outside the domain (e.g. "From 5 to 9 years" for fertility). Parsed
    labels are cached since exports repeat the same few dozen labels.
    """

    def __init__(self, domain: AgeDomain = AgeDomain.MORTALITY):
        self.domain = domain
        self._vocabulary = frozenset(domain.age_groups)
        self._cache: Dict[str, Optional[str]] = {}

    def normalize(self, label: str) -> Optional[str]:
        if label in self._cache:
            return self._cache[label]

        group = parse_age_label(label)
        result = group if group in self._vocabulary else None
        if result is None:
            logger.debug(f"Age label '{label}' -> '{group}' outside {self.domain.value} domain")
        self._cache[label] = result
        return result

    def is_canonical(self, group: str) -> bool:
        return group in self._vocabulary


if __name__ == "__main__":
    print("=" * 60)
    print("AGE-BAND NORMALIZER")
    print("=" * 60)

    mortality = AgeBandNormalizer(AgeDomain.MORTALITY)
    fertility = AgeBandNormalizer(AgeDomain.FERTILITY)
    for raw in ["Less than 1 year", "1 year", "17 years", "Open-ended age class",
                "Less than 5 years", "From 45 to 49 years", "85 years or over"]:
        print(f"  {raw:<22} mortality={mortality.normalize(raw)!s:<6} "
              f"fertility={fertility.normalize(raw)}")
