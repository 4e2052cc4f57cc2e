"""
eurostat_rates/exceptions.py - Error Taxonomy

MalformedInputError      - a raw value (age label, year, observation) cannot be parsed
SchemaError              - a required column is missing from an input file
IntegrityViolationError  - duplicate population, or a numerator with no population
InsufficientDataError    - too few observations in a country's fitting window

Undefined arithmetic (zero population, zero reference) is not an error:
it is carried downstream as NaN.

Author: Demographic Rates Project
License: MIT
"""

from typing import Any, Optional, Tuple


class RateAnalysisError(Exception):
    """Base class for all pipeline errors."""


class MalformedInputError(RateAnalysisError, ValueError):
    """A raw field could not be parsed."""

    def __init__(self, message: str, value: Any = None,
                 source: Optional[str] = None, line: Optional[int] = None):
        self.value = value
        self.source = source
        self.line = line
        location = ""
        if source is not None:
            location = f" [{source}" + (f":{line}" if line is not None else "") + "]"
        super().__init__(f"{message}{location}")


class SchemaError(MalformedInputError):
    """An input file does not carry the expected columns."""


class IntegrityViolationError(RateAnalysisError):
    """The (country, year, age_group) key space is inconsistent."""

    def __init__(self, message: str, key: Optional[Tuple[str, int, str]] = None):
        self.key = key
        super().__init__(message if key is None else f"{message}: {key}")


class InsufficientDataError(RateAnalysisError):
    """A country does not have enough points to fit its reference."""

    def __init__(self, country: str, window: Tuple[int, int],
                 n_points: int, required: int):
        self.country = country
        self.window = window
        self.n_points = n_points
        self.required = required
        super().__init__(
            f"{country}: {n_points} data point(s) in {window[0]}-{window[1]}, "
            f"at least {required} required"
        )
