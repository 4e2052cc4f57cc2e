"""
eurostat_rates/ingestion.py - Eurostat Snapshot Ingestion

Loads one SDMX-CSV export and turns it into normalised observations:
1. Cryptographic Audit Trail - SHA-256 hash of the raw snapshot
2. Header Validation - columns resolved by name once per file, fail fast on drift
3. Entity Filter - out-of-scope entities, age classes and years dropped
4. Age-Band Normalisation - raw age classes mapped to the canonical vocabulary
5. Rejection Log - malformed rows either raise or are logged, per `strict`

The measure kind (deaths, births, population) is a file-level fact given by
the caller; nothing in the row says which one it is.

Author: Demographic Rates Project
License: MIT
"""

import pandas as pd
import hashlib
import json
import math
from datetime import datetime
from typing import Dict, List, Optional, Union, Any
from dataclasses import dataclass, field
from pathlib import Path
import logging

from .age_bands import AgeBandNormalizer, AgeDomain
from .config import MeasureKind, SourceFilter
from .exceptions import MalformedInputError, SchemaError
from .filters import EntityFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawObservation:
    """One in-scope row of an Eurostat export, after age normalisation."""
    geo_entity: str
    time_period: int
    age_label: str
    age_group: str
    measure_value: float
    measure_kind: MeasureKind


@dataclass
class RejectionRecord:
    """Record of a single rejected row."""
    line: int
    field_name: str
    value: Any
    reason: str


@dataclass
class LoadResult:
    """
    Contains the normalised observations and the audit report.
    """
    observations: List[RawObservation]
    measure_kind: MeasureKind
    input_hash: str
    input_filename: str
    total_rows: int
    dropped: Dict[str, int]
    out_of_domain: int
    rejections: List[RejectionRecord]
    processing_timestamp: datetime

    @property
    def kept_rows(self) -> int:
        return len(self.observations)

    def get_summary(self) -> Dict:
        """Get summary statistics."""
        return {
            'input_file': self.input_filename,
            'input_hash': self.input_hash,
            'measure_kind': self.measure_kind.value,
            'total_rows': self.total_rows,
            'kept_rows': self.kept_rows,
            'dropped': dict(self.dropped),
            'out_of_domain': self.out_of_domain,
            'rejected_rows': len(self.rejections),
            'processing_timestamp': self.processing_timestamp.isoformat(),
        }

    def to_audit_json(self, filepath: Union[str, Path]) -> None:
        """Export audit trail to JSON."""
        audit = {
            'summary': self.get_summary(),
            'rejections': [
                {
                    'line': r.line,
                    'field': r.field_name,
                    'value': str(r.value),
                    'reason': r.reason,
                }
                for r in self.rejections
            ]
        }
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(audit, f, indent=2, ensure_ascii=False)


# =============================================================================
# EUROSTAT LOADER - MAIN INTERFACE
# =============================================================================

class EurostatLoader:
    """
    Eurostat SDMX-CSV loader.

    Only four columns are consumed: the geographic entity label, the age
    class label, TIME_PERIOD and OBS_VALUE. Labelled exports name the entity
    column differently per dataset, hence the alias table.
    """

    REQUIRED_COLUMNS = ('geo_entity', 'age_label', 'time_period', 'obs_value')

    COLUMN_ALIASES = {
        'geopoliticalentity(reporting)': 'geo_entity',
        'geopoliticalentity(declaring)': 'geo_entity',
        'geographicentity': 'geo_entity',
        'geoentity': 'geo_entity',
        'ageclass': 'age_label',
        'agelabel': 'age_label',
        'timeperiod': 'time_period',
        'obsvalue': 'obs_value',
    }

    def __init__(self, measure_kind: MeasureKind,
                 domain: AgeDomain = AgeDomain.MORTALITY,
                 source_filter: Optional[SourceFilter] = None,
                 strict: bool = True):
        """
        Initialize loader.

        Args:
            measure_kind: What OBS_VALUE counts in this file
            domain: Age domain whose vocabulary observations must fall in
            source_filter: Entity Filter configuration (defaults drop aggregate age classes only)
            strict: Raise on the first malformed row instead of rejecting it
        """
        self.measure_kind = measure_kind
        self.domain = domain
        self.source_filter = source_filter or SourceFilter()
        self.strict = strict
        self.normalizer = AgeBandNormalizer(domain)

    def load_file(self, filepath: Union[str, Path]) -> LoadResult:
        """
        Load and normalise an Eurostat export.

        Args:
            filepath: Path to the CSV snapshot

        Returns:
            LoadResult with observations and audit information
        """
        filepath = Path(filepath)

        file_hash = self._hash_file(filepath)
        logger.info(f"Loading file: {filepath.name} (SHA-256: {file_hash[:16]}...)")

        df = pd.read_csv(filepath, dtype=str, keep_default_na=False, encoding='utf-8-sig')
        df = self._standardize_columns(df, filepath.name)
        total_rows = len(df)
        logger.info(f"Loaded {total_rows} rows of {self.measure_kind.value}")

        entity_filter = EntityFilter(self.source_filter)
        observations: List[RawObservation] = []
        rejections: List[RejectionRecord] = []
        out_of_domain = 0

        rows = zip(df['geo_entity'], df['age_label'], df['time_period'], df['obs_value'])
        # Line 1 is the header.
        for line, (geo, age_label, period, value) in enumerate(rows, start=2):
            geo = geo.strip()
            age_label = age_label.strip()
            field_name = 'TIME_PERIOD'
            try:
                year = self._parse_year(period, filepath.name, line)
                if not entity_filter.accept(geo, year, age_label):
                    continue
                field_name = 'age_label'
                age_group = self.normalizer.normalize(age_label)
                if age_group is None:
                    out_of_domain += 1
                    continue
                field_name = 'OBS_VALUE'
                measure_value = self._parse_value(value, filepath.name, line)
            except MalformedInputError as exc:
                if self.strict:
                    if exc.line is None:
                        raise MalformedInputError(str(exc), value=exc.value,
                                                  source=filepath.name, line=line) from exc
                    raise
                logger.debug(f"Rejected line {line}: {exc}")
                rejections.append(RejectionRecord(
                    line=line,
                    field_name=field_name,
                    value=exc.value,
                    reason=str(exc),
                ))
                continue

            observations.append(RawObservation(
                geo_entity=geo,
                time_period=year,
                age_label=age_label,
                age_group=age_group,
                measure_value=measure_value,
                measure_kind=self.measure_kind,
            ))

        dropped = entity_filter.summary()
        logger.info(
            f"{filepath.name}: kept {len(observations)}, dropped {sum(dropped.values())} "
            f"{dropped}, out of domain {out_of_domain}, rejected {len(rejections)}"
        )

        return LoadResult(
            observations=observations,
            measure_kind=self.measure_kind,
            input_hash=file_hash,
            input_filename=filepath.name,
            total_rows=total_rows,
            dropped=dropped,
            out_of_domain=out_of_domain,
            rejections=rejections,
            processing_timestamp=datetime.now(),
        )

    def _hash_file(self, filepath: Path) -> str:
        """Calculate SHA-256 hash of file."""
        sha256 = hashlib.sha256()
        with open(filepath, 'rb') as f:
            for chunk in iter(lambda: f.read(8192), b''):
                sha256.update(chunk)
        return sha256.hexdigest()

    def _standardize_columns(self, df: pd.DataFrame, source: str) -> pd.DataFrame:
        """Resolve the consumed columns by name and drop everything else."""
        rename_map = {}
        for col in df.columns:
            col_key = str(col).lower().replace(' ', '').replace('_', '')
            target = self.COLUMN_ALIASES.get(col_key)
            if target is None:
                continue
            if target in rename_map.values():
                raise SchemaError(f"Ambiguous columns for '{target}'", value=col, source=source)
            rename_map[col] = target

        missing = [c for c in self.REQUIRED_COLUMNS if c not in rename_map.values()]
        if missing:
            raise SchemaError(
                f"Missing required columns {missing}; found {list(df.columns)}",
                value=missing, source=source
            )

        df = df.rename(columns=rename_map)
        return df[list(self.REQUIRED_COLUMNS)]

    @staticmethod
    def _parse_year(raw: str, source: str, line: int) -> int:
        text = raw.strip()
        try:
            return int(text)
        except ValueError:
            raise MalformedInputError("Unparseable TIME_PERIOD", value=raw,
                                      source=source, line=line) from None

    @staticmethod
    def _parse_value(raw: str, source: str, line: int) -> float:
        text = raw.strip()
        try:
            value = float(text)
        except ValueError:
            raise MalformedInputError("Unparseable OBS_VALUE", value=raw,
                                      source=source, line=line) from None
        if math.isnan(value) or math.isinf(value) or value < 0:
            raise MalformedInputError("OBS_VALUE must be a finite non-negative count",
                                      value=raw, source=source, line=line)
        return value


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def load_eurostat_file(
    filepath: Union[str, Path],
    measure_kind: MeasureKind,
    domain: AgeDomain = AgeDomain.MORTALITY,
    source_filter: Optional[SourceFilter] = None,
    strict: bool = True
) -> LoadResult:
    """
    Load an Eurostat export with filtering and age normalisation.

    Args:
        filepath: Path to the CSV snapshot
        measure_kind: What OBS_VALUE counts
        domain: Age domain of the analysis
        source_filter: Entity Filter configuration
        strict: Raise on malformed rows instead of rejecting them

    Returns:
        LoadResult with observations and audit trail
    """
    loader = EurostatLoader(measure_kind, domain, source_filter, strict)
    return loader.load_file(filepath)
