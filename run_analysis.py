#!/usr/bin/env python3
"""
run_analysis.py - Eurostat Age-Standardised Rates Runner

Runs the two batch stages from the command line:

merge:
    1. Load the numerator export (deaths or births) and the population export
    2. Filter entities, normalise age classes, aggregate
    3. Write one tidy CSV per output window

analyze:
    1. Read a tidy CSV
    2. Standardise, fit the reference, compute deviations
    3. Write the rate/reference/deviation CSV (and optionally an Excel report)

Usage:
    python run_analysis.py merge --preset mortality \\
        --numerator demo_magec.csv --population demo_pjangroup.csv --output-dir out/

    python run_analysis.py analyze --preset asmr-linear-trend \\
        --input out/pop_deaths_eurostats_2011_2023.csv --output asmr.csv --excel asmr.xlsx

Author: Demographic Rates Project
Version: 1.0.0
"""

import argparse
import sys
import logging
from pathlib import Path
from typing import Optional, List, Dict, Any

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def run_merge(
    numerator_path: str,
    population_path: str,
    output_dir: str,
    preset: Optional[str] = None,
    config_path: Optional[str] = None,
    lenient: bool = False,
    audit: bool = False,
) -> Dict[str, Any]:
    """
    Run the merge stage.

    Args:
        numerator_path: Deaths or births export
        population_path: Population export
        output_dir: Directory receiving the tidy CSVs
        preset: Built-in merge preset name
        config_path: JSON merge configuration (overrides preset)
        lenient: Reject malformed rows instead of failing
        audit: Write the load audit trails next to the tidy CSVs

    Returns:
        Merge summary
    """
    from eurostat_rates import create_merge_pipeline, load_merge_config

    config = load_merge_config(config_path) if config_path else preset
    pipeline = create_merge_pipeline(config)
    if lenient:
        pipeline.numerator_loader.strict = False
        pipeline.population_loader.strict = False

    print("=" * 70)
    print(f"EUROSTAT MERGE: {pipeline.config.name}")
    print("=" * 70)
    print(f"Numerator:   {numerator_path}")
    print(f"Population:  {population_path}")
    print(f"Output dir:  {output_dir}")
    print()

    result = pipeline.run(numerator_path, population_path)
    paths = result.write(output_dir)

    if audit:
        out = Path(output_dir)
        result.numerator_load.to_audit_json(out / f"audit_{pipeline.config.numerator_kind.value}.json")
        result.population_load.to_audit_json(out / "audit_population.json")

    summary = result.get_summary()
    for load in (summary['numerator'], summary['population']):
        print(f"  {load['input_file']}: {load['kept_rows']} kept of {load['total_rows']}, "
              f"{load['rejected_rows']} rejected")
    print()
    for name, window in summary['windows'].items():
        print(f"  {name:<12} {window['rows']:>8} rows  {window['countries']:>3} countries  "
              f"-> {window['filename']}")
    print()
    print(f"Wrote {len(paths)} file(s)")
    return summary


def run_analyze(
    input_path: str,
    output_path: str,
    preset: Optional[str] = None,
    config_path: Optional[str] = None,
    excel_path: Optional[str] = None,
    exclude_insufficient: bool = False,
) -> Dict[str, Any]:
    """
    Run the analysis stage on a tidy CSV.

    Args:
        input_path: Tidy CSV from the merge stage
        output_path: Rate/reference/deviation CSV
        preset: Built-in analysis preset name
        config_path: JSON analysis configuration (overrides preset)
        excel_path: Optional Excel report
        exclude_insufficient: Exclude unfittable countries instead of failing

    Returns:
        Analysis summary
    """
    from eurostat_rates import (
        InsufficientDataPolicy,
        create_analysis_pipeline,
        format_deviation,
        get_analysis_preset,
        load_analysis_config,
        read_tidy_csv,
    )

    config = load_analysis_config(config_path) if config_path else get_analysis_preset(preset)
    if exclude_insufficient:
        config.on_insufficient = InsufficientDataPolicy.EXCLUDE
    pipeline = create_analysis_pipeline(config)

    print("=" * 70)
    print(f"{config.rate_name} ANALYSIS: {config.name}")
    print("=" * 70)
    print(f"Input:       {input_path}")
    print(f"Output:      {output_path}")
    print(f"Reference:   {pipeline.estimator.describe()}")
    print()

    tidy = read_tidy_csv(input_path)
    result = pipeline.run(tidy)
    result.to_csv(output_path)
    if excel_path:
        result.to_excel(excel_path)

    table = result.report_table()
    print(f"{'Country':<24}" + "".join(f"{year:>10}" for year in table.columns))
    print("-" * (24 + 10 * len(table.columns)))
    for country, values in table.iterrows():
        print(f"{country:<24}" + "".join(f"{format_deviation(v):>10}" for v in values))
    print()

    summary = result.get_summary()
    if summary['countries_excluded']:
        print(f"Excluded: {', '.join(summary['countries_excluded'])}")
    print(f"Countries fitted: {summary['countries_fitted']}, "
          f"deviations: {summary['deviations_defined']}/{summary['country_years']}")
    return summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Eurostat age-standardised rates: merge raw exports, analyse deviations',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_analysis.py merge --preset fertility \\
      --numerator demo_fasec.csv --population demo_pjangroup.csv --output-dir out/

  python run_analysis.py analyze --preset asfr-baseline \\
      --input out/pop_births_eurostats_2011_2023.csv --output asfr.csv
"""
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    merge = sub.add_parser('merge', help='Raw exports -> tidy CSVs')
    merge_source = merge.add_mutually_exclusive_group(required=True)
    merge_source.add_argument('--preset', choices=['mortality', 'fertility'],
                              help='Built-in merge configuration')
    merge_source.add_argument('--config', type=str, help='JSON merge configuration')
    merge.add_argument('--numerator', required=True, help='Deaths or births export (CSV)')
    merge.add_argument('--population', required=True, help='Population export (CSV)')
    merge.add_argument('--output-dir', default='.', help='Directory for the tidy CSVs')
    merge.add_argument('--lenient', action='store_true',
                       help='Reject malformed rows instead of failing the load')
    merge.add_argument('--audit', action='store_true', help='Write load audit JSON files')

    analyze = sub.add_parser('analyze', help='Tidy CSV -> rates, references, deviations')
    analyze_source = analyze.add_mutually_exclusive_group(required=True)
    analyze_source.add_argument('--preset', type=str, help='Built-in analysis configuration')
    analyze_source.add_argument('--config', type=str, help='JSON analysis configuration')
    analyze.add_argument('--input', required=True, help='Tidy CSV')
    analyze.add_argument('--output', required=True, help='Rate/reference/deviation CSV')
    analyze.add_argument('--excel', type=str, help='Optional Excel report')
    analyze.add_argument('--exclude-insufficient', action='store_true',
                         help='Exclude countries that cannot be fitted instead of failing')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    from eurostat_rates import RateAnalysisError

    try:
        if args.command == 'merge':
            run_merge(
                numerator_path=args.numerator,
                population_path=args.population,
                output_dir=args.output_dir,
                preset=args.preset,
                config_path=args.config,
                lenient=args.lenient,
                audit=args.audit,
            )
        else:
            run_analyze(
                input_path=args.input,
                output_path=args.output,
                preset=args.preset,
                config_path=args.config,
                excel_path=args.excel,
                exclude_insufficient=args.exclude_insufficient,
            )
    except (RateAnalysisError, ValueError) as exc:
        logger.error(f"{args.command} failed: {exc}")
        print(f"ERROR: {exc}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
