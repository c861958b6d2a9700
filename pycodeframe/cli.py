"""Command-line interface for pycodeframe."""

import argparse
import json
import logging
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Optional

from pycodeframe import CodeframePipeline, CodeframeConfig
from pycodeframe.io import (
    load_table,
    load_codeframes,
    export_wide_table,
    export_codeframe_json,
    export_codeframe_csv,
    export_coded_responses,
    export_hierarchy_summary,
    export_failures,
    export_run_metadata,
)
from pycodeframe.tracking import JsonVersionStore, VersionTracker
from pycodeframe.config import TrackingConfig
from pycodeframe.utils import format_time
from pycodeframe.visualization import plot_code_frequencies, plot_tracking_trends

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Configure logging for CLI.

    Args:
        verbose: If True, show INFO level logs.
        debug: If True, show DEBUG level logs (includes oracle prompts/responses).
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )


def create_output_dir(base_dir: Path, timestamp: datetime) -> Path:
    """Create timestamped output directory."""
    dirname = timestamp.strftime("%Y%m%d-%H%M")
    output_dir = base_dir / dirname
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def parse_column_types(specs: list[str], default_type: Optional[str] = None) -> dict[str, str]:
    """
    Parse ``column:type`` arguments into a mapping.

    A bare column name takes ``default_type``.

    Raises:
        ValueError: If a type is missing and there is no default.
    """
    column_types = {}
    for spec in specs:
        column, sep, question_type = spec.rpartition(":")
        if not sep:
            column, question_type = spec, default_type
        if not column or not question_type:
            raise ValueError(f"Invalid column spec '{spec}', expected COLUMN:TYPE")
        column_types[column] = question_type
    return column_types


def build_config(args: argparse.Namespace) -> CodeframeConfig:
    """Build the engine configuration from a JSON file and CLI overrides."""
    if getattr(args, "config", None):
        with open(args.config, "r", encoding="utf-8") as f:
            config = CodeframeConfig.from_dict(json.load(f))
    else:
        config = CodeframeConfig()

    if getattr(args, "backend", None):
        config.llm.backend = args.backend
    if getattr(args, "llm_model", None):
        config.llm.model = args.llm_model
    if getattr(args, "workers", None):
        config.generation.max_workers = args.workers
    if getattr(args, "sample", None):
        config.generation.sample_percentage = args.sample
    if getattr(args, "slots", None):
        config.export.max_code_slots = args.slots
    if getattr(args, "context", None):
        config.study_context = args.context
    if args.debug:
        config.llm.debug = True
    config.verbose = args.verbose
    return config


def save_versions(args: argparse.Namespace, config: CodeframeConfig, codeframes: dict) -> None:
    """Save every codeframe as the next version of its tracking study."""
    store = JsonVersionStore(args.store)
    for question_type, codeframe in codeframes.items():
        tracking = replace(config.tracking, study_id=f"{args.study}:{question_type}")
        tracker = VersionTracker(store=store, config=tracking)
        version = tracker.save_version(codeframe, wave=args.wave)
        logger.info(f"  Saved version {version.version_number} of study '{tracker.study_id}'")


def run_generate(args: argparse.Namespace) -> int:
    """Generate codeframes for a wave and write all outputs."""
    start_time = datetime.now()

    setup_logging(verbose=args.verbose, debug=args.debug)

    output_dir = create_output_dir(Path(args.output_dir), start_time)

    logger.info("=" * 70)
    logger.info("PYCODEFRAME - Codeframe Generation")
    logger.info("=" * 70)
    logger.info(f"Started at: {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"Output directory: {output_dir}")

    data_path = Path(args.data)
    if not data_path.exists():
        logger.error(f"Data file not found: {data_path}")
        return 1

    try:
        column_types = parse_column_types(args.columns)
        df = load_table(data_path)
        config = build_config(args)
        pipeline = CodeframePipeline(config=config)
        groups = pipeline.build_groups(df, column_types, id_column=args.id_column)
    except ValueError as e:
        logger.error(str(e))
        return 1

    logger.info(f"Loaded {len(df)} rows, {len(groups)} question groups from {data_path.name}")
    logger.info(f"  LLM backend: {config.llm.backend} ({config.llm.model})")
    logger.info(f"  Workers: {config.generation.max_workers}")
    logger.info(f"  Sample: {config.generation.sample_percentage}%")

    try:
        llm = pipeline.llm
    except (RuntimeError, ValueError) as e:
        logger.error(str(e))
        return 1
    logger.info(f"Oracle ready: {llm!r}")

    logger.info("")
    logger.info("=" * 70)
    logger.info("STEP 1: Generating Codeframes")
    logger.info("=" * 70)

    result = pipeline.generate(groups)
    for attempt in range(args.retries):
        if not result.failures:
            break
        logger.info(f"Retry {attempt + 1}/{args.retries} for {len(result.failures)} failed group(s)")
        result = pipeline.retry(result)

    logger.info(f"Generation {result.summary()}")

    if not result.successes:
        export_failures(result, output_dir / "failures.json")
        logger.error("No question group succeeded")
        return 1

    logger.info("")
    logger.info("Saving outputs...")

    codeframes = result.codeframes
    for path in (
        export_codeframe_json(codeframes, output_dir / "codeframes.json"),
        export_codeframe_csv(codeframes, output_dir / "codeframes.csv"),
        export_coded_responses(result.coded_responses, output_dir / "coded_responses.csv", codeframes),
        export_hierarchy_summary(codeframes, output_dir / "hierarchy.txt"),
        export_wide_table(pipeline.render(result), output_dir / "coded_wide.csv"),
    ):
        logger.info(f"  Saved: {path.name}")

    if result.failures or result.rejected_responses:
        path = export_failures(result, output_dir / "failures.json")
        logger.info(f"  Saved: {path.name}")

    if result.insights:
        (output_dir / "insights.txt").write_text(result.insights + "\n", encoding="utf-8")
        logger.info("  Saved: insights.txt")

    if not args.skip_viz:
        for question_type, codeframe in codeframes.items():
            plot_code_frequencies(
                codeframe,
                top_n=20,
                save_path=output_dir / f"frequencies_{question_type}.png",
            )

    if args.store:
        save_versions(args, config, codeframes)

    run_config = config.to_dict()
    run_config["llm"].pop("api_key", None)

    end_time = datetime.now()
    export_run_metadata(
        output_dir=output_dir,
        config=run_config,
        results={
            "data_file": str(data_path),
            "n_rows": len(df),
            "columns": column_types,
            "status": result.status.value,
            "groups": [o.to_dict() for o in result.outcomes],
        },
        start_time=start_time,
        end_time=end_time,
    )
    logger.info("  Saved: run_metadata.json")

    duration = (end_time - start_time).total_seconds()
    logger.info("")
    logger.info("=" * 70)
    logger.info("GENERATION COMPLETE" if not result.failures else "GENERATION PARTIAL")
    logger.info("=" * 70)
    logger.info(f"Duration: {format_time(duration)}")
    logger.info(f"Outputs saved to: {output_dir}")

    return 0 if not result.failures else 2


def run_apply(args: argparse.Namespace) -> int:
    """Re-apply frozen codeframes to a new table."""
    start_time = datetime.now()

    setup_logging(verbose=args.verbose, debug=args.debug)

    output_dir = create_output_dir(Path(args.output_dir), start_time)

    try:
        codeframes = load_codeframes(args.codeframe)
        default_type = next(iter(codeframes)) if len(codeframes) == 1 else None
        column_types = parse_column_types(args.columns, default_type=default_type)
        df = load_table(args.data)
    except (ValueError, FileNotFoundError) as e:
        logger.error(str(e))
        return 1

    config = build_config(args)
    pipeline = CodeframePipeline(config=config)

    try:
        responses = pipeline.apply_codeframe(
            codeframes, df, column_types=column_types, id_column=args.id_column
        )
    except (ValueError, KeyError) as e:
        logger.error(str(e))
        return 1

    table = pipeline.render(responses, codeframes)
    for path in (
        export_wide_table(table, output_dir / "coded_wide.csv"),
        export_coded_responses(responses, output_dir / "coded_responses.csv", codeframes),
    ):
        logger.info(f"  Saved: {path.name}")

    logger.info(f"Applied {len(codeframes)} codeframe(s) to {len(responses)} responses")
    logger.info(f"Outputs saved to: {output_dir}")
    return 0


def run_report(args: argparse.Namespace) -> int:
    """Print the comparison report of a tracking study."""
    setup_logging(verbose=args.verbose, debug=args.debug)

    store_path = Path(args.store)
    if not store_path.exists():
        logger.error(f"Version store not found: {store_path}")
        return 1

    tracker = VersionTracker(
        store=JsonVersionStore(store_path),
        config=TrackingConfig(study_id=args.study, significance_threshold=args.threshold),
    )

    try:
        print(tracker.report(v1_number=args.v1, v2_number=args.v2))
    except KeyError as e:
        logger.error(str(e))
        return 1

    if args.plot:
        plot_tracking_trends(tracker.get_versions(), save_path=args.plot)

    return 0


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output with progress bars",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (shows all oracle prompts and responses)",
    )


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="pycodeframe",
        description="PYCODEFRAME - survey codeframe generation, coding and tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pycodeframe generate -d wave3.csv -c Q1:unaided-awareness -c B1r1:brand-description -i RespID
  pycodeframe apply -d wave4.csv -f output/20250101-1200/codeframes.json -c Q1:unaided-awareness
  pycodeframe report --store versions.json --study tracker:brand-description --v1 1 --v2 3
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Generate command
    gen_parser = subparsers.add_parser(
        "generate",
        help="Generate codeframes with the classification oracle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    gen_parser.add_argument(
        "-d", "--data",
        required=True,
        help="Path to the exported survey table (CSV)",
    )
    gen_parser.add_argument(
        "-c", "--column",
        dest="columns",
        action="append",
        required=True,
        help="Open-ended column and its question type as COLUMN:TYPE (repeatable)",
    )
    gen_parser.add_argument(
        "-i", "--id-column",
        help="Name of respondent ID column (optional)",
    )
    gen_parser.add_argument(
        "-o", "--output-dir",
        default="./output",
        help="Output directory (default: ./output)",
    )
    gen_parser.add_argument(
        "--config",
        help="JSON configuration file",
    )
    gen_parser.add_argument(
        "-b", "--backend",
        choices=["ollama", "cerebras"],
        help="Oracle backend (default: from config)",
    )
    gen_parser.add_argument(
        "-m", "--llm-model",
        help="LLM model name (default: from config)",
    )
    gen_parser.add_argument(
        "-w", "--workers",
        type=int,
        help="Question groups processed concurrently (default: 1)",
    )
    gen_parser.add_argument(
        "-s", "--sample",
        type=float,
        help="Percentage of responses per column sent to the oracle (default: 100)",
    )
    gen_parser.add_argument(
        "--slots",
        type=int,
        help="Code slot columns per question in the wide table (default: 10)",
    )
    gen_parser.add_argument(
        "--retries",
        type=int,
        default=0,
        help="Automatic retries of failed question groups (default: 0)",
    )
    gen_parser.add_argument(
        "--context",
        type=str,
        help="Brief description of the study to improve oracle understanding",
    )
    gen_parser.add_argument(
        "--store",
        help="JSON version store; each codeframe is saved as a new version",
    )
    gen_parser.add_argument(
        "--study",
        default="default",
        help="Tracking study prefix; versions go to STUDY:QUESTION_TYPE",
    )
    gen_parser.add_argument(
        "--wave",
        default=None,
        help="Wave label for saved versions (default: run date)",
    )
    gen_parser.add_argument(
        "--skip-viz",
        action="store_true",
        help="Skip frequency charts",
    )
    add_common_arguments(gen_parser)

    # Apply command
    apply_parser = subparsers.add_parser(
        "apply",
        help="Re-apply frozen codeframes with the matching engine",
    )
    apply_parser.add_argument(
        "-d", "--data",
        required=True,
        help="Path to the exported survey table (CSV)",
    )
    apply_parser.add_argument(
        "-f", "--codeframe",
        required=True,
        help="Codeframe file (JSON or CSV)",
    )
    apply_parser.add_argument(
        "-c", "--column",
        dest="columns",
        action="append",
        required=True,
        help="Column to code, optionally as COLUMN:TYPE (repeatable)",
    )
    apply_parser.add_argument(
        "-i", "--id-column",
        help="Name of respondent ID column (optional)",
    )
    apply_parser.add_argument(
        "-o", "--output-dir",
        default="./output",
        help="Output directory (default: ./output)",
    )
    apply_parser.add_argument(
        "--config",
        help="JSON configuration file",
    )
    apply_parser.add_argument(
        "--slots",
        type=int,
        help="Code slot columns per question in the wide table (default: 10)",
    )
    add_common_arguments(apply_parser)

    # Report command
    report_parser = subparsers.add_parser(
        "report",
        help="Print the comparison report of a tracking study",
    )
    report_parser.add_argument(
        "--store",
        required=True,
        help="JSON version store",
    )
    report_parser.add_argument(
        "--study",
        required=True,
        help="Tracking study id",
    )
    report_parser.add_argument("--v1", type=int, help="Earlier version number")
    report_parser.add_argument("--v2", type=int, help="Later version number (default: latest)")
    report_parser.add_argument(
        "-t", "--threshold",
        type=float,
        default=5.0,
        help="Significance threshold in percentage points (default: 5)",
    )
    report_parser.add_argument(
        "--plot",
        help="Save a trend chart of the study's versions to this path",
    )
    add_common_arguments(report_parser)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "generate":
        if args.wave is None:
            args.wave = datetime.now().strftime("%Y-%m-%d")
        return run_generate(args)
    if args.command == "apply":
        return run_apply(args)
    if args.command == "report":
        return run_report(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
