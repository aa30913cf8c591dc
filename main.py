#!/usr/bin/env python3
"""
Noteforge - Knowledge-base export to web pages

Main entry point. Loads the configuration, imports the export into a graph
store, runs the page script over every page and writes the included pages,
skipping files whose rendered content has not changed since the last run.
"""

import logging
import sys
import argparse
from contextlib import nullcontext
from pathlib import Path

from noteforge.config import ConfigManager
from noteforge.database import RenderCache
from noteforge.errors import CacheStoreUnavailable, IssueKind, IssueLog
from noteforge.graph import GraphStore
from noteforge.importers import IMPORTERS
from noteforge.pipeline import ExportPipeline
from noteforge.policy import PageScript


def setup_logging(config: ConfigManager):
    """Configure logging for the application."""
    level = getattr(logging, str(config.get("logging.level", "INFO")).upper(), logging.INFO)
    format_str = config.get("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = config.log_filename

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ],
        force=True
    )


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Noteforge - Export Roam and Logseq graphs to web pages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data export.json --script pages.py            # Logseq JSON export
  python main.py --product roam --data graph.edn --script pages.py
  python main.py --config site.yaml --fail-on-warnings
        """
    )

    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="Path to the YAML configuration file (default: config.yaml)"
    )

    parser.add_argument(
        "--product",
        choices=sorted(IMPORTERS),
        help="Export format to read (overrides input.product)"
    )

    parser.add_argument(
        "--data",
        type=str,
        help="Path to the export file (overrides paths.data)"
    )

    parser.add_argument(
        "--script",
        type=str,
        help="Path to the page script (overrides paths.script)"
    )

    parser.add_argument(
        "--output",
        type=str,
        help="Output directory (overrides paths.output)"
    )

    parser.add_argument(
        "--cache-db",
        type=str,
        help="Render cache database file (overrides paths.cache_db)"
    )

    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Write every included page without consulting the render cache"
    )

    parser.add_argument(
        "--workers",
        type=int,
        help="Worker pool size (overrides performance.workers)"
    )

    parser.add_argument(
        "--fail-on-warnings",
        action="store_true",
        help="Exit with status 1 if any recoverable issue was reported"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Noteforge 0.1.0"
    )

    return parser.parse_args(argv)


def apply_overrides(config: ConfigManager, args) -> None:
    """Apply command line overrides to the loaded configuration."""
    overrides = {
        "input.product": args.product,
        "paths.data": args.data,
        "paths.script": args.script,
        "paths.output": args.output,
        "paths.cache_db": args.cache_db,
        "performance.workers": args.workers,
    }
    for key_path, value in overrides.items():
        if value is not None:
            config.set(key_path, value)
    if args.fail_on_warnings:
        config.set("run.fail_on_warnings", True)


def run_export(config: ConfigManager, issues: IssueLog, use_cache: bool = True):
    """
    Import the export, evaluate every page and write the output.

    Args:
        config: Loaded configuration
        issues: Issue log collecting recovered problems
        use_cache: Consult the render cache before writing

    Returns:
        The pipeline's RunResult
    """
    data_path = config.data_path
    if not data_path:
        raise ValueError("No export file given; set paths.data or pass --data")

    product = config.product
    if product not in IMPORTERS:
        raise ValueError(f"Unknown input product '{product}'; expected one of {sorted(IMPORTERS)}")

    store = GraphStore(issues)
    IMPORTERS[product](data_path).load(store)
    store.freeze()

    script = None
    if config.script_path:
        script = PageScript.from_file(config.script_path)
    else:
        logging.warning("No page script configured; no pages will be included")

    settings = config.evaluator_settings()
    cache = RenderCache(config.cache_filename) if use_cache else None

    with cache if cache is not None else nullcontext():
        pipeline = ExportPipeline(
            store,
            settings=settings,
            script=script,
            cache=cache,
            issues=issues,
            write_manifest=config.write_manifest
        )
        return pipeline.run()


def main(argv=None):
    """Main entry point."""
    args = parse_arguments(argv)
    config = ConfigManager(args.config)
    apply_overrides(config, args)
    setup_logging(config)

    logging.info("Noteforge - Knowledge-base export")
    issues = IssueLog()

    try:
        result = run_export(config, issues, use_cache=not args.no_cache)
        print(f"\nPages evaluated: {result.pages_evaluated}")
        print(f"Pages included:  {result.pages_included}")
        print(f"Written:         {len(result.written)}")
        print(f"Unchanged:       {len(result.skipped)}")
        print(f"Output:          {Path(config.output_directory).resolve()}")

    except KeyboardInterrupt:
        logging.info("Export interrupted by user")
        print("\nExport interrupted.")
        sys.exit(1)

    except CacheStoreUnavailable as e:
        if not issues.has_fatal:
            issues.report(IssueKind.CACHE_STORE_UNAVAILABLE, str(e))
        logging.error(f"Export aborted: {e}")
        print(f"\nExport aborted: {e}")

    except (OSError, ValueError, SyntaxError) as e:
        logging.error(f"Export failed: {e}")
        print(f"\nExport failed: {e}")
        sys.exit(2)

    summary = issues.summary()
    if summary:
        print("\nIssues:")
        for line in summary:
            print(f"  {line}")

    sys.exit(issues.exit_code(config.fail_on_warnings))


if __name__ == "__main__":
    main()
