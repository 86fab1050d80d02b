"""
Command-line interface for the dependency age auditor.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .auditor import DependencyAuditor, ProjectLoadError
from .config import ConfigError, load_policy, parse_package_specs, split_list
from .models import ExitCode
from .reporting import (
    exit_code,
    export_verdicts_csv,
    filter_verdicts,
    log_verdicts,
    save_results_json,
    to_json,
)
from .resolvers import DEFAULT_MAX_WORKERS, ResolutionError


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paranoid-deps",
        description="Check dependencies to ensure there are no too recent updates"
    )

    parser.add_argument("path", help="Path to project directory")
    parser.add_argument("-c", "--config", help="Path to config file")
    parser.add_argument(
        "-a", "--allow",
        help="Comma separated list of allowed packages with version spec (<package>@<spec>)"
    )
    parser.add_argument(
        "-d", "--deny",
        help="Comma separated list of denied packages with version spec (<package>@<spec>)"
    )
    parser.add_argument(
        "-e", "--exclude",
        help="Comma separated list of packages to exclude from validation"
    )
    parser.add_argument(
        "-i", "--include",
        help="Comma separated list of packages to include in validation"
    )
    parser.add_argument(
        "-m", "--min-days",
        help="Minimum days after publish. Default: 14"
    )
    parser.add_argument(
        "--allow-from",
        help="Comma separated list of packages trusted from a date (<package>@YYYY-MM-DD)"
    )
    parser.add_argument("-j", "--json", action="store_true", default=None, help="Display output as JSON")
    parser.add_argument(
        "-u", "--unsafe", action="store_true", default=None, help="Return only unsafe packages"
    )
    parser.add_argument(
        "--production",
        action="store_true",
        default=None,
        help="Validate installed versions instead of requested version ranges"
    )
    parser.add_argument(
        "--exclude-dev",
        action="store_true",
        default=None,
        help="Exclude development dependencies from validation (ignored for Yarn projects)"
    )
    parser.add_argument(
        "--no-audit",
        dest="audit",
        action="store_false",
        default=None,
        help="Skip security advisory lookup"
    )
    parser.add_argument("--debug", action="store_true", help="Show debug messages")
    parser.add_argument("--ignore-config", action="store_true", help="Ignore all options from config file")
    parser.add_argument(
        "--ignore-options",
        help="Comma separated list of options to ignore from config file"
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=DEFAULT_MAX_WORKERS,
        help=f"Concurrent registry requests. Default: {DEFAULT_MAX_WORKERS}"
    )
    parser.add_argument("--output-dir", default=None, help="Also write results to this directory")
    parser.add_argument("--csv", action="store_true", help="With --output-dir, also export a CSV file")

    return parser


def collect_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate parsed arguments into config-file style options."""
    overrides: Dict[str, Any] = {
        "json": args.json,
        "unsafe": args.unsafe,
        "production": args.production,
        "excludeDev": args.exclude_dev,
        "audit": args.audit,
    }

    if args.allow is not None:
        overrides["allow"] = parse_package_specs(args.allow)
    if args.deny is not None:
        overrides["deny"] = parse_package_specs(args.deny)
    if args.allow_from is not None:
        overrides["allowFrom"] = parse_package_specs(args.allow_from)
    if args.exclude is not None:
        overrides["exclude"] = split_list(args.exclude)
    if args.include is not None:
        overrides["include"] = split_list(args.include)

    if args.min_days is not None:
        try:
            overrides["minDays"] = int(args.min_days)
        except ValueError:
            logger.warning("Ignoring invalid --min-days value: %s", args.min_days)

    return overrides


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(levelname)s %(message)s",
        stream=sys.stderr,
    )


def run(argv: Optional[List[str]] = None) -> ExitCode:
    """Run the CLI and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.debug)

    project_dir = Path(args.path)
    if not project_dir.is_dir():
        logger.error("Project directory not found: %s", project_dir)
        return ExitCode.ERROR

    try:
        config = load_policy(
            project_dir,
            overrides=collect_overrides(args),
            config_path=args.config,
            ignore_config=args.ignore_config,
            ignore_options=split_list(args.ignore_options or ""),
        )
    except ConfigError as e:
        logger.error("%s", e)
        return ExitCode.ERROR

    auditor = DependencyAuditor(project_dir, config, max_workers=args.max_workers)

    try:
        result = auditor.audit()
    except (FileNotFoundError, ProjectLoadError) as e:
        logger.error("%s", e)
        return ExitCode.ERROR
    except ResolutionError as e:
        logger.error("Error while retrieving packages metadata: %s", e)
        logger.debug("Resolution failure", exc_info=True)
        return ExitCode.ERROR

    if config.json:
        print(to_json(result.verdicts, unsafe_only=config.unsafe))
    else:
        log_verdicts(result.verdicts, unsafe_only=config.unsafe)

    if args.output_dir:
        output_dir = Path(args.output_dir)
        results = filter_verdicts(result.verdicts, config.unsafe)
        results_file = save_results_json(results, output_dir, result.safe)
        logger.debug("Results saved to: %s", results_file)
        if args.csv:
            csv_file = export_verdicts_csv(results, output_dir)
            logger.debug("CSV saved to: %s", csv_file)

    return exit_code(result.safe)


def main():
    """Main entry point for the CLI."""
    sys.exit(int(run()))


if __name__ == "__main__":
    main()
