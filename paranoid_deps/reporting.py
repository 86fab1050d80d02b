"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd

from .models import ExitCode, Verdicts


logger = logging.getLogger(__name__)

RESULTS_BASENAME = "paranoid_results"

CSV_COLUMNS = [
    "package",
    "version",
    "days_since_publish",
    "safe",
    "severity",
    "title",
    "range",
    "fixed_version",
    "url",
]


def filter_verdicts(verdicts: Verdicts, unsafe_only: bool = False) -> Verdicts:
    """Drop safe verdicts when ``unsafe_only`` is set, along with packages left empty."""
    if not unsafe_only:
        return verdicts
    filtered: Verdicts = {}
    for name, package in verdicts.items():
        unsafe = [verdict for verdict in package if not verdict.safe]
        if unsafe:
            filtered[name] = unsafe
    return filtered


def verdicts_to_dict(verdicts: Verdicts) -> Dict[str, List[Dict]]:
    return {name: [verdict.to_dict() for verdict in package] for name, package in verdicts.items()}


def to_json(verdicts: Verdicts, unsafe_only: bool = False) -> str:
    return json.dumps(verdicts_to_dict(filter_verdicts(verdicts, unsafe_only)))


def log_verdicts(verdicts: Verdicts, unsafe_only: bool = False) -> None:
    for name, package in verdicts.items():
        for verdict in package:
            if verdict.safe:
                if not unsafe_only:
                    logger.info("Package %s@%s is safe", name, verdict.version)
            else:
                logger.warning(
                    "Package %s@%s is not safe (%d day(s) since last publish)",
                    name,
                    verdict.version,
                    verdict.days_since_publish,
                )
            for recommendation in verdict.recommendations:
                fix = recommendation.fixed_version or "no fixed version"
                logger.warning(
                    "  [%s] %s (%s) -> %s%s",
                    recommendation.severity,
                    recommendation.title,
                    recommendation.range or "unknown range",
                    fix,
                    f" see {recommendation.url}" if recommendation.url else "",
                )


def exit_code(safe: bool) -> ExitCode:
    return ExitCode.OK if safe else ExitCode.FAIL


def save_results_json(verdicts: Verdicts, output_dir: Path, safe: bool) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    results_file = output_dir / f"{RESULTS_BASENAME}.json"
    with open(results_file, 'w') as f:
        json.dump({"safe": safe, "packages": verdicts_to_dict(verdicts)}, f, indent=2)
    return results_file


def verdicts_to_frame(verdicts: Verdicts) -> pd.DataFrame:
    """One row per verdict and recommendation (a verdict without advice gets one row)."""
    rows = []
    for name, package in verdicts.items():
        for verdict in package:
            base = {
                "package": name,
                "version": verdict.version,
                "days_since_publish": verdict.days_since_publish,
                "safe": verdict.safe,
            }
            if not verdict.recommendations:
                rows.append(base)
                continue
            for recommendation in verdict.recommendations:
                rows.append({
                    **base,
                    "severity": recommendation.severity,
                    "title": recommendation.title,
                    "range": recommendation.range,
                    "fixed_version": recommendation.fixed_version,
                    "url": recommendation.url,
                })
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def export_verdicts_csv(verdicts: Verdicts, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_file = output_dir / f"{RESULTS_BASENAME}.csv"
    verdicts_to_frame(verdicts).to_csv(csv_file, index=False)
    return csv_file
