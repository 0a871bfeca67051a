from __future__ import annotations

"""CLI helper for printing the latest run report."""

import argparse
import json
from pathlib import Path
from typing import Sequence

from . import telemetry
from .utils import load_json_file


def _build_parser() -> argparse.ArgumentParser:
    """Return an argument parser for the run report CLI."""

    parser = argparse.ArgumentParser(
        description="Show the report of a harvester run.",
    )
    parser.add_argument(
        "--report",
        type=Path,
        help="Path to a specific run report JSON file.",
    )
    parser.add_argument(
        "--runs-dir",
        type=Path,
        default=None,
        help="Directory holding run reports (defaults to HARVESTER_DATA_DIR/runs).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the raw report as JSON.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the run report CLI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.report is not None:
        report = load_json_file(args.report)
    else:
        report = telemetry.load_latest_report(args.runs_dir)
    if not isinstance(report, dict):
        print("No run report found.")
        return 1

    if args.json:
        print(json.dumps(report, ensure_ascii=False, indent=2))
        return 0

    print(f"Run {report.get('runId')}: {report.get('status')}")
    print(f"  started: {report.get('startedAt')}")
    print(f"  ended: {report.get('endedAt')}")
    print(f"  succeeded: {report.get('successCount', 0)}")
    print(f"  failed: {report.get('failedCount', 0)}")
    print(f"  skipped duplicates: {report.get('skippedDuplicates', 0)}")
    print(f"  reload recoveries: {report.get('reloadRecoveries', 0)}")
    print(f"  context recoveries: {report.get('contextRecoveries', 0)}")
    if report.get("outputLocation"):
        print(f"  output: {report['outputLocation']}")
    if report.get("error"):
        print(f"  error: {report['error']}")

    failures = report.get("failedItems") or []
    if failures:
        print("\nFailed items:")
        for item in failures:
            print(f"  [page {item.get('pageNumber')}] {item.get('name')}: {item.get('reason')}")

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
