"""
Calculate compute-unit statistics from one run's consumption records.

Reads records.json (as written by parse_logs.py / collect_logs.py) or a raw
test log, groups records by (instruction, label) and computes aggregated
statistics for each combination.

Usage:
    python calculate_stats.py <records.json|test.log> [--json OUT] [--budget-field N|line:N]
"""

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import List, Optional, Sequence
import argparse
import json

import numpy as np

from log_types import (
    ConsumptionRecord,
    MISSING_INSTRUCTION,
    c_label,
    c_ok,
    c_value,
    die,
    format_table,
    info,
)
from parse_logs import BUDGET_FIELD_ENV, LINE_FIELD_PREFIX, load_records_from_path, resolve_budget_field


STATS_COLUMNS = ["instruction", "label", "count", "min", "max", "mean", "median", "p66", "total"]


# ---------------------------------------------------------------------------
# Statistics dataclass
# ---------------------------------------------------------------------------

@dataclass
class LabelStats:
    """Aggregated deltas for a given (instruction, label) combination."""
    instruction: Optional[str]
    label: str
    count: int
    min: int
    max: int
    mean: float
    median: float
    p66: float
    total: int

    def to_row(self) -> List[str]:
        return [
            self.instruction or MISSING_INSTRUCTION,
            self.label.strip(),
            str(self.count),
            str(self.min),
            str(self.max),
            f"{self.mean:.1f}",
            f"{self.median:.1f}",
            f"{self.p66:.1f}",
            str(self.total),
        ]


# ---------------------------------------------------------------------------
# Grouping and computation
# ---------------------------------------------------------------------------

def group_by_instruction_and_label(
    records: Sequence[ConsumptionRecord],
) -> dict[tuple[Optional[str], str], List[int]]:
    """Group deltas by (instruction, label), keeping first-seen order."""
    grouped: dict[tuple[Optional[str], str], List[int]] = {}
    for rec in records:
        grouped.setdefault((rec.instruction, rec.label), []).append(rec.delta)
    return grouped


def compute_stats(records: Sequence[ConsumptionRecord]) -> List[LabelStats]:
    stats: List[LabelStats] = []
    for (instruction, label), deltas in group_by_instruction_and_label(records).items():
        arr = np.array(deltas, dtype=np.int64)
        stats.append(
            LabelStats(
                instruction=instruction,
                label=label,
                count=int(arr.size),
                min=int(arr.min()),
                max=int(arr.max()),
                mean=float(arr.mean()),
                median=float(np.median(arr)),
                p66=float(np.percentile(arr, 66)),
                total=int(arr.sum()),
            )
        )
    return stats


def format_stats(stats: Sequence[LabelStats]) -> List[str]:
    if not stats:
        return []
    return format_table([STATS_COLUMNS] + [s.to_row() for s in stats])


def write_stats_json(stats: Sequence[LabelStats], out_path: Path, source: str) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "source": source,
        "stats": [asdict(s) for s in stats],
    }
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    return out_path


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Per-label compute-unit statistics for one test run.")
    parser.add_argument("input", help="records.json or a raw test log")
    parser.add_argument("--json", dest="json_out", help="Write statistics to this JSON file")
    parser.add_argument(
        "--budget-field",
        help=f"Budget value position for raw logs: N or {LINE_FIELD_PREFIX}N (default: ${BUDGET_FIELD_ENV} or 6)",
    )
    args = parser.parse_args(argv)

    try:
        records = load_records_from_path(Path(args.input), resolve_budget_field(args.budget_field))
    except (FileNotFoundError, ValueError) as e:
        die(str(e))

    info(f"{c_label('Records:')} {c_value(str(len(records)))}")
    stats = compute_stats(records)
    for row in format_stats(stats):
        print(row)

    if args.json_out:
        out = write_stats_json(stats, Path(args.json_out), args.input)
        info(f"{c_ok('Done.')} Stats written to {c_value(str(out))}")


if __name__ == "__main__":
    main()
