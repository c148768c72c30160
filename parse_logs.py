"""
Extract per-instruction compute-unit consumption from program debug logs.

Reads the combined output of a `cargo test-sbf` run and pairs the two
"Program consumption:" readings that follow each "Program log: #<label>"
line into a ConsumptionRecord:

    X DEBUG Program log: Instruction: Swap
    X DEBUG Program log: #compute_swap
    X DEBUG Program consumption: a b c d e 5000
    X DEBUG Program consumption: a b c d e 4200

        -> Swap  compute_swap  800

Usage:
    python parse_logs.py [LOG|-] [--json OUT] [--no-table] [--budget-field N|line:N]

With no LOG (or "-") the log is read from stdin.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union
import argparse
import json
import os
import re
import sys

from log_types import (
    ConsumptionRecord,
    c_label,
    c_ok,
    c_value,
    dict_to_record,
    die,
    format_records,
    info,
    record_to_dict,
)


INSTRUCTION_MARKER = "Program log: Instruction:"
LABEL_MARKER = "Program log: #"
CONSUMPTION_MARKER = "Program consumption:"

# 1-based whitespace field after CONSUMPTION_MARKER holding the budget value.
BUDGET_FIELD = 6
BUDGET_FIELD_ENV = "CU_BUDGET_FIELD"
# "line:N" counts fields from the start of the line, like awk's $N.
LINE_FIELD_PREFIX = "line:"

RECORDS_VERSION = 1


# ---------------------------------------------------------------------------
# Regex patterns for classifying log lines
# ---------------------------------------------------------------------------

# Only debug-log lines count: "DEBUG" has to appear before the marker.
_INSTRUCTION_RE = re.compile(r"DEBUG.* " + re.escape(INSTRUCTION_MARKER))
_LABEL_RE = re.compile(r"DEBUG.* " + re.escape(LABEL_MARKER))
_CONSUMPTION_RE = re.compile(r"DEBUG.* " + re.escape(CONSUMPTION_MARKER))
_INT_RE = re.compile(r"[+-]?[0-9]+")


class MalformedNumericField(ValueError):
    """The budget field of a consumption line is missing or not an integer."""

    def __init__(self, message: str, line_num: Optional[int] = None, line: Optional[str] = None):
        super().__init__(message)
        self.line_num = line_num
        self.line = line


# ---------------------------------------------------------------------------
# Line classification
# ---------------------------------------------------------------------------

class LineKind(Enum):
    INSTRUCTION_MARKER = "instruction"
    LABEL = "label"
    CONSUMPTION = "consumption"
    OTHER = "other"


@dataclass(frozen=True)
class ClassifiedLine:
    kind: LineKind
    # Instruction name, label text or the consumption payload (text after
    # the marker), depending on kind.
    text: str = ""
    # Whole line, kept for consumption lines only.
    line: str = ""


OTHER_LINE = ClassifiedLine(LineKind.OTHER)


@dataclass(frozen=True)
class BudgetField:
    """Where the budget value sits on a consumption line."""
    index: int = BUDGET_FIELD
    from_line_start: bool = False

    def __post_init__(self) -> None:
        if self.index < 1:
            raise ValueError(f"budget field must be >= 1, got {self.index}")

    def __str__(self) -> str:
        prefix = LINE_FIELD_PREFIX if self.from_line_start else ""
        return f"{prefix}{self.index}"


def parse_budget_field(text: str) -> BudgetField:
    """
    Parse "N" (N-th field after "Program consumption:") or "line:N"
    (N-th field of the whole line).
    """
    raw = text.strip()
    from_line_start = raw.startswith(LINE_FIELD_PREFIX)
    if from_line_start:
        raw = raw[len(LINE_FIELD_PREFIX):]
    if not raw.isdigit():
        raise ValueError(f"invalid budget field {text!r}, expected N or {LINE_FIELD_PREFIX}N")
    return BudgetField(int(raw), from_line_start)


def resolve_budget_field(text: Optional[str] = None) -> BudgetField:
    """--budget-field wins over $CU_BUDGET_FIELD, which wins over the default."""
    raw = text or os.environ.get(BUDGET_FIELD_ENV)
    if not raw:
        return BudgetField()
    return parse_budget_field(raw)


def _as_budget_field(field: Union[int, BudgetField]) -> BudgetField:
    if isinstance(field, BudgetField):
        return field
    return BudgetField(field)


def classify_line(line: str) -> ClassifiedLine:
    """
    Tag a raw log line. Patterns are tried in order, first match wins:

        instruction marker -> last whitespace token of the line
        label              -> text after the first '#', trailing space stripped
        consumption        -> everything after "Program consumption:"
    """
    line = line.rstrip("\r\n")

    if _INSTRUCTION_RE.search(line):
        tokens = line.split()
        return ClassifiedLine(LineKind.INSTRUCTION_MARKER, tokens[-1])

    if _LABEL_RE.search(line):
        _, label = line.split("#", 1)
        return ClassifiedLine(LineKind.LABEL, label.rstrip())

    m = _CONSUMPTION_RE.search(line)
    if m:
        return ClassifiedLine(LineKind.CONSUMPTION, line[m.end():], line)

    return OTHER_LINE


def _budget_value(line: ClassifiedLine, field: BudgetField) -> int:
    fields = (line.line if field.from_line_start else line.text).split()
    if len(fields) < field.index:
        raise MalformedNumericField(
            f"consumption line has {len(fields)} fields, budget expected in field {field}"
        )
    raw = fields[field.index - 1]
    if not _INT_RE.fullmatch(raw):
        raise MalformedNumericField(f"budget field {field} is not an integer: {raw!r}")
    return int(raw)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class Phase(Enum):
    IDLE = "idle"
    AWAITING_BEFORE = "awaiting_before"
    AWAITING_AFTER = "awaiting_after"


@dataclass(frozen=True)
class ParseState:
    pending_instruction: Optional[str] = None
    phase: Phase = Phase.IDLE
    label: Optional[str] = None
    before_value: Optional[int] = None


def step(
    state: ParseState,
    line: ClassifiedLine,
    budget_field: Union[int, BudgetField] = BUDGET_FIELD,
) -> Tuple[ParseState, Optional[ConsumptionRecord]]:
    """
    Advance the parser by one classified line.

    Returns the new state and the record completed by this line, if any.
    Raises MalformedNumericField when a consumption line that is part of an
    open window carries no valid budget value.
    """
    kind = line.kind

    if kind is LineKind.INSTRUCTION_MARKER:
        return replace(state, pending_instruction=line.text), None

    if kind is LineKind.LABEL:
        # A label always (re)opens the window, dropping any half-read pair.
        return replace(state, phase=Phase.AWAITING_BEFORE, label=line.text, before_value=None), None

    if kind is LineKind.CONSUMPTION:
        field = _as_budget_field(budget_field)
        if state.phase is Phase.AWAITING_BEFORE:
            before = _budget_value(line, field)
            return replace(state, phase=Phase.AWAITING_AFTER, before_value=before), None
        if state.phase is Phase.AWAITING_AFTER:
            after = _budget_value(line, field)
            rec = ConsumptionRecord(
                instruction=state.pending_instruction,
                label=state.label or "",
                delta=state.before_value - after,
            )
            return replace(state, phase=Phase.IDLE, before_value=None), rec

    return state, None


def reduce_lines(
    lines: Iterable[str],
    budget_field: Union[int, BudgetField] = BUDGET_FIELD,
) -> Iterator[ConsumptionRecord]:
    """
    Lazily turn a stream of log lines into ConsumptionRecords, in input order.

    A window still open when the stream ends produces nothing.
    """
    state = ParseState()
    for line_num, line in enumerate(lines, 1):
        try:
            state, rec = step(state, classify_line(line), budget_field)
        except MalformedNumericField as e:
            text = line.rstrip("\r\n")
            raise MalformedNumericField(
                f"Line {line_num}: {e}\n  {text[:150]}", line_num=line_num, line=text
            ) from None
        if rec is not None:
            yield rec


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def read_records_from_log(
    log_path: Path,
    budget_field: Union[int, BudgetField] = BUDGET_FIELD,
) -> List[ConsumptionRecord]:
    """Read a saved test log and return all records found in it."""
    log_path = Path(log_path)
    if not log_path.exists():
        raise FileNotFoundError(f"Log not found: {log_path}")

    with open(log_path, "r", encoding="utf-8", errors="replace") as f:
        return list(reduce_lines(f, budget_field))


def write_records_json(records: List[ConsumptionRecord], out_path: Path, source: str) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "version": RECORDS_VERSION,
        "source": source,
        "created_at": datetime.now().isoformat(),
        "total_records": len(records),
        "records": [record_to_dict(rec) for rec in records],
    }
    out_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return out_path


def load_records_json(path: Path) -> List[ConsumptionRecord]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if data.get("version") != RECORDS_VERSION:
        raise ValueError(f"{path}: unsupported records version {data.get('version')!r}")
    return [dict_to_record(d) for d in data["records"]]


def load_records_from_path(
    path: Path,
    budget_field: Union[int, BudgetField] = BUDGET_FIELD,
) -> List[ConsumptionRecord]:
    """Load records from a records.json file, or parse them out of a raw log."""
    path = Path(path)
    if path.suffix == ".json":
        return load_records_json(path)
    return read_records_from_log(path, budget_field)


def print_records(records: List[ConsumptionRecord]) -> None:
    for row in format_records(records):
        print(row)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Extract compute-unit consumption from a test log.")
    parser.add_argument("log", nargs="?", default="-", help="Log file to read (default: stdin)")
    parser.add_argument("--json", dest="json_out", help="Also write records to this JSON file")
    parser.add_argument("--no-table", action="store_true", help="Don't print the aligned table")
    parser.add_argument(
        "--budget-field",
        help=f"Budget value position: N after '{CONSUMPTION_MARKER}' or {LINE_FIELD_PREFIX}N from line start "
        f"(default: ${BUDGET_FIELD_ENV} or {BUDGET_FIELD})",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)

    try:
        budget_field = resolve_budget_field(args.budget_field)
        if args.log == "-":
            source = "<stdin>"
            records = list(reduce_lines(sys.stdin, budget_field))
        else:
            source = args.log
            records = read_records_from_log(Path(args.log), budget_field)
    except (ValueError, FileNotFoundError) as e:
        die(str(e))

    if not args.no_table:
        print_records(records)

    info(f"{c_label('Records:')} {c_value(str(len(records)))}")
    if args.json_out:
        out = write_records_json(records, Path(args.json_out), source)
        info(f"{c_ok('Done.')} Records written to {c_value(str(out))}")


if __name__ == "__main__":
    main()
