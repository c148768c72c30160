"""
Shared types and utilities for compute-unit log processing scripts.

This module contains:
- ConsumptionRecord dataclass for representing one measured instruction step
- ANSI color helpers for terminal output
- Column alignment for record tables
- JSON serialization helpers
"""

from dataclasses import dataclass, asdict
from typing import List, Optional, Sequence, TextIO
import os
import sys


# ---------------------------------------------------------------------------
# ANSI color helpers
# ---------------------------------------------------------------------------

def _use_color(stream: TextIO) -> bool:
    if os.environ.get("NO_COLOR") is not None:
        return False
    try:
        return stream.isatty()
    except Exception:
        return False


# Status messages go to stderr, so that is the stream that decides coloring.
_COLOR = _use_color(sys.stderr)


def _c(text: str, code: str) -> str:
    if not _COLOR:
        return text
    return f"\033[{code}m{text}\033[0m"


def c_label(text: str) -> str:
    return _c(text, "1;36")  # bold cyan


def c_value(text: str) -> str:
    return _c(text, "1;37")  # bold white


def c_ok(text: str) -> str:
    return _c(text, "1;32")  # bold green


def c_warn(text: str) -> str:
    return _c(text, "1;33")  # bold yellow


def c_err(text: str) -> str:
    return _c(text, "1;31")  # bold red


def c_dim(text: str) -> str:
    return _c(text, "2")  # dim


def info(msg: str) -> None:
    """Print a status line to stderr (stdout is reserved for tables)."""
    print(msg, file=sys.stderr)


def die(msg: str, code: int = 1) -> None:
    print(f"{c_err('Error')}: {msg}", file=sys.stderr)
    sys.exit(code)


# ---------------------------------------------------------------------------
# ConsumptionRecord dataclass
# ---------------------------------------------------------------------------

MISSING_INSTRUCTION = "-"


@dataclass(frozen=True)
class ConsumptionRecord:
    instruction: Optional[str]  # last "Instruction:" seen, None before the first one
    label: str                  # text after '#' on the opening label line
    delta: int                  # before - after, may be negative

    def to_row(self) -> List[str]:
        # msg!("# name") leaves a space after the hash.
        return [self.instruction or MISSING_INSTRUCTION, self.label.strip(), str(self.delta)]


# ---------------------------------------------------------------------------
# JSON serialization helpers
# ---------------------------------------------------------------------------

def record_to_dict(rec: ConsumptionRecord) -> dict:
    """Convert a ConsumptionRecord to a JSON-serializable dictionary."""
    return asdict(rec)


def dict_to_record(d: dict) -> ConsumptionRecord:
    """Convert a dictionary (from JSON) back to a ConsumptionRecord."""
    return ConsumptionRecord(
        instruction=d.get("instruction"),
        label=d["label"],
        delta=int(d["delta"]),
    )


# ---------------------------------------------------------------------------
# Table formatting
# ---------------------------------------------------------------------------

def format_table(rows: Sequence[Sequence[str]], sep: str = "  ") -> List[str]:
    """
    Align rows into left-justified columns, the way `column -t` does.

    Every cell stays a single column even if it contains spaces. The last
    column is not padded, so lines carry no trailing whitespace.
    """
    if not rows:
        return []
    ncols = max(len(r) for r in rows)
    widths = [0] * ncols
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    lines: List[str] = []
    for row in rows:
        cells = [cell.ljust(widths[i]) for i, cell in enumerate(row)]
        lines.append(sep.join(cells).rstrip())
    return lines


def format_records(records: Sequence[ConsumptionRecord]) -> List[str]:
    return format_table([rec.to_row() for rec in records])
