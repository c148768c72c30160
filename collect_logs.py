#!/usr/bin/env python3
"""
Run the program test suite and report compute-unit consumption per label.

Runs the test command (default: `unbuffer cargo test-sbf`) with stderr merged
into stdout, echoes its output while teeing it into a temporary log file, then
extracts ConsumptionRecords from that log and prints them as an aligned table:

  <instruction>  <label>  <delta>

The temporary log is removed on exit unless --save-log is given. The script
exits with the test command's exit status.

Usage:
  python3 collect_logs.py [--cmd "cargo test-sbf -- --nocapture"] [--save-log run.log]
                          [--json records.json] [--stats] [--quiet]
                          [--budget-field N|line:N]
"""

from __future__ import annotations

import argparse
import os
import shlex
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import List, Optional, TextIO, Tuple

from calculate_stats import compute_stats, format_stats
from log_types import ConsumptionRecord, c_dim, c_label, c_ok, c_value, c_warn, die, info
from parse_logs import (
    BUDGET_FIELD,
    BUDGET_FIELD_ENV,
    BudgetField,
    LINE_FIELD_PREFIX,
    print_records,
    read_records_from_log,
    resolve_budget_field,
    write_records_json,
)


DEFAULT_TEST_CMD = "unbuffer cargo test-sbf"
TEST_CMD_ENV = "CU_TEST_CMD"


def resolve_test_cmd(cmd: Optional[str] = None) -> List[str]:
    """--cmd wins over $CU_TEST_CMD, which wins over the default."""
    raw = cmd or os.environ.get(TEST_CMD_ENV) or DEFAULT_TEST_CMD
    argv = shlex.split(raw)
    if not argv:
        raise ValueError("empty test command")
    return argv


def run_and_tee(argv: List[str], out_fh: TextIO, echo: bool = True, cwd: Optional[str] = None) -> int:
    """
    Run argv with stderr merged into stdout and copy every line to out_fh
    (and to our stdout when echo is set). Returns the exit status.
    """
    proc = subprocess.Popen(
        argv,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        cwd=cwd,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    assert proc.stdout is not None

    drained = False
    try:
        for line in proc.stdout:
            out_fh.write(line)
            if echo:
                sys.stdout.write(line)
                sys.stdout.flush()
        drained = True
    finally:
        proc.stdout.close()
        # Stopped reading early (Ctrl-C, broken pipe, ...): don't leave the child behind.
        if not drained and proc.poll() is None:
            proc.terminate()
            proc.wait()

    return proc.wait()


def collect(
    argv: List[str],
    save_log: Optional[Path] = None,
    echo: bool = True,
    cwd: Optional[str] = None,
    budget_field: BudgetField = BudgetField(),
) -> Tuple[int, List[ConsumptionRecord]]:
    """
    Run the test command, tee its output to a log and reduce that log.

    Returns (exit status, records). Without save_log the log lives in a
    temporary file that is removed before returning.
    """
    if save_log is not None:
        log_path = Path(save_log)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        is_temp = False
    else:
        fd, tmp_name = tempfile.mkstemp(prefix="cu_log_", suffix=".log")
        os.close(fd)
        log_path = Path(tmp_name)
        is_temp = True

    try:
        with log_path.open("w", encoding="utf-8") as out_fh:
            rc = run_and_tee(argv, out_fh, echo=echo, cwd=cwd)
        records = read_records_from_log(log_path, budget_field)
    finally:
        if is_temp:
            log_path.unlink(missing_ok=True)

    return rc, records


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the test suite and extract compute-unit consumption.")
    parser.add_argument("--cmd", help=f"Test command (default: ${TEST_CMD_ENV} or '{DEFAULT_TEST_CMD}')")
    parser.add_argument("--cwd", help="Directory to run the test command in")
    parser.add_argument("--save-log", help="Keep the captured log at this path")
    parser.add_argument("--json", dest="json_out", help="Also write records to this JSON file")
    parser.add_argument("--stats", action="store_true", help="Print per-label statistics after the table")
    parser.add_argument("--quiet", action="store_true", help="Don't echo the test output")
    parser.add_argument(
        "--budget-field",
        help=f"Budget value position: N after the consumption marker or {LINE_FIELD_PREFIX}N from line start "
        f"(default: ${BUDGET_FIELD_ENV} or {BUDGET_FIELD}; real sol_log_compute_units output needs {LINE_FIELD_PREFIX}6)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        test_cmd = resolve_test_cmd(args.cmd)
        budget_field = resolve_budget_field(args.budget_field)
    except ValueError as e:
        die(str(e))

    info(f"{c_label('Running')}: {c_value(shlex.join(test_cmd))}")
    save_log = Path(args.save_log) if args.save_log else None
    try:
        rc, records = collect(
            test_cmd, save_log=save_log, echo=not args.quiet, cwd=args.cwd, budget_field=budget_field
        )
    except FileNotFoundError as e:
        die(f"cannot run test command: {e}")
    except ValueError as e:
        die(str(e))

    print_records(records)

    if args.stats and records:
        print()
        for row in format_stats(compute_stats(records)):
            print(row)

    info(f"{c_label('Records')}: {len(records)}")
    if save_log is not None:
        info(f"  {c_dim('Log kept at')} {save_log}")
    if args.json_out:
        out = write_records_json(records, Path(args.json_out), shlex.join(test_cmd))
        info(f"{c_ok('Done.')} Records written to {c_value(str(out))}")

    if rc != 0:
        info(f"{c_warn('WARNING:')} test command exited with status {rc}")
    return rc


if __name__ == "__main__":
    raise SystemExit(main())
