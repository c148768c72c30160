#!/usr/bin/env python3
"""
Build the on-chain program and dump its disassembly.

Runs `cargo build-sbf` and then the SDK dump script against the built
shared object:

  <dump.sh> ./target/sbf-solana-solana/release/openbook_v2_cu.so dump.txt

The dump script path comes from --dump-script, then $SBF_DUMP_SCRIPT, then
the default install location.

Usage:
  python3 dump_program.py [--dump-script PATH] [--artifact SO] [--out dump.txt] [--skip-build]
"""

from __future__ import annotations

import argparse
import os
import subprocess
from pathlib import Path
from typing import List, Optional

from log_types import c_label, c_ok, c_value, die, info


DEFAULT_DUMP_SCRIPT = "~/.local/share/solana/install/active_release/bin/sdk/bpf/scripts/dump.sh"
DUMP_SCRIPT_ENV = "SBF_DUMP_SCRIPT"
DEFAULT_ARTIFACT = "./target/sbf-solana-solana/release/openbook_v2_cu.so"
DEFAULT_OUT = "dump.txt"
BUILD_CMD = ["cargo", "build-sbf"]


def resolve_dump_script(path: Optional[str] = None) -> Path:
    raw = path or os.environ.get(DUMP_SCRIPT_ENV) or DEFAULT_DUMP_SCRIPT
    return Path(raw).expanduser()


def run_step(argv: List[str], what: str) -> None:
    info(f"{c_label(what)}: {c_value(' '.join(argv))}")
    try:
        proc = subprocess.run(argv, check=False)
    except FileNotFoundError as e:
        raise RuntimeError(f"{what} failed: {e}") from e
    if proc.returncode != 0:
        raise RuntimeError(f"{what} failed with exit code {proc.returncode}")


def build_and_dump(dump_script: Path, artifact: Path, out: Path, skip_build: bool = False) -> Path:
    if not skip_build:
        run_step(BUILD_CMD, "Build")
    if not dump_script.exists():
        raise RuntimeError(f"dump script not found: {dump_script}")
    if not artifact.exists():
        raise RuntimeError(f"build artifact not found: {artifact}")
    run_step([str(dump_script), str(artifact), str(out)], "Dump")
    return out


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Build the program and dump its disassembly.")
    parser.add_argument("--dump-script", help=f"Dump script (default: ${DUMP_SCRIPT_ENV} or {DEFAULT_DUMP_SCRIPT})")
    parser.add_argument("--artifact", default=DEFAULT_ARTIFACT, help=f"Built program (default: {DEFAULT_ARTIFACT})")
    parser.add_argument("--out", default=DEFAULT_OUT, help=f"Dump output file (default: {DEFAULT_OUT})")
    parser.add_argument("--skip-build", action="store_true", help="Don't run cargo build-sbf first")
    args = parser.parse_args(argv)

    try:
        out = build_and_dump(
            resolve_dump_script(args.dump_script),
            Path(args.artifact),
            Path(args.out),
            skip_build=args.skip_build,
        )
    except RuntimeError as e:
        die(str(e))

    info(f"{c_ok('Done.')} Dump written to {c_value(str(out))}")


if __name__ == "__main__":
    main()
