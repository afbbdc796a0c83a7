#!/usr/bin/env python3
"""Run pytest in Qt offscreen mode with safe defaults.

Usage:
  python scripts/run_tests_offscreen.py [--timeout SECONDS] [--uv] [--] [pytest args...]

Examples:
  python scripts/run_tests_offscreen.py tests/test_upload_queue.py::test_cancel_drops_late_upload_result
  python scripts/run_tests_offscreen.py -- -k "crop and not vips" -q
"""

from __future__ import annotations

import argparse
import os
import shlex
import subprocess
import sys


def main() -> int:
    p = argparse.ArgumentParser(description="Run pytest with Qt offscreen mode and safe defaults")
    p.add_argument("--timeout", type=int, default=300, help="Maximum seconds to allow the whole pytest run")
    p.add_argument("--verbose", action="store_true", help="Don't use -q (quiet)")
    p.add_argument("--uv", action="store_true", help="Run through `uv run` instead of the current interpreter")
    p.add_argument("--log-level", default="warning", help="CROP_UPLOADER_LOG_LEVEL for the run")
    p.add_argument(
        "pytest_args", nargs=argparse.REMAINDER, help="Additional pytest args (e.g. tests/test_file.py::test_name)"
    )
    args = p.parse_args()

    env = os.environ.copy()
    # The queue and dispatcher need a Qt application object but never a display.
    env.setdefault("QT_QPA_PLATFORM", "offscreen")
    env.setdefault("CROP_UPLOADER_LOG_LEVEL", args.log_level)

    base_cmd = ["uv", "run", "python"] if args.uv else [sys.executable]
    base_cmd += ["-m", "pytest"]
    flags = []
    if not args.verbose:
        flags += ["-q", "-x", "--maxfail=1"]
    # Per-test timeout via pytest-timeout; threaded upload tests must not hang the run
    timeout_flag = [f"--timeout={min(60, args.timeout)}"]
    user_args = [a for a in args.pytest_args if a != "--"]
    cmd = base_cmd + flags + timeout_flag + user_args

    print("Running:", " ".join(shlex.quote(c) for c in cmd))
    try:
        completed = subprocess.run(cmd, env=env, check=False, timeout=args.timeout)
        return completed.returncode if completed.returncode is not None else 0
    except subprocess.TimeoutExpired:
        print(f"pytest run timed out after {args.timeout} seconds", file=sys.stderr)
        return 124


if __name__ == "__main__":
    raise SystemExit(main())
