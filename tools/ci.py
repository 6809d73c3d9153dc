#!/usr/bin/env python3
# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Run all CI checks locally: format, lint, type check, tests, example schemas and build."""

import argparse
import subprocess
import sys
import time
from pathlib import Path

from yachalk import chalk

# ###############
# Public Interface
# ###############

STEPS: dict[str, list[str]] = {
    "format": ["uv", "run", "ruff", "format", "--check", "src/", "tests/"],
    "lint": ["uv", "run", "ruff", "check", "src/", "tests/"],
    "types": ["uv", "run", "ty", "check", "src/"],
    "tests": ["uv", "run", "pytest", "--cov=derived_fields", "--cov-report=term-missing"],
    "build": ["uv", "build"],
}


def main() -> int:
    """Run the selected CI steps and report results."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--skip",
        action="append",
        default=[],
        choices=[*STEPS, "examples"],
        help="Skip a step (may be repeated)",
    )
    args = parser.parse_args()

    steps = [(name, cmd) for name, cmd in STEPS.items() if name not in args.skip]
    if "examples" not in args.skip:
        steps.extend(_example_steps())

    results: list[tuple[str, bool, float]] = []
    for name, cmd in steps:
        _banner(name)
        start = time.monotonic()
        proc = subprocess.run(cmd, cwd=_repo_root())
        results.append((name, proc.returncode == 0, time.monotonic() - start))

    _banner("Summary")
    for name, passed, elapsed in results:
        status = chalk.green("PASS") if passed else chalk.red("FAIL")
        print(f"  {status}  {name} ({elapsed:.1f}s)")
    print()
    return 0 if all(passed for _, passed, _ in results) else 1


# ################
# Implementation
# ################


def _repo_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _example_steps() -> list[tuple[str, list[str]]]:
    """One ``derived-fields check`` step per schema document under examples/."""
    return [
        (f"example {path.name}", ["uv", "run", "derived-fields", "check", str(path)])
        for path in sorted((_repo_root() / "examples").glob("*.yaml"))
    ]


def _banner(title: str) -> None:
    sep = chalk.blue("=" * 60)
    print(f"\n{sep}")
    print(chalk.blue(title))
    print(sep)


if __name__ == "__main__":
    sys.exit(main())
