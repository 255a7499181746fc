"""Utility for manually pushing one source file through the sandbox.

Useful when a verdict looks wrong: it prints the raw sandbox result
(failure kind, durations, memory, exit code, message, truncated stdout)
and, when an expected output is given, the evaluator's comparison.

Example::

    python -m tools.manual_runner solution.py \
        --lang python \
        --stdin case.in \
        --expected case.out \
        --time-limit 2 \
        --mem-limit 256

Pass ``--backend docker`` to go through the executor container instead of
a local subprocess.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict

from dispatcher import config as dispatcher_config
from dispatcher.constant import ComparisonMode, Language
from dispatcher.evaluator import compare_output
from dispatcher.meta import Submission
from runner.sandbox import get_sandbox

LANGUAGE_CHOICES = ("c", "cpp", "python", "java", "javascript")


def parse_language(name: str) -> Language:
    # reuse the submission model's name mapping
    return Submission.model_validate({
        "id": "manual",
        "userId": 0,
        "problemId": 0,
        "contestId": 0,
        "code": " ",
        "language": name,
    }).language


def run_sandbox(
    *,
    source: Path,
    lang: str,
    stdin_path: Path | None,
    time_limit: int,
    mem_limit: int,
    config: Dict[str, Any],
) -> Dict[str, Any]:
    """Execute the sandbox with the provided configuration."""

    if not source.is_file():
        raise FileNotFoundError(f"source file not found: {source}")
    stdin = stdin_path.read_text() if stdin_path else ""
    sandbox = get_sandbox(config)
    result = sandbox.run(
        parse_language(lang),
        source.read_text(),
        stdin,
        time_limit,
        mem_limit,
    )
    payload = asdict(result)
    if result.failure_kind is not None:
        payload["failure_kind"] = result.failure_kind.value
    return payload


def parse_args(argv=None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("source", type=Path, help="source file to run")
    parser.add_argument(
        "--lang",
        default="python",
        choices=LANGUAGE_CHOICES,
    )
    parser.add_argument(
        "--stdin",
        type=Path,
        help="testcase input file (omit for empty stdin)",
    )
    parser.add_argument(
        "--expected",
        type=Path,
        help="expected output file; compare when given",
    )
    parser.add_argument(
        "--mode",
        default="normalized",
        choices=[m.name.lower() for m in ComparisonMode],
        help="output comparison mode",
    )
    parser.add_argument(
        "--time-limit",
        type=int,
        default=dispatcher_config.DEFAULT_TIME_LIMIT,
        help="time limit in seconds",
    )
    parser.add_argument(
        "--mem-limit",
        type=int,
        default=dispatcher_config.DEFAULT_MEMORY_LIMIT,
        help="memory limit in megabytes",
    )
    parser.add_argument(
        "--backend",
        choices=("local", "docker"),
        help="override the configured sandbox backend",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="path to sandbox configuration file",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """CLI entry point."""

    args = parse_args(argv)
    config = dispatcher_config.get_sandbox_config(args.config)
    if args.backend:
        config["backend"] = args.backend

    run_result = run_sandbox(
        source=args.source,
        lang=args.lang,
        stdin_path=args.stdin,
        time_limit=args.time_limit,
        mem_limit=args.mem_limit,
        config=config,
    )
    print("=== run ===")
    print(json.dumps(run_result, indent=2, ensure_ascii=False))
    if args.expected and run_result["failure_kind"] is None:
        verdict, diff = compare_output(
            args.expected.read_text(),
            run_result["stdout"],
            ComparisonMode[args.mode.upper()],
        )
        print("=== compare ===")
        print(verdict.value + (f": {diff}" if diff else ""))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
