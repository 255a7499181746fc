"""
Factory functions for per-test-case outcomes.

Every branch of the evaluator returns one of these so that the verdict,
the failure kind and the `passed` flag can never disagree.
"""

from dataclasses import dataclass
from typing import Optional

from .constant import FailureKind, SubmissionStatus


@dataclass
class ExecutionOutcome:
    verdict: SubmissionStatus
    output: str = ""
    executionTime: int = 0  # ms
    memoryUsed: int = 0  # KB
    error: str = ""
    failureKind: Optional[FailureKind] = None
    exitCode: int = 0

    @property
    def passed(self) -> bool:
        return self.verdict == SubmissionStatus.ACCEPTED


def make_accepted(output: str, exec_time: int = 0,
                  mem_usage: int = 0) -> ExecutionOutcome:
    return ExecutionOutcome(
        verdict=SubmissionStatus.ACCEPTED,
        output=output,
        executionTime=exec_time,
        memoryUsed=mem_usage,
    )


def make_mismatch(
    verdict: SubmissionStatus,
    output: str,
    error: str,
    exec_time: int = 0,
    mem_usage: int = 0,
) -> ExecutionOutcome:
    """
    Build a wrong-answer style outcome (WRONG_ANSWER or PRESENTATION_ERROR).

    Args:
        verdict: which of the two mismatch verdicts applies
        output: the program's (truncated) stdout
        error: description of the first difference
    """
    return ExecutionOutcome(
        verdict=verdict,
        output=output,
        executionTime=exec_time,
        memoryUsed=mem_usage,
        error=error,
    )


def make_failure(
    kind: FailureKind,
    error: str = "",
    output: str = "",
    exec_time: int = 0,
    mem_usage: int = 0,
    exit_code: int = 1,
) -> ExecutionOutcome:
    """Build an outcome for a run that never reached output comparison."""
    return ExecutionOutcome(
        verdict=kind.to_status(),
        output=output,
        executionTime=exec_time,
        memoryUsed=mem_usage,
        error=error,
        failureKind=kind,
        exitCode=exit_code,
    )


def make_system_error(error: str) -> ExecutionOutcome:
    return make_failure(FailureKind.SYSTEM_ERROR, error=error)
