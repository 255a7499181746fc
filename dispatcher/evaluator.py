from typing import List, Optional, Tuple

from runner.sandbox import JudgeError, Sandbox

from .constant import ComparisonMode, Language, SubmissionStatus
from .meta import TestCase
from .result_factory import (
    ExecutionOutcome,
    make_accepted,
    make_failure,
    make_mismatch,
    make_system_error,
)
from .utils import logger


def strip(s: str) -> List[str]:
    # crlf -> lf, strip trailing space for each line
    ss = [line.rstrip() for line in s.replace('\r\n', '\n').split('\n')]
    # strip redundant new line
    while len(ss) and ss[-1] == '':
        del ss[-1]
    return ss


def _shorten(s: str, limit: int = 40) -> str:
    return s if len(s) <= limit else s[:limit - 3] + '...'


def first_difference(expected: List[str],
                     actual: List[str]) -> Optional[str]:
    for i, (e, a) in enumerate(zip(expected, actual), start=1):
        if e != a:
            return f'Line {i}: expected {_shorten(e)!r}, got {_shorten(a)!r}'
    if len(actual) < len(expected):
        return f'Line {len(actual) + 1}: missing output, expected {_shorten(expected[len(actual)])!r}'
    if len(actual) > len(expected):
        return f'Line {len(expected) + 1}: extra output {_shorten(actual[len(expected)])!r}'
    return None


def compare_output(
    expected: str,
    actual: str,
    mode: ComparisonMode = ComparisonMode.NORMALIZED,
) -> Tuple[SubmissionStatus, str]:
    """
    Compare program output against the expected answer.

    Returns:
        (ACCEPTED | WRONG_ANSWER | PRESENTATION_ERROR, first difference)
    """
    if mode == ComparisonMode.TOKENS:
        exp, act = expected.split(), actual.split()
        if exp == act:
            return SubmissionStatus.ACCEPTED, ''
        for i, (e, a) in enumerate(zip(exp, act), start=1):
            if e != a:
                return (SubmissionStatus.WRONG_ANSWER,
                        f'Token {i}: expected {_shorten(e)!r}, got {_shorten(a)!r}')
        return (SubmissionStatus.WRONG_ANSWER,
                f'expected {len(exp)} tokens, got {len(act)}')
    diff = first_difference(strip(expected), strip(actual))
    if mode == ComparisonMode.EXACT:
        if expected == actual:
            return SubmissionStatus.ACCEPTED, ''
        if diff is None:
            return (SubmissionStatus.PRESENTATION_ERROR,
                    'Output differs only in whitespace')
        return SubmissionStatus.WRONG_ANSWER, diff
    if diff is None:
        return SubmissionStatus.ACCEPTED, ''
    return SubmissionStatus.WRONG_ANSWER, diff


class Evaluator:
    """Runs one test case through the sandbox and classifies the result."""

    def __init__(self, sandbox: Sandbox):
        self.sandbox = sandbox

    def supports(self, language: Language) -> bool:
        return self.sandbox.supports(language)

    def evaluate(
        self,
        code: str,
        language: Language,
        test_case: TestCase,
        time_limit: int,
        memory_limit: int,
        comparison_mode: ComparisonMode = ComparisonMode.NORMALIZED,
    ) -> ExecutionOutcome:
        try:
            result = self.sandbox.run(
                language,
                code,
                test_case.input,
                time_limit,
                memory_limit,
            )
        except JudgeError as e:
            logger().error(f'sandbox failed on test case {test_case.id}: {e}',
                           exc_info=True)
            return make_system_error(f'Sandbox error: {e}')
        if result.failure_kind is not None:
            logger().debug(
                f'test case {test_case.id}: {result.failure_kind.value} '
                f'[exit={result.exit_code}, time={result.run_duration}ms]')
            return make_failure(
                result.failure_kind,
                error=result.message,
                output=result.stdout,
                exec_time=result.run_duration,
                mem_usage=result.memory_used,
                exit_code=result.exit_code,
            )
        verdict, diff = compare_output(
            test_case.expectedOutput,
            result.stdout,
            comparison_mode,
        )
        logger().debug(f'test case {test_case.id}: {verdict.value} '
                       f'[time={result.run_duration}ms, mem={result.memory_used}KB]')
        if verdict == SubmissionStatus.ACCEPTED:
            return make_accepted(result.stdout, result.run_duration,
                                 result.memory_used)
        return make_mismatch(verdict, result.stdout, diff, result.run_duration,
                             result.memory_used)
