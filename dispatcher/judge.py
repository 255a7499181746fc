"""
Judging orchestrator: runs every test case of a submission in stored order
and folds the per-case outcomes into one verdict, score and message.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

from .constant import ScoringPolicy, SubmissionStatus, VERDICT_PRECEDENCE
from .evaluator import Evaluator
from .meta import ProblemMeta, Submission, TestCase
from .result_factory import ExecutionOutcome
from .utils import logger

# a first case ending like this ends the whole submission
_FATAL_FIRST = {
    SubmissionStatus.COMPILATION_ERROR,
    SubmissionStatus.SYSTEM_ERROR,
}
# verdicts whose detail quotes test data
_DATA_REVEALING = {
    SubmissionStatus.WRONG_ANSWER,
    SubmissionStatus.PRESENTATION_ERROR,
}


@dataclass
class JudgeResult:
    verdict: SubmissionStatus
    score: int
    executionTime: int  # ms
    memoryUsed: int  # KB
    message: str
    outcomes: List[ExecutionOutcome] = field(default_factory=list)


def decide_verdict(outcomes: Sequence[ExecutionOutcome]) -> SubmissionStatus:
    if not outcomes:
        return SubmissionStatus.SYSTEM_ERROR
    return min(
        (o.verdict for o in outcomes),
        key=VERDICT_PRECEDENCE.index,
    )


def calculate_score(
    verdict: SubmissionStatus,
    outcomes: Sequence[ExecutionOutcome],
    total_cases: int,
    meta: ProblemMeta,
) -> int:
    if verdict == SubmissionStatus.ACCEPTED:
        return meta.maxScore
    if meta.scoringPolicy == ScoringPolicy.PER_CASE and total_cases:
        passed = sum(1 for o in outcomes if o.passed)
        return meta.maxScore * passed // total_cases
    return 0


def build_result_message(
    verdict: SubmissionStatus,
    outcomes: Sequence[ExecutionOutcome],
    test_cases: Sequence[TestCase],
) -> str:
    if verdict == SubmissionStatus.ACCEPTED:
        return f'All {len(test_cases)} test cases passed successfully'
    for i, outcome in enumerate(outcomes):
        if outcome.verdict != verdict:
            continue
        message = f'Test case {i + 1}: {verdict.label}'
        detail = outcome.error
        if verdict in _DATA_REVEALING and test_cases[i].hidden:
            detail = ''
        if detail:
            message += f' - {detail}'
        return message
    return verdict.label


class Judge:

    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator

    def supports(self, language) -> bool:
        return self.evaluator.supports(language)

    def judge(
        self,
        submission: Submission,
        test_cases: Sequence[TestCase],
        meta: ProblemMeta,
    ) -> JudgeResult:
        outcomes = []
        for i, test_case in enumerate(test_cases):
            outcome = self.evaluator.evaluate(
                submission.code,
                submission.language,
                test_case,
                meta.timeLimit,
                meta.memoryLimit,
                meta.comparisonMode,
            )
            outcomes.append(outcome)
            if i == 0 and outcome.verdict in _FATAL_FIRST:
                logger().info(
                    f'{outcome.verdict.value} on first test case, skip remaining '
                    f'[id={submission.id}, skipped={len(test_cases) - 1}]')
                break
        verdict = decide_verdict(outcomes)
        return JudgeResult(
            verdict=verdict,
            score=calculate_score(verdict, outcomes, len(test_cases), meta),
            executionTime=max((o.executionTime for o in outcomes), default=0),
            memoryUsed=max((o.memoryUsed for o in outcomes), default=0),
            message=build_result_message(verdict, outcomes, test_cases),
            outcomes=outcomes,
        )
