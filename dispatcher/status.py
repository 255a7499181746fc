"""
Submission status state machine.

    PENDING -> QUEUED -> RUNNING -> {terminal}

PENDING and QUEUED belong to the intake flow; the dispatcher only ever
writes RUNNING and the terminal states. A non-terminal submission may
jump straight to a terminal state (e.g. a problem without test cases
goes QUEUED -> SYSTEM_ERROR). Terminal states are absorbing.
"""

from .constant import SubmissionStatus
from .exception import InvalidStatusTransitionError

_FORWARD = {
    SubmissionStatus.PENDING: {
        SubmissionStatus.QUEUED,
        SubmissionStatus.RUNNING,
    },
    SubmissionStatus.QUEUED: {
        SubmissionStatus.RUNNING,
    },
    SubmissionStatus.RUNNING: set(),
}


def can_transition(current: SubmissionStatus,
                   target: SubmissionStatus) -> bool:
    if current.is_terminal:
        return False
    if target.is_terminal:
        return True
    return target in _FORWARD.get(current, set())


def check_transition(submission_id: str, current: SubmissionStatus,
                     target: SubmissionStatus):
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(submission_id, current, target)
