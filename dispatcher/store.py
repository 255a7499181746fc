import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .constant import SubmissionStatus
from .exception import SubmissionIdNotFoundError
from .meta import ProblemMeta, StatusUpdate, Submission, TestCase
from .status import check_transition
from .utils import logger


class SubmissionStore(ABC):
    """
    What the judge needs from the platform's persistence layer.

    `update_status` is the only write. Implementations must apply the
    whole `StatusUpdate` at once and must refuse transitions rejected by
    `dispatcher.status.check_transition`.
    It returns the updated record, or None when the stored record can not
    be read back as a `Submission`.
    """

    @abstractmethod
    def get_submission(self, submission_id: str) -> Optional[Submission]:
        ...

    @abstractmethod
    def get_test_cases(self, problem_id: int) -> List[TestCase]:
        ...

    def get_problem_meta(self, problem_id: int) -> ProblemMeta:
        return ProblemMeta()

    @abstractmethod
    def update_status(self, submission_id: str,
                      update: StatusUpdate) -> Optional[Submission]:
        ...


class InMemorySubmissionStore(SubmissionStore):
    """Thread-safe store for local runs and tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self._submissions: Dict[str, Submission] = {}
        self._test_cases: Dict[int, List[TestCase]] = {}
        self._problem_meta: Dict[int, ProblemMeta] = {}
        # (submission_id, status) in write order
        self.history = []

    def add_submission(self, submission: Submission):
        with self._lock:
            self._submissions[submission.id] = submission

    def add_test_cases(self, problem_id: int, test_cases: List[TestCase]):
        with self._lock:
            self._test_cases.setdefault(problem_id, []).extend(test_cases)

    def set_problem_meta(self, problem_id: int, meta: ProblemMeta):
        with self._lock:
            self._problem_meta[problem_id] = meta

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        with self._lock:
            return self._submissions.get(submission_id)

    def get_test_cases(self, problem_id: int) -> List[TestCase]:
        with self._lock:
            return list(self._test_cases.get(problem_id, []))

    def get_problem_meta(self, problem_id: int) -> ProblemMeta:
        with self._lock:
            return self._problem_meta.get(problem_id) or ProblemMeta()

    def update_status(self, submission_id: str,
                      update: StatusUpdate) -> Submission:
        with self._lock:
            current = self._submissions.get(submission_id)
            if current is None:
                raise SubmissionIdNotFoundError(
                    f"Unexisted id {submission_id} recieved")
            check_transition(submission_id, current.status, update.status)
            # replace the record as a whole so readers never see half a write
            updated = current.model_copy(update=update.model_dump())
            self._submissions[submission_id] = updated
            self.history.append((submission_id, update.status))
        logger().debug(
            f"Updated submission {submission_id} - Status: {update.status.value}, Score: {update.score}"
        )
        return updated

    def statuses(self, submission_id: str) -> List[SubmissionStatus]:
        with self._lock:
            return [s for i, s in self.history if i == submission_id]
