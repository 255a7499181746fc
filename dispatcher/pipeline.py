from typing import List, Optional, Tuple

import requests as rq
from pydantic import ValidationError

from .config import (
    BACKEND_API,
    JUDGE_TOKEN,
)
from .constant import SubmissionStatus
from .exception import InvalidStatusTransitionError, StoreError
from .meta import ProblemMeta, StatusUpdate, Submission, TestCase
from .status import check_transition
from .store import SubmissionStore
from .utils import logger


def handle_backend_response(resp: rq.Response):
    if resp.status_code == 404:
        raise ValueError("Resource not found")
    if resp.status_code == 401:
        raise PermissionError()
    if not resp.ok:
        logger().error(f"Error during backend request [resp: {resp.text}]")
        raise StoreError(f"backend answered {resp.status_code}")


class BackendSubmissionStore(SubmissionStore):
    """
    Submission store backed by the platform's REST API.

    Status writes carry the status the judge last observed so the backend
    can reject a write that lost a race (answered with 409).
    """

    def __init__(
        self,
        backend_api: str = BACKEND_API,
        token: str = JUDGE_TOKEN,
        timeout: float = 10,
    ):
        self.backend_api = backend_api.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _get(self, path: str) -> dict:
        try:
            resp = rq.get(
                f"{self.backend_api}{path}",
                params={
                    "token": self.token,
                },
                timeout=self.timeout,
            )
        except rq.RequestException as e:
            raise StoreError(f"backend unreachable: {e}") from e
        handle_backend_response(resp)
        try:
            return resp.json().get("data")
        except ValueError as e:
            raise StoreError(f"invalid backend response: {e}") from e

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        logger().debug(f"fetch submission [submission_id: {submission_id}]")
        try:
            data = self._get(f"/submission/{submission_id}")
        except ValueError:
            return None
        return Submission.model_validate(data)

    def get_test_cases(self, problem_id: int) -> List[TestCase]:
        logger().debug(f"fetch test cases [problem_id: {problem_id}]")
        try:
            data = self._get(f"/problem/{problem_id}/testcases")
        except ValueError:
            logger().warning(f"Not found problem, [problem_id: {problem_id}]")
            return []
        return [TestCase.model_validate(tc) for tc in data or []]

    def get_problem_meta(self, problem_id: int) -> ProblemMeta:
        try:
            data = self._get(f"/problem/{problem_id}/meta")
        except ValueError:
            logger().warning(
                f"Not found problem meta, using defaults [problem_id: {problem_id}]"
            )
            return ProblemMeta()
        return ProblemMeta.model_validate(data or {})

    def _current_status(
            self, submission_id: str) -> Tuple[Optional[SubmissionStatus], dict]:
        """
        Read only the stored status. The rest of the record is not validated
        here, so a record the judge can not parse can still be failed.
        """
        try:
            data = self._get(f"/submission/{submission_id}")
        except ValueError as e:
            raise StoreError(f"submission {submission_id} disappeared") from e
        except StoreError as e:
            logger().warning(
                f"can not read status, write without precondition [submission_id={submission_id}]: {e}"
            )
            return None, {}
        data = data if isinstance(data, dict) else {}
        try:
            return SubmissionStatus(data.get("status")), data
        except ValueError:
            logger().warning(
                f"unknown stored status {data.get('status')!r} [submission_id={submission_id}]"
            )
            return None, data

    def update_status(self, submission_id: str,
                      update: StatusUpdate) -> Optional[Submission]:
        current, data = self._current_status(submission_id)
        payload = update.model_dump(mode="json")
        if current is not None:
            check_transition(submission_id, current, update.status)
            payload["expectedStatus"] = current.value
        payload["token"] = self.token
        logger().info(
            f"send to BE [submission_id={submission_id}, status={update.status.value}]"
        )
        try:
            resp = rq.put(
                f"{self.backend_api}/submission/{submission_id}/status",
                json=payload,
                timeout=self.timeout,
            )
        except rq.RequestException as e:
            raise StoreError(f"backend unreachable: {e}") from e
        logger().debug(f"get BE response: [{resp.status_code}] {resp.text}")
        if resp.status_code == 409:
            raise InvalidStatusTransitionError(submission_id, current,
                                               update.status)
        try:
            handle_backend_response(resp)
        except ValueError as e:
            raise StoreError(
                f"submission {submission_id} disappeared") from e
        try:
            return Submission.model_validate({**data, **update.model_dump()})
        except ValidationError:
            # written, but the record itself is not one the judge can read
            return None
