import queue
import threading
from datetime import datetime
from typing import Optional

from . import config, job
from .constant import AdmissionMode, SubmissionStatus
from .exception import *
from .judge import Judge
from .meta import StatusUpdate
from .store import SubmissionStore
from .utils import logger


class Dispatcher:
    """
    Drives admitted submissions from QUEUED to a terminal status.

    A fixed set of long-lived workers consumes a bounded queue. When the
    queue is full the submission is judged on the caller's thread instead
    of being dropped, so `submit` may block for a whole judging run.
    """

    def __init__(
        self,
        store: SubmissionStore,
        judge: Judge,
        queue_size: Optional[int] = None,
        worker_count: Optional[int] = None,
        dispatcher_config=".config/dispatcher.json",
    ):
        # read config
        queue_limit, worker_limit = config.get_dispatcher_limits(
            dispatcher_config)
        self.MAX_TASK_COUNT = queue_size or queue_limit
        self.MAX_WORKER_COUNT = worker_count or worker_limit
        self.queue = queue.Queue(self.MAX_TASK_COUNT)
        self.store = store
        self.judge = judge
        self.do_run = False
        self.accepting = False
        self.workers = []
        # Lock
        self.lifecycle_lock = threading.Lock()
        self.in_flight_lock = threading.Lock()
        self.stats_lock = threading.Lock()
        # admitted and not finished yet
        self.in_flight = set()
        self.counters = {
            "submitted": 0,
            "completed": 0,
            "inline": 0,
            "systemErrors": 0,
        }

    def contains(self, submission_id: str):
        with self.in_flight_lock:
            return submission_id in self.in_flight

    def release(self, submission_id: str):
        with self.in_flight_lock:
            self.in_flight.discard(submission_id)

    def _count(self, key: str):
        with self.stats_lock:
            self.counters[key] += 1

    def stats(self) -> dict:
        with self.stats_lock:
            stats = dict(self.counters)
        with self.in_flight_lock:
            stats["inFlight"] = len(self.in_flight)
        stats["queued"] = self.queue.qsize()
        stats["queueSize"] = self.MAX_TASK_COUNT
        stats["workers"] = sum(1 for t in self.workers if t.is_alive())
        return stats

    def start(self):
        with self.lifecycle_lock:
            if self.do_run:
                return
            self.do_run = True
            self.accepting = True
            self.workers = [
                threading.Thread(
                    target=self.run,
                    name=f"SubmissionProcessor-{i + 1}",
                    daemon=True,
                ) for i in range(self.MAX_WORKER_COUNT)
            ]
        for worker in self.workers:
            worker.start()
        logger().info(
            f"dispatcher started [workers={self.MAX_WORKER_COUNT}, queue={self.MAX_TASK_COUNT}]"
        )

    def stop(self, wait: bool = True):
        """
        Stop admitting. With `wait`, queued submissions are judged first;
        otherwise they are left QUEUED in the store and their futures
        resolve to None.
        """
        with self.lifecycle_lock:
            self.accepting = False
        if wait:
            self.queue.join()
        else:
            self._drain_pending()
        self.do_run = False
        for worker in self.workers:
            worker.join()
        self.workers = []
        logger().info(f"dispatcher stopped [stats={self.stats()}]")

    def _drain_pending(self):
        dropped = 0
        while True:
            try:
                _job = self.queue.get_nowait()
            except queue.Empty:
                break
            self.release(_job.submission_id)
            _job.future.set_result(None)
            self.queue.task_done()
            dropped += 1
        if dropped:
            logger().warning(
                f"left {dropped} submissions queued in store on shutdown")

    def submit(self, submission_id: str) -> job.Admission:
        with self.lifecycle_lock:
            if not self.accepting:
                raise DispatcherStoppedError("dispatcher is not running")
            with self.in_flight_lock:
                if submission_id in self.in_flight:
                    raise DuplicatedSubmissionIdError(
                        f"duplicated submission id {submission_id}.")
                self.in_flight.add(submission_id)
            self._count("submitted")
            _job = job.Judge(submission_id=submission_id)
            try:
                self.queue.put_nowait(_job)
                queued = True
            except queue.Full:
                queued = False
        if queued:
            logger().info(f"queued submission [id={submission_id}]")
            return job.Admission(
                submission_id=submission_id,
                mode=AdmissionMode.QUEUED,
                future=_job.future,
            )
        # caller runs: the queue is saturated, judge on this thread
        logger().warning(
            f"queue full, judging inline [id={submission_id}, queue={self.MAX_TASK_COUNT}]"
        )
        self._count("inline")
        self._run_job(_job)
        return job.Admission(
            submission_id=submission_id,
            mode=AdmissionMode.INLINE,
            future=_job.future,
        )

    def run(self):
        logger().debug("start dispatcher loop")
        while True:
            # end the loop
            if not self.do_run:
                logger().debug("exit dispatcher loop")
                break
            try:
                _job = self.queue.get(timeout=1)
            except queue.Empty:
                continue
            try:
                waited = (datetime.now() - _job.enqueued_at).total_seconds()
                logger().info(f"dequeued submission [id={_job.submission_id}, "
                              f"waited={waited:.3f}s]")
                self._run_job(_job)
            finally:
                self.queue.task_done()

    def _run_job(self, _job: job.Judge):
        status = None
        try:
            status = self.process(_job.submission_id)
        finally:
            self.release(_job.submission_id)
            _job.future.set_result(status)

    def process(self, submission_id: str) -> Optional[SubmissionStatus]:
        """
        Judge one submission end to end. Never raises: anything that goes
        wrong ends in a SYSTEM_ERROR write.

        Returns:
            the terminal status written, or None when nothing was written
        """
        try:
            return self._process(submission_id)
        except Exception as e:
            logger().error(f"judging failed [id={submission_id}]: {e}",
                           exc_info=True)
            return self._fail(
                submission_id,
                f"Internal system error during processing: {e}",
            )

    def _process(self, submission_id: str) -> Optional[SubmissionStatus]:
        submission = self.store.get_submission(submission_id)
        if submission is None:
            logger().warning(f"submission not found, skip [id={submission_id}]")
            return None
        if submission.status.is_terminal:
            logger().info(
                f"submission already judged, skip [id={submission_id}, status={submission.status.value}]"
            )
            return None
        if submission.status == SubmissionStatus.RUNNING:
            # only a manual resubmission recovers this one
            logger().warning(
                f"submission already running, skip [id={submission_id}]")
            return None
        logger().info(
            f"start judging submission {submission_id} for problem: {submission.problemId}."
        )
        if not self.judge.supports(submission.language):
            return self._finish(
                submission_id,
                StatusUpdate(
                    status=SubmissionStatus.SYSTEM_ERROR,
                    result=f"Unsupported language: {submission.language.name}",
                    score=0,
                ),
            )
        test_cases = self.store.get_test_cases(submission.problemId)
        if not test_cases:
            logger().warning(
                f"no test cases [id={submission_id}, problem={submission.problemId}]"
            )
            return self._finish(
                submission_id,
                StatusUpdate(
                    status=SubmissionStatus.SYSTEM_ERROR,
                    result="No test cases available for this problem",
                    score=0,
                ),
            )
        meta = self.store.get_problem_meta(submission.problemId)
        self.store.update_status(
            submission_id,
            StatusUpdate(
                status=SubmissionStatus.RUNNING,
                result="Executing code against test cases...",
            ),
        )
        result = self.judge.judge(submission, test_cases, meta)
        return self._finish(
            submission_id,
            StatusUpdate(
                status=result.verdict,
                result=result.message,
                score=result.score,
                executionTime=result.executionTime,
                memoryUsed=result.memoryUsed,
            ),
        )

    def _finish(self, submission_id: str,
                update: StatusUpdate) -> SubmissionStatus:
        self.store.update_status(submission_id, update)
        self._count("completed")
        if update.status == SubmissionStatus.SYSTEM_ERROR:
            self._count("systemErrors")
        logger().info(
            f"finish submission {submission_id} [status={update.status.value}, score={update.score}]"
        )
        return update.status

    def _fail(self, submission_id: str,
              message: str) -> Optional[SubmissionStatus]:
        try:
            return self._finish(
                submission_id,
                StatusUpdate(
                    status=SubmissionStatus.SYSTEM_ERROR,
                    result=message,
                    score=0,
                ),
            )
        except InvalidStatusTransitionError as e:
            logger().warning(
                f"keep existing status [id={submission_id}]: {e}")
        except Exception as e:
            logger().error(
                f"can not record system error [id={submission_id}]: {e}",
                exc_info=True,
            )
        return None
