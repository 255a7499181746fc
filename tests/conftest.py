import pytest

from dispatcher.constant import Language, SubmissionStatus
from dispatcher.dispatcher import Dispatcher
from dispatcher.evaluator import Evaluator
from dispatcher.judge import Judge
from dispatcher.meta import ProblemMeta, Submission, TestCase
from dispatcher.store import InMemorySubmissionStore
from runner.sandbox import LocalSandbox
from tests.sandbox_doubles import (
    TWO_SUM_CASES,
    TWO_SUM_PROBLEM_ID,
    TWO_SUM_PY,
    DummySandbox,
)

TEST_CONFIG_PATH = '.config/dispatcher.test.json'


@pytest.fixture
def store():
    s = InMemorySubmissionStore()
    s.add_test_cases(TWO_SUM_PROBLEM_ID, [
        TestCase(
            id=i + 1,
            problemId=TWO_SUM_PROBLEM_ID,
            input=inp,
            expectedOutput=out,
            hidden=hidden,
        ) for i, (inp, out, hidden) in enumerate(TWO_SUM_CASES)
    ])
    s.set_problem_meta(TWO_SUM_PROBLEM_ID,
                       ProblemMeta(timeLimit=2, memoryLimit=128))
    return s


@pytest.fixture
def make_submission(store):

    def make(submission_id='sub-1',
             code=TWO_SUM_PY,
             language=Language.PY,
             problem_id=TWO_SUM_PROBLEM_ID,
             status=SubmissionStatus.QUEUED):
        submission = Submission(
            id=submission_id,
            userId=1,
            problemId=problem_id,
            contestId=1,
            code=code,
            language=language,
            status=status,
        )
        store.add_submission(submission)
        return submission

    return make


@pytest.fixture
def dummy_sandbox():
    return DummySandbox()


@pytest.fixture
def judge(dummy_sandbox):
    return Judge(Evaluator(dummy_sandbox))


@pytest.fixture
def dispatcher(store, judge):
    # the test config does not exist, explicit sizes win anyway
    d = Dispatcher(store, judge, queue_size=4, worker_count=2,
                   dispatcher_config=TEST_CONFIG_PATH)
    yield d
    # ensure we stop the dispatcher after every function call
    if d.do_run:
        d.stop()


@pytest.fixture
def local_sandbox(tmp_path):
    return LocalSandbox(
        working_dir=tmp_path / 'executions',
        keep_failed=False,
        compile_timeout=10,
        grace_period=5,
    )
