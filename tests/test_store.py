from unittest.mock import MagicMock

import pytest
import requests

from dispatcher import pipeline
from dispatcher.dispatcher import Dispatcher
from dispatcher.constant import SubmissionStatus, TERMINAL_STATUSES
from dispatcher.exception import (
    InvalidStatusTransitionError,
    StoreError,
    SubmissionIdNotFoundError,
)
from dispatcher.meta import StatusUpdate
from dispatcher.pipeline import BackendSubmissionStore
from dispatcher.status import can_transition, check_transition
from tests.sandbox_doubles import TWO_SUM_CASES, TWO_SUM_PY

S = SubmissionStatus


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (S.PENDING, S.QUEUED, True),
        (S.PENDING, S.RUNNING, True),
        (S.QUEUED, S.RUNNING, True),
        (S.QUEUED, S.SYSTEM_ERROR, True),
        (S.RUNNING, S.ACCEPTED, True),
        (S.RUNNING, S.QUEUED, False),
        (S.RUNNING, S.RUNNING, False),
        (S.QUEUED, S.PENDING, False),
        (S.ACCEPTED, S.RUNNING, False),
        (S.WRONG_ANSWER, S.ACCEPTED, False),
        (S.SYSTEM_ERROR, S.SYSTEM_ERROR, False),
    ],
)
def test_can_transition(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_terminal_states_are_absorbing():
    for current in TERMINAL_STATUSES:
        for target in S:
            with pytest.raises(InvalidStatusTransitionError) as err:
                check_transition('t', current, target)
            assert err.value.current == current
            assert err.value.target == target


def test_update_applies_all_fields_at_once(store, make_submission):
    make_submission('a')
    store.update_status('a', StatusUpdate(status=S.RUNNING))
    updated = store.update_status(
        'a',
        StatusUpdate(status=S.ACCEPTED,
                     result='ok',
                     score=100,
                     executionTime=12,
                     memoryUsed=900),
    )
    assert store.get_submission('a') == updated
    assert (updated.status, updated.result, updated.score,
            updated.executionTime, updated.memoryUsed) == (S.ACCEPTED, 'ok',
                                                           100, 12, 900)


def test_terminal_write_is_never_overwritten(store, make_submission):
    make_submission('a')
    store.update_status('a', StatusUpdate(status=S.WRONG_ANSWER, result='x'))
    with pytest.raises(InvalidStatusTransitionError):
        store.update_status('a',
                            StatusUpdate(status=S.SYSTEM_ERROR, result='late'))
    submission = store.get_submission('a')
    assert submission.status == S.WRONG_ANSWER
    assert submission.result == 'x'
    assert store.statuses('a') == [S.WRONG_ANSWER]


def test_update_unknown_submission(store):
    with pytest.raises(SubmissionIdNotFoundError):
        store.update_status('ghost', StatusUpdate(status=S.RUNNING))


def test_missing_problem_meta_uses_defaults(store):
    meta = store.get_problem_meta(999)
    assert (meta.timeLimit, meta.memoryLimit, meta.maxScore) == (10, 256, 100)


def _resp(status_code=200, data=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.text = 'body'
    resp.json.return_value = {'data': data}
    return resp


SUBMISSION_JSON = {
    'id': 'abc',
    'userId': 3,
    'problemId': 5,
    'contestId': 1,
    'code': 'print(1)',
    'language': 'python',
    'status': 'QUEUED',
}


@pytest.fixture
def backend():
    return BackendSubmissionStore(backend_api='http://be:8080/',
                                  token='secret')


def test_backend_get_submission(monkeypatch, backend):
    get = MagicMock(return_value=_resp(data=SUBMISSION_JSON))
    monkeypatch.setattr(pipeline.rq, 'get', get)
    submission = backend.get_submission('abc')
    assert submission.id == 'abc'
    assert submission.status == S.QUEUED
    args, kwargs = get.call_args
    assert args[0] == 'http://be:8080/submission/abc'
    assert kwargs['params'] == {'token': 'secret'}


def test_backend_missing_submission(monkeypatch, backend):
    monkeypatch.setattr(pipeline.rq, 'get',
                        MagicMock(return_value=_resp(404)))
    assert backend.get_submission('abc') is None


def test_backend_missing_problem_has_no_cases(monkeypatch, backend):
    monkeypatch.setattr(pipeline.rq, 'get',
                        MagicMock(return_value=_resp(404)))
    assert backend.get_test_cases(5) == []
    assert backend.get_problem_meta(5).timeLimit == 10


def test_backend_test_cases_and_meta(monkeypatch, backend):
    responses = {
        'http://be:8080/problem/5/testcases':
        _resp(data=[{
            'id': 1,
            'problemId': 5,
            'input': '1',
            'expectedOutput': '1',
            'hidden': True,
        }]),
        'http://be:8080/problem/5/meta':
        _resp(data={
            'timeLimit': 2,
            'memoryLimit': 64,
            'comparisonMode': 'tokens',
        }),
    }
    monkeypatch.setattr(pipeline.rq, 'get',
                        lambda url, **kwargs: responses[url])
    cases = backend.get_test_cases(5)
    assert len(cases) == 1 and cases[0].hidden
    meta = backend.get_problem_meta(5)
    assert (meta.timeLimit, meta.memoryLimit) == (2, 64)
    assert meta.comparisonMode.name == 'TOKENS'


def test_backend_unreachable(monkeypatch, backend):
    monkeypatch.setattr(
        pipeline.rq, 'get',
        MagicMock(side_effect=requests.ConnectionError('refused')))
    with pytest.raises(StoreError):
        backend.get_submission('abc')


def test_backend_server_error(monkeypatch, backend):
    monkeypatch.setattr(pipeline.rq, 'get',
                        MagicMock(return_value=_resp(500)))
    with pytest.raises(StoreError):
        backend.get_test_cases(5)


def test_backend_update_status_sends_expected_status(monkeypatch, backend):
    monkeypatch.setattr(pipeline.rq, 'get',
                        MagicMock(return_value=_resp(data=SUBMISSION_JSON)))
    put = MagicMock(return_value=_resp())
    monkeypatch.setattr(pipeline.rq, 'put', put)
    updated = backend.update_status(
        'abc', StatusUpdate(status=S.RUNNING, result='Executing'))
    assert updated.status == S.RUNNING
    args, kwargs = put.call_args
    assert args[0] == 'http://be:8080/submission/abc/status'
    assert kwargs['json']['status'] == 'RUNNING'
    assert kwargs['json']['expectedStatus'] == 'QUEUED'
    assert kwargs['json']['token'] == 'secret'


def test_backend_rejects_local_illegal_transition(monkeypatch, backend):
    judged = dict(SUBMISSION_JSON, status='ACCEPTED')
    monkeypatch.setattr(pipeline.rq, 'get',
                        MagicMock(return_value=_resp(data=judged)))
    put = MagicMock()
    monkeypatch.setattr(pipeline.rq, 'put', put)
    with pytest.raises(InvalidStatusTransitionError):
        backend.update_status('abc', StatusUpdate(status=S.SYSTEM_ERROR))
    put.assert_not_called()


def test_backend_conflict_is_illegal_transition(monkeypatch, backend):
    monkeypatch.setattr(pipeline.rq, 'get',
                        MagicMock(return_value=_resp(data=SUBMISSION_JSON)))
    monkeypatch.setattr(pipeline.rq, 'put',
                        MagicMock(return_value=_resp(409)))
    with pytest.raises(InvalidStatusTransitionError) as err:
        backend.update_status('abc', StatusUpdate(status=S.RUNNING))
    assert err.value.submission_id == 'abc'


class FakeBackend:
    """Serves one submission record and applies status PUTs to it."""

    def __init__(self, record, cases=()):
        self.record = dict(record)
        self.cases = list(cases)
        self.puts = []

    def get(self, url, **kwargs):
        if url.endswith(f"/submission/{self.record['id']}"):
            return _resp(data=self.record)
        if url.endswith('/testcases'):
            return _resp(data=self.cases)
        return _resp(404)

    def put(self, url, json=None, **kwargs):
        self.puts.append(json)
        self.record['status'] = json['status']
        return _resp()


def _backend_dispatcher(monkeypatch, fake, judge):
    monkeypatch.setattr(pipeline.rq, 'get', fake.get)
    monkeypatch.setattr(pipeline.rq, 'put', fake.put)
    store = BackendSubmissionStore(backend_api='http://be:8080',
                                   token='secret')
    return Dispatcher(store, judge, queue_size=1, worker_count=1)


TWO_SUM_CASES_JSON = [{
    'id': i + 1,
    'problemId': 1,
    'input': inp,
    'expectedOutput': out,
    'hidden': hidden,
} for i, (inp, out, hidden) in enumerate(TWO_SUM_CASES)]


def test_numeric_submission_id_is_judged(monkeypatch, judge):
    fake = FakeBackend(
        {
            'id': 42,
            'userId': 1,
            'problemId': 1,
            'contestId': 1,
            'code': TWO_SUM_PY,
            'language': 'PYTHON',
            'status': 'QUEUED',
        },
        TWO_SUM_CASES_JSON,
    )
    d = _backend_dispatcher(monkeypatch, fake, judge)
    assert d.process('42') == S.ACCEPTED
    assert [p['status'] for p in fake.puts] == ['RUNNING', 'ACCEPTED']
    assert fake.puts[-1]['expectedStatus'] == 'RUNNING'


def test_unreadable_record_still_ends_in_system_error(monkeypatch, judge):
    # empty code fails validation, the record can never be judged
    fake = FakeBackend({
        'id': 'bad',
        'userId': 1,
        'problemId': 1,
        'contestId': 1,
        'code': '',
        'language': 'python',
        'status': 'QUEUED',
    })
    d = _backend_dispatcher(monkeypatch, fake, judge)
    assert d.process('bad') == S.SYSTEM_ERROR
    (put, ) = fake.puts
    assert put['status'] == 'SYSTEM_ERROR'
    assert put['expectedStatus'] == 'QUEUED'
    assert put['result'].startswith('Internal system error during processing')


def test_update_status_reads_only_stored_status(monkeypatch, backend):
    monkeypatch.setattr(pipeline.rq, 'get',
                        MagicMock(return_value=_resp(data={'status': 'QUEUED'})))
    put = MagicMock(return_value=_resp())
    monkeypatch.setattr(pipeline.rq, 'put', put)
    assert backend.update_status(
        'abc', StatusUpdate(status=S.SYSTEM_ERROR, result='x')) is None
    assert put.call_args.kwargs['json']['expectedStatus'] == 'QUEUED'


def test_update_status_without_readable_status(monkeypatch, backend):
    monkeypatch.setattr(pipeline.rq, 'get',
                        MagicMock(return_value=_resp(500)))
    put = MagicMock(return_value=_resp())
    monkeypatch.setattr(pipeline.rq, 'put', put)
    backend.update_status('abc', StatusUpdate(status=S.SYSTEM_ERROR))
    payload = put.call_args.kwargs['json']
    assert payload['status'] == 'SYSTEM_ERROR'
    assert 'expectedStatus' not in payload
