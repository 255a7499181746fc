import subprocess

import docker
import pytest
import requests

from dispatcher import config
from dispatcher.constant import FailureKind, Language
from runner import sandbox as sb
from runner.file_manager import source_filename
from runner.path_utils import PathTranslator
from runner.protocol import format_report

REPORT = format_report(
    execution_status='SUCCESS',
    exit_code=0,
    run_seconds=0.042,
    output='0 1\n',
    memory_limit=128,
    time_limit=2,
    memory_used=7000,
    compile_status='SUCCESS',
    compile_seconds=0.01,
)


class DummyClient:
    """Records what the sandbox asks of docker."""
    instances = []
    wait_result = {'StatusCode': 0}
    wait_error = None
    logs_output = REPORT.encode()
    create_error = None

    def __init__(self, base_url=None):
        self.base_url = base_url
        self.host_config = None
        self.container_kwargs = None
        self.killed = False
        self.removed = False
        type(self).instances.append(self)

    def create_host_config(self, **kwargs):
        self.host_config = kwargs
        return kwargs

    def create_container(self, **kwargs):
        if self.create_error:
            raise self.create_error
        self.container_kwargs = kwargs
        return {'Id': 'c0ffee'}

    def start(self, container):
        pass

    def wait(self, container, timeout=None):
        self.wait_timeout = timeout
        if self.wait_error:
            raise self.wait_error
        return self.wait_result

    def logs(self, container, stdout=True, stderr=True):
        return self.logs_output if stdout else b''

    def kill(self, container):
        self.killed = True

    def remove_container(self, container, v=False, force=False):
        self.removed = True


@pytest.fixture
def docker_client(monkeypatch):

    class Client(DummyClient):
        instances = []

    monkeypatch.setattr(sb.docker, 'APIClient', Client)
    return Client


@pytest.fixture
def docker_sandbox(tmp_path):
    cfg = {
        'working_dir': str(tmp_path / 'work'),
        'sandbox_root': str(tmp_path / 'work'),
        'host_root': '/host/judge',
        'runner_root': '/srv/judge',
    }
    return sb.DockerSandbox(
        docker_url='unix://dummy',
        image='judge-executor:test',
        translator=PathTranslator(cfg),
        working_dir=tmp_path / 'work',
        keep_failed=False,
    )


def test_docker_sandbox_runs_runner(docker_client, docker_sandbox, tmp_path):
    result = docker_sandbox.run(Language.PY, 'print(1)', '1\n', 2, 128)
    assert result.failure_kind is None
    assert result.stdout == '0 1\n'
    assert result.run_duration == 42
    assert result.memory_used == 7000

    client = docker_client.instances[0]
    assert client.base_url == 'unix://dummy'
    kwargs = client.container_kwargs
    assert kwargs['image'] == 'judge-executor:test'
    assert kwargs['network_disabled'] is True
    assert kwargs['command'][:3] == [
        'python3', '-m', 'runner.languages.python_runner'
    ]
    assert kwargs['command'][3:] == [
        '/sandbox/solution.py', '/sandbox/input.txt', '2', '128'
    ]
    host_config = client.host_config
    assert host_config['network_mode'] == 'none'
    assert host_config['mem_limit'] == f'{128 + config.CONTAINER_MEM_OVERHEAD_MB}m'
    assert host_config['pids_limit'] == config.CONTAINER_PIDS_LIMIT
    binds = host_config['binds']
    assert binds['/srv/judge'] == {'bind': '/app', 'mode': 'ro'}
    (workdir_bind, ) = [k for k, v in binds.items() if v['mode'] == 'rw']
    assert workdir_bind.startswith('/host/judge/exec_')
    assert client.wait_timeout == docker_sandbox.guard_timeout(2)
    assert client.removed
    # pids_limit bounds the container, not RLIMIT_NPROC
    assert kwargs['environment']['JUDGE_RLIMIT_NPROC'] == 'false'
    # execution directory is gone
    assert list((tmp_path / 'work').iterdir()) == []


def test_docker_wait_timeout_is_tle(docker_client, docker_sandbox):
    docker_client.wait_error = requests.exceptions.ReadTimeout()
    result = docker_sandbox.run(Language.CPP, 'int main(){for(;;);}', '', 1,
                                64)
    assert result.failure_kind is FailureKind.TIME_LIMIT_EXCEEDED
    assert result.run_duration == 1000
    client = docker_client.instances[0]
    assert client.killed
    assert client.removed


def test_docker_oom_kill_is_mle(docker_client, docker_sandbox):
    docker_client.wait_result = {'StatusCode': 137}
    docker_client.logs_output = b''
    result = docker_sandbox.run(Language.JAVA, 'class Solution {}', '', 1, 64)
    assert result.failure_kind is FailureKind.MEMORY_LIMIT_EXCEEDED


def test_docker_create_failure_is_judge_error(docker_client, docker_sandbox):
    docker_client.create_error = docker.errors.APIError('no such image')
    with pytest.raises(sb.JudgeError):
        docker_sandbox.run(Language.PY, 'print(1)', '', 1, 64)


def test_unsupported_language(local_sandbox):
    with pytest.raises(sb.JudgeError):
        local_sandbox.run(Language.RUST, 'fn main() {}', '', 1, 64)
    assert not local_sandbox.supports(Language.GO)
    assert local_sandbox.supports(Language.JS)


def test_outer_guard_kills_hung_runner(local_sandbox, monkeypatch):

    def hang(*args, **kwargs):
        raise subprocess.TimeoutExpired(args[0], kwargs['timeout'])

    monkeypatch.setattr(sb.subprocess, 'run', hang)
    result = local_sandbox.run(Language.PY, 'print(1)', '', 3, 64)
    assert result.failure_kind is FailureKind.TIME_LIMIT_EXCEEDED
    assert result.run_duration == 3000
    assert local_sandbox.guard_timeout(3) == 18


def test_missing_interpreter_is_judge_error(local_sandbox, monkeypatch):

    def missing(*args, **kwargs):
        raise FileNotFoundError('python3')

    monkeypatch.setattr(sb.subprocess, 'run', missing)
    with pytest.raises(sb.JudgeError):
        local_sandbox.run(Language.PY, 'print(1)', '', 1, 64)
    # cleaned up even on failure
    assert list(local_sandbox.working_dir.iterdir()) == []


def test_failed_execution_kept_for_inspection(tmp_path, monkeypatch):
    monkeypatch.setattr(config, 'BACKUP_DIR', tmp_path / 'backup')
    sandbox = sb.LocalSandbox(working_dir=tmp_path / 'work', keep_failed=True)
    monkeypatch.setattr(
        sb.subprocess, 'run', lambda *args, **kwargs: subprocess.
        CompletedProcess(args[0], 1, stdout=b'Traceback: oops', stderr=b''))
    result = sandbox.run(Language.PY, 'print(1)', '', 1, 64)
    assert result.failure_kind is FailureKind.SYSTEM_ERROR
    assert list((tmp_path / 'work').iterdir()) == []
    (kept, ) = list((tmp_path / 'backup').iterdir())
    assert (kept / source_filename(Language.PY)).read_text() == 'print(1)'


def test_each_run_gets_own_directory(local_sandbox, monkeypatch):
    seen = []

    def fake_run(cmd, cwd, **kwargs):
        seen.append(cwd)
        assert (cwd / 'input.txt').read_text() == 'in'
        return subprocess.CompletedProcess(cmd, 0, stdout=REPORT.encode(),
                                           stderr=b'')

    monkeypatch.setattr(sb.subprocess, 'run', fake_run)
    for _ in range(3):
        assert local_sandbox.run(Language.C, 'int main(){}', 'in', 2,
                                 64).failure_kind is None
    assert len(set(seen)) == 3


def test_get_sandbox(tmp_path):
    cfg = config.get_sandbox_config(tmp_path / 'missing.json')
    cfg['working_dir'] = str(tmp_path)
    assert isinstance(sb.get_sandbox(cfg), sb.LocalSandbox)
    cfg['backend'] = 'docker'
    sandbox = sb.get_sandbox(cfg)
    assert isinstance(sandbox, sb.DockerSandbox)
    assert sandbox.image == 'judge-executor:latest'
    cfg['backend'] = 'firecracker'
    with pytest.raises(ValueError):
        sb.get_sandbox(cfg)


def test_path_translator_swaps_shared_root(tmp_path):
    translator = PathTranslator({
        'working_dir': str(tmp_path),
        'host_root': '/var/lib/judge',
    })
    assert not translator.identity
    assert translator.to_host(tmp_path / 'exec_1') == \
        PathTranslator({'working_dir': '/var/lib/judge'}).local_root / 'exec_1'
    assert translator.to_host('exec_2').name == 'exec_2'
    # outside the shared volume
    assert translator.to_host('/etc/hosts') == PathTranslator(
        {'working_dir': '/etc'}).local_root / 'hosts'


def test_path_translator_without_host_root(tmp_path):
    translator = PathTranslator({'working_dir': str(tmp_path)})
    assert translator.identity
    assert translator.to_host('exec_3') == tmp_path.resolve() / 'exec_3'


@pytest.mark.parametrize('rlimit_nproc, expected', [(False, 'false'),
                                                    (True, 'true')])
def test_local_sandbox_process_limit_is_opt_in(tmp_path, monkeypatch,
                                               rlimit_nproc, expected):
    envs = []

    def fake_run(cmd, cwd, env, **kwargs):
        envs.append(env)
        return subprocess.CompletedProcess(cmd, 0, stdout=REPORT.encode(),
                                           stderr=b'')

    monkeypatch.setattr(sb.subprocess, 'run', fake_run)
    cfg = config.get_sandbox_config(tmp_path / 'missing.json')
    cfg['working_dir'] = str(tmp_path)
    cfg['rlimit_nproc'] = rlimit_nproc
    sandbox = sb.get_sandbox(cfg)
    assert sandbox.run(Language.PY, 'print(1)', '', 2, 64).failure_kind is None
    assert envs[0]['JUDGE_RLIMIT_NPROC'] == expected
