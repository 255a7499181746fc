import os
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import docker
import requests

from dispatcher import config
from dispatcher.constant import FailureKind, Language
from dispatcher.utils import logger
from runner import file_manager
from runner.path_utils import PathTranslator
from runner.protocol import parse_report, truncate_output

__all__ = (
    'JudgeError',
    'SandboxResult',
    'Sandbox',
    'LocalSandbox',
    'DockerSandbox',
    'RUNNERS',
    'get_sandbox',
)

RUNNERS = {
    Language.C: 'runner.languages.cpp_runner',
    Language.CPP: 'runner.languages.cpp_runner',
    Language.PY: 'runner.languages.python_runner',
    Language.JAVA: 'runner.languages.java_runner',
    Language.JS: 'runner.languages.javascript_runner',
}
# paths inside the executor container
CONTAINER_WORKDIR = '/sandbox'
CONTAINER_RUNNER_ROOT = '/app'


class JudgeError(Exception):
    """The sandbox itself failed; says nothing about the submission."""


@dataclass
class SandboxResult:
    stdout: str
    failure_kind: Optional[FailureKind] = None
    compile_duration: int = 0  # ms
    run_duration: int = 0  # ms
    memory_used: int = 0  # KB
    exit_code: int = 0
    message: str = ''


class Sandbox(ABC):
    """
    Compile and run one program against one input under resource limits.

    Every call gets its own execution directory, removed once the result is
    known.
    """

    def __init__(
        self,
        working_dir: Optional[Path] = None,
        keep_failed: Optional[bool] = None,
        compile_timeout: int = config.COMPILE_TIMEOUT,
        grace_period: int = config.RUNNER_GRACE_PERIOD,
    ):
        self.working_dir = Path(working_dir or config.WORK_DIR)
        self.keep_failed = (config.KEEP_FAILED_EXECUTIONS
                            if keep_failed is None else keep_failed)
        self.compile_timeout = compile_timeout
        self.grace_period = grace_period

    @staticmethod
    def supports(language: Language) -> bool:
        return language in RUNNERS

    def guard_timeout(self, time_limit: int) -> int:
        return self.compile_timeout + time_limit + self.grace_period

    @abstractmethod
    def _invoke(
        self,
        module: str,
        execution_dir: Path,
        source_path: Path,
        input_path: Path,
        time_limit: int,
        memory_limit: int,
    ) -> Tuple[int, str, bool]:
        """
        Start the runner and wait for it.

        Returns:
            (exit code, runner stdout, whether the outer guard fired)
        """
        ...

    def run(
        self,
        language: Language,
        source_code: str,
        stdin: str,
        time_limit: int,  # sec.
        memory_limit: int,  # MB
    ) -> SandboxResult:
        if not self.supports(language):
            raise JudgeError(f'Unsupported language: {language.name}')
        execution_dir = file_manager.create_execution_dir(self.working_dir)
        failed = True
        try:
            source_path, input_path = file_manager.extract(
                execution_dir, language, source_code, stdin)
            exit_code, text, timed_out = self._invoke(
                RUNNERS[language],
                execution_dir,
                source_path,
                input_path,
                time_limit,
                memory_limit,
            )
            if timed_out:
                logger().warning(
                    f'runner exceeded outer guard [dir={execution_dir.name}]')
                result = SandboxResult(
                    stdout='',
                    failure_kind=FailureKind.TIME_LIMIT_EXCEEDED,
                    run_duration=time_limit * 1000,
                    exit_code=124,
                )
            else:
                report = parse_report(text, exit_code, time_limit)
                result = SandboxResult(
                    stdout=truncate_output(report.output,
                                           config.OUTPUT_LIMIT),
                    failure_kind=report.failure_kind,
                    compile_duration=report.compile_duration,
                    run_duration=report.run_duration,
                    memory_used=report.memory_used,
                    exit_code=report.exit_code,
                    message=report.message,
                )
            failed = result.failure_kind is FailureKind.SYSTEM_ERROR
            return result
        finally:
            if failed and self.keep_failed:
                dest = file_manager.backup_data(execution_dir)
                logger().info(f'kept failed execution at {dest}')
            else:
                file_manager.clean_data(execution_dir)


class LocalSandbox(Sandbox):
    """
    Runs the runner as a subprocess of the judge. Limits are rlimits only;
    there is no network or filesystem isolation beyond the execution
    directory being the cwd.

    The process count rlimit is off unless `rlimit_nproc` is set: the kernel
    counts it over every process of the uid, the judge's own threads
    included, so turn it on only when submissions run under a uid of their
    own.
    """

    def __init__(
        self,
        runner_root: Optional[Path] = None,
        rlimit_nproc: bool = False,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.rlimit_nproc = rlimit_nproc
        self.runner_root = Path(
            runner_root or Path(__file__).resolve().parent.parent)

    def _invoke(self, module, execution_dir, source_path, input_path,
                time_limit, memory_limit):
        cmd = [
            sys.executable,
            '-m',
            module,
            str(source_path),
            str(input_path),
            str(time_limit),
            str(memory_limit),
        ]
        env = {
            'PATH': os.environ.get('PATH', '/usr/local/bin:/usr/bin:/bin'),
            'PYTHONPATH': str(self.runner_root),
            'JUDGE_COMPILE_TIMEOUT': str(self.compile_timeout),
            'JUDGE_RLIMIT_NPROC': str(self.rlimit_nproc).lower(),
        }
        try:
            proc = subprocess.run(
                cmd,
                cwd=execution_dir,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                env=env,
                timeout=self.guard_timeout(time_limit),
            )
        except subprocess.TimeoutExpired:
            return 124, '', True
        except OSError as e:
            raise JudgeError(f'can not start runner: {e}') from e
        if proc.stderr:
            logger().debug(
                f'runner stderr: {proc.stderr.decode("utf-8", "ignore")}')
        return proc.returncode, proc.stdout.decode('utf-8', 'replace'), False


class DockerSandbox(Sandbox):
    """
    Runs the runner in a throwaway container: no network, memory and pid
    ceilings, the runner package mounted read-only and the execution
    directory as the only writable bind.
    """

    def __init__(
        self,
        docker_url: str = 'unix://var/run/docker.sock',
        image: str = 'judge-executor:latest',
        translator: Optional[PathTranslator] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.docker_url = docker_url
        self.image = image
        self.translator = translator or PathTranslator()
        self.runner_root = str(
            self.translator.cfg.get('runner_root',
                                    Path(__file__).resolve().parent.parent))

    def _invoke(self, module, execution_dir, source_path, input_path,
                time_limit, memory_limit):
        try:
            client = docker.APIClient(base_url=self.docker_url)
        except docker.errors.DockerException as e:
            raise JudgeError(f'docker unreachable: {e}') from e
        mem = f'{memory_limit + config.CONTAINER_MEM_OVERHEAD_MB}m'
        host_config = client.create_host_config(
            binds={
                str(self.translator.to_host(execution_dir)): {
                    'bind': CONTAINER_WORKDIR,
                    'mode': 'rw',
                },
                self.runner_root: {
                    'bind': CONTAINER_RUNNER_ROOT,
                    'mode': 'ro',
                },
            },
            network_mode='none',
            mem_limit=mem,
            memswap_limit=mem,
            pids_limit=config.CONTAINER_PIDS_LIMIT,
            cpu_period=config.CONTAINER_CPU_PERIOD,
            cpu_quota=config.CONTAINER_CPU_QUOTA,
            tmpfs={'/tmp': 'rw,noexec,nosuid,size=64m'},
            security_opt=['no-new-privileges'],
        )
        command = [
            'python3',
            '-m',
            module,
            f'{CONTAINER_WORKDIR}/{source_path.name}',
            f'{CONTAINER_WORKDIR}/{input_path.name}',
            str(time_limit),
            str(memory_limit),
        ]
        try:
            container = client.create_container(
                image=self.image,
                command=command,
                working_dir=CONTAINER_WORKDIR,
                environment={
                    'PYTHONPATH': CONTAINER_RUNNER_ROOT,
                    'JUDGE_COMPILE_TIMEOUT': str(self.compile_timeout),
                    # pids_limit bounds the container instead
                    'JUDGE_RLIMIT_NPROC': 'false',
                },
                network_disabled=True,
                host_config=host_config,
            )
        except docker.errors.DockerException as e:
            raise JudgeError(f'can not create container: {e}') from e
        try:
            client.start(container)
            try:
                exit_status = client.wait(
                    container, timeout=self.guard_timeout(time_limit))
            except requests.exceptions.RequestException:
                client.kill(container)
                return 124, '', True
            stdout = client.logs(container, stdout=True,
                                 stderr=False).decode('utf-8', 'replace')
        except docker.errors.DockerException as e:
            raise JudgeError(f'container failed: {e}') from e
        finally:
            try:
                client.remove_container(container, v=True, force=True)
            except docker.errors.DockerException:
                logger().warning(f'can not remove container {container}')
        return exit_status.get('StatusCode', 1), stdout, False


def get_sandbox(cfg: Optional[dict] = None) -> Sandbox:
    cfg = cfg if cfg is not None else config.get_sandbox_config()
    backend = cfg.get('backend', 'local')
    working_dir = Path(cfg['working_dir'])
    if backend == 'docker':
        return DockerSandbox(
            docker_url=cfg['docker_url'],
            image=cfg['image'],
            translator=PathTranslator(cfg),
            working_dir=working_dir,
        )
    if backend == 'local':
        return LocalSandbox(
            runner_root=cfg.get('runner_root'),
            rlimit_nproc=bool(cfg.get('rlimit_nproc', False)),
            working_dir=working_dir,
        )
    raise ValueError(f'unknown sandbox backend: {backend}')
