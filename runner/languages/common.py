"""
Shared harness for the language runners.

A runner is started inside the sandbox as

    python -m runner.languages.<name> SOURCE [STDIN] TIMEOUT_S MEMORY_MB

compiles SOURCE if its language needs it, runs the program once under
resource limits and prints the report understood by `runner.protocol`.
Only the standard library is used here; the runner image carries nothing
else.
"""

import argparse
import math
import os
import re
import resource
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from runner.protocol import OUTPUT_LIMIT, format_report, truncate_output

COMPILE_TIMEOUT = int(os.getenv('JUDGE_COMPILE_TIMEOUT', '10'))  # sec.
COMPILE_MEMORY_LIMIT = 1024  # MB
MAX_OUTPUT_FILE_SIZE = 16 * 1024 * 1024  # bytes
MAX_OPEN_FILES = 64
# RLIMIT_NPROC counts every process of the uid, so it is only safe when
# submissions run under a uid of their own
LIMIT_PROCESSES = os.getenv('JUDGE_RLIMIT_NPROC', 'false').lower() == 'true'
STDERR_TAIL = 4096  # bytes


@dataclass
class CompileResult:
    ok: bool
    seconds: float
    output: str = ''


@dataclass
class ExecResult:
    status: str
    exit_code: int
    seconds: float
    output: str
    memory_used: int  # KB


def _sandbox_env(cwd: Path) -> dict:
    return {
        'PATH': os.environ.get('PATH', '/usr/local/bin:/usr/bin:/bin'),
        'LANG': 'C.UTF-8',
        'HOME': str(cwd),
    }


def _limits(
    cpu_seconds: int,
    memory_mb: Optional[int],
    max_processes: Optional[int],
):

    def apply():
        resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds + 1))
        if memory_mb is not None:
            limit = memory_mb * 1024 * 1024
            resource.setrlimit(resource.RLIMIT_AS, (limit, limit))
        if max_processes is not None:
            resource.setrlimit(resource.RLIMIT_NPROC,
                               (max_processes, max_processes))
        resource.setrlimit(resource.RLIMIT_NOFILE,
                           (MAX_OPEN_FILES, MAX_OPEN_FILES))
        resource.setrlimit(resource.RLIMIT_FSIZE,
                           (MAX_OUTPUT_FILE_SIZE, MAX_OUTPUT_FILE_SIZE))
        resource.setrlimit(resource.RLIMIT_CORE, (0, 0))

    return apply


class _OutputCollector(threading.Thread):
    """
    Drain a pipe, keeping only the first `limit` bytes and, if `tail` is
    set, the last `tail` bytes.
    """

    def __init__(self, stream, limit: int = OUTPUT_LIMIT, tail: int = 0):
        super().__init__(daemon=True)
        self.stream = stream
        self.limit = limit
        self.tail_size = tail
        self.buf = bytearray()
        self.tail = bytearray()
        self.truncated = False

    def run(self):
        while True:
            chunk = self.stream.read1(65536)
            if not chunk:
                break
            room = self.limit - len(self.buf)
            if room > 0:
                self.buf += chunk[:room]
            if len(chunk) > room:
                self.truncated = True
            if self.tail_size:
                self.tail += chunk
                del self.tail[:-self.tail_size]


def _kill_group(pgid: int):
    try:
        os.killpg(pgid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


def compile_source(cmd: List[str], cwd: Path,
                   limit_address_space: bool = True) -> CompileResult:
    start = time.monotonic()
    try:
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=_sandbox_env(cwd),
            preexec_fn=_limits(
                COMPILE_TIMEOUT,
                COMPILE_MEMORY_LIMIT if limit_address_space else None,
                None,
            ),
            timeout=COMPILE_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        return CompileResult(
            ok=False,
            seconds=time.monotonic() - start,
            output=f'Compilation timed out after {COMPILE_TIMEOUT}s',
        )
    return CompileResult(
        ok=proc.returncode == 0,
        seconds=time.monotonic() - start,
        output=truncate_output(proc.stdout),
    )


def execute(
    cmd: List[str],
    cwd: Path,
    stdin_path: Optional[Path],
    timeout: int,
    memory_limit: int,
    limit_address_space: bool = True,
    max_processes: Optional[int] = 64,
    oom_pattern: Optional[re.Pattern] = None,
) -> ExecResult:
    """
    Run `cmd` once. The wall-clock timer kills the whole process group, the
    CPU rlimit backs it up for programs that escape the timer.

    stdout and stderr are read separately and joined in the reported
    output. A non-zero exit counts as a memory failure when the peak RSS
    reached `memory_limit`, or when `oom_pattern` matches a line in the
    tail of stderr, where the runtime prints its last words.
    """
    stdin = stdin_path.open('rb') if stdin_path else subprocess.DEVNULL
    timed_out = threading.Event()
    try:
        start = time.monotonic()
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            stdin=stdin,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=_sandbox_env(cwd),
            preexec_fn=_limits(
                math.ceil(timeout) + 1,
                memory_limit if limit_address_space else None,
                max_processes,
            ),
            start_new_session=True,
        )
    finally:
        if stdin is not subprocess.DEVNULL:
            stdin.close()
    collector = _OutputCollector(proc.stdout)
    err_collector = _OutputCollector(proc.stderr, tail=STDERR_TAIL)
    collector.start()
    err_collector.start()

    def on_timeout():
        timed_out.set()
        _kill_group(proc.pid)

    timer = threading.Timer(timeout, on_timeout)
    timer.start()
    try:
        _, status, usage = os.wait4(proc.pid, 0)
    finally:
        timer.cancel()
    seconds = time.monotonic() - start
    # reaped by wait4, keep Popen from waiting again
    proc.returncode = status
    # leftovers of the group may still hold the pipe open
    _kill_group(proc.pid)
    collector.join(1)
    err_collector.join(1)
    proc.stdout.close()
    proc.stderr.close()
    if os.WIFSIGNALED(status):
        exit_code = 128 + os.WTERMSIG(status)
    else:
        exit_code = os.WEXITSTATUS(status)
    output = truncate_output(bytes(collector.buf + err_collector.buf))
    stderr_tail = bytes(err_collector.tail).decode('utf-8', 'ignore')
    memory_used = usage.ru_maxrss  # KB on linux
    if timed_out.is_set() or seconds >= timeout:
        state, exit_code = 'TIME_LIMIT_EXCEEDED', 124
    elif exit_code == 137:
        state = 'MEMORY_LIMIT_EXCEEDED'
    elif exit_code == 128 + signal.SIGXCPU:
        state = 'TIME_LIMIT_EXCEEDED'
    elif exit_code != 0 and (memory_used >= memory_limit * 1024 or (
            oom_pattern is not None and oom_pattern.search(stderr_tail))):
        state = 'MEMORY_LIMIT_EXCEEDED'
    elif exit_code != 0:
        state = 'RUNTIME_ERROR'
    else:
        state = 'SUCCESS'
    return ExecResult(
        status=state,
        exit_code=exit_code,
        seconds=seconds,
        output=output,
        memory_used=memory_used,
    )


class LanguageRunner:
    """
    One language's compile and run commands. Subclasses fill in the
    commands; `main` does the rest.
    """
    # interpreted languages skip the COMPILATION section entirely
    compiled = True
    # JVM and V8 reserve far more address space than they use; they get
    # heap flags instead of RLIMIT_AS
    limit_address_space = True
    max_processes = 64
    # the line a runtime prints on stderr when it runs out of memory
    oom_pattern: Optional[re.Pattern] = None

    def __init__(
        self,
        source: Path,
        stdin: Optional[Path],
        timeout: int,
        memory_limit: int,
    ):
        self.source = source.resolve()
        self.workdir = self.source.parent
        self.stdin = stdin.resolve() if stdin else None
        self.timeout = timeout
        self.memory_limit = memory_limit

    def compile_command(self) -> List[str]:
        raise NotImplementedError

    def run_command(self) -> List[str]:
        raise NotImplementedError

    def judge(self) -> str:
        compile_result = None
        if self.compiled:
            compile_result = compile_source(
                self.compile_command(),
                self.workdir,
                limit_address_space=self.limit_address_space,
            )
            if not compile_result.ok:
                return format_report(
                    execution_status='',
                    exit_code=1,
                    run_seconds=0,
                    output='',
                    memory_limit=self.memory_limit,
                    time_limit=self.timeout,
                    memory_used=0,
                    compile_status='COMPILATION_ERROR',
                    compile_seconds=compile_result.seconds,
                    compiler_output=compile_result.output,
                )
        result = execute(
            self.run_command(),
            self.workdir,
            self.stdin,
            self.timeout,
            self.memory_limit,
            limit_address_space=self.limit_address_space,
            max_processes=self.max_processes if LIMIT_PROCESSES else None,
            oom_pattern=self.oom_pattern,
        )
        return format_report(
            execution_status=result.status,
            exit_code=result.exit_code,
            run_seconds=result.seconds,
            output=result.output,
            memory_limit=self.memory_limit,
            time_limit=self.timeout,
            memory_used=result.memory_used,
            compile_status='SUCCESS' if compile_result else None,
            compile_seconds=compile_result.seconds if compile_result else 0,
        )

    @classmethod
    def main(cls, argv=None) -> int:
        parser = argparse.ArgumentParser(
            description=f'{cls.__name__}: compile and run one submission')
        parser.add_argument('source', type=Path)
        parser.add_argument('stdin', nargs='?', default=None)
        parser.add_argument('timeout', type=int, help='seconds')
        parser.add_argument('memory', type=int, help='MB')
        args = parser.parse_args(argv)
        if not args.source.is_file():
            print(f"ERROR: Source file '{args.source}' not found")
            return 2
        stdin = Path(args.stdin) if args.stdin else None
        if stdin is not None and not stdin.is_file():
            stdin = None
        runner = cls(args.source, stdin, args.timeout, args.memory)
        try:
            report = runner.judge()
        except FileNotFoundError as e:
            # compiler or interpreter missing from the image
            print(f'ERROR: {e}')
            return 2
        sys.stdout.write(report)
        sys.stdout.flush()
        return 0
