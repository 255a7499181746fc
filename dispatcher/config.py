import json
import os
import tempfile
from pathlib import Path

# backend config
BACKEND_API = os.getenv(
    'BACKEND_API',
    'http://web:8080',
)
# shared secret between the platform backend and the judge
JUDGE_TOKEN = os.getenv(
    'JUDGE_TOKEN',
    'KoNoJudgeDa',
)
# every sandbox invocation gets its own directory below this root
WORK_DIR = Path(
    os.getenv(
        'JUDGE_WORK_DIR',
        str(Path(tempfile.gettempdir()) / 'judge'),
    ))
BACKUP_DIR = Path(os.getenv(
    'JUDGE_BACKUP_DIR',
    str(WORK_DIR.parent / 'judge.bk'),
))
KEEP_FAILED_EXECUTIONS = os.getenv('KEEP_FAILED_EXECUTIONS',
                                   '').lower() == 'true'
# create directory
WORK_DIR.mkdir(parents=True, exist_ok=True)

# ============================================================
# Judging defaults
# ============================================================
DEFAULT_TIME_LIMIT = int(os.getenv('DEFAULT_TIME_LIMIT', '10'))  # sec.
DEFAULT_MEMORY_LIMIT = int(os.getenv('DEFAULT_MEMORY_LIMIT', '256'))  # MB
MAX_SCORE = int(os.getenv('MAX_SCORE', '100'))
OUTPUT_LIMIT = int(os.getenv('OUTPUT_LIMIT', '4096'))  # bytes
# per-phase ceiling, independent of the problem's time limit
COMPILE_TIMEOUT = int(os.getenv('COMPILE_TIMEOUT', '10'))  # sec.
# extra wall-clock slack for the runner process itself
RUNNER_GRACE_PERIOD = int(os.getenv('RUNNER_GRACE_PERIOD', '5'))
# submission.result column width on the platform side
RESULT_MAX_LENGTH = 500

_DEFAULT_DISPATCHER_CONFIG_PATH = Path(
    os.getenv('DISPATCHER_CONFIG', '.config/dispatcher.json'))


def _load_json_config(path: Path) -> dict:
    try:
        with path.open() as f:
            return json.load(f)
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError:
        return {}


def get_dispatcher_limits(
        config_path: str | Path | None = None) -> tuple[int, int]:
    path = Path(
        config_path) if config_path else _DEFAULT_DISPATCHER_CONFIG_PATH
    cfg = _load_json_config(path) if path else {}
    queue_default = cfg.get('QUEUE_SIZE', 200)
    worker_default = cfg.get('WORKER_COUNT', 8)
    queue_size = int(os.getenv('QUEUE_SIZE', queue_default))
    worker_count = int(os.getenv('WORKER_COUNT', worker_default))
    if queue_size < 1 or worker_count < 1:
        raise ValueError('QUEUE_SIZE and WORKER_COUNT must be positive')
    return queue_size, worker_count


_SANDBOX_CONFIG_PATH = Path(os.getenv('SANDBOX_CONFIG',
                                      '.config/sandbox.json'))


def get_sandbox_config(config_path: str | Path | None = None) -> dict:
    path = Path(config_path) if config_path else _SANDBOX_CONFIG_PATH
    cfg = _load_json_config(path) if path else {}
    backend_env = os.getenv('SANDBOX_BACKEND')
    if backend_env:
        cfg['backend'] = backend_env
    work_dir_env = os.getenv('JUDGE_WORK_DIR')
    if work_dir_env:
        cfg['working_dir'] = work_dir_env
    cfg.setdefault('backend', 'local')
    cfg.setdefault('working_dir', str(WORK_DIR))
    cfg.setdefault('docker_url', 'unix://var/run/docker.sock')
    cfg.setdefault('image', 'judge-executor:latest')
    cfg.setdefault('runner_root', str(Path(__file__).resolve().parent.parent))
    nproc_env = os.getenv('SANDBOX_RLIMIT_NPROC')
    if nproc_env:
        cfg['rlimit_nproc'] = nproc_env.lower() == 'true'
    cfg.setdefault('rlimit_nproc', False)
    return cfg


# ============================================================
# Container resource limits (docker backend)
# ============================================================
# headroom on top of the submission's memory limit for the runner itself
CONTAINER_MEM_OVERHEAD_MB = int(os.getenv('CONTAINER_MEM_OVERHEAD_MB', '64'))
CONTAINER_PIDS_LIMIT = int(os.getenv('CONTAINER_PIDS_LIMIT', '64'))
CONTAINER_CPU_PERIOD = int(os.getenv('CONTAINER_CPU_PERIOD', '100000'))
CONTAINER_CPU_QUOTA = int(os.getenv('CONTAINER_CPU_QUOTA', '100000'))
