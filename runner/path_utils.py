from __future__ import annotations

from pathlib import Path
from dispatcher import config as dispatcher_config


def _resolved(path: str | Path, base: Path | None = None) -> Path:
    p = Path(path).expanduser()
    if not p.is_absolute() and base is not None:
        p = base / p
    return p.resolve()


class PathTranslator:
    """
    Map execution directories from the judge's filesystem onto the docker
    host's.

    Bind mounts are resolved by the docker daemon, so when the judge runs
    in a container itself, `sandbox_root` (its view of the shared work
    volume) has to be swapped for `host_root` (the daemon's view).
    """

    def __init__(self, cfg: dict | None = None):
        self.cfg = cfg if cfg is not None else dispatcher_config.get_sandbox_config(
        )
        self.local_root = _resolved(
            self.cfg.get("sandbox_root") or self.cfg["working_dir"])
        host_root = self.cfg.get("host_root")
        self.host_root = _resolved(host_root) if host_root else self.local_root

    @property
    def identity(self) -> bool:
        return self.local_root == self.host_root

    def to_host(self, path: str | Path) -> Path:
        local = _resolved(path, self.local_root)
        if self.identity:
            return local
        try:
            return self.host_root / local.relative_to(self.local_root)
        except ValueError:
            # outside the shared volume, nothing to swap
            return local
