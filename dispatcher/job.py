from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime

from .constant import AdmissionMode


@dataclass
class Judge:
    submission_id: str
    future: Future = field(default_factory=Future)
    enqueued_at: datetime = field(default_factory=datetime.now)


@dataclass
class Admission:
    """
    What `Dispatcher.submit` hands back.

    `future` resolves to the submission's terminal status, or `None` when
    processing was a no-op (unknown id, already judged, already running).
    For an inline admission it is already resolved when `submit` returns.
    """
    submission_id: str
    mode: AdmissionMode
    future: Future

    @property
    def inline(self) -> bool:
        return self.mode == AdmissionMode.INLINE
