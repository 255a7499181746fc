from enum import Enum, IntEnum


class Language(IntEnum):
    C = 0
    CPP = 1
    PY = 2
    JAVA = 3
    JS = 4
    GO = 5
    RUST = 6


class SubmissionStatus(str, Enum):
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    ACCEPTED = "ACCEPTED"
    WRONG_ANSWER = "WRONG_ANSWER"
    TIME_LIMIT_EXCEEDED = "TIME_LIMIT_EXCEEDED"
    MEMORY_LIMIT_EXCEEDED = "MEMORY_LIMIT_EXCEEDED"
    RUNTIME_ERROR = "RUNTIME_ERROR"
    COMPILATION_ERROR = "COMPILATION_ERROR"
    PRESENTATION_ERROR = "PRESENTATION_ERROR"
    SYSTEM_ERROR = "SYSTEM_ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


TERMINAL_STATUSES = frozenset({
    SubmissionStatus.ACCEPTED,
    SubmissionStatus.WRONG_ANSWER,
    SubmissionStatus.TIME_LIMIT_EXCEEDED,
    SubmissionStatus.MEMORY_LIMIT_EXCEEDED,
    SubmissionStatus.RUNTIME_ERROR,
    SubmissionStatus.COMPILATION_ERROR,
    SubmissionStatus.PRESENTATION_ERROR,
    SubmissionStatus.SYSTEM_ERROR,
})

# highest first
VERDICT_PRECEDENCE = (
    SubmissionStatus.COMPILATION_ERROR,
    SubmissionStatus.SYSTEM_ERROR,
    SubmissionStatus.TIME_LIMIT_EXCEEDED,
    SubmissionStatus.MEMORY_LIMIT_EXCEEDED,
    SubmissionStatus.RUNTIME_ERROR,
    SubmissionStatus.WRONG_ANSWER,
    SubmissionStatus.PRESENTATION_ERROR,
    SubmissionStatus.ACCEPTED,
)


class FailureKind(str, Enum):
    COMPILATION_ERROR = "COMPILATION_ERROR"
    TIME_LIMIT_EXCEEDED = "TIME_LIMIT_EXCEEDED"
    MEMORY_LIMIT_EXCEEDED = "MEMORY_LIMIT_EXCEEDED"
    RUNTIME_ERROR = "RUNTIME_ERROR"
    SYSTEM_ERROR = "SYSTEM_ERROR"

    def to_status(self) -> SubmissionStatus:
        return SubmissionStatus(self.value)


class ComparisonMode(IntEnum):
    NORMALIZED = 0
    EXACT = 1
    TOKENS = 2


class ScoringPolicy(IntEnum):
    ALL_OR_NOTHING = 0
    PER_CASE = 1


class AdmissionMode(str, Enum):
    QUEUED = "queued"
    INLINE = "inline"
