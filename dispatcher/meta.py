from datetime import datetime
from typing import Optional

from pydantic import (
    BaseModel,
    Field,
    field_validator,
)

from . import config
from .constant import (
    ComparisonMode,
    Language,
    ScoringPolicy,
    SubmissionStatus,
)


class Submission(BaseModel):
    id: str
    userId: int
    problemId: int
    contestId: int
    code: str = Field(min_length=1, max_length=50000)
    language: Language
    status: SubmissionStatus = SubmissionStatus.QUEUED
    result: str = Field(default="", max_length=config.RESULT_MAX_LENGTH)
    score: int = Field(default=0, ge=0)
    executionTime: Optional[int] = None  # ms
    memoryUsed: Optional[int] = None  # KB
    createdAt: datetime = Field(default_factory=datetime.now)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        # the platform's ids are numeric
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        return v

    @field_validator("language", mode="before")
    @classmethod
    def _coerce_language(cls, v):
        # the platform stores language names, the judge uses ids
        if isinstance(v, str) and not v.isdigit():
            mapping = {
                "c": Language.C,
                "cpp": Language.CPP,
                "c++": Language.CPP,
                "python": Language.PY,
                "py": Language.PY,
                "java": Language.JAVA,
                "javascript": Language.JS,
                "js": Language.JS,
                "go": Language.GO,
                "rust": Language.RUST,
            }
            v = mapping.get(v.lower(), v)
        return v


class TestCase(BaseModel):
    __test__ = False  # not a pytest class

    id: int
    problemId: int
    input: str = ""
    expectedOutput: str = ""
    hidden: bool = False


class ProblemMeta(BaseModel):
    timeLimit: int = Field(default=config.DEFAULT_TIME_LIMIT, ge=1)  # sec.
    memoryLimit: int = Field(default=config.DEFAULT_MEMORY_LIMIT,
                             ge=1)  # MB
    maxScore: int = Field(default=config.MAX_SCORE, ge=0)
    comparisonMode: ComparisonMode = ComparisonMode.NORMALIZED
    scoringPolicy: ScoringPolicy = ScoringPolicy.ALL_OR_NOTHING

    @field_validator("comparisonMode", mode="before")
    @classmethod
    def _coerce_comparison_mode(cls, v):
        if isinstance(v, str):
            mapping = {
                "normalized": ComparisonMode.NORMALIZED,
                "exact": ComparisonMode.EXACT,
                "tokens": ComparisonMode.TOKENS,
            }
            v = mapping.get(v, v)
        return v

    @field_validator("scoringPolicy", mode="before")
    @classmethod
    def _coerce_scoring_policy(cls, v):
        if isinstance(v, str):
            mapping = {
                "allOrNothing": ScoringPolicy.ALL_OR_NOTHING,
                "perCase": ScoringPolicy.PER_CASE,
            }
            v = mapping.get(v, v)
        return v


class StatusUpdate(BaseModel):
    """
    One write to the submission store. Status and the judged fields are
    always applied together.
    """
    status: SubmissionStatus
    result: str = ""
    score: int = Field(default=0, ge=0)
    executionTime: Optional[int] = None
    memoryUsed: Optional[int] = None

    @field_validator("result", mode="before")
    @classmethod
    def _truncate_result(cls, v):
        if v is None:
            return ""
        v = str(v)
        if len(v) > config.RESULT_MAX_LENGTH:
            v = v[:config.RESULT_MAX_LENGTH - 3] + "..."
        return v
