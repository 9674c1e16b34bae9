import math
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SCORE_MIN = 0
SCORE_MAX = 100


def to_number(value: Any) -> Optional[float]:
    """Coerce a raw score to a finite float, or ``None`` if it isn't one."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().rstrip("%").strip()
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def round_half_up(number: float) -> int:
    return int(math.floor(number + 0.5))


def clamp_score(value: Any) -> int:
    number = to_number(value)
    if number is None:
        return SCORE_MIN
    return max(SCORE_MIN, min(SCORE_MAX, round_half_up(number)))


class Scores(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    overall: int = 0
    ats_compatibility: int = Field(0, alias="atsCompatibility")
    keyword_optimization: int = Field(0, alias="keywordOptimization")
    formatting: int = 0
    impact: int = 0

    @field_validator("*", mode="before")
    @classmethod
    def clamp(cls, v: Any) -> int:
        return clamp_score(v)


class AnalysisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scores: Scores = Field(default_factory=Scores)
    summary: str = ""
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    critical_issues: List[str] = Field(default_factory=list, alias="criticalIssues")
    suggestions: List[str] = Field(default_factory=list)

    def to_payload(self) -> dict:
        """Serialize with the camelCase names used on the wire and in storage."""
        return self.model_dump(by_alias=True)


class StoredAnalysisRecord(BaseModel):
    id: str
    user_id: str
    file_name: str
    file_url: str
    analysis_results: AnalysisResult
    created_at: datetime


class HealthResponse(BaseModel):
    status: str = "ok"
