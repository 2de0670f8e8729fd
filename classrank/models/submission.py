from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum

from classrank.core.clock import as_utc

class LetterGrade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"

class PerformanceLevel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    NEEDS_IMPROVEMENT = "needs_improvement"
    POOR = "poor"

class Answer(BaseModel):
    question_ref: Optional[str] = None
    points: float = Field(default=0, ge=0)
    max_points: float = Field(default=0, ge=0)
    is_correct: bool = False
    time_spent: int = Field(default=0, ge=0)  # seconds

class Submission(BaseModel):
    """A finalized submission as persisted by the assignment workflow."""
    student_ref: Optional[str] = None
    assignment_ref: Optional[str] = None
    classroom_ref: Optional[str] = None
    submission_ref: Optional[str] = None
    answers: List[Answer] = Field(default_factory=list)

    # Used only when the submission carries no answers
    score: float = Field(default=0, ge=0)
    # Defaults to the sum of answer max_points
    max_score: Optional[float] = None

    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    time_spent: int = Field(default=0, ge=0)  # seconds
    is_late: bool = False
    late_penalty: float = Field(default=0, ge=0, le=100)  # percentage deducted

    @field_validator("started_at", "submitted_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)
