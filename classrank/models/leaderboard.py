from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime
import math

from classrank.core.clock import as_utc
from classrank.models.submission import LetterGrade, PerformanceLevel


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percentage_of(part: float, whole: float) -> int:
    """Whole-number percentage, 0 when the whole is not positive."""
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)


class ScoreEntry(BaseModel):
    """One student's result for one assignment."""
    student_ref: str = Field(min_length=1)
    score: float = Field(ge=0)
    max_score: float = Field(ge=0)
    percentage: int = 0  # derived from score / max_score
    submitted_at: datetime
    time_spent: int = Field(default=0, ge=0)  # seconds, 0 if unknown
    correct_answers: int = Field(default=0, ge=0)
    total_questions: int = Field(default=0, ge=0)
    accuracy: int = 0  # derived from correct_answers / total_questions
    submission_ref: Optional[str] = None

    @field_validator("submitted_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _derive_percentages(self) -> "ScoreEntry":
        self.percentage = percentage_of(self.score, self.max_score)
        self.accuracy = percentage_of(self.correct_answers, self.total_questions)
        return self


class LeaderboardEntry(ScoreEntry):
    rank: int = Field(default=1, ge=1)
    is_top_performer: bool = False
    is_fastest_completion: bool = False
    is_most_improved: bool = False


class Stats(BaseModel):
    total_participants: int = 0
    average_score: float = 0
    highest_score: float = 0
    lowest_score: float = 0
    median_score: float = 0
    standard_deviation: float = 0
    pass_rate: float = 0  # percentage who passed
    average_time: float = 0  # seconds
    completion_rate: float = 0  # percentage who completed


class TopPerformer(BaseModel):
    student_ref: str
    score: float
    rank: int


class StrugglingStudent(BaseModel):
    student_ref: str
    score: float
    rank: int
    needs_help: bool = True


class ImprovedStudent(BaseModel):
    student_ref: str
    current_score: float
    previous_score: float
    improvement: float  # absolute points


class Insights(BaseModel):
    top_performers: List[TopPerformer] = Field(default_factory=list)
    struggling_students: List[StrugglingStudent] = Field(default_factory=list)
    most_improved: List[ImprovedStudent] = Field(default_factory=list)


class DisplaySettings(BaseModel):
    is_visible: bool = True  # visible to students
    show_scores: bool = True
    show_ranks: bool = True
    show_names: bool = True  # anonymous otherwise
    max_display_entries: int = Field(default=50, ge=1)


class DisplayEntry(BaseModel):
    """An entry as students see it; columns the display settings hide are None."""
    position: int
    student_ref: Optional[str] = None
    rank: Optional[int] = None
    score: Optional[float] = None
    percentage: Optional[int] = None
    grade: Optional[LetterGrade] = None
    performance: Optional[PerformanceLevel] = None
    time_spent: str = "0s"
    is_top_performer: bool = False
    is_fastest_completion: bool = False
    is_most_improved: bool = False


class Leaderboard(BaseModel):
    """The ranked entry set for exactly one assignment."""
    assignment_ref: str = Field(min_length=1)
    classroom_ref: Optional[str] = None
    entries: List[LeaderboardEntry] = Field(default_factory=list)
    stats: Stats = Field(default_factory=Stats)
    insights: Insights = Field(default_factory=Insights)
    display_settings: DisplaySettings = Field(default_factory=DisplaySettings)
    is_active: bool = True
    is_finalized: bool = False  # no more entries accepted
    last_updated: Optional[datetime] = None
    version: int = 0

    @field_validator("last_updated")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)
