from pydantic import (
    BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr,
    field_validator, model_validator,
)
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from enum import Enum
import uuid

from classrank.core.clock import as_utc
from classrank.models.student import StudentProfile

class BadgeType(str, Enum):
    ACHIEVEMENT = "achievement"
    MILESTONE = "milestone"
    STREAK = "streak"
    PARTICIPATION = "participation"
    PERFORMANCE = "performance"
    SPECIAL = "special"

class BadgeCategory(str, Enum):
    ACADEMIC = "academic"
    PARTICIPATION = "participation"
    CONSISTENCY = "consistency"
    LEADERSHIP = "leadership"
    CREATIVITY = "creativity"
    IMPROVEMENT = "improvement"

class BadgeRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

class ConditionOperator(str, Enum):
    GTE = "gte"
    LTE = "lte"
    EQ = "eq"
    GT = "gt"
    LT = "lt"

class ValueKind(str, Enum):
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"

class TriggerEvent(str, Enum):
    ASSIGNMENT_COMPLETION = "assignment_completion"
    SCORE_ACHIEVEMENT = "score_achievement"
    STREAK_MILESTONE = "streak_milestone"
    PARTICIPATION = "participation"
    IMPROVEMENT = "improvement"
    MANUAL_AWARD = "manual_award"

class MilestoneStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    EARNED = "earned"
    EXPIRED = "expired"


class CustomCondition(BaseModel):
    """A `profile[field] <operator> value` check.

    Numbers accept every operator; strings and booleans only support `eq`.
    """
    field: str = Field(min_length=1)
    operator: ConditionOperator
    value: Union[StrictBool, StrictInt, StrictFloat, StrictStr]

    @property
    def kind(self) -> ValueKind:
        if isinstance(self.value, bool):
            return ValueKind.BOOLEAN
        if isinstance(self.value, str):
            return ValueKind.STRING
        return ValueKind.NUMBER

    @model_validator(mode="after")
    def _operator_matches_kind(self) -> "CustomCondition":
        if self.kind is not ValueKind.NUMBER and self.operator is not ConditionOperator.EQ:
            raise ValueError(
                f"operator '{self.operator.value}' is not valid for a {self.kind.value} value "
                f"on field '{self.field}'"
            )
        return self


class BadgeRequirement(BaseModel):
    # Academic
    minimum_score: Optional[float] = Field(default=None, ge=0)  # against average score
    minimum_assignments: Optional[int] = Field(default=None, ge=0)
    consecutive_days: Optional[int] = Field(default=None, ge=0)

    # Participation
    materials_viewed: Optional[int] = Field(default=None, ge=0)
    doubts_answered: Optional[int] = Field(default=None, ge=0)
    helpful_replies: Optional[int] = Field(default=None, ge=0)

    # Performance
    average_score: Optional[float] = Field(default=None, ge=0)
    improvement_percentage: Optional[float] = None
    rank_position: Optional[int] = Field(default=None, ge=1)  # this rank or better

    custom_conditions: List[CustomCondition] = Field(default_factory=list)


class BadgeStats(BaseModel):
    total_earned: int = Field(default=0, ge=0)
    students_earned: List[str] = Field(default_factory=list)

    @field_validator("students_earned")
    @classmethod
    def _unique(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


class Badge(BaseModel):
    id: str
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    type: BadgeType = BadgeType.ACHIEVEMENT
    category: BadgeCategory = BadgeCategory.ACADEMIC
    icon: str = "award"
    color: str = "#3B82F6"
    rarity: BadgeRarity = BadgeRarity.COMMON
    points: int = Field(default=10, ge=1)
    requirements: BadgeRequirement = Field(default_factory=BadgeRequirement)
    is_active: bool = True
    is_hidden: bool = False  # hidden until earned
    classroom_ref: Optional[str] = None  # None means a global badge
    stats: BadgeStats = Field(default_factory=BadgeStats)
    version: int = 0


class TriggerData(BaseModel):
    assignment_ref: Optional[str] = None
    score: Optional[float] = None
    streak_days: Optional[int] = None
    improvement_percentage: Optional[float] = None
    custom_data: Optional[Dict[str, Any]] = None


class MilestoneProgress(BaseModel):
    current: float = 0
    required: float = 1
    percentage: int = 0


class Milestone(BaseModel):
    """One (student, badge) relationship."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    student_ref: str
    badge_id: str
    classroom_ref: Optional[str] = None
    earned_at: Optional[datetime] = None
    trigger_event: Optional[TriggerEvent] = None
    trigger_data: TriggerData = Field(default_factory=TriggerData)
    progress: MilestoneProgress = Field(default_factory=MilestoneProgress)
    status: MilestoneStatus = MilestoneStatus.IN_PROGRESS
    is_notified: bool = False
    notified_at: Optional[datetime] = None

    @field_validator("earned_at", "notified_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def is_completed(self) -> bool:
        return self.status is MilestoneStatus.EARNED


class BadgeAward(BaseModel):
    milestone: Milestone
    badge: Badge
    awarded: bool  # False when the badge had already been earned


class BadgeProgress(BaseModel):
    badge_id: str
    name: str
    progress: MilestoneProgress


class AwardRequest(BaseModel):
    student_ref: str = Field(min_length=1)
    trigger_event: TriggerEvent = TriggerEvent.MANUAL_AWARD
    trigger_data: TriggerData = Field(default_factory=TriggerData)


class EligibilityRequest(BaseModel):
    profile: StudentProfile
    requirement: BadgeRequirement
