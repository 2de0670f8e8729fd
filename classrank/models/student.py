from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel, to_snake
from typing import Optional, Any
from datetime import datetime

from classrank.core.clock import as_utc

class StreakState(BaseModel):
    student_ref: str
    streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    streak_last_updated: Optional[datetime] = None
    last_active: Optional[datetime] = None
    version: int = 0

    @field_validator("streak_last_updated", "last_active")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class StudentProfile(BaseModel):
    """Aggregate figures a badge requirement is checked against.

    Accepts camelCase or snake_case keys; unknown keys are kept so custom
    conditions can reference them.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    student_ref: Optional[str] = None
    average_score: float = 0
    completed_assignments: int = 0
    # The streak tracker writes the `streak` column of the same row
    current_streak: int = Field(
        default=0, validation_alias=AliasChoices("streak", "current_streak", "currentStreak")
    )
    rank: Optional[int] = None
    materials_viewed: int = 0
    doubts_answered: int = 0
    helpful_replies: int = 0
    improvement_percentage: float = 0

    def value_of(self, name: str) -> Any:
        """Look up a field by snake_case, camelCase, alias or extra key; KeyError if absent."""
        fields = type(self).model_fields
        for candidate in (name, to_snake(name)):
            if candidate in fields:
                return getattr(self, candidate)
        for field_name, info in fields.items():
            if isinstance(info.validation_alias, AliasChoices) and name in info.validation_alias.choices:
                return getattr(self, field_name)
        extras = self.model_extra or {}
        for candidate in (name, to_camel(name), to_snake(name)):
            if candidate in extras:
                return extras[candidate]
        raise KeyError(name)
