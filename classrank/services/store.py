"""Supabase persistence for leaderboards, badges, milestones and streaks.

Every aggregate row carries a `version` column. Writes only succeed against
the version that was read, so two concurrent mutations of one aggregate
cannot both land; the loser gets ConcurrentModificationError and is expected
to reload and retry.
"""

import logging
from typing import Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel
from supabase import Client, PostgrestAPIError, PostgrestAPIResponse

from classrank.core.config import Settings, settings
from classrank.core.exceptions import ConcurrentModificationError, NotFoundError
from classrank.models.achievement import Badge, Milestone, MilestoneStatus
from classrank.models.leaderboard import Leaderboard
from classrank.models.student import StreakState, StudentProfile

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

ModelT = TypeVar("ModelT", bound=BaseModel)


class SupabaseStore:
    def __init__(self, db: Client, config: Settings = settings):
        self.db = db
        self.config = config

    def _select_one(self, table: str, column: str, value: str, model: Type[ModelT]) -> Optional[ModelT]:
        result: PostgrestAPIResponse = self.db.table(table).select("*").eq(column, value).limit(1).execute()
        if not result.data:
            return None
        return model.model_validate(result.data[0])

    def _insert(self, table: str, row: Dict, aggregate: str, key: str) -> None:
        try:
            self.db.table(table).insert(row).execute()
        except PostgrestAPIError as exc:
            if exc.code == UNIQUE_VIOLATION:
                raise ConcurrentModificationError(aggregate, key, 0) from exc
            raise

    def _update_versioned(self, table: str, column: str, key: str, row: Dict, expected: int, aggregate: str) -> None:
        result: PostgrestAPIResponse = (
            self.db.table(table)
            .update(row)
            .eq(column, key)
            .eq("version", expected)
            .execute()
        )
        if not result.data:
            raise ConcurrentModificationError(aggregate, key, expected)

    # Leaderboards

    def load_leaderboard(self, assignment_ref: str) -> Optional[Leaderboard]:
        return self._select_one(self.config.leaderboards_table, "assignment_ref", assignment_ref, Leaderboard)

    def save_leaderboard(self, leaderboard: Leaderboard) -> Leaderboard:
        """Insert a new leaderboard (version 0) or update the version that was read."""
        expected = leaderboard.version
        saved = leaderboard.model_copy(update={"version": expected + 1})
        row = saved.model_dump(mode="json")
        if expected == 0:
            self._insert(self.config.leaderboards_table, row, "leaderboard", leaderboard.assignment_ref)
        else:
            self._update_versioned(
                self.config.leaderboards_table, "assignment_ref", leaderboard.assignment_ref,
                row, expected, "leaderboard",
            )
        return saved

    def load_prior_scores(self, assignment_ref: str) -> Dict[str, float]:
        leaderboard = self.load_leaderboard(assignment_ref)
        if leaderboard is None:
            raise NotFoundError(f"No leaderboard for assignment {assignment_ref}")
        return {entry.student_ref: entry.score for entry in leaderboard.entries}

    # Badges and milestones

    def load_badge(self, badge_id: str) -> Badge:
        badge = self._select_one(self.config.badges_table, "id", badge_id, Badge)
        if badge is None:
            raise NotFoundError(f"Badge {badge_id} not found")
        return badge

    def list_active_badges(self) -> List[Badge]:
        result: PostgrestAPIResponse = self.db.table(self.config.badges_table).select("*").eq("is_active", True).execute()
        return [Badge.model_validate(row) for row in result.data]

    def save_badge(self, badge: Badge) -> Badge:
        saved = badge.model_copy(update={"version": badge.version + 1})
        self._update_versioned(
            self.config.badges_table, "id", badge.id,
            saved.model_dump(mode="json", exclude={"id"}), badge.version, "badge",
        )
        return saved

    def find_earned_milestone(self, student_ref: str, badge_id: str) -> Optional[Milestone]:
        result: PostgrestAPIResponse = (
            self.db.table(self.config.milestones_table)
            .select("*")
            .eq("student_ref", student_ref)
            .eq("badge_id", badge_id)
            .eq("status", MilestoneStatus.EARNED.value)
            .limit(1)
            .execute()
        )
        return Milestone.model_validate(result.data[0]) if result.data else None

    def insert_milestone(self, milestone: Milestone) -> Milestone:
        # The table holds a unique index on (student_ref, badge_id) where status = 'earned'
        self._insert(
            self.config.milestones_table, milestone.model_dump(mode="json"),
            "milestone", f"{milestone.student_ref}/{milestone.badge_id}",
        )
        return milestone

    def load_milestone(self, milestone_id: str) -> Milestone:
        milestone = self._select_one(self.config.milestones_table, "id", milestone_id, Milestone)
        if milestone is None:
            raise NotFoundError(f"Milestone {milestone_id} not found")
        return milestone

    def save_milestone(self, milestone: Milestone) -> Milestone:
        result: PostgrestAPIResponse = (
            self.db.table(self.config.milestones_table)
            .update(milestone.model_dump(mode="json", exclude={"id"}))
            .eq("id", milestone.id)
            .execute()
        )
        if not result.data:
            raise NotFoundError(f"Milestone {milestone.id} not found")
        return milestone

    def list_milestones(self, student_ref: str) -> List[Milestone]:
        result: PostgrestAPIResponse = (
            self.db.table(self.config.milestones_table)
            .select("*")
            .eq("student_ref", student_ref)
            .order("earned_at", desc=True)
            .execute()
        )
        return [Milestone.model_validate(row) for row in result.data]

    # Students

    def load_profile(self, student_ref: str) -> StudentProfile:
        profile = self._select_one(self.config.students_table, "student_ref", student_ref, StudentProfile)
        if profile is None:
            raise NotFoundError(f"Student {student_ref} not found")
        return profile

    def load_streak(self, student_ref: str) -> StreakState:
        state = self._select_one(self.config.students_table, "student_ref", student_ref, StreakState)
        if state is None:
            raise NotFoundError(f"Student {student_ref} not found")
        return state

    def save_streak(self, state: StreakState) -> StreakState:
        saved = state.model_copy(update={"version": state.version + 1})
        self._update_versioned(
            self.config.students_table, "student_ref", state.student_ref,
            saved.model_dump(mode="json", exclude={"student_ref"}), state.version, "student",
        )
        return saved
