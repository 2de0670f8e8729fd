from typing import Callable, List, Dict, Optional, TypeVar, Union, Any
from datetime import datetime
import logging

from fastapi import Depends
from supabase import Client

from classrank.core.config import Settings, settings
from classrank.core.database import get_database
from classrank.core.exceptions import ConcurrentModificationError, NotFoundError, ValidationError
from classrank.models.achievement import (
    BadgeAward, BadgeProgress, BadgeRequirement, Milestone, TriggerData, TriggerEvent,
)
from classrank.models.leaderboard import DisplayEntry, DisplaySettings, Leaderboard, ScoreEntry, Stats
from classrank.models.student import StreakState, StudentProfile
from classrank.models.submission import Submission
from classrank.services import badges, insights, ranking, statistics, streaks
from classrank.services.normalizer import normalize
from classrank.services.store import SupabaseStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GamificationService:
    """Loads aggregates, runs the ranking engine on them and saves the result.

    Each mutation is a load -> compute -> versioned save cycle, repeated with
    fresh state when another writer got there first.
    """

    def __init__(self, store: SupabaseStore, config: Settings = settings):
        self.store = store
        self.config = config

    async def _with_retries(self, description: str, attempt: Callable[[], T]) -> T:
        retries = max(1, self.config.max_mutation_retries)
        number = 1
        while True:
            try:
                return attempt()
            except ConcurrentModificationError as exc:
                if number >= retries:
                    logger.error("Giving up on %s after %d attempts: %s", description, number, exc)
                    raise
                number += 1
                logger.warning("Retrying %s (attempt %d/%d): %s", description, number, retries, exc)

    # Leaderboards

    async def record_submission(self, assignment_ref: str, submission: Submission) -> Leaderboard:
        """Normalize a submission and upsert it into the assignment's leaderboard"""
        if submission.assignment_ref and submission.assignment_ref != assignment_ref:
            raise ValidationError(
                f"submission belongs to assignment {submission.assignment_ref}, not {assignment_ref}"
            )
        entry = normalize(submission)

        def attempt() -> Leaderboard:
            leaderboard = self.store.load_leaderboard(assignment_ref) or Leaderboard(
                assignment_ref=assignment_ref, classroom_ref=submission.classroom_ref
            )
            updated = ranking.upsert_entry(
                leaderboard,
                entry.student_ref,
                entry,
                passing_score=self.config.passing_score,
                top_fraction=self.config.top_performer_fraction,
                top_minimum=self.config.top_performer_minimum,
            )
            return self.store.save_leaderboard(updated)

        return await self._with_retries(f"submission on {assignment_ref}", attempt)

    async def get_leaderboard(self, assignment_ref: str) -> Leaderboard:
        leaderboard = self.store.load_leaderboard(assignment_ref)
        if leaderboard is None:
            raise NotFoundError(f"No leaderboard for assignment {assignment_ref}")
        return leaderboard

    async def get_top(self, assignment_ref: str, limit: int = 10) -> List[DisplayEntry]:
        """The student-facing top of the board, as its display settings allow"""
        leaderboard = await self.get_leaderboard(assignment_ref)
        if not leaderboard.display_settings.is_visible:
            raise NotFoundError(f"Leaderboard for assignment {assignment_ref} is not visible")
        return ranking.display_top(leaderboard, limit)

    async def update_display_settings(self, assignment_ref: str, display: DisplaySettings) -> Leaderboard:
        def attempt() -> Leaderboard:
            leaderboard = self.store.load_leaderboard(assignment_ref)
            if leaderboard is None:
                raise NotFoundError(f"No leaderboard for assignment {assignment_ref}")
            return self.store.save_leaderboard(leaderboard.model_copy(update={"display_settings": display}))

        return await self._with_retries(f"display settings on {assignment_ref}", attempt)

    async def get_student_rank(self, assignment_ref: str, student_ref: str) -> int:
        leaderboard = await self.get_leaderboard(assignment_ref)
        rank = ranking.get_student_rank(leaderboard, student_ref)
        if rank is None:
            raise NotFoundError(f"Student {student_ref} has no entry on {assignment_ref}")
        return rank

    async def refresh_insights(
        self, assignment_ref: str, previous_assignment_ref: Optional[str] = None
    ) -> Leaderboard:
        """Recompute insights; most-improved is compared against a previous assignment"""
        prior_scores = None
        if previous_assignment_ref:
            prior_scores = self.store.load_prior_scores(previous_assignment_ref)

        def attempt() -> Leaderboard:
            leaderboard = self.store.load_leaderboard(assignment_ref)
            if leaderboard is None:
                raise NotFoundError(f"No leaderboard for assignment {assignment_ref}")
            updated = insights.apply_insights(
                leaderboard,
                prior_scores,
                top_fraction=self.config.insight_top_fraction,
                struggling_fraction=self.config.insight_struggling_fraction,
                needs_help_below=self.config.needs_help_below,
            )
            return self.store.save_leaderboard(updated)

        return await self._with_retries(f"insights on {assignment_ref}", attempt)

    def compute_stats(self, entries: List[ScoreEntry], enrolled_count: Optional[int] = None) -> Stats:
        return statistics.compute_stats(
            entries, passing_score=self.config.passing_score, enrolled_count=enrolled_count
        )

    # Badges

    def evaluate(self, profile: StudentProfile, requirement: BadgeRequirement) -> bool:
        return badges.evaluate_badge(profile, requirement)

    async def award_badge(
        self,
        student_ref: str,
        badge_id: str,
        trigger_event: Union[TriggerEvent, str] = TriggerEvent.MANUAL_AWARD,
        trigger_data: Optional[Union[TriggerData, Dict[str, Any]]] = None,
        now: Optional[datetime] = None,
    ) -> BadgeAward:
        """Award a badge at most once per student"""

        def attempt() -> BadgeAward:
            badge = self.store.load_badge(badge_id)
            award = badges.award_badge(
                self.store.find_earned_milestone, student_ref, badge, trigger_event, trigger_data, now
            )
            if not award.awarded:
                return award
            # Badge stats are saved before the milestone is inserted
            saved_badge = self.store.save_badge(award.badge) if award.badge is not badge else badge
            self.store.insert_milestone(award.milestone)
            return award.model_copy(update={"badge": saved_badge})

        return await self._with_retries(f"badge {badge_id} for {student_ref}", attempt)

    async def check_badge_eligibility(
        self,
        student_ref: str,
        trigger_event: Union[TriggerEvent, str] = TriggerEvent.ASSIGNMENT_COMPLETION,
        trigger_data: Optional[Union[TriggerData, Dict[str, Any]]] = None,
    ) -> List[BadgeAward]:
        """Award every active badge the student now qualifies for"""
        profile = self.store.load_profile(student_ref)
        new_badges = []

        for badge in self.store.list_active_badges():
            if not badges.evaluate_badge(profile, badge.requirements):
                continue
            award = await self.award_badge(student_ref, badge.id, trigger_event, trigger_data)
            if award.awarded:
                new_badges.append(award)

        return new_badges

    async def get_badge_progress(self, student_ref: str) -> List[BadgeProgress]:
        """Progress toward the visible active badges the student has not earned yet"""
        profile = self.store.load_profile(student_ref)
        earned = {m.badge_id for m in self.store.list_milestones(student_ref) if m.is_completed}

        progress = []
        for badge in self.store.list_active_badges():
            if badge.id in earned or badge.is_hidden:
                continue
            current = badges.requirement_progress(profile, badge.requirements)
            if current is not None:
                progress.append(BadgeProgress(badge_id=badge.id, name=badge.name, progress=current))
        return progress

    async def get_student_milestones(self, student_ref: str) -> List[Milestone]:
        return self.store.list_milestones(student_ref)

    async def mark_milestone_notified(
        self, student_ref: str, milestone_id: str, now: Optional[datetime] = None
    ) -> Milestone:
        milestone = self.store.load_milestone(milestone_id)
        if milestone.student_ref != student_ref:
            raise NotFoundError(f"Milestone {milestone_id} does not belong to {student_ref}")
        if milestone.is_notified:
            return milestone
        return self.store.save_milestone(badges.mark_notified(milestone, now))

    # Streaks

    async def touch_streak(self, student_ref: str, now: Optional[datetime] = None) -> StreakState:
        """Record today's activity for a student's streak"""

        def attempt() -> StreakState:
            state = self.store.load_streak(student_ref)
            return self.store.save_streak(streaks.touch_streak(state, now))

        return await self._with_retries(f"streak for {student_ref}", attempt)


# Dependency for routers
def get_gamification_service(db: Client = Depends(get_database)) -> GamificationService:
    return GamificationService(SupabaseStore(db))
