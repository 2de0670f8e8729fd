"""Badge eligibility rules, idempotent awarding and requirement progress."""

import logging
import operator
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from classrank.core.clock import utcnow
from classrank.core.exceptions import ValidationError
from classrank.models.achievement import (
    Badge, BadgeAward, BadgeRequirement, BadgeStats, ConditionOperator,
    CustomCondition, Milestone, MilestoneProgress, MilestoneStatus,
    TriggerData, TriggerEvent, ValueKind,
)
from classrank.models.leaderboard import round_half_up
from classrank.models.student import StudentProfile

logger = logging.getLogger(__name__)

# (requirement field, profile field); the profile value must be >= the threshold
_MINIMUM_THRESHOLDS = [
    ("minimum_score", "average_score"),
    ("minimum_assignments", "completed_assignments"),
    ("consecutive_days", "current_streak"),
    ("average_score", "average_score"),
    ("materials_viewed", "materials_viewed"),
    ("doubts_answered", "doubts_answered"),
    ("helpful_replies", "helpful_replies"),
    ("improvement_percentage", "improvement_percentage"),
]

_OPERATORS = {
    ConditionOperator.GTE: operator.ge,
    ConditionOperator.LTE: operator.le,
    ConditionOperator.EQ: operator.eq,
    ConditionOperator.GT: operator.gt,
    ConditionOperator.LT: operator.lt,
}

MilestoneLookup = Callable[[str, str], Optional[Milestone]]


def _kind_of(value: Any) -> Optional[ValueKind]:
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    return None


def condition_holds(profile: StudentProfile, condition: CustomCondition) -> bool:
    """Apply one custom condition. Absent fields and mismatched types fail."""
    try:
        actual = profile.value_of(condition.field)
    except KeyError:
        return False
    if _kind_of(actual) is not condition.kind:
        return False
    return _OPERATORS[condition.operator](actual, condition.value)


def evaluate_badge(profile: StudentProfile, requirement: BadgeRequirement) -> bool:
    """True iff every present threshold and every custom condition passes.

    Checks run in a fixed order and stop at the first failure.
    """
    for requirement_field, profile_field in _MINIMUM_THRESHOLDS:
        threshold = getattr(requirement, requirement_field)
        if threshold is None:
            continue
        if getattr(profile, profile_field) < threshold:
            logger.debug("%s failed: %s < %s", requirement_field, profile_field, threshold)
            return False

    if requirement.rank_position is not None:
        if profile.rank is None or profile.rank > requirement.rank_position:
            return False

    for condition in requirement.custom_conditions:
        if not condition_holds(profile, condition):
            logger.debug("Custom condition on '%s' failed", condition.field)
            return False

    return True


def award_badge(
    find_earned: MilestoneLookup,
    student_ref: str,
    badge: Badge,
    trigger_event: Union[TriggerEvent, str],
    trigger_data: Optional[Union[TriggerData, Dict[str, Any]]] = None,
    now: Optional[datetime] = None,
) -> BadgeAward:
    """Award a badge once per student.

    `find_earned(student_ref, badge_id)` returns the student's earned
    milestone for the badge, if any; when it does, that milestone and the
    untouched badge are returned with `awarded=False`. Otherwise a new earned
    milestone is built and the badge statistics are bumped, counting each
    student at most once.
    """
    if not student_ref:
        raise ValidationError("student_ref is required to award a badge")
    try:
        event = TriggerEvent(trigger_event)
    except ValueError as exc:
        raise ValidationError(f"unknown trigger event {trigger_event!r}") from exc

    existing = find_earned(student_ref, badge.id)
    if existing is not None and existing.status is MilestoneStatus.EARNED:
        return BadgeAward(milestone=existing, badge=badge, awarded=False)

    if isinstance(trigger_data, TriggerData):
        data = trigger_data
    else:
        data = TriggerData.model_validate(trigger_data or {})

    milestone = Milestone(
        student_ref=student_ref,
        badge_id=badge.id,
        classroom_ref=badge.classroom_ref,
        earned_at=now or utcnow(),
        trigger_event=event,
        trigger_data=data,
        progress=MilestoneProgress(current=1, required=1, percentage=100),
        status=MilestoneStatus.EARNED,
    )

    stats = badge.stats
    if student_ref not in stats.students_earned:
        badge = badge.model_copy(update={
            "stats": BadgeStats(
                total_earned=stats.total_earned + 1,
                students_earned=[*stats.students_earned, student_ref],
            )
        })

    logger.info("Awarded badge %s (%s) to %s via %s", badge.id, badge.name, student_ref, event.value)
    return BadgeAward(milestone=milestone, badge=badge, awarded=True)


def mark_notified(milestone: Milestone, now: Optional[datetime] = None) -> Milestone:
    return milestone.model_copy(update={"is_notified": True, "notified_at": now or utcnow()})


def requirement_progress(
    profile: StudentProfile, requirement: BadgeRequirement
) -> Optional[MilestoneProgress]:
    """Progress toward the least satisfied numeric threshold, or None if there is none."""
    weakest: Optional[MilestoneProgress] = None
    for requirement_field, profile_field in _MINIMUM_THRESHOLDS:
        required = getattr(requirement, requirement_field)
        if required is None or required <= 0:
            continue
        current = getattr(profile, profile_field)
        progress = MilestoneProgress(
            current=min(current, required),
            required=required,
            percentage=min(100, max(0, round_half_up(current / required * 100))),
        )
        if weakest is None or progress.percentage < weakest.percentage:
            weakest = progress
    return weakest
