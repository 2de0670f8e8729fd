"""Consecutive-day activity streaks."""

from datetime import datetime, timedelta
from typing import Optional

from classrank.core.clock import as_utc, utcnow
from classrank.models.student import StreakState

ONE_DAY = timedelta(days=1)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole elapsed days, never negative (clock skew counts as the same day)."""
    return max(0, (as_utc(later) - as_utc(earlier)) // ONE_DAY)


def touch_streak(state: StreakState, now: Optional[datetime] = None) -> StreakState:
    """Record a qualifying activity at `now` and return the updated state.

    One elapsed day extends the streak, more than one restarts it at 1, and
    repeat activity within a day leaves it unchanged. The first ever touch
    starts the streak at 1.
    """
    now = as_utc(now) if now is not None else utcnow()
    streak = state.streak

    if state.streak_last_updated is None:
        streak = 1
    else:
        elapsed = days_between(state.streak_last_updated, now)
        if elapsed == 1:
            streak += 1
        elif elapsed > 1:
            streak = 1

    return state.model_copy(update={
        "streak": streak,
        "longest_streak": max(state.longest_streak, streak),
        "streak_last_updated": now,
        "last_active": now,
    })
