"""Cohort insights derived from a ranked leaderboard."""

import math
from typing import Dict, List, Optional, Sequence

from classrank.core.exceptions import ValidationError
from classrank.models.leaderboard import (
    ImprovedStudent, Insights, Leaderboard, LeaderboardEntry, Stats,
    StrugglingStudent, TopPerformer,
)

TOP_FRACTION = 0.1
STRUGGLING_FRACTION = 0.2
NEEDS_HELP_BELOW = 60


def _share(count: int, fraction: float) -> int:
    return max(1, math.ceil(count * fraction))


def most_improved(
    ranked_entries: Sequence[LeaderboardEntry], prior_scores: Dict[str, float]
) -> List[ImprovedStudent]:
    """Students present in both sets, largest absolute point gain first."""
    improved = [
        ImprovedStudent(
            student_ref=entry.student_ref,
            current_score=entry.score,
            previous_score=prior_scores[entry.student_ref],
            improvement=entry.score - prior_scores[entry.student_ref],
        )
        for entry in ranked_entries
        if entry.student_ref in prior_scores
    ]
    improved.sort(key=lambda item: item.improvement, reverse=True)
    return improved


def extract_insights(
    ranked_entries: Sequence[LeaderboardEntry],
    stats: Optional[Stats] = None,
    prior_scores: Optional[Dict[str, float]] = None,
    top_fraction: float = TOP_FRACTION,
    struggling_fraction: float = STRUGGLING_FRACTION,
    needs_help_below: float = NEEDS_HELP_BELOW,
) -> Insights:
    """Snapshot top performers, struggling students and, optionally, most improved.

    Values are copied out of the entries. most_improved stays empty unless the
    caller supplies prior scores keyed by student_ref.
    """
    if stats is not None and stats.total_participants != len(ranked_entries):
        raise ValidationError(
            f"stats cover {stats.total_participants} participants but "
            f"{len(ranked_entries)} entries were given"
        )
    if not ranked_entries:
        return Insights()

    ordered = sorted(ranked_entries, key=lambda entry: entry.rank)
    count = len(ordered)

    top = [
        TopPerformer(student_ref=e.student_ref, score=e.score, rank=e.rank)
        for e in ordered[:_share(count, top_fraction)]
    ]
    struggling = [
        StrugglingStudent(
            student_ref=e.student_ref,
            score=e.score,
            rank=e.rank,
            needs_help=e.percentage < needs_help_below,
        )
        for e in ordered[-_share(count, struggling_fraction):]
    ]
    improved = most_improved(ordered, prior_scores) if prior_scores else []

    return Insights(top_performers=top, struggling_students=struggling, most_improved=improved)


def apply_insights(
    leaderboard: Leaderboard,
    prior_scores: Optional[Dict[str, float]] = None,
    top_fraction: float = TOP_FRACTION,
    struggling_fraction: float = STRUGGLING_FRACTION,
    needs_help_below: float = NEEDS_HELP_BELOW,
) -> Leaderboard:
    """Return a copy of the leaderboard with fresh insights and most-improved flags."""
    insights = extract_insights(
        leaderboard.entries,
        leaderboard.stats,
        prior_scores,
        top_fraction=top_fraction,
        struggling_fraction=struggling_fraction,
        needs_help_below=needs_help_below,
    )

    best = insights.most_improved[0].improvement if insights.most_improved else 0
    winners = {
        item.student_ref for item in insights.most_improved
        if best > 0 and item.improvement == best
    }
    entries = [
        entry.model_copy(update={"is_most_improved": entry.student_ref in winners})
        for entry in leaderboard.entries
    ]
    return leaderboard.model_copy(update={"entries": entries, "insights": insights})
