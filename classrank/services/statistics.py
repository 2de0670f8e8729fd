"""Descriptive statistics over a leaderboard's entries."""

import math
from typing import Optional, Sequence

from classrank.models.leaderboard import ScoreEntry, Stats

PASSING_SCORE = 60


def _clamped(entry: ScoreEntry) -> float:
    if entry.max_score > 0:
        return min(max(entry.score, 0), entry.max_score)
    return max(entry.score, 0)


def median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    if not ordered:
        return 0
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def compute_stats(
    entries: Sequence[ScoreEntry],
    passing_score: float = PASSING_SCORE,
    enrolled_count: Optional[int] = None,
) -> Stats:
    """Recompute every statistic from scratch.

    An empty entry set is a normal state and yields zeroed Stats. The standard
    deviation is the population one (divided by n). average_time ignores
    entries whose time is unknown (0).
    """
    if not entries:
        return Stats()

    count = len(entries)
    scores = [_clamped(entry) for entry in entries]
    mean = sum(scores) / count
    variance = sum((score - mean) ** 2 for score in scores) / count

    passed = sum(1 for entry in entries if entry.percentage >= passing_score)
    times = [entry.time_spent for entry in entries if entry.time_spent > 0]

    if enrolled_count:
        completion_rate = min(100.0, count / enrolled_count * 100)
    else:
        # every entry is a completed submission
        completion_rate = 100.0

    return Stats(
        total_participants=count,
        average_score=mean,
        highest_score=max(scores),
        lowest_score=min(scores),
        median_score=median(scores),
        standard_deviation=math.sqrt(variance),
        pass_rate=passed / count * 100,
        average_time=sum(times) / len(times) if times else 0,
        completion_rate=completion_rate,
    )
