"""Competition ranking for one assignment's leaderboard."""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from classrank.core.clock import utcnow
from classrank.core.exceptions import ValidationError
from classrank.models.leaderboard import DisplayEntry, Leaderboard, LeaderboardEntry, ScoreEntry
from classrank.services.normalizer import format_duration, letter_grade, performance_level
from classrank.services.statistics import compute_stats

logger = logging.getLogger(__name__)

TOP_PERFORMER_FRACTION = 0.1
TOP_PERFORMER_MINIMUM = 3

_RECOGNITION_FLAGS = ("is_top_performer", "is_fastest_completion", "is_most_improved")
_RANK_FIELDS = {"rank", *_RECOGNITION_FLAGS}


def _display_order(entry: ScoreEntry):
    # student_ref only settles exact (score, submitted_at) ties so order never
    # depends on insertion order
    return (-entry.score, entry.submitted_at, entry.student_ref)


def _as_leaderboard_entry(entry: ScoreEntry) -> LeaderboardEntry:
    if isinstance(entry, LeaderboardEntry):
        return entry
    return LeaderboardEntry(**entry.model_dump())


def calculate_ranks(
    entries: Iterable[ScoreEntry],
    top_fraction: float = TOP_PERFORMER_FRACTION,
    top_minimum: int = TOP_PERFORMER_MINIMUM,
) -> List[LeaderboardEntry]:
    """Sort entries and assign competition ranks (100, 90, 90, 80 -> 1, 2, 2, 4).

    Equal scores share a rank; the earlier submission is listed first. Returns
    new entries with every recognition flag recomputed from scratch.
    """
    ordered = sorted((_as_leaderboard_entry(e) for e in entries), key=_display_order)

    ranked: List[LeaderboardEntry] = []
    for index, entry in enumerate(ordered):
        if index > 0 and entry.score == ordered[index - 1].score:
            rank = ranked[-1].rank
        else:
            rank = index + 1
        update = {flag: False for flag in _RECOGNITION_FLAGS}
        update["rank"] = rank
        ranked.append(entry.model_copy(update=update))

    _mark_special_recognitions(ranked, top_fraction, top_minimum)
    return ranked


def _mark_special_recognitions(
    ranked: List[LeaderboardEntry], top_fraction: float, top_minimum: int
) -> None:
    if not ranked:
        return

    top_count = max(top_minimum, math.ceil(len(ranked) * top_fraction))
    for entry in ranked[:top_count]:
        entry.is_top_performer = True

    top_score = ranked[0].score
    top_scorers = [entry for entry in ranked if entry.score == top_score]
    if len(top_scorers) > 1:
        # min() keeps the first of equal times, i.e. the earlier submission
        fastest = min(top_scorers, key=lambda entry: entry.time_spent)
        fastest.is_fastest_completion = True


def upsert_entry(
    leaderboard: Leaderboard,
    student_ref: str,
    entry_data: Union[ScoreEntry, Dict[str, Any]],
    passing_score: float = 60,
    top_fraction: float = TOP_PERFORMER_FRACTION,
    top_minimum: int = TOP_PERFORMER_MINIMUM,
    now: Optional[datetime] = None,
) -> Leaderboard:
    """Add or replace a student's entry and return the re-ranked leaderboard.

    A dict is merged over the student's existing entry, so partial updates
    keep the fields they do not mention. The input leaderboard is not
    modified.
    """
    if not student_ref:
        raise ValidationError("student_ref is required")
    if leaderboard.is_finalized:
        raise ValidationError(f"leaderboard for {leaderboard.assignment_ref} is finalized")

    if isinstance(entry_data, BaseModel):
        data = entry_data.model_dump(exclude=_RANK_FIELDS)
    else:
        data = {k: v for k, v in entry_data.items() if k not in _RANK_FIELDS}
    data["student_ref"] = student_ref

    entries = list(leaderboard.entries)
    existing = next((i for i, e in enumerate(entries) if e.student_ref == student_ref), None)
    if existing is not None:
        data = {**entries[existing].model_dump(exclude=_RANK_FIELDS), **data}

    try:
        entry = LeaderboardEntry.model_validate(data)
    except ModelValidationError as exc:
        raise ValidationError(f"invalid entry for {student_ref}: {exc}") from exc

    if existing is not None:
        entries[existing] = entry
    else:
        entries.append(entry)

    ranked = calculate_ranks(entries, top_fraction=top_fraction, top_minimum=top_minimum)
    stats = compute_stats(ranked, passing_score=passing_score)
    logger.info(
        "%s entry for %s on %s; %d participants",
        "Updated" if existing is not None else "Added",
        student_ref, leaderboard.assignment_ref, len(ranked),
    )
    return leaderboard.model_copy(
        update={"entries": ranked, "stats": stats, "last_updated": now or utcnow()}
    )


def get_student_rank(leaderboard: Leaderboard, student_ref: str) -> Optional[int]:
    for entry in leaderboard.entries:
        if entry.student_ref == student_ref:
            return entry.rank
    return None


def get_top_n(leaderboard: Leaderboard, n: int = 10) -> List[LeaderboardEntry]:
    return leaderboard.entries[:max(n, 0)]


def display_top(leaderboard: Leaderboard, n: int = 10) -> List[DisplayEntry]:
    """The first `n` entries (capped by max_display_entries) with hidden columns blanked.

    Anonymous boards keep the position so students can still find their place.
    """
    display = leaderboard.display_settings
    rows = []
    for position, entry in enumerate(get_top_n(leaderboard, min(n, display.max_display_entries)), 1):
        rows.append(DisplayEntry(
            position=position,
            student_ref=entry.student_ref if display.show_names else None,
            rank=entry.rank if display.show_ranks else None,
            score=entry.score if display.show_scores else None,
            percentage=entry.percentage if display.show_scores else None,
            grade=letter_grade(entry.percentage) if display.show_scores else None,
            performance=performance_level(entry.percentage) if display.show_scores else None,
            time_spent=format_duration(entry.time_spent),
            is_top_performer=entry.is_top_performer,
            is_fastest_completion=entry.is_fastest_completion,
            is_most_improved=entry.is_most_improved,
        ))
    return rows
