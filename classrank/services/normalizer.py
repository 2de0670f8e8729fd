"""Turns a finalized submission into the ScoreEntry the leaderboard ranks."""

import logging

from classrank.core.exceptions import ValidationError
from classrank.models.leaderboard import ScoreEntry
from classrank.models.submission import Submission, LetterGrade, PerformanceLevel

logger = logging.getLogger(__name__)

_GRADE_CUTS = [
    (90, LetterGrade.A),
    (80, LetterGrade.B),
    (70, LetterGrade.C),
    (60, LetterGrade.D),
]

_LEVEL_CUTS = [
    (90, PerformanceLevel.EXCELLENT),
    (80, PerformanceLevel.GOOD),
    (70, PerformanceLevel.AVERAGE),
    (60, PerformanceLevel.NEEDS_IMPROVEMENT),
]


def normalize(submission: Submission) -> ScoreEntry:
    """Build a ScoreEntry from a raw submission.

    The score is the sum of answer points (or the submission's own score when
    it has no answers), reduced by the late penalty when the submission is
    late. Raises ValidationError for missing identifiers, a negative max
    score, or a zero max score with points scored or available.
    """
    if not submission.student_ref:
        raise ValidationError("submission is missing student_ref")
    if submission.submitted_at is None:
        raise ValidationError(f"submission for {submission.student_ref} has no submitted_at")

    answers = submission.answers
    answer_max_total = sum(answer.max_points for answer in answers)
    max_score = submission.max_score if submission.max_score is not None else answer_max_total

    if answers:
        score = sum(answer.points for answer in answers)
    else:
        score = submission.score

    if max_score < 0:
        raise ValidationError(f"max_score {max_score} for {submission.student_ref} is negative")
    if max_score == 0 and (score > 0 or answer_max_total > 0):
        raise ValidationError(
            f"max_score 0 is inconsistent with {score} points scored out of {answer_max_total}"
        )

    if submission.is_late and submission.late_penalty > 0:
        penalty = score * submission.late_penalty / 100
        score = max(0, score - penalty)
        logger.debug(
            "Applied %.1f%% late penalty to %s: -%.2f points",
            submission.late_penalty, submission.student_ref, penalty,
        )

    return ScoreEntry(
        student_ref=submission.student_ref,
        score=score,
        max_score=max_score,
        submitted_at=submission.submitted_at,
        time_spent=_time_spent(submission),
        correct_answers=sum(1 for answer in answers if answer.is_correct),
        total_questions=len(answers),
        submission_ref=submission.submission_ref,
    )


def _time_spent(submission: Submission) -> int:
    if submission.time_spent > 0:
        return submission.time_spent
    if submission.started_at is not None and submission.submitted_at is not None:
        elapsed = int((submission.submitted_at - submission.started_at).total_seconds())
        if elapsed > 0:
            return elapsed
    return sum(answer.time_spent for answer in submission.answers)


def letter_grade(percentage: float) -> LetterGrade:
    for cut, grade in _GRADE_CUTS:
        if percentage >= cut:
            return grade
    return LetterGrade.F


def performance_level(percentage: float) -> PerformanceLevel:
    for cut, level in _LEVEL_CUTS:
        if percentage >= cut:
            return level
    return PerformanceLevel.POOR


def format_duration(seconds: int) -> str:
    """Human readable time spent, e.g. '1h 2m 3s'."""
    hours, remainder = divmod(max(int(seconds), 0), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
