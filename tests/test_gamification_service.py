from datetime import datetime, timedelta, timezone

import pytest

from classrank.core.config import Settings
from classrank.core.exceptions import ConcurrentModificationError, NotFoundError, ValidationError
from classrank.models.achievement import Badge, BadgeRequirement, Milestone, MilestoneStatus
from classrank.models.leaderboard import DisplaySettings
from classrank.models.submission import Answer, Submission
from classrank.services.gamification_service import GamificationService
from classrank.services.store import SupabaseStore

SUBMITTED = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def _service(fake_db, **config):
    return GamificationService(SupabaseStore(fake_db), Settings(**config))


def _submission(student, points, minutes=0, assignment="hw1"):
    return Submission(
        student_ref=student,
        assignment_ref=assignment,
        answers=[Answer(points=points, max_points=100, is_correct=points == 100)],
        submitted_at=SUBMITTED + timedelta(minutes=minutes),
        time_spent=120,
    )


def _badge_row(badge_id, **requirements):
    badge = Badge(id=badge_id, name=badge_id.title(), requirements=BadgeRequirement(**requirements))
    return badge.model_dump(mode="json")


@pytest.mark.asyncio
async def test_record_submission_creates_then_updates(fake_db):
    service = _service(fake_db)

    board = await service.record_submission("hw1", _submission("a", 70))
    assert board.version == 1
    board = await service.record_submission("hw1", _submission("b", 90, minutes=1))
    assert board.version == 2
    assert [e.student_ref for e in board.entries] == ["b", "a"]

    stored = await service.get_leaderboard("hw1")
    assert stored.stats.total_participants == 2
    assert stored.stats.average_score == 80
    assert await service.get_student_rank("hw1", "a") == 2


@pytest.mark.asyncio
async def test_record_submission_rejects_other_assignment(fake_db):
    with pytest.raises(ValidationError):
        await _service(fake_db).record_submission("hw2", _submission("a", 70, assignment="hw1"))


@pytest.mark.asyncio
async def test_concurrent_writer_triggers_retry(fake_db):
    service = _service(fake_db)
    await service.record_submission("hw1", _submission("a", 70))

    def rival_writer(rows):
        rows[0]["version"] += 1

    fake_db.before_next_update("leaderboards", rival_writer)
    board = await service.record_submission("hw1", _submission("b", 80))

    assert board.version == 3
    assert len(board.entries) == 2


@pytest.mark.asyncio
async def test_retries_are_bounded(fake_db):
    service = _service(fake_db, max_mutation_retries=1)
    await service.record_submission("hw1", _submission("a", 70))
    fake_db.before_next_update("leaderboards", lambda rows: rows[0].update(version=99))

    with pytest.raises(ConcurrentModificationError):
        await service.record_submission("hw1", _submission("b", 80))


@pytest.mark.asyncio
async def test_missing_leaderboard(fake_db):
    service = _service(fake_db)
    with pytest.raises(NotFoundError):
        await service.get_leaderboard("nope")
    await service.record_submission("hw1", _submission("a", 70))
    with pytest.raises(NotFoundError):
        await service.get_student_rank("hw1", "ghost")


@pytest.mark.asyncio
async def test_get_top_respects_display_limit(fake_db):
    service = _service(fake_db)
    for i in range(4):
        await service.record_submission("hw1", _submission(f"s{i}", 50 + i))
    top = await service.get_top("hw1", limit=2)
    assert [e.student_ref for e in top] == ["s3", "s2"]


@pytest.mark.asyncio
async def test_refresh_insights_with_previous_assignment(fake_db):
    service = _service(fake_db)
    await service.record_submission("hw1", _submission("a", 50, assignment="hw1"))
    await service.record_submission("hw1", _submission("b", 80, assignment="hw1"))
    await service.record_submission("hw2", _submission("a", 90, assignment="hw2"))
    await service.record_submission("hw2", _submission("b", 85, assignment="hw2"))

    board = await service.refresh_insights("hw2", previous_assignment_ref="hw1")
    assert [m.student_ref for m in board.insights.most_improved] == ["a", "b"]
    assert board.insights.most_improved[0].improvement == 40
    assert {e.student_ref for e in board.entries if e.is_most_improved} == {"a"}


@pytest.mark.asyncio
async def test_award_badge_twice_counts_once(fake_db):
    fake_db.seed("badges", _badge_row("helper"))
    service = _service(fake_db)

    first = await service.award_badge("s1", "helper")
    second = await service.award_badge("s1", "helper")

    assert first.awarded is True
    assert second.awarded is False
    assert second.milestone.id == first.milestone.id
    assert len(fake_db.tables["milestones"]) == 1
    assert fake_db.tables["badges"][0]["stats"]["total_earned"] == 1
    assert fake_db.tables["badges"][0]["stats"]["students_earned"] == ["s1"]


@pytest.mark.asyncio
async def test_award_unknown_badge(fake_db):
    with pytest.raises(NotFoundError):
        await _service(fake_db).award_badge("s1", "ghost")


@pytest.mark.asyncio
async def test_check_badge_eligibility_awards_qualifying_badges(fake_db):
    fake_db.seed(
        "badges",
        _badge_row("scholar", minimum_score=80),
        _badge_row("marathon", consecutive_days=30),
    )
    fake_db.seed("students", {"student_ref": "s1", "average_score": 85, "streak": 3, "version": 0})
    service = _service(fake_db)

    awards = await service.check_badge_eligibility("s1")
    assert [a.badge.id for a in awards] == ["scholar"]
    assert await service.check_badge_eligibility("s1") == []

    progress = await service.get_badge_progress("s1")
    assert [(p.badge_id, p.progress.percentage) for p in progress] == [("marathon", 10)]


@pytest.mark.asyncio
async def test_touch_streak_persists(fake_db):
    fake_db.seed("students", {
        "student_ref": "s1",
        "streak": 2,
        "longest_streak": 2,
        "streak_last_updated": "2024-03-01T08:00:00+00:00",
        "version": 4,
    })
    service = _service(fake_db)

    state = await service.touch_streak("s1", datetime(2024, 3, 2, 9, 0, tzinfo=timezone.utc))
    assert state.streak == 3
    assert state.version == 5
    assert fake_db.tables["students"][0]["streak"] == 3

    with pytest.raises(NotFoundError):
        await service.touch_streak("ghost")


@pytest.mark.asyncio
async def test_daily_streak_earns_consecutive_days_badge(fake_db):
    fake_db.seed("badges", _badge_row("weekly", consecutive_days=7))
    fake_db.seed("students", {"student_ref": "s1", "version": 0})
    service = _service(fake_db)

    start = datetime(2024, 3, 1, 18, 0, tzinfo=timezone.utc)
    for day in range(6):
        await service.touch_streak("s1", start + timedelta(days=day))
    assert await service.check_badge_eligibility("s1") == []

    state = await service.touch_streak("s1", start + timedelta(days=6))
    assert state.streak == 7
    awards = await service.check_badge_eligibility("s1")
    assert [a.badge.id for a in awards] == ["weekly"]


def _rival_milestone(badge_id):
    return Milestone(student_ref="s1", badge_id=badge_id, status=MilestoneStatus.EARNED, earned_at=SUBMITTED)


@pytest.mark.asyncio
async def test_award_after_losing_badge_update_counts_once(fake_db):
    fake_db.seed("badges", _badge_row("helper"))
    rival = _rival_milestone("helper")

    def rival_award(rows):
        rows[0]["version"] += 1
        rows[0]["stats"] = {"total_earned": 1, "students_earned": ["s1"]}
        fake_db.seed("milestones", rival.model_dump(mode="json"))

    fake_db.before_next_update("badges", rival_award)
    award = await _service(fake_db).award_badge("s1", "helper")

    assert award.awarded is False
    assert award.milestone.id == rival.id
    assert len(fake_db.tables["milestones"]) == 1
    assert fake_db.tables["badges"][0]["stats"]["total_earned"] == 1
    assert fake_db.tables["badges"][0]["stats"]["students_earned"] == ["s1"]


@pytest.mark.asyncio
async def test_award_after_duplicate_milestone_insert_counts_once(fake_db):
    fake_db.seed("badges", _badge_row("helper"))
    rival = _rival_milestone("helper")

    # The rival's milestone lands between our badge save and our insert
    fake_db.before_next_update("badges", lambda rows: fake_db.seed("milestones", rival.model_dump(mode="json")))
    award = await _service(fake_db).award_badge("s1", "helper")

    assert award.awarded is False
    assert award.milestone.id == rival.id
    assert len(fake_db.tables["milestones"]) == 1
    assert fake_db.tables["badges"][0]["stats"]["total_earned"] == 1
    assert fake_db.tables["badges"][0]["stats"]["students_earned"] == ["s1"]


@pytest.mark.asyncio
async def test_get_top_honors_display_settings(fake_db):
    service = _service(fake_db)
    await service.record_submission("hw1", _submission("a", 95))
    await service.record_submission("hw1", _submission("b", 72, minutes=1))

    await service.update_display_settings("hw1", DisplaySettings(show_names=False, show_scores=False))
    top = await service.get_top("hw1")
    assert [(e.position, e.student_ref, e.rank, e.score) for e in top] == [(1, None, 1, None), (2, None, 2, None)]
    assert top[0].time_spent == "2m 0s"

    await service.update_display_settings("hw1", DisplaySettings(is_visible=False))
    with pytest.raises(NotFoundError):
        await service.get_top("hw1")
    assert len((await service.get_leaderboard("hw1")).entries) == 2


@pytest.mark.asyncio
async def test_hidden_badges_are_left_out_of_progress(fake_db):
    secret = Badge(id="secret", name="Secret", is_hidden=True, requirements=BadgeRequirement(minimum_assignments=10))
    fake_db.seed("badges", _badge_row("regular", minimum_assignments=10), secret.model_dump(mode="json"))
    fake_db.seed("students", {"student_ref": "s1", "completed_assignments": 4, "version": 0})

    progress = await _service(fake_db).get_badge_progress("s1")
    assert [(p.badge_id, p.progress.percentage) for p in progress] == [("regular", 40)]


@pytest.mark.asyncio
async def test_mark_milestone_notified(fake_db):
    fake_db.seed("badges", _badge_row("helper"))
    service = _service(fake_db)
    award = await service.award_badge("s1", "helper")
    when = datetime(2024, 3, 2, 8, 0, tzinfo=timezone.utc)

    notified = await service.mark_milestone_notified("s1", award.milestone.id, when)
    assert notified.is_notified is True
    assert notified.notified_at == when
    assert fake_db.tables["milestones"][0]["is_notified"] is True

    with pytest.raises(NotFoundError):
        await service.mark_milestone_notified("s2", award.milestone.id)
    with pytest.raises(NotFoundError):
        await service.mark_milestone_notified("s1", "ghost")
