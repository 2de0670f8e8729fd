from fastapi import APIRouter, HTTPException, Depends, Query, status
from typing import List, Optional

from classrank.core.exceptions import ConcurrentModificationError, NotFoundError, ValidationError
from classrank.models.leaderboard import DisplayEntry, DisplaySettings, Leaderboard, ScoreEntry, Stats
from classrank.models.submission import Submission
from classrank.services.gamification_service import GamificationService, get_gamification_service

router = APIRouter()

@router.post("/stats", response_model=Stats)
async def compute_stats(
    entries: List[ScoreEntry],
    enrolled_count: Optional[int] = Query(default=None, ge=1),
    service: GamificationService = Depends(get_gamification_service),
):
    """Statistics for an arbitrary entry set"""
    return service.compute_stats(entries, enrolled_count)

@router.post("/{assignment_id}/submissions", response_model=Leaderboard)
async def record_submission(
    assignment_id: str,
    submission: Submission,
    service: GamificationService = Depends(get_gamification_service),
):
    """Add or update a student's entry from a finalized submission"""
    try:
        return await service.record_submission(assignment_id, submission)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except ConcurrentModificationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

@router.get("/{assignment_id}", response_model=Leaderboard)
async def get_leaderboard(
    assignment_id: str,
    service: GamificationService = Depends(get_gamification_service),
):
    try:
        return await service.get_leaderboard(assignment_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

@router.get("/{assignment_id}/top", response_model=List[DisplayEntry])
async def get_top_entries(
    assignment_id: str,
    limit: int = Query(default=10, ge=1),
    service: GamificationService = Depends(get_gamification_service),
):
    """First N entries in rank order, as the board's display settings allow"""
    try:
        return await service.get_top(assignment_id, limit)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

@router.get("/{assignment_id}/students/{student_id}/rank")
async def get_student_rank(
    assignment_id: str,
    student_id: str,
    service: GamificationService = Depends(get_gamification_service),
):
    try:
        rank = await service.get_student_rank(assignment_id, student_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return {"assignment_ref": assignment_id, "student_ref": student_id, "rank": rank}

@router.post("/{assignment_id}/insights", response_model=Leaderboard)
async def refresh_insights(
    assignment_id: str,
    previous_assignment_id: Optional[str] = None,
    service: GamificationService = Depends(get_gamification_service),
):
    """Recompute top performers, struggling students and most improved"""
    try:
        return await service.refresh_insights(assignment_id, previous_assignment_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ConcurrentModificationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

@router.put("/{assignment_id}/settings", response_model=Leaderboard)
async def update_display_settings(
    assignment_id: str,
    display: DisplaySettings,
    service: GamificationService = Depends(get_gamification_service),
):
    """Change what students see on the board"""
    try:
        return await service.update_display_settings(assignment_id, display)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ConcurrentModificationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
