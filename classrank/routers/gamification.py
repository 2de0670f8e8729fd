from fastapi import APIRouter, HTTPException, Depends, status
from typing import List, Optional
from datetime import datetime

from classrank.core.exceptions import ConcurrentModificationError, NotFoundError, ValidationError
from classrank.models.achievement import (
    AwardRequest, BadgeAward, BadgeProgress, EligibilityRequest, Milestone,
)
from classrank.models.student import StreakState
from classrank.services.gamification_service import GamificationService, get_gamification_service

badges_router = APIRouter()
students_router = APIRouter()

@badges_router.post("/evaluate")
async def evaluate_badge(
    request: EligibilityRequest,
    service: GamificationService = Depends(get_gamification_service),
):
    """Check a profile against a requirement without awarding anything"""
    return {"eligible": service.evaluate(request.profile, request.requirement)}

@badges_router.post("/{badge_id}/award", response_model=BadgeAward)
async def award_badge(
    badge_id: str,
    request: AwardRequest,
    service: GamificationService = Depends(get_gamification_service),
):
    """Award a badge; repeating the call returns the original milestone"""
    try:
        return await service.award_badge(
            request.student_ref, badge_id, request.trigger_event, request.trigger_data
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except ConcurrentModificationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

@badges_router.post("/check/{student_id}", response_model=List[BadgeAward])
async def check_badges(
    student_id: str,
    service: GamificationService = Depends(get_gamification_service),
):
    """Award every active badge the student qualifies for"""
    try:
        return await service.check_badge_eligibility(student_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ConcurrentModificationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

@badges_router.get("/progress/{student_id}", response_model=List[BadgeProgress])
async def get_badge_progress(
    student_id: str,
    service: GamificationService = Depends(get_gamification_service),
):
    try:
        return await service.get_badge_progress(student_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

@students_router.get("/{student_id}/milestones", response_model=List[Milestone])
async def get_milestones(
    student_id: str,
    service: GamificationService = Depends(get_gamification_service),
):
    return await service.get_student_milestones(student_id)

@students_router.post("/{student_id}/milestones/{milestone_id}/notified", response_model=Milestone)
async def mark_notified(
    student_id: str,
    milestone_id: str,
    service: GamificationService = Depends(get_gamification_service),
):
    """Record that the student has been told about a milestone"""
    try:
        return await service.mark_milestone_notified(student_id, milestone_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

@students_router.post("/{student_id}/streak", response_model=StreakState)
async def touch_streak(
    student_id: str,
    at: Optional[datetime] = None,
    service: GamificationService = Depends(get_gamification_service),
):
    """Record a qualifying activity for the student's streak"""
    try:
        return await service.touch_streak(student_id, at)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ConcurrentModificationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
