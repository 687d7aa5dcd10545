"""
Progress summary and leaderboard API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional
import logging

from englearn.database import get_db
from englearn.exceptions import NotFoundError
from englearn.models import User
from englearn.schemas.analytics import (
    ProgressSummary, StatusSummary, LeaderboardResponse, LeaderboardEntry,
)
from englearn.services.analytics_service import analytics_service

router = APIRouter(prefix="/api", tags=["analytics"])
logger = logging.getLogger(__name__)


@router.get("/users/{user_id}/progress-summary", response_model=ProgressSummary)
async def get_progress_summary(
    user_id: UUID,
    db: Session = Depends(get_db)
):
    """
    Per-status totals for a user

    Returns, for each status bucket:
    - Number of modules
    - Total points
    - Total time spent
    """

    if not db.query(User).filter(User.id == user_id).first():
        raise NotFoundError("User not found")

    logger.info(f"Fetching progress summary for user {user_id}")

    summary = analytics_service.get_progress_summary(db, user_id)

    return ProgressSummary(
        user_id=user_id,
        summary=[StatusSummary(**s) for s in summary]
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """Users ranked by progress points"""

    entries = analytics_service.get_leaderboard(db, limit)

    return LeaderboardResponse(entries=[LeaderboardEntry(**e) for e in entries])
