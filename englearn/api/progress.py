"""
Module progress API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional
import logging
import math

from englearn.database import get_db
from englearn.schemas.analytics import ProgressListResponse, StatusSummary
from englearn.schemas.progress import (
    ProgressEventRequest, ProgressUpdate, ProgressUpdateRequest, TopicCompletionRequest,
    VideoWatchRequest, UserProgressResponse, ModuleProgressResponse, Pagination,
    ProgressResetResponse,
)
from englearn.services.analytics_service import analytics_service
from englearn.services.progress_service import progress_service

router = APIRouter(prefix="/api/progress", tags=["progress"])
logger = logging.getLogger(__name__)


@router.get("", response_model=ProgressListResponse)
async def list_progress(
    user_id: UUID,
    status: Optional[str] = Query(None, pattern="^(not-started|in-progress|completed)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """Paginated module progress with a per-status summary"""

    rows, total = progress_service.list_user_progress(db, user_id, status=status, page=page, limit=limit)
    summary = analytics_service.get_progress_summary(db, user_id)

    return ProgressListResponse(
        progress=[UserProgressResponse.model_validate(p) for p in rows],
        summary=[StatusSummary(**s) for s in summary],
        pagination=Pagination(
            current=page,
            pages=math.ceil(total / limit),
            total=total,
            count=len(rows),
        ),
    )


@router.post("", response_model=UserProgressResponse)
async def update_progress(request: ProgressUpdateRequest, db: Session = Depends(get_db)):
    """
    Merge percentage, points and time spent into a module rollup

    The rollup is created on first use.
    """

    progress_service.get_or_create_progress(db, request.user_id, request.module_id)
    progress = progress_service.update_progress(
        db,
        request.user_id,
        request.module_id,
        ProgressUpdate(
            percentage=request.percentage,
            points=request.points,
            time_spent=request.time_spent,
        ),
    )

    return UserProgressResponse.model_validate(progress)


@router.get("/module/{module_id}", response_model=ModuleProgressResponse)
async def get_module_progress(module_id: UUID, user_id: UUID, db: Session = Depends(get_db)):
    """Progress for a module, null when the user has not started it"""

    progress = progress_service.get_progress(db, user_id, module_id)
    if not progress:
        return ModuleProgressResponse(progress=None)

    return ModuleProgressResponse(progress=UserProgressResponse.model_validate(progress))


@router.post("/topic", response_model=UserProgressResponse)
async def complete_topic(request: TopicCompletionRequest, db: Session = Depends(get_db)):
    """Mark a topic as completed and recompute module percentage"""

    progress_service.get_or_create_progress(db, request.user_id, request.module_id)
    progress = progress_service.add_completed_topic(
        db,
        request.user_id,
        request.module_id,
        request.topic_id,
        request.topic_title,
        request.score,
    )

    return UserProgressResponse.model_validate(progress)


@router.post("/video", response_model=UserProgressResponse)
async def record_video_watch(request: VideoWatchRequest, db: Session = Depends(get_db)):
    """Record watched video time"""

    progress_service.get_or_create_progress(db, request.user_id, request.module_id)
    progress = progress_service.record_video_watch(
        db,
        request.user_id,
        request.module_id,
        request.video_id,
        request.watch_time,
    )

    return UserProgressResponse.model_validate(progress)


@router.post("/events", response_model=UserProgressResponse)
async def apply_progress_event(request: ProgressEventRequest, db: Session = Depends(get_db)):
    """Apply a quiz_completed, video_watched or topic_completed event"""

    logger.info(f"Progress event {request.event.type} for user {request.user_id}, module {request.module_id}")

    progress_service.get_or_create_progress(db, request.user_id, request.module_id)
    progress = progress_service.apply_progress_event(db, request.user_id, request.module_id, request.event)

    return UserProgressResponse.model_validate(progress)


@router.delete("/users/{user_id}", response_model=ProgressResetResponse)
async def reset_progress(user_id: UUID, db: Session = Depends(get_db)):
    """Account reset: delete every module rollup of the user"""

    deleted = progress_service.reset_progress(db, user_id)

    return ProgressResetResponse(user_id=user_id, deleted=deleted)
