"""
Analytics service for progress summaries and the points leaderboard
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from englearn.config import settings
from englearn.models import User, UserProgress
from englearn.services.grading_service import STATUS_COMPLETED

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Service for read-back views over the progress rollups"""

    def get_progress_summary(self, db: Session, user_id: UUID) -> List[Dict[str, Any]]:
        """
        Per-status totals of a user's module progress

        Args:
            db: Database session
            user_id: User UUID, bound as a typed parameter

        Returns:
            List of {status, count, total_points, total_time_spent}
        """
        rows = db.query(
            UserProgress.status,
            func.count(UserProgress.id),
            func.coalesce(func.sum(UserProgress.points), 0),
            func.coalesce(func.sum(UserProgress.time_spent), 0),
        ).filter(
            UserProgress.user_id == user_id
        ).group_by(UserProgress.status).order_by(UserProgress.status).all()

        return [
            {
                "status": status,
                "count": count,
                "total_points": int(total_points),
                "total_time_spent": int(total_time_spent),
            }
            for status, count, total_points, total_time_spent in rows
        ]

    def get_leaderboard(self, db: Session, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Users ranked by total progress points across modules

        Ties are broken by completed modules, then username.
        """
        limit = limit or settings.LEADERBOARD_SIZE

        total_points = func.coalesce(func.sum(UserProgress.points), 0).label("total_points")
        completed_modules = func.coalesce(
            func.sum(case((UserProgress.status == STATUS_COMPLETED, 1), else_=0)), 0
        ).label("completed_modules")

        rows = db.query(
            User.id,
            User.username,
            total_points,
            completed_modules,
        ).join(
            UserProgress, UserProgress.user_id == User.id
        ).group_by(
            User.id, User.username
        ).order_by(
            total_points.desc(), completed_modules.desc(), User.username.asc()
        ).limit(limit).all()

        leaderboard = [
            {
                "rank": rank,
                "user_id": user_id,
                "username": username,
                "total_points": int(points),
                "completed_modules": int(completed),
            }
            for rank, (user_id, username, points, completed) in enumerate(rows, start=1)
        ]

        logger.info(f"Leaderboard computed with {len(leaderboard)} entries")

        return leaderboard


# Global instance
analytics_service = AnalyticsService()
