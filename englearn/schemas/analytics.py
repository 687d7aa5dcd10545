"""
Pydantic schemas for progress summary and leaderboard endpoints
"""
from pydantic import BaseModel
from typing import List
from uuid import UUID

from englearn.schemas.progress import UserProgressResponse, Pagination


class StatusSummary(BaseModel):
    """Aggregated progress for one status bucket"""
    status: str
    count: int
    total_points: int
    total_time_spent: int


class ProgressSummary(BaseModel):
    """Per-status rollup of a user's module progress"""
    user_id: UUID
    summary: List[StatusSummary]


class ProgressListResponse(BaseModel):
    """Paginated module progress plus per-status summary"""
    progress: List[UserProgressResponse]
    summary: List[StatusSummary]
    pagination: Pagination


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: UUID
    username: str
    total_points: int
    completed_modules: int


class LeaderboardResponse(BaseModel):
    entries: List[LeaderboardEntry]
