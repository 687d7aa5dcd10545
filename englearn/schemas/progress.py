"""
Pydantic schemas for progress updates, progress events and rollup responses
"""
from pydantic import BaseModel, Field
from typing import Annotated, List, Optional, Union, Literal
from uuid import UUID
from datetime import datetime


class ProgressUpdate(BaseModel):
    """Fields merged into the progress rollup; all optional"""
    percentage: Optional[float] = Field(None, description="Clamped to 0-100")
    points: Optional[int] = Field(None, description="Points to add; negative values add nothing")
    time_spent: Optional[int] = Field(None, description="Seconds to add; negative values add nothing")


class QuizCompleted(BaseModel):
    type: Literal["quiz_completed"] = "quiz_completed"
    quiz_id: UUID
    score: int = Field(..., ge=0, le=100)
    passed: bool


class VideoWatched(BaseModel):
    type: Literal["video_watched"] = "video_watched"
    video_id: UUID
    watch_time: int = Field(..., ge=0, description="Seconds watched")


class TopicCompleted(BaseModel):
    type: Literal["topic_completed"] = "topic_completed"
    topic_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    score: int = Field(0, ge=0)


ProgressEvent = Annotated[
    Union[QuizCompleted, VideoWatched, TopicCompleted],
    Field(discriminator="type"),
]


class ProgressEventRequest(BaseModel):
    """Envelope for a single progress event"""
    user_id: UUID
    module_id: UUID
    event: ProgressEvent


class ProgressUpdateRequest(ProgressUpdate):
    """Schema for updating module progress directly"""
    user_id: UUID
    module_id: UUID


class TopicCompletionRequest(BaseModel):
    """Schema for marking a topic as completed"""
    user_id: UUID
    module_id: UUID
    topic_id: str = Field(..., min_length=1)
    topic_title: str = Field(..., min_length=1)
    score: int = Field(0, ge=0)


class VideoWatchRequest(BaseModel):
    """Schema for recording watched video time"""
    user_id: UUID
    module_id: UUID
    video_id: UUID
    watch_time: int = Field(..., ge=0)


class CompletedTopic(BaseModel):
    topic_id: str
    topic_title: str
    completed_at: datetime
    score: int


class QuizSummary(BaseModel):
    quiz_id: UUID
    best_score: int
    total_attempts: int
    last_attempt: datetime
    passed: bool = False


class VideoProgress(BaseModel):
    video_id: UUID
    watched: bool
    watch_time: int
    completed_at: Optional[datetime] = None


class UserProgressResponse(BaseModel):
    """Progress rollup for one module"""
    id: UUID
    user_id: UUID
    module_id: UUID
    percentage: float
    status: str
    time_spent: int
    points: int
    last_activity: Optional[datetime] = None
    completed_topics: List[CompletedTopic]
    quiz_attempts: List[QuizSummary]
    video_progress: List[VideoProgress]

    class Config:
        from_attributes = True


class ModuleProgressResponse(BaseModel):
    """Progress for a module, None if the user never touched it"""
    progress: Optional[UserProgressResponse] = None


class Pagination(BaseModel):
    current: int
    pages: int
    total: int
    count: int


class ProgressResetResponse(BaseModel):
    user_id: UUID
    deleted: int
