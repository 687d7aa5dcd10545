"""
UserProgress model - one progress rollup per (user, module)
"""
from sqlalchemy import (
    Column, String, Integer, Float, TIMESTAMP, ForeignKey, JSON, Uuid,
    UniqueConstraint, CheckConstraint, Index, func,
)
from sqlalchemy.dialects.postgresql import JSONB
from englearn.database import Base
import uuid


class UserProgress(Base):
    """
    User progress table - rollup of quiz, video and topic events for a module.

    Nested lists are stored as JSON and always replaced, never mutated in place,
    so every change bumps ``version_id``. A concurrent writer holding an older
    version fails its UPDATE with ``StaleDataError``.
    """
    __tablename__ = "user_progress"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    module_id = Column(Uuid, ForeignKey("modules.id"), nullable=False)

    percentage = Column(Float, nullable=False, default=0.0)  # 0.00 to 100.00
    status = Column(String(20), nullable=False, default="not-started")  # not-started | in-progress | completed
    time_spent = Column(Integer, nullable=False, default=0)  # seconds
    points = Column(Integer, nullable=False, default=0)
    last_activity = Column(TIMESTAMP(timezone=True), server_default=func.now())

    completed_topics = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)
    quiz_attempts = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)
    video_progress = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)

    version_id = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_user_module_progress"),
        CheckConstraint("percentage >= 0 AND percentage <= 100", name="ck_user_progress_percentage_range"),
        CheckConstraint("time_spent >= 0", name="ck_user_progress_time_spent_non_negative"),
        CheckConstraint("points >= 0", name="ck_user_progress_points_non_negative"),
        Index("idx_user_progress_user_status", "user_id", "status"),
        Index("idx_user_progress_last_activity", "last_activity"),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return (
            f"<UserProgress(user_id={self.user_id}, module_id={self.module_id}, "
            f"percentage={self.percentage}, status={self.status})>"
        )
