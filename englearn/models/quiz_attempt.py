"""
QuizAttempt model - append-only history of scored submissions
"""
from sqlalchemy import (
    Column, String, Integer, Boolean, TIMESTAMP, ForeignKey, JSON, Uuid,
    UniqueConstraint, CheckConstraint, Index, event, func,
)
from sqlalchemy.dialects.postgresql import JSONB
from englearn.database import Base
from englearn.exceptions import ValidationError
import uuid


class QuizAttempt(Base):
    """
    Quiz attempts table - one row per (user, quiz, attempt number), never updated
    """
    __tablename__ = "quiz_attempts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    quiz_id = Column(Uuid, ForeignKey("quizzes.id"), nullable=False)
    module_id = Column(Uuid, ForeignKey("modules.id"), nullable=False)
    attempt_number = Column(Integer, nullable=False)
    answers = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)  # ordered by question_index
    score = Column(Integer, nullable=False)  # raw percentage
    adjusted_score = Column(Integer, nullable=False)  # after re-attempt cap
    points_earned = Column(Integer, nullable=False)
    passed = Column(Boolean, nullable=False)
    time_spent = Column(Integer, nullable=False, default=0)  # seconds
    status = Column(String(20), nullable=False, default="completed")  # completed | in-progress | abandoned
    completed_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "quiz_id", "attempt_number", name="uq_quiz_attempt_number"),
        CheckConstraint("attempt_number >= 1", name="ck_quiz_attempts_attempt_number_positive"),
        CheckConstraint("score BETWEEN 0 AND 100", name="ck_quiz_attempts_score_range"),
        CheckConstraint("adjusted_score BETWEEN 0 AND 100", name="ck_quiz_attempts_adjusted_score_range"),
        CheckConstraint("time_spent >= 0", name="ck_quiz_attempts_time_spent_non_negative"),
        Index("idx_quiz_attempts_user_quiz", "user_id", "quiz_id"),
        Index("idx_quiz_attempts_quiz_completed", "quiz_id", "completed_at"),
        Index("idx_quiz_attempts_user_module", "user_id", "module_id"),
    )

    def __repr__(self):
        return (
            f"<QuizAttempt(user_id={self.user_id}, quiz_id={self.quiz_id}, "
            f"attempt={self.attempt_number}, score={self.score}, adjusted={self.adjusted_score})>"
        )


@event.listens_for(QuizAttempt, "before_update")
def _reject_attempt_update(mapper, connection, target):
    raise ValidationError(f"Quiz attempt {target.id} is immutable once recorded")
