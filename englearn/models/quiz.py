"""
Quiz model - question sets attached to a module
"""
from sqlalchemy import Column, String, Integer, Boolean, TIMESTAMP, ForeignKey, JSON, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from englearn.config import settings
from englearn.database import Base
import uuid


class Quiz(Base):
    """
    Quizzes table - questions are tagged variants (basic | scenario)
    """
    __tablename__ = "quizzes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id = Column(Uuid, ForeignKey("modules.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    questions = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    passing_score = Column(Integer, nullable=False, default=lambda: settings.DEFAULT_PASSING_SCORE)
    is_published = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Quiz(id={self.id}, module_id={self.module_id}, title={self.title})>"
