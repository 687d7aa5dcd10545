"""
Module model - a course unit grouping topics, videos and quizzes
"""
from sqlalchemy import Column, String, Integer, Boolean, Text, TIMESTAMP, JSON, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from englearn.database import Base
import uuid


class Module(Base):
    """
    Modules table - total_topics is the divisor for topic-completion percentage
    """
    __tablename__ = "modules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    level = Column(String(20), default="beginner")  # beginner | intermediate | advanced
    topics = Column(JSON().with_variant(JSONB, "postgresql"), default=list)  # [{"title", "description", "order"}]
    total_topics = Column(Integer, nullable=True)
    is_published = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Module(id={self.id}, title={self.title})>"
