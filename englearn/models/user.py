"""
User model - learners referenced by attempts and progress
"""
from sqlalchemy import Column, String, TIMESTAMP, Uuid, func
from englearn.database import Base
import uuid


class User(Base):
    """
    Users table - accounts are issued by the auth service, only identity is kept here
    """
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username})>"
