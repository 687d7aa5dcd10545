"""
Database models package
"""
from englearn.models.user import User
from englearn.models.module import Module
from englearn.models.quiz import Quiz
from englearn.models.quiz_attempt import QuizAttempt
from englearn.models.user_progress import UserProgress

__all__ = ["User", "Module", "Quiz", "QuizAttempt", "UserProgress"]
