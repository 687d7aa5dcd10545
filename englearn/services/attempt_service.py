"""
Quiz attempt recorder
Scores a submission, applies the re-attempt policy and appends the attempt
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from englearn.config import settings
from englearn.exceptions import (
    AttemptNotAllowedError, ConflictError, NotFoundError, ValidationError,
)
from englearn.models import Module, Quiz, QuizAttempt, User, UserProgress
from englearn.schemas.quiz import AnswerSubmission
from englearn.services.grading_service import grading_service
from englearn.services.progress_service import progress_service
from englearn.utils.storage import run_with_conflict_retry, run_with_storage_retry

logger = logging.getLogger(__name__)


class AttemptService:
    """Service for recording and reading quiz attempts"""

    def record_quiz_attempt(
        self,
        db: Session,
        user_id: UUID,
        quiz_id: UUID,
        module_id: UUID,
        answers: Sequence[AnswerSubmission],
        time_spent: int = 0
    ) -> QuizAttempt:
        """
        Score a submission and persist it as a new immutable attempt

        The attempt number is always computed here from the stored history.

        Raises:
            ValidationError: empty answers, bad question index, quiz/module mismatch
            NotFoundError: unknown user, quiz or module
            AttemptNotAllowedError: quiz closed for this user
            ConflictError: a concurrent submission took the same attempt number
        """
        if not answers:
            raise ValidationError("At least one answer is required")

        def unit_of_work() -> QuizAttempt:
            attempt = self._build_attempt(db, user_id, quiz_id, module_id, answers, time_spent)
            db.add(attempt)
            self._commit(db, attempt)
            db.refresh(attempt)
            return attempt

        attempt = run_with_storage_retry(db, unit_of_work, f"recording attempt on quiz {quiz_id}")
        self._log_recorded(attempt)

        return attempt

    def submit_quiz(
        self,
        db: Session,
        user_id: UUID,
        quiz_id: UUID,
        module_id: UUID,
        answers: Sequence[AnswerSubmission],
        time_spent: int = 0
    ) -> Tuple[QuizAttempt, UserProgress]:
        """
        Record an attempt and fold it into the module progress in one transaction

        Either both the attempt row and the rollup update are committed or
        neither is, so a failed submission can be resubmitted without
        consuming an attempt number. A version conflict on the rollup re-runs
        the whole unit, attempt numbering included.

        Raises:
            Everything record_quiz_attempt raises
            ConflictError: the rollup kept changing underneath us
        """
        if not answers:
            raise ValidationError("At least one answer is required")

        def unit_of_work() -> Tuple[QuizAttempt, UserProgress]:
            attempt = self._build_attempt(db, user_id, quiz_id, module_id, answers, time_spent)
            db.add(attempt)
            progress = self._commit(
                db,
                attempt,
                lambda: progress_service.stage_quiz_completion(
                    db, user_id, module_id, quiz_id, attempt.adjusted_score, attempt.passed, time_spent
                ),
            )
            db.refresh(attempt)
            db.refresh(progress)
            return attempt, progress

        attempt, progress = run_with_conflict_retry(db, unit_of_work, f"submitting quiz {quiz_id}")
        self._log_recorded(attempt)
        logger.info(
            f"Progress updated from quiz {quiz_id}: user={user_id}, module={module_id}, "
            f"points={progress.points}, time_spent={progress.time_spent}"
        )

        return attempt, progress

    def count_attempts(self, db: Session, user_id: UUID, quiz_id: UUID) -> int:
        return db.query(func.count(QuizAttempt.id)).filter(
            QuizAttempt.user_id == user_id,
            QuizAttempt.quiz_id == quiz_id
        ).scalar() or 0

    def get_user_attempts(self, db: Session, user_id: UUID, quiz_id: UUID) -> List[QuizAttempt]:
        """All attempts of a user on a quiz, oldest first"""
        return db.query(QuizAttempt).filter(
            QuizAttempt.user_id == user_id,
            QuizAttempt.quiz_id == quiz_id
        ).order_by(QuizAttempt.attempt_number.asc()).all()

    def get_latest_attempt(self, db: Session, user_id: UUID, quiz_id: UUID) -> Optional[QuizAttempt]:
        return db.query(QuizAttempt).filter(
            QuizAttempt.user_id == user_id,
            QuizAttempt.quiz_id == quiz_id
        ).order_by(QuizAttempt.attempt_number.desc()).first()

    def get_best_score(self, db: Session, user_id: UUID, quiz_id: UUID) -> int:
        """Best adjusted score, 0 when the quiz was never attempted"""
        best = db.query(func.max(QuizAttempt.adjusted_score)).filter(
            QuizAttempt.user_id == user_id,
            QuizAttempt.quiz_id == quiz_id
        ).scalar()
        return best or 0

    def can_reattempt(self, attempt: Optional[QuizAttempt]) -> bool:
        if attempt is None:
            return True
        if settings.MAX_QUIZ_ATTEMPTS is not None and attempt.attempt_number >= settings.MAX_QUIZ_ATTEMPTS:
            return False
        return grading_service.can_reattempt(attempt.attempt_number, attempt.score)

    def _build_attempt(
        self,
        db: Session,
        user_id: UUID,
        quiz_id: UUID,
        module_id: UUID,
        answers: Sequence[AnswerSubmission],
        time_spent: int
    ) -> QuizAttempt:
        """Validate, grade and number a submission without persisting it"""
        quiz = self._require(db, Quiz, quiz_id, "Quiz")
        self._require(db, User, user_id, "User")
        self._require(db, Module, module_id, "Module")

        if quiz.module_id != module_id:
            raise ValidationError(f"Quiz {quiz_id} does not belong to module {module_id}")

        questions = grading_service.parse_questions(quiz.questions)
        results, correct_count = grading_service.grade_answers(questions, answers)

        prior_attempts = self.count_attempts(db, user_id, quiz_id)
        self._check_eligibility(db, user_id, quiz_id, prior_attempts)
        attempt_number = prior_attempts + 1

        raw_score = grading_service.calculate_raw_score(correct_count, len(questions))
        adjusted_score = grading_service.adjust_score(raw_score, attempt_number)
        passed = grading_service.is_passing(adjusted_score, quiz.passing_score)

        return QuizAttempt(
            user_id=user_id,
            quiz_id=quiz_id,
            module_id=module_id,
            attempt_number=attempt_number,
            answers=results,
            score=raw_score,
            adjusted_score=adjusted_score,
            points_earned=adjusted_score,
            passed=passed,
            time_spent=max(time_spent, 0),
            status="completed",
            completed_at=datetime.now(timezone.utc),
        )

    def _commit(
        self,
        db: Session,
        attempt: QuizAttempt,
        stage_more: Optional[Callable[[], UserProgress]] = None
    ) -> Optional[UserProgress]:
        """
        Commit a pending attempt, plus whatever stage_more adds to the same
        transaction. A unique-key clash is a ConflictError; nothing is kept.
        """
        attempt_number, user_id, quiz_id = attempt.attempt_number, attempt.user_id, attempt.quiz_id
        try:
            staged = stage_more() if stage_more else None
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(
                f"Duplicate attempt {attempt_number} for user {user_id} on quiz {quiz_id}: {str(e)}"
            )
            raise ConflictError(
                f"Attempt {attempt_number} for this quiz collided with a concurrent submission, please resubmit"
            ) from e
        except Exception:
            db.rollback()
            raise
        return staged

    def _log_recorded(self, attempt: QuizAttempt) -> None:
        logger.info(
            f"Quiz attempt recorded: user={attempt.user_id}, quiz={attempt.quiz_id}, "
            f"attempt={attempt.attempt_number}, score={attempt.score}, "
            f"adjusted={attempt.adjusted_score}, passed={attempt.passed}"
        )

    def _check_eligibility(self, db: Session, user_id: UUID, quiz_id: UUID, prior_attempts: int) -> None:
        if prior_attempts == 0:
            return

        if settings.MAX_QUIZ_ATTEMPTS is not None and prior_attempts >= settings.MAX_QUIZ_ATTEMPTS:
            logger.warning(f"Attempt limit reached: user={user_id}, quiz={quiz_id}")
            raise AttemptNotAllowedError(
                f"Maximum of {settings.MAX_QUIZ_ATTEMPTS} attempts reached for this quiz"
            )

        latest = self.get_latest_attempt(db, user_id, quiz_id)
        if not grading_service.can_reattempt(latest.attempt_number, latest.score):
            logger.warning(f"Re-attempt rejected after perfect first attempt: user={user_id}, quiz={quiz_id}")
            raise AttemptNotAllowedError("Quiz already completed with a perfect first attempt")

    def _require(self, db: Session, model, entity_id: UUID, label: str):
        entity = db.query(model).filter(model.id == entity_id).first()
        if not entity:
            raise NotFoundError(f"{label} not found")
        return entity


# Global instance
attempt_service = AttemptService()
