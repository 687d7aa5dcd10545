"""
Quiz submission and attempt history API endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from englearn.database import get_db
from englearn.exceptions import NotFoundError
from englearn.models import Quiz
from englearn.schemas.quiz import (
    QuizSubmission,
    QuizSubmitResponse,
    QuizAttemptResponse,
    QuizAttemptHistory,
    LatestAttemptResponse,
    QuestionFeedback,
)
from englearn.services.attempt_service import attempt_service
from englearn.services.grading_service import grading_service


router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])
logger = logging.getLogger(__name__)


@router.post("/{quiz_id}/submit", response_model=QuizSubmitResponse, status_code=201)
async def submit_quiz(
    quiz_id: UUID, submission: QuizSubmission, db: Session = Depends(get_db)
):
    """
    Submit and score a quiz

    - Attempt number is assigned server-side
    - Re-attempts are capped at 85%
    - A perfect first attempt closes the quiz
    - The module progress rollup records the adjusted score
    """

    logger.info(f"Scoring quiz {quiz_id} for user {submission.user_id}")

    # Attempt row and progress rollup are committed together
    attempt, _ = attempt_service.submit_quiz(
        db,
        user_id=submission.user_id,
        quiz_id=quiz_id,
        module_id=submission.module_id,
        answers=submission.answers,
        time_spent=submission.time_spent,
    )

    quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
    questions = grading_service.parse_questions(quiz.questions)

    results = [
        QuestionFeedback(
            **answer,
            question=questions[answer["question_index"]].question,
            correct_answer=questions[answer["question_index"]].correct_answer,
            explanation=questions[answer["question_index"]].explanation or "",
        )
        for answer in attempt.answers
    ]

    return QuizSubmitResponse(
        attempt=QuizAttemptResponse.model_validate(attempt),
        can_reattempt=attempt_service.can_reattempt(attempt),
        correct_answers=sum(1 for answer in attempt.answers if answer["is_correct"]),
        total_questions=len(questions),
        passing_score=quiz.passing_score,
        results=results,
    )


@router.get("/{quiz_id}/attempts", response_model=QuizAttemptHistory)
async def get_quiz_attempts(
    quiz_id: UUID, user_id: UUID, db: Session = Depends(get_db)
):
    """Attempt history of a user on a quiz, oldest first"""

    if not db.query(Quiz).filter(Quiz.id == quiz_id).first():
        raise NotFoundError("Quiz not found")

    attempts = attempt_service.get_user_attempts(db, user_id, quiz_id)

    return QuizAttemptHistory(
        attempts=[QuizAttemptResponse.model_validate(a) for a in attempts],
        total_attempts=len(attempts),
        best_score=attempt_service.get_best_score(db, user_id, quiz_id),
    )


@router.get("/{quiz_id}/latest-attempt", response_model=LatestAttemptResponse)
async def get_latest_attempt(
    quiz_id: UUID, user_id: UUID, db: Session = Depends(get_db)
):
    """Latest attempt and whether the user may try again"""

    if not db.query(Quiz).filter(Quiz.id == quiz_id).first():
        raise NotFoundError("Quiz not found")

    latest = attempt_service.get_latest_attempt(db, user_id, quiz_id)

    if not latest:
        return LatestAttemptResponse(has_attempted=False, can_reattempt=True)

    return LatestAttemptResponse(
        has_attempted=True,
        can_reattempt=attempt_service.can_reattempt(latest),
        latest_attempt=QuizAttemptResponse.model_validate(latest),
    )
