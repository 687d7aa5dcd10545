"""
Quiz grading and scoring policy
Exact-match grading of multiple-choice answers plus the re-attempt rules
"""
import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Sequence, Tuple

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaValidationError

from englearn.config import settings
from englearn.exceptions import ValidationError
from englearn.schemas.quiz import AnswerSubmission, QuizQuestion

logger = logging.getLogger(__name__)

STATUS_NOT_STARTED = "not-started"
STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETED = "completed"

_questions_adapter = TypeAdapter(List[QuizQuestion])


class GradingService:
    """
    Service for grading quiz submissions

    Policy:
    - Raw score: correct / total questions, rounded half-up to a whole percent
    - First attempt keeps the raw score
    - Re-attempts are capped at REATTEMPT_SCORE_CAP (85)
    - A perfect first attempt closes the quiz
    """

    def parse_questions(self, raw_questions: Any) -> List[QuizQuestion]:
        """Validate stored questions against the tagged question variants"""
        try:
            return _questions_adapter.validate_python(raw_questions or [])
        except SchemaValidationError as e:
            logger.error(f"Stored quiz questions are malformed: {str(e)}")
            raise ValidationError("Quiz questions are malformed") from e

    def grade_answers(
        self,
        questions: Sequence[QuizQuestion],
        answers: Sequence[AnswerSubmission]
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Grade submitted answers by exact option match

        Args:
            questions: Parsed quiz questions
            answers: Submitted answers

        Returns:
            Tuple of (answer results ordered by question index, correct count)
        """
        if not answers:
            raise ValidationError("At least one answer is required")

        total_questions = len(questions)
        if total_questions == 0:
            raise ValidationError("Quiz has no questions")

        results = []
        seen = set()
        correct_count = 0

        for answer in sorted(answers, key=lambda a: a.question_index):
            index = answer.question_index
            if index < 0 or index >= total_questions:
                raise ValidationError(
                    f"Question index {index} is out of range for a quiz of {total_questions} questions"
                )
            if index in seen:
                raise ValidationError(f"Question index {index} answered more than once")
            seen.add(index)

            is_correct = answer.user_answer is not None and answer.user_answer == questions[index].correct_answer
            if is_correct:
                correct_count += 1

            results.append({
                "question_index": index,
                "user_answer": answer.user_answer,
                "is_correct": is_correct,
                "time_spent": answer.time_spent,
            })

        return results, correct_count

    def calculate_raw_score(self, correct_count: int, total_questions: int) -> int:
        """Percentage of correct answers, rounded half-up"""
        if total_questions <= 0:
            raise ValidationError("Quiz has no questions")

        percentage = Decimal(correct_count * 100) / Decimal(total_questions)
        return int(percentage.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def adjust_score(self, raw_score: int, attempt_number: int) -> int:
        """First attempt is never capped; re-attempts never report above the cap"""
        if attempt_number <= 1:
            return raw_score
        return min(raw_score, settings.REATTEMPT_SCORE_CAP)

    def is_passing(self, adjusted_score: int, passing_score: int) -> bool:
        return adjusted_score >= passing_score

    def can_reattempt(self, attempt_number: int, score: int) -> bool:
        """A perfect first attempt closes the quiz; anything else may be retried"""
        return not (attempt_number == 1 and score == 100)

    def points_for_score(self, score: int) -> int:
        """One point per POINTS_PER_SCORE_STEP percentage points"""
        return max(score, 0) // settings.POINTS_PER_SCORE_STEP

    def clamp_percentage(self, percentage: float) -> float:
        if not math.isfinite(percentage):
            raise ValidationError("Percentage must be a finite number")
        return min(max(percentage, 0.0), 100.0)

    def derive_status(self, current_status: str, percentage: float) -> str:
        """
        Status from percentage

        Logic:
        - 100 -> completed
        - above 0 -> in-progress
        - 0 -> unchanged, never back to not-started
        - a completed rollup that drops below 100 is in-progress again
        """
        if percentage >= 100:
            return STATUS_COMPLETED
        if percentage > 0:
            return STATUS_IN_PROGRESS
        if current_status == STATUS_COMPLETED:
            return STATUS_IN_PROGRESS
        return current_status


# Global instance
grading_service = GradingService()
