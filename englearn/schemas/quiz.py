"""
Pydantic schemas for quiz questions, submissions and attempt results
"""
from pydantic import BaseModel, Field, model_validator
from typing import Annotated, List, Optional, Union, Literal
from uuid import UUID
from datetime import datetime


class _ChoiceQuestion(BaseModel):
    """Fields shared by every multiple-choice question variant"""
    question: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=2, description="Answer options")
    correct_answer: int = Field(..., ge=0, description="Index into options")
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def check_correct_answer_in_options(self):
        if self.correct_answer >= len(self.options):
            raise ValueError("correct_answer must index into options")
        return self


class BasicQuestion(_ChoiceQuestion):
    """Plain multiple-choice question"""
    type: Literal["basic"] = "basic"


class ScenarioQuestion(_ChoiceQuestion):
    """Question asked about a short workplace or everyday scenario"""
    type: Literal["scenario"]
    scenario: str = Field(..., min_length=1)


QuizQuestion = Annotated[Union[BasicQuestion, ScenarioQuestion], Field(discriminator="type")]


class AnswerSubmission(BaseModel):
    """A single submitted answer"""
    question_index: int = Field(..., description="Zero-based index into the quiz questions")
    user_answer: Optional[int] = Field(None, description="Selected option index, None if skipped")
    time_spent: int = Field(0, ge=0, description="Seconds spent on this question")


class QuizSubmission(BaseModel):
    """Schema for quiz submission"""
    user_id: UUID
    module_id: UUID
    answers: List[AnswerSubmission]
    time_spent: int = Field(0, ge=0, description="Total seconds spent on the quiz")


class AnswerResult(BaseModel):
    """Stored grading of one answer"""
    question_index: int
    user_answer: Optional[int] = None
    is_correct: bool
    time_spent: int = 0


class QuestionFeedback(AnswerResult):
    """Answer result enriched with the question for the submit response"""
    question: str
    correct_answer: int
    explanation: str = ""


class QuizAttemptResponse(BaseModel):
    """Persisted attempt as returned to clients"""
    id: UUID
    user_id: UUID
    quiz_id: UUID
    module_id: UUID
    attempt_number: int
    answers: List[AnswerResult]
    score: int
    adjusted_score: int
    points_earned: int
    passed: bool
    time_spent: int
    status: str
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QuizSubmitResponse(BaseModel):
    """Response after quiz submission"""
    attempt: QuizAttemptResponse
    can_reattempt: bool
    correct_answers: int
    total_questions: int
    passing_score: int
    results: List[QuestionFeedback]


class QuizAttemptHistory(BaseModel):
    """All attempts of a user on a quiz"""
    attempts: List[QuizAttemptResponse]
    total_attempts: int
    best_score: int


class LatestAttemptResponse(BaseModel):
    """Latest attempt and re-attempt eligibility"""
    has_attempted: bool
    can_reattempt: bool
    latest_attempt: Optional[QuizAttemptResponse] = None
