import pytest

from englearn.exceptions import ValidationError
from englearn.schemas.quiz import AnswerSubmission, BasicQuestion, ScenarioQuestion
from englearn.services.grading_service import grading_service

from conftest import make_answers, make_questions


@pytest.mark.parametrize(
    "correct,total,expected",
    [
        (4, 5, 80),
        (2, 3, 67),
        (1, 8, 13),   # 12.5 rounds up
        (5, 8, 63),   # 62.5 rounds up
        (0, 4, 0),
        (7, 7, 100),
    ],
)
def test_raw_score_rounds_half_up(correct, total, expected):
    assert grading_service.calculate_raw_score(correct, total) == expected


def test_raw_score_requires_questions():
    with pytest.raises(ValidationError):
        grading_service.calculate_raw_score(0, 0)


def test_first_attempt_is_never_capped():
    for raw in range(0, 101):
        assert grading_service.adjust_score(raw, 1) == raw


def test_reattempts_are_capped_at_85():
    for attempt_number in (2, 3, 10):
        for raw in range(0, 101):
            adjusted = grading_service.adjust_score(raw, attempt_number)
            assert adjusted <= 85
            assert adjusted == min(raw, 85)


def test_passing_threshold_is_inclusive():
    assert grading_service.is_passing(70, 70)
    assert not grading_service.is_passing(69, 70)


def test_only_a_perfect_first_attempt_blocks_reattempt():
    assert not grading_service.can_reattempt(1, 100)
    assert grading_service.can_reattempt(1, 99)
    assert grading_service.can_reattempt(2, 100)
    assert grading_service.can_reattempt(3, 85)


def test_points_are_one_per_ten_percent():
    assert grading_service.points_for_score(90) == 9
    assert grading_service.points_for_score(99) == 9
    assert grading_service.points_for_score(5) == 0
    assert grading_service.points_for_score(100) == 10


def test_derive_status():
    assert grading_service.derive_status("not-started", 100) == "completed"
    assert grading_service.derive_status("not-started", 0.5) == "in-progress"
    assert grading_service.derive_status("not-started", 0) == "not-started"
    assert grading_service.derive_status("in-progress", 0) == "in-progress"
    assert grading_service.derive_status("completed", 40) == "in-progress"
    assert grading_service.derive_status("completed", 0) == "in-progress"


def test_parse_questions_builds_tagged_variants():
    questions = grading_service.parse_questions(make_questions(3))

    assert isinstance(questions[0], BasicQuestion)
    assert isinstance(questions[1], ScenarioQuestion)
    assert questions[1].scenario.startswith("You are ordering lunch")


def test_parse_questions_rejects_answer_outside_options():
    broken = [{"type": "basic", "question": "Pick one", "options": ["a", "b"], "correct_answer": 2}]

    with pytest.raises(ValidationError):
        grading_service.parse_questions(broken)


def test_grade_answers_counts_correct_and_orders_results():
    questions = grading_service.parse_questions(make_questions(5))
    answers = list(reversed(make_answers(correct=3)))

    results, correct = grading_service.grade_answers(questions, answers)

    assert correct == 3
    assert [r["question_index"] for r in results] == [0, 1, 2, 3, 4]
    assert [r["is_correct"] for r in results] == [True, True, True, False, False]


def test_unanswered_questions_count_as_wrong():
    questions = grading_service.parse_questions(make_questions(4))
    answers = [
        AnswerSubmission(question_index=0, user_answer=0),
        AnswerSubmission(question_index=1, user_answer=None),
    ]

    results, correct = grading_service.grade_answers(questions, answers)

    assert correct == 1
    assert grading_service.calculate_raw_score(correct, len(questions)) == 25
    assert results[1]["is_correct"] is False


def test_grade_answers_rejects_empty_submission():
    questions = grading_service.parse_questions(make_questions(2))

    with pytest.raises(ValidationError):
        grading_service.grade_answers(questions, [])


def test_grade_answers_rejects_out_of_range_index():
    questions = grading_service.parse_questions(make_questions(2))

    with pytest.raises(ValidationError, match="out of range"):
        grading_service.grade_answers(questions, [AnswerSubmission(question_index=2, user_answer=0)])


def test_grade_answers_rejects_duplicate_index():
    questions = grading_service.parse_questions(make_questions(2))
    answers = [
        AnswerSubmission(question_index=0, user_answer=0),
        AnswerSubmission(question_index=0, user_answer=1),
    ]

    with pytest.raises(ValidationError, match="more than once"):
        grading_service.grade_answers(questions, answers)


def test_grade_answers_rejects_negative_index():
    questions = grading_service.parse_questions(make_questions(2))

    with pytest.raises(ValidationError, match="out of range"):
        grading_service.grade_answers(questions, [AnswerSubmission(question_index=-1, user_answer=0)])


def test_clamp_percentage():
    assert grading_service.clamp_percentage(140) == 100
    assert grading_service.clamp_percentage(-5) == 0
    assert grading_service.clamp_percentage(42.5) == 42.5


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_clamp_percentage_rejects_non_finite(value):
    with pytest.raises(ValidationError, match="finite"):
        grading_service.clamp_percentage(value)
