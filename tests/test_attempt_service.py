import uuid

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from englearn.config import settings
from englearn.exceptions import (
    AttemptNotAllowedError, ConflictError, NotFoundError, ServiceUnavailableError, ValidationError,
)
from englearn.models import Module, Quiz, QuizAttempt, UserProgress
from englearn.schemas.quiz import AnswerSubmission
from englearn.services.attempt_service import attempt_service
from englearn.services.progress_service import progress_service

from conftest import make_answers, make_questions


def record(db, user, quiz, correct, total=5):
    return attempt_service.record_quiz_attempt(
        db, user.id, quiz.id, quiz.module_id, make_answers(correct, total), time_spent=60
    )


def test_first_attempt_scores_raw_percentage(db, user, quiz):
    attempt = record(db, user, quiz, correct=4)

    assert attempt.attempt_number == 1
    assert attempt.score == 80
    assert attempt.adjusted_score == 80
    assert attempt.points_earned == 80
    assert attempt.passed is True
    assert attempt.status == "completed"
    assert attempt.time_spent == 60
    assert len(attempt.answers) == 5


def test_reattempt_is_capped_at_85(db, user, quiz):
    record(db, user, quiz, correct=4)
    second = record(db, user, quiz, correct=5)

    assert second.attempt_number == 2
    assert second.score == 100
    assert second.adjusted_score == 85
    assert second.passed is True


def test_pass_uses_adjusted_score(db, user, quiz):
    quiz.passing_score = 90
    db.commit()

    record(db, user, quiz, correct=3)
    capped = record(db, user, quiz, correct=5)

    assert capped.adjusted_score == 85
    assert capped.passed is False


def test_attempt_numbers_are_sequential(db, user, quiz):
    numbers = [record(db, user, quiz, correct=c).attempt_number for c in (1, 2, 3)]

    assert numbers == [1, 2, 3]
    assert attempt_service.count_attempts(db, user.id, quiz.id) == 3


def test_perfect_first_attempt_closes_quiz(db, user, quiz):
    first = record(db, user, quiz, correct=5)
    assert attempt_service.can_reattempt(first) is False

    with pytest.raises(AttemptNotAllowedError):
        record(db, user, quiz, correct=5)

    assert attempt_service.count_attempts(db, user.id, quiz.id) == 1


def test_perfect_reattempt_does_not_close_quiz(db, user, quiz):
    record(db, user, quiz, correct=2)
    second = record(db, user, quiz, correct=5)

    assert attempt_service.can_reattempt(second) is True
    assert record(db, user, quiz, correct=5).attempt_number == 3


def test_attempt_ceiling_when_configured(db, user, quiz, monkeypatch):
    monkeypatch.setattr(settings, "MAX_QUIZ_ATTEMPTS", 2)

    record(db, user, quiz, correct=1)
    second = record(db, user, quiz, correct=2)
    assert attempt_service.can_reattempt(second) is False

    with pytest.raises(AttemptNotAllowedError, match="Maximum of 2 attempts"):
        record(db, user, quiz, correct=3)


def test_empty_answers_rejected(db, user, quiz):
    with pytest.raises(ValidationError):
        attempt_service.record_quiz_attempt(db, user.id, quiz.id, quiz.module_id, [])


def test_out_of_range_question_index_rejected(db, user, quiz):
    answers = [AnswerSubmission(question_index=5, user_answer=0)]

    with pytest.raises(ValidationError):
        attempt_service.record_quiz_attempt(db, user.id, quiz.id, quiz.module_id, answers)

    assert attempt_service.count_attempts(db, user.id, quiz.id) == 0


@pytest.mark.parametrize("missing", ["user", "quiz", "module"])
def test_unknown_references_raise_not_found(db, user, quiz, missing):
    ids = {"user": user.id, "quiz": quiz.id, "module": quiz.module_id}
    ids[missing] = uuid.uuid4()

    with pytest.raises(NotFoundError):
        attempt_service.record_quiz_attempt(
            db, ids["user"], ids["quiz"], ids["module"], make_answers(3)
        )


def test_quiz_must_belong_to_module(db, user, quiz):
    other = Module(title="Business Emails")
    db.add(other)
    db.commit()

    with pytest.raises(ValidationError, match="does not belong"):
        attempt_service.record_quiz_attempt(db, user.id, quiz.id, other.id, make_answers(3))


def test_duplicate_attempt_number_is_a_conflict(db, user, quiz, monkeypatch):
    record(db, user, quiz, correct=3)

    # A concurrent request that counted history before our first insert landed
    monkeypatch.setattr(attempt_service, "count_attempts", lambda db, user_id, quiz_id: 0)

    with pytest.raises(ConflictError):
        record(db, user, quiz, correct=4)

    assert db.query(QuizAttempt).count() == 1


def test_attempts_are_immutable(db, user, quiz):
    attempt = record(db, user, quiz, correct=2)
    attempt.score = 100

    with pytest.raises(ValidationError, match="immutable"):
        db.commit()

    db.rollback()
    assert db.query(QuizAttempt).one().score == 40


def test_history_latest_and_best(db, user, other_user, quiz):
    assert attempt_service.get_latest_attempt(db, user.id, quiz.id) is None
    assert attempt_service.get_best_score(db, user.id, quiz.id) == 0
    assert attempt_service.can_reattempt(None) is True

    record(db, user, quiz, correct=4)
    record(db, user, quiz, correct=1)
    record(db, other_user, quiz, correct=5)

    history = attempt_service.get_user_attempts(db, user.id, quiz.id)
    assert [a.attempt_number for a in history] == [1, 2]
    assert attempt_service.get_latest_attempt(db, user.id, quiz.id).score == 20
    assert attempt_service.get_best_score(db, user.id, quiz.id) == 80


def _lost_connection(*args, **kwargs):
    raise OperationalError("COMMIT", {}, Exception("server closed the connection unexpectedly"))


def test_transient_storage_error_is_retried_once(db, user, quiz, monkeypatch):
    real_commit = db.commit
    calls = []

    def flaky_commit():
        calls.append(1)
        if len(calls) == 1:
            _lost_connection()
        real_commit()

    monkeypatch.setattr(db, "commit", flaky_commit)

    attempt = record(db, user, quiz, correct=4)

    assert len(calls) == 2
    assert attempt.attempt_number == 1
    assert db.query(QuizAttempt).count() == 1


def test_storage_failure_after_retry_is_service_unavailable(db, user, quiz, monkeypatch):
    monkeypatch.setattr(db, "commit", _lost_connection)

    with pytest.raises(ServiceUnavailableError):
        record(db, user, quiz, correct=4)

    monkeypatch.undo()
    assert db.query(QuizAttempt).count() == 0


def submit(db, user, quiz, correct, total=5, time_spent=60):
    return attempt_service.submit_quiz(
        db, user.id, quiz.id, quiz.module_id, make_answers(correct, total), time_spent=time_spent
    )


def test_submit_quiz_records_attempt_and_progress_together(db, user, quiz):
    attempt, progress = submit(db, user, quiz, correct=4)

    assert attempt.attempt_number == 1
    assert attempt.adjusted_score == 80
    assert progress.module_id == quiz.module_id
    assert progress.points == 8
    assert progress.time_spent == 60
    assert progress.quiz_attempts[0]["quiz_id"] == str(quiz.id)
    assert progress.quiz_attempts[0]["best_score"] == 80


def test_submit_quiz_reuses_existing_rollup(db, user, quiz):
    progress_service.get_or_create_progress(db, user.id, quiz.module_id)
    progress_service.add_completed_topic(db, user.id, quiz.module_id, "greetings", "Greetings", 70)

    submit(db, user, quiz, correct=4)
    _, progress = submit(db, user, quiz, correct=5)

    assert db.query(UserProgress).count() == 1
    assert [t["topic_id"] for t in progress.completed_topics] == ["greetings"]
    assert progress.quiz_attempts[0]["total_attempts"] == 2
    assert progress.quiz_attempts[0]["best_score"] == 85
    assert progress.points == 8 + 8


def test_submit_quiz_keeps_nothing_when_progress_step_fails(db, user, quiz, monkeypatch):
    def conflicting(*args, **kwargs):
        raise ConflictError("Progress was modified concurrently, please retry")

    monkeypatch.setattr(progress_service, "stage_quiz_completion", conflicting)

    with pytest.raises(ConflictError):
        submit(db, user, quiz, correct=4)

    monkeypatch.undo()
    assert attempt_service.count_attempts(db, user.id, quiz.id) == 0
    assert progress_service.get_progress(db, user.id, quiz.module_id) is None

    attempt, _ = submit(db, user, quiz, correct=4)
    assert attempt.attempt_number == 1
    assert attempt.adjusted_score == 80


def test_submit_quiz_reruns_whole_unit_on_version_conflict(db, user, quiz, monkeypatch):
    real_commit = db.commit
    calls = []

    def stale_once():
        calls.append(1)
        if len(calls) == 1:
            raise StaleDataError("user_progress row was updated concurrently")
        real_commit()

    monkeypatch.setattr(db, "commit", stale_once)

    attempt, progress = submit(db, user, quiz, correct=4)

    assert len(calls) == 2
    assert attempt.attempt_number == 1
    assert db.query(QuizAttempt).count() == 1
    assert progress.quiz_attempts[0]["total_attempts"] == 1
    assert progress.points == 8


def test_submit_quiz_rejects_closed_quiz_without_touching_progress(db, user, quiz):
    _, before = submit(db, user, quiz, correct=5)
    points = before.points

    with pytest.raises(AttemptNotAllowedError):
        submit(db, user, quiz, correct=5)

    progress = progress_service.get_progress(db, user.id, quiz.module_id)
    assert progress.points == points
    assert progress.quiz_attempts[0]["total_attempts"] == 1


def test_quiz_passing_score_defaults_to_setting(db, module, monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_PASSING_SCORE", 60)
    quiz = Quiz(module_id=module.id, title="Small talk", questions=make_questions(2))
    db.add(quiz)
    db.commit()

    assert quiz.passing_score == 60
