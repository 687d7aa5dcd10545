import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from englearn.database import Base, get_db
from englearn.main import app
from englearn.models import Module, Quiz, User
from englearn.schemas.quiz import AnswerSubmission


def make_questions(total=5):
    questions = []
    for i in range(total):
        if i % 2:
            questions.append({
                "type": "scenario",
                "scenario": f"You are ordering lunch at a cafe ({i}).",
                "question": "What do you say to the waiter?",
                "options": ["I'd like the soup, please.", "Give soup.", "Soup me.", "Soup is."],
                "correct_answer": 0,
                "explanation": "Polite requests use 'I'd like'.",
            })
        else:
            questions.append({
                "type": "basic",
                "question": f"Choose the correct past tense of 'go' ({i}).",
                "options": ["went", "goed", "gone", "going"],
                "correct_answer": 0,
            })
    return questions


def make_answers(correct, total=5):
    """First `correct` answers are right, the rest pick a wrong option"""
    return [
        AnswerSubmission(question_index=i, user_answer=0 if i < correct else 1, time_spent=5)
        for i in range(total)
    ]


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'englearn.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    user = User(username="maria", email="maria@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    user = User(username="kenji", email="kenji@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def module(db):
    module = Module(title="Everyday Conversations", description="Greetings, small talk, ordering food")
    db.add(module)
    db.commit()
    db.refresh(module)
    return module


@pytest.fixture
def quiz(db, module):
    quiz = Quiz(
        module_id=module.id,
        title="Past tense and polite requests",
        questions=make_questions(5),
        passing_score=70,
    )
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    return quiz
