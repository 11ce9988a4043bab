import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["LEADERBOARD_CACHE_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from paperstats.core.auth import CallerIdentity, create_token
from paperstats.core.cache import get_leaderboard_cache
from paperstats.core.database import Base, get_db, make_engine
from paperstats.models.orm import Paper, Question, User
from paperstats.services.notifications import Notifier, get_notifier


class FakeQueue:
    def __init__(self):
        self.jobs = []

    def enqueue(self, func, *args, **kwargs):
        self.jobs.append((func, args, kwargs))


@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def job_sessions(db):
    """Session factory for jobs; StaticPool has a single connection, so jobs share the test session."""
    return lambda: db


@pytest.fixture
def queue():
    return FakeQueue()


@pytest.fixture
def notifier(queue):
    return Notifier(queue)


@pytest.fixture
def client(db, notifier):
    from paperstats.main import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_leaderboard_cache] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------- seed helpers ----------

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(username=None, opt_in=False):
        counter["n"] += 1
        n = counter["n"]
        user = User(email=f"user{n}@example.com", username=username or f"user{n}", leaderboard_opt_in=opt_in)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_paper(db):
    counter = {"n": 0}

    def _make(questions, exam_board="AQA", year=2023, total_marks=100):
        """``questions`` is a list of (topic, sub_topic, marks_available)."""
        counter["n"] += 1
        paper = Paper(exam_board=exam_board, year=year, paper_number=counter["n"], total_marks=total_marks)
        for i, (topic, sub_topic, marks) in enumerate(questions, start=1):
            paper.questions.append(Question(question_number=i, topic=topic, sub_topic=sub_topic, marks_available=marks))
        db.add(paper)
        db.commit()
        return paper

    return _make


def caller_for(user) -> CallerIdentity:
    return CallerIdentity(user_id=user.id, email=user.email)


def auth_header(user) -> dict:
    return {"Authorization": f"Bearer {create_token(user.id, user.email)}"}
