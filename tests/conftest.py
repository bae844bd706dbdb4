import os

# Settings are read at import time, so the environment goes first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENVIRONMENT"] = "test"
os.environ["ENABLE_METRICS"] = "false"
os.environ["ACHIEVEMENT_SWEEP_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "plain"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.catalog import CatalogCourse, InMemoryCatalog
from app.core.database import build_engine, build_session_factory, create_schema, get_db, seed_achievements
from app.core.dependencies import get_catalog
from app.main import app
from app.models.quiz import QuestionType, Quiz, QuizQuestion
from app.routers.gamification import get_sweep_session_factory


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite+aiosqlite://")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        await seed_achievements(session)
        yield session


@pytest.fixture
def catalog():
    """Two tracks: python (two published courses and a draft) and sql."""
    return InMemoryCatalog([
        CatalogCourse(id="py-101", track_id="python", title="Python Basics"),
        CatalogCourse(id="py-201", track_id="python", title="Python Functions"),
        CatalogCourse(id="py-draft", track_id="python", title="Python Draft", is_published=False),
        CatalogCourse(id="sql-101", track_id="sql", title="SQL Basics"),
        CatalogCourse(id="sql-201", track_id="sql", title="SQL Joins"),
    ])


@pytest.fixture
async def quiz(db):
    """Two five-point questions, 70% to pass, three attempts."""
    quiz = Quiz(
        course_id="py-101",
        title="Python Basics Check",
        passing_score_percent=70,
        max_attempts=3,
        questions=[
            QuizQuestion(
                text="Which keyword defines a function?",
                question_type=QuestionType.MULTIPLE_CHOICE.value,
                options=["func", "def", "lambda"],
                correct_answer="def",
                point_value=5,
                order_index=0
            ),
            QuizQuestion(
                text="Lists are mutable.",
                question_type=QuestionType.TRUE_FALSE.value,
                options=["true", "false"],
                correct_answer="true",
                point_value=5,
                order_index=1
            ),
        ]
    )
    db.add(quiz)
    await db.commit()
    return quiz


@pytest.fixture
def question_ids(quiz):
    return [str(q.id) for q in quiz.questions]


@pytest.fixture
async def client(db, session_factory, catalog):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_catalog():
        return catalog

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog] = override_get_catalog
    app.dependency_overrides[get_sweep_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
