# Pytest fixtures and test database setup.
import os
import tempfile

import pytest
from fastapi.testclient import TestClient

# The engine is built at import time, so point it at the test database first.
os.environ["DATABASE_URL"] = os.getenv(
    "TEST_DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), f"quizcraft_test_{os.getpid()}.db"),
)


# Build a quiz payload with a configurable set of question point values.
@pytest.fixture()
def build_quiz_payload():
    def _build(title: str = "Sample Quiz", points=(10, 10), **overrides):
        questions = []
        for idx, value in enumerate(points):
            questions.append(
                {
                    "question": f"{title} question {idx + 1}?",
                    "options": ["Option A", "Option B", "Option C", "Option D"],
                    "correct_answer": 0,
                    "points": value,
                    "explanation": "Option A is always right here.",
                }
            )
        payload = {
            "title": title,
            "description": f"{title} description",
            "category": "General Knowledge",
            "difficulty": "medium",
            "questions": questions,
            "time_limit": 10,
            "max_attempts": 3,
            "is_public": True,
            "tags": [],
        }
        payload.update(overrides)
        return payload

    return _build


# Provide a stable two-question quiz worth 10 and 20 points.
@pytest.fixture()
def sample_quiz_payload():
    return {
        "title": "Science Basics",
        "description": "Warm-up questions about everyday science.",
        "category": "Science",
        "difficulty": "easy",
        "time_limit": 5,
        "max_attempts": 2,
        "is_public": True,
        "tags": ["warmup"],
        "questions": [
            {
                "question": "What is the chemical formula of water?",
                "options": ["H2O", "CO2", "NaCl", "O2"],
                "correct_answer": 0,
                "points": 10,
                "explanation": "Two hydrogen atoms and one oxygen atom.",
            },
            {
                "question": "Which planet is known as the Red Planet?",
                "options": ["Venus", "Mars", "Jupiter"],
                "correct_answer": 1,
                "points": 20,
            },
        ],
    }


# Provide a FastAPI test client backed by a fresh test database.
@pytest.fixture()
def client():
    from quizcraft.database import Base, engine  # noqa: E402
    from quizcraft.main import app  # noqa: E402

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


# Seed users directly; account creation belongs to the auth service.
@pytest.fixture()
def make_user(client):
    from quizcraft.auth import create_access_token
    from quizcraft.database import SessionLocal
    from quizcraft.models import User

    def _make(username: str, email: str = None):
        db = SessionLocal()
        try:
            user = User(username=username, email=email or f"{username}@example.com")
            db.add(user)
            db.commit()
            db.refresh(user)
            user_id = user.id
        finally:
            db.close()
        token = create_access_token(user_id)
        return {
            "id": user_id,
            "username": username,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _make


# Create a quiz through the API and return its JSON payload.
@pytest.fixture()
def create_quiz(client):
    def _create(owner, payload):
        response = client.post("/quizzes", json=payload, headers=owner["headers"])
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture()
def load_user():
    from quizcraft.database import SessionLocal
    from quizcraft.models import User

    def _load(user_id: str):
        db = SessionLocal()
        try:
            return db.query(User).filter(User.id == user_id).one()
        finally:
            db.close()

    return _load
