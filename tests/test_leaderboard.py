# Leaderboard aggregation tests.
from datetime import datetime, timedelta, timezone

import pytest

NOW = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def db(client):
    from quizcraft.database import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seed(db, make_user):
    from quizcraft.models import Quiz, QuizAttempt

    author = make_user("author")

    def quiz(category="General Knowledge"):
        item = Quiz(
            title=f"{category} quiz",
            description="",
            category=category,
            created_by=author["id"],
            questions=[{"question": "q", "options": ["a", "b"], "correct_answer": 0}],
        )
        db.add(item)
        db.commit()
        return item.id

    def attempt(user_id, quiz_id, score, completed=True, completed_at=NOW):
        db.add(
            QuizAttempt(
                user_id=user_id,
                quiz_id=quiz_id,
                total_questions=1,
                score=score,
                completed=completed,
                completed_at=completed_at if completed else None,
            )
        )
        db.commit()

    return quiz, attempt


def test_leaderboard_ranks_by_total_score(client, make_user, seed):
    quiz, attempt = seed
    general = quiz()
    top = make_user("top")
    tied_a = make_user("tied_a")
    tied_b = make_user("tied_b")
    attempt(top["id"], general, 100)
    attempt(top["id"], general, 50)
    attempt(tied_a["id"], general, 90)
    attempt(tied_b["id"], general, 45)
    attempt(tied_b["id"], general, 45)
    attempt(tied_b["id"], general, 100, completed=False)

    response = client.get("/users/leaderboard")

    assert response.status_code == 200
    board = response.json()
    assert [entry["total_score"] for entry in board] == [150, 90, 90]
    assert board[0]["user"]["username"] == "top"
    assert board[0]["total_quizzes"] == 2
    assert board[0]["average_score"] == 75
    tied_ids = [entry["user"]["id"] for entry in board[1:]]
    assert tied_ids == sorted([tied_a["id"], tied_b["id"]])
    for entry in board:
        assert "email" not in entry["user"]


def test_leaderboard_filters_by_category(db, make_user, seed):
    from quizcraft.leaderboard import build_leaderboard

    quiz, attempt = seed
    science = quiz("Science")
    history = quiz("History")
    scientist = make_user("scientist")
    historian = make_user("historian")
    attempt(scientist["id"], science, 80)
    attempt(historian["id"], history, 95)

    rows = build_leaderboard(db, category="Science", now=NOW)

    assert [row.user.username for row in rows] == ["scientist"]
    assert rows[0].total_score == 80


@pytest.mark.parametrize(
    "timeframe, expected",
    [
        ("week", ["recent"]),
        ("month", ["recent", "this_month"]),
        ("year", ["recent", "this_month", "this_year"]),
        ("all", ["ancient", "recent", "this_month", "this_year"]),
    ],
)
def test_leaderboard_timeframes(db, make_user, seed, timeframe, expected):
    from quizcraft.leaderboard import build_leaderboard

    quiz, attempt = seed
    general = quiz()
    ages = {
        "recent": timedelta(days=2),
        "this_month": timedelta(days=20),
        "this_year": timedelta(days=200),
        "ancient": timedelta(days=800),
    }
    for name, age in ages.items():
        user = make_user(name)
        attempt(user["id"], general, 50, completed_at=NOW - age)

    rows = build_leaderboard(db, timeframe=timeframe, now=NOW)

    assert sorted(row.user.username for row in rows) == expected


def test_leaderboard_truncates_to_limit(db, make_user, seed):
    from quizcraft.leaderboard import build_leaderboard

    quiz, attempt = seed
    general = quiz()
    for idx in range(4):
        user = make_user(f"player{idx}")
        attempt(user["id"], general, 10 * (idx + 1))

    rows = build_leaderboard(db, limit=2, now=NOW)

    assert [row.user.username for row in rows] == ["player3", "player2"]


def test_leaderboard_rejects_unknown_timeframe(client):
    response = client.get("/users/leaderboard?timeframe=decade")

    assert response.status_code == 400


def test_month_window_clamps_to_month_end():
    from quizcraft.leaderboard import timeframe_start

    assert timeframe_start("month", NOW) == datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)
    assert timeframe_start("year", NOW) == datetime(2023, 3, 31, 12, 0, tzinfo=timezone.utc)
    assert timeframe_start("week", NOW) == datetime(2024, 3, 24, 12, 0, tzinfo=timezone.utc)
    assert timeframe_start("all", NOW) is None
