# Points-weighted scoring tests.
from types import SimpleNamespace

import pytest

from quizcraft.attempts import points_percentage, provisional_percentage


def question(points=None):
    item = {"question": "q", "options": ["a", "b"], "correct_answer": 0}
    if points is not None:
        item["points"] = points
    return item


def recorded(question_index, is_correct):
    return SimpleNamespace(question_index=question_index, is_correct=is_correct)


def test_all_correct_scores_full_marks():
    questions = [question(10), question(20)]
    answers = [recorded(0, True), recorded(1, True)]

    assert points_percentage(questions, answers) == 100


def test_weights_follow_question_points():
    questions = [question(10), question(20)]

    assert points_percentage(questions, [recorded(0, True), recorded(1, False)]) == 33
    assert points_percentage(questions, [recorded(1, True)]) == 67


def test_missing_points_default_to_ten():
    questions = [question(), question(30)]

    assert points_percentage(questions, [recorded(0, True)]) == 25


def test_no_correct_answers_scores_zero():
    questions = [question(10), question(10)]

    assert points_percentage(questions, [recorded(0, False)]) == 0
    assert points_percentage(questions, []) == 0


def test_halves_round_up():
    questions = [question(10) for _ in range(8)]

    # 1/8 = 12.5% rounds to 13, 5/8 = 62.5% rounds to 63.
    assert points_percentage(questions, [recorded(0, True)]) == 13
    assert points_percentage(questions, [recorded(i, True) for i in range(5)]) == 63


def test_answers_for_unknown_questions_are_ignored():
    questions = [question(10)]

    assert points_percentage(questions, [recorded(3, True)]) == 0


@pytest.mark.parametrize(
    "correct, total, expected",
    [(0, 4, 0), (1, 4, 25), (1, 3, 33), (2, 3, 67), (0, 0, 0)],
)
def test_provisional_percentage(correct, total, expected):
    assert provisional_percentage(correct, total) == expected
