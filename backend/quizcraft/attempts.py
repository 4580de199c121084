# Attempt engine: start, answer, complete and review quiz attempts.
# Writes that need the attempt still open filter on completed = false, so
# an attempt completes exactly once and no answer lands after it.
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session, selectinload

from quizcraft.catalog import (
    get_quiz,
    get_quiz_for_user,
    lock_quiz_row,
    page_offset,
    question_points,
    refresh_quiz_stats,
)
from quizcraft.errors import AttemptLimitExceeded, Forbidden, NotFound, ValidationError
from quizcraft.models import AttemptAnswer, Quiz, QuizAttempt, User

logger = logging.getLogger("quizcraft.attempts")


def _round_half_up(numerator: int, denominator: int) -> int:
    return (numerator * 2 + denominator) // (denominator * 2)


# Correct answers earn their question's points; unanswered questions still count in the total.
def points_percentage(questions: List[Dict[str, Any]], answers: Iterable[AttemptAnswer]) -> int:
    total_points = sum(question_points(question) for question in questions)
    if total_points <= 0:
        return 0
    earned = 0
    for answer in answers:
        if answer.is_correct and 0 <= answer.question_index < len(questions):
            earned += question_points(questions[answer.question_index])
    return _round_half_up(earned * 100, total_points)


# Raw correct-count ratio shown while the attempt is still running.
def provisional_percentage(correct_count: int, total_questions: int) -> int:
    if total_questions <= 0:
        return 0
    return _round_half_up(correct_count * 100, total_questions)


def start_attempt(db: Session, quiz_id: str, user: User) -> Tuple[QuizAttempt, Quiz]:
    quiz = get_quiz_for_user(db, quiz_id, user)
    if not quiz.questions:
        raise ValidationError("quiz has no questions")

    # Concurrent starts on this quiz queue here until the count below is committed.
    lock_quiz_row(db, quiz.id)
    prior_attempts = (
        db.query(QuizAttempt)
        .filter(QuizAttempt.user_id == user.id, QuizAttempt.quiz_id == quiz.id)
        .count()
    )
    if prior_attempts >= quiz.max_attempts:
        db.rollback()
        raise AttemptLimitExceeded("maximum attempts reached")

    attempt = QuizAttempt(
        user_id=user.id,
        quiz_id=quiz.id,
        total_questions=len(quiz.questions),
        completed=False,
    )
    db.add(attempt)
    db.commit()
    db.refresh(attempt)
    logger.info(
        "attempt %s started on quiz %s by user %s (%d of %d)",
        attempt.id,
        quiz.id,
        user.id,
        prior_attempts + 1,
        quiz.max_attempts,
    )
    return attempt, quiz


def _open_attempt_filter(attempt_id: str, quiz_id: str, user: User):
    return (
        QuizAttempt.id == attempt_id,
        QuizAttempt.user_id == user.id,
        QuizAttempt.quiz_id == quiz_id,
        QuizAttempt.completed.is_(False),
    )


# Record or replace the answer for one question; returns it with the correct option.
def submit_answer(
    db: Session,
    quiz_id: str,
    attempt_id: str,
    user: User,
    question_index: int,
    selected_option: int,
    time_taken: int = 0,
) -> Tuple[AttemptAnswer, int]:
    # Touching the row takes its lock until commit, so completion waits for us.
    claimed = db.execute(
        update(QuizAttempt)
        .where(*_open_attempt_filter(attempt_id, quiz_id, user))
        .values(updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        db.rollback()
        raise NotFound("attempt not found or completed")

    quiz = get_quiz(db, quiz_id)
    if question_index >= len(quiz.questions):
        raise ValidationError("question_index out of range")
    question = quiz.questions[question_index]
    if selected_option >= len(question["options"]):
        raise ValidationError("selected_option out of range")

    correct_answer = question["correct_answer"]
    is_correct = selected_option == correct_answer

    answer = (
        db.query(AttemptAnswer)
        .filter(
            AttemptAnswer.attempt_id == attempt_id,
            AttemptAnswer.question_index == question_index,
        )
        .first()
    )
    if answer:
        answer.selected_option = selected_option
        answer.is_correct = is_correct
        answer.time_taken = time_taken
    else:
        answer = AttemptAnswer(
            attempt_id=attempt_id,
            question_index=question_index,
            selected_option=selected_option,
            is_correct=is_correct,
            time_taken=time_taken,
        )
        db.add(answer)
    db.flush()

    correct_count = (
        db.query(AttemptAnswer)
        .filter(AttemptAnswer.attempt_id == attempt_id, AttemptAnswer.is_correct.is_(True))
        .count()
    )
    db.execute(
        update(QuizAttempt)
        .where(QuizAttempt.id == attempt_id)
        .values(
            correct_answers=correct_count,
            score=provisional_percentage(correct_count, len(quiz.questions)),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(answer)
    return answer, correct_answer


# Finalize and grade an open attempt, then fold it into quiz and user stats.
# A second call on the same attempt raises NotFound.
def complete_attempt(
    db: Session, quiz_id: str, attempt_id: str, user: User, time_spent: int = 0
) -> QuizAttempt:
    quiz = get_quiz(db, quiz_id)

    completed_at = datetime.now(tz=timezone.utc)
    finalized = db.execute(
        update(QuizAttempt)
        .where(*_open_attempt_filter(attempt_id, quiz_id, user))
        .values(completed=True, time_spent=time_spent, completed_at=completed_at)
        .execution_options(synchronize_session=False)
    )
    if finalized.rowcount == 0:
        db.rollback()
        raise NotFound("attempt not found")

    attempt = (
        db.query(QuizAttempt)
        .options(selectinload(QuizAttempt.answers))
        .filter(QuizAttempt.id == attempt_id)
        .populate_existing()
        .one()
    )
    percentage = points_percentage(quiz.questions, attempt.answers)
    attempt.score = percentage
    attempt.correct_answers = sum(1 for answer in attempt.answers if answer.is_correct)
    db.commit()
    logger.info(
        "attempt %s completed on quiz %s by user %s with score %d",
        attempt_id,
        quiz_id,
        user.id,
        percentage,
    )

    # The attempt stays completed even if the stats update below fails.
    refresh_quiz_stats(db, quiz_id)
    db.execute(
        update(User)
        .where(User.id == user.id)
        .values(
            quizzes_taken=User.quizzes_taken + 1,
            total_score=User.total_score + percentage,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(attempt)
    return attempt


def list_user_attempts(
    db: Session, user: User, page: int = 1, limit: int = 10
) -> Tuple[List[QuizAttempt], int]:
    query = db.query(QuizAttempt).filter(QuizAttempt.user_id == user.id)
    total = query.count()
    attempts = (
        query.options(selectinload(QuizAttempt.answers), selectinload(QuizAttempt.quiz))
        .order_by(
            QuizAttempt.completed_at.desc().nulls_last(),
            QuizAttempt.created_at.desc(),
            QuizAttempt.id,
        )
        .offset(page_offset(page, limit))
        .limit(limit)
        .all()
    )
    return attempts, total


def get_user_attempt(db: Session, attempt_id: str, user: User) -> QuizAttempt:
    attempt = (
        db.query(QuizAttempt)
        .options(selectinload(QuizAttempt.answers))
        .filter(QuizAttempt.id == attempt_id)
        .first()
    )
    if not attempt:
        raise NotFound("attempt not found")
    if attempt.user_id != user.id:
        raise Forbidden("access denied")
    return attempt
