# Quiz catalog: definitions, visibility rules and per-quiz stats.
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from quizcraft.errors import Forbidden, NotFound
from quizcraft.models import DEFAULT_QUESTION_POINTS, Quiz, QuizAttempt, User
from quizcraft.schemas import QuizCreate

logger = logging.getLogger("quizcraft.catalog")


def page_offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def is_owner(quiz: Quiz, user: User) -> bool:
    return quiz.created_by == user.id


# Strip the answer key from every question of a quiz.
def sanitize_questions(questions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    public = []
    for question in questions:
        item = dict(question)
        item.pop("correct_answer", None)
        public.append(item)
    return public


def question_points(question: Dict[str, Any]) -> int:
    return question.get("points") or DEFAULT_QUESTION_POINTS


# Persist a quiz and bump the creator's quiz counter.
def create_quiz(db: Session, user: User, payload: QuizCreate) -> Quiz:
    quiz = Quiz(
        title=payload.title,
        description=payload.description,
        category=payload.category,
        difficulty=payload.difficulty,
        created_by=user.id,
        questions=[question.model_dump() for question in payload.questions],
        time_limit=payload.time_limit,
        max_attempts=payload.max_attempts,
        is_public=payload.is_public,
        tags=list(payload.tags),
    )
    db.add(quiz)
    db.flush()
    db.execute(
        update(User)
        .where(User.id == user.id)
        .values(quizzes_created=User.quizzes_created + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(quiz)
    logger.info("quiz %s created by user %s", quiz.id, user.id)
    return quiz


def get_quiz(db: Session, quiz_id: str) -> Quiz:
    quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
    if not quiz:
        raise NotFound("quiz not found")
    return quiz


# Fetch a quiz the caller may see: public quizzes, or private ones they own.
def get_quiz_for_user(db: Session, quiz_id: str, user: User) -> Quiz:
    quiz = get_quiz(db, quiz_id)
    if not quiz.is_public and not is_owner(quiz, user):
        raise Forbidden("access denied. this quiz is private.")
    return quiz


# Hold the quiz row's write lock until commit. A no-op UPDATE locks on SQLite
# too, where SELECT ... FOR UPDATE is ignored.
def lock_quiz_row(db: Session, quiz_id: str) -> None:
    db.execute(
        update(Quiz)
        .where(Quiz.id == quiz_id)
        .values(updated_at=Quiz.updated_at)
        .execution_options(synchronize_session=False)
    )


# Public quizzes by default; with mine, only the caller's own (any visibility).
def list_quizzes(
    db: Session,
    user: User,
    category: Optional[str] = None,
    difficulty: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    mine: bool = False,
) -> Tuple[List[Quiz], int]:
    query = db.query(Quiz)
    if mine:
        query = query.filter(Quiz.created_by == user.id)
    else:
        query = query.filter(Quiz.is_public.is_(True))
    if category:
        query = query.filter(Quiz.category == category)
    if difficulty:
        query = query.filter(Quiz.difficulty == difficulty)
    if search:
        term = search.strip()
        if term:
            query = query.filter(
                or_(
                    Quiz.title.icontains(term, autoescape=True),
                    Quiz.description.icontains(term, autoescape=True),
                )
            )
    total = query.count()
    quizzes = (
        query.order_by(Quiz.created_at.desc(), Quiz.id.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
        .all()
    )
    return quizzes, total


def list_user_quizzes(
    db: Session, user: User, page: int = 1, limit: int = 10
) -> Tuple[List[Quiz], int]:
    return list_quizzes(db, user, page=page, limit=limit, mine=True)


def delete_quiz(db: Session, quiz_id: str, user: User) -> None:
    quiz = get_quiz(db, quiz_id)
    if not is_owner(quiz, user):
        raise Forbidden("access denied. you can only delete your own quizzes.")
    db.delete(quiz)
    db.execute(
        update(User)
        .where(User.id == quiz.created_by)
        .values(quizzes_created=User.quizzes_created - 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("quiz %s deleted by user %s", quiz_id, user.id)


# Count one more completion and rescan completed attempts for average/best.
def refresh_quiz_stats(db: Session, quiz_id: str) -> None:
    completed = (QuizAttempt.quiz_id == quiz_id, QuizAttempt.completed.is_(True))
    average = (
        select(func.coalesce(func.avg(QuizAttempt.score), 0))
        .where(*completed)
        .scalar_subquery()
    )
    best = (
        select(func.coalesce(func.max(QuizAttempt.score), 0))
        .where(*completed)
        .scalar_subquery()
    )
    db.execute(
        update(Quiz)
        .where(Quiz.id == quiz_id)
        .values(
            total_attempts=Quiz.total_attempts + 1,
            average_score=average,
            best_score=best,
        )
        .execution_options(synchronize_session=False)
    )
