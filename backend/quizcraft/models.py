import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON

from quizcraft.database import Base

CATEGORIES = (
    "General Knowledge",
    "Science",
    "History",
    "Geography",
    "Mathematics",
    "Programming",
    "Sports",
    "Entertainment",
)
DIFFICULTIES = ("easy", "medium", "hard")
DEFAULT_QUESTION_POINTS = 10


def _uuid_str():
    return str(uuid.uuid4())


def _json_type():
    return JSON().with_variant(JSONB, "postgresql")


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255))
    quizzes_created = Column(Integer, nullable=False, default=0)
    quizzes_taken = Column(Integer, nullable=False, default=0)
    total_score = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False, default="")
    category = Column(String(50), nullable=False)
    difficulty = Column(String(10), nullable=False, default="medium")
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    # Ordered list of {question, options, correct_answer, points, explanation}.
    questions = Column(_json_type(), nullable=False)
    time_limit = Column(Integer, nullable=False, default=10)
    max_attempts = Column(Integer, nullable=False, default=3)
    is_public = Column(Boolean, nullable=False, default=True)
    tags = Column(_json_type(), nullable=False, default=list)
    total_attempts = Column(Integer, nullable=False, default=0)
    average_score = Column(Float, nullable=False, default=0)
    best_score = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    creator = relationship("User")

    __table_args__ = (
        CheckConstraint(
            "difficulty IN ('easy', 'medium', 'hard')", name="quizzes_difficulty_check"
        ),
        CheckConstraint("max_attempts >= 1", name="quizzes_max_attempts_check"),
        Index("quizzes_creator_created_idx", "created_by", "created_at"),
        Index("quizzes_public_category_idx", "is_public", "category"),
    )


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    # Attempts outlive a deleted quiz so leaderboard history stays intact.
    quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="SET NULL"))
    total_questions = Column(Integer, nullable=False)
    correct_answers = Column(Integer, nullable=False, default=0)
    score = Column(Integer, nullable=False, default=0)
    time_spent = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    user = relationship("User")
    quiz = relationship("Quiz")
    answers = relationship(
        "AttemptAnswer",
        order_by="AttemptAnswer.question_index",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("quiz_attempts_user_quiz_idx", "user_id", "quiz_id"),
        Index("quiz_attempts_completed_at_idx", "completed", "completed_at"),
    )


class AttemptAnswer(Base):
    __tablename__ = "attempt_answers"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    attempt_id = Column(
        String(36), ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False
    )
    question_index = Column(Integer, nullable=False)
    selected_option = Column(Integer, nullable=False)
    is_correct = Column(Boolean, nullable=False)
    time_taken = Column(Integer, nullable=False, default=0)
    answered_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index(
            "attempt_answers_attempt_question_idx",
            "attempt_id",
            "question_index",
            unique=True,
        ),
    )
