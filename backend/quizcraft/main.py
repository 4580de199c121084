# FastAPI app, routes, and error mapping.
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional, Union

import logging

from fastapi import Depends, FastAPI, Query, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizcraft import attempts as attempt_engine
from quizcraft import catalog
from quizcraft.auth import get_current_user
from quizcraft.config import (
    configure_logging,
    expose_error_detail,
    get_cors_origins,
    get_default_page_size,
    get_leaderboard_limit,
    get_max_page_size,
)
from quizcraft.database import Base, engine, get_db
from quizcraft.errors import InternalError, QuizCraftError
from quizcraft.leaderboard import build_leaderboard
from quizcraft.models import Quiz, QuizAttempt, User
from quizcraft.realtime import RoomManager, relay
from quizcraft.schemas import (
    AnswerCreate,
    AnswerOut,
    AnswerRecordOut,
    AttemptComplete,
    AttemptDetailOut,
    AttemptListOut,
    AttemptOut,
    AttemptStartOut,
    CreatorOut,
    LeaderboardEntryOut,
    LeaderboardUserOut,
    MessageOut,
    QuestionOut,
    QuestionPublicOut,
    QuizBriefOut,
    QuizCreate,
    QuizListOut,
    QuizOut,
    QuizPublicOut,
    QuizStatsOut,
    UserProfileOut,
)

DEFAULT_PAGE_SIZE = get_default_page_size()
MAX_PAGE_SIZE = get_max_page_size()


# Configure logging and create database tables on app startup.
@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="QuizCraft API", lifespan=lifespan)
logger = logging.getLogger("quizcraft.api")
rooms = RoomManager()

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuizCraftError)
async def handle_quizcraft_error(request: Request, exc: QuizCraftError):
    content = {"detail": exc.message}
    if isinstance(exc, InternalError) and exc.error and expose_error_detail():
        content["error"] = exc.error
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(SQLAlchemyError)
async def handle_storage_error(request: Request, exc: SQLAlchemyError):
    logger.exception("storage error on %s %s", request.method, request.url.path)
    return await handle_quizcraft_error(request, InternalError.from_exception(exc))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return await handle_quizcraft_error(request, InternalError.from_exception(exc))


# SQLite hands back naive datetimes; they were stored as UTC.
def iso_timestamp(moment: Optional[datetime]) -> Optional[str]:
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()


# Serialize a quiz; the answer key is only included when asked for.
def quiz_out(quiz: Quiz, include_answers: bool) -> Union[QuizOut, QuizPublicOut]:
    fields = dict(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description or "",
        category=quiz.category,
        difficulty=quiz.difficulty,
        created_by=CreatorOut(id=quiz.created_by, username=quiz.creator.username),
        time_limit=quiz.time_limit,
        max_attempts=quiz.max_attempts,
        is_public=quiz.is_public,
        tags=list(quiz.tags or []),
        stats=QuizStatsOut(
            total_attempts=quiz.total_attempts,
            average_score=quiz.average_score,
            best_score=quiz.best_score,
        ),
        created_at=iso_timestamp(quiz.created_at),
        updated_at=iso_timestamp(quiz.updated_at),
    )
    if include_answers:
        return QuizOut(questions=[QuestionOut(**q) for q in quiz.questions], **fields)
    return QuizPublicOut(
        questions=[QuestionPublicOut(**q) for q in catalog.sanitize_questions(quiz.questions)],
        **fields,
    )


def attempt_out(attempt: QuizAttempt) -> AttemptOut:
    quiz = attempt.quiz
    return AttemptOut(
        id=attempt.id,
        user_id=attempt.user_id,
        quiz_id=attempt.quiz_id,
        quiz=QuizBriefOut(
            id=quiz.id, title=quiz.title, category=quiz.category, difficulty=quiz.difficulty
        )
        if quiz
        else None,
        answers=[
            AnswerRecordOut(
                question_index=answer.question_index,
                selected_option=answer.selected_option,
                is_correct=answer.is_correct,
                time_taken=answer.time_taken,
            )
            for answer in attempt.answers
        ],
        total_questions=attempt.total_questions,
        correct_answers=attempt.correct_answers,
        score=attempt.score,
        time_spent=attempt.time_spent,
        completed=attempt.completed,
        completed_at=iso_timestamp(attempt.completed_at),
        created_at=iso_timestamp(attempt.created_at),
    )


@app.get("/health")
def health():
    return {"status": "ok"}


# List public quizzes (or the caller's own) with filters and pagination.
@app.get("/quizzes", response_model=QuizListOut)
def list_quizzes(
    category: Optional[str] = None,
    difficulty: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    my_quizzes: bool = Query(False, alias="myQuizzes"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    quizzes, total = catalog.list_quizzes(
        db,
        user,
        category=category,
        difficulty=difficulty,
        search=search,
        page=page,
        limit=limit,
        mine=my_quizzes,
    )
    return QuizListOut(
        quizzes=[quiz_out(quiz, include_answers=False) for quiz in quizzes],
        total=total,
        total_pages=catalog.page_count(total, limit),
        current_page=page,
    )


# Create a quiz owned by the caller.
@app.post("/quizzes", response_model=QuizOut, status_code=status.HTTP_201_CREATED)
def create_quiz(
    payload: QuizCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    quiz = catalog.create_quiz(db, user, payload)
    return quiz_out(quiz, include_answers=True)


# Return the caller's own quizzes, including private ones.
@app.get("/quizzes/user/my-quizzes", response_model=QuizListOut)
def list_my_quizzes(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    quizzes, total = catalog.list_user_quizzes(db, user, page=page, limit=limit)
    return QuizListOut(
        quizzes=[quiz_out(quiz, include_answers=False) for quiz in quizzes],
        total=total,
        total_pages=catalog.page_count(total, limit),
        current_page=page,
    )


# Return one quiz; only its creator sees the answer key.
@app.get("/quizzes/{quiz_id}", response_model=None)
def get_quiz(
    quiz_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Union[QuizOut, QuizPublicOut]:
    quiz = catalog.get_quiz_for_user(db, quiz_id, user)
    return quiz_out(quiz, include_answers=catalog.is_owner(quiz, user))


@app.delete("/quizzes/{quiz_id}", response_model=MessageOut)
def delete_quiz(
    quiz_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    catalog.delete_quiz(db, quiz_id, user)
    return MessageOut(message="quiz deleted successfully")


# Start an attempt and hand out the quiz without its answer key.
@app.post("/quizzes/{quiz_id}/attempt", response_model=AttemptStartOut)
def start_attempt(
    quiz_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    attempt, quiz = attempt_engine.start_attempt(db, quiz_id, user)
    return AttemptStartOut(
        attempt_id=attempt.id,
        quiz=quiz_out(quiz, include_answers=False),
        time_limit=quiz.time_limit,
    )


# Record an answer and reveal the correct option for that question.
@app.post("/quizzes/{quiz_id}/answer", response_model=AnswerOut)
def submit_answer(
    quiz_id: str,
    payload: AnswerCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    answer, correct_answer = attempt_engine.submit_answer(
        db,
        quiz_id,
        payload.attempt_id,
        user,
        question_index=payload.question_index,
        selected_option=payload.selected_option,
        time_taken=payload.time_taken,
    )
    return AnswerOut(is_correct=answer.is_correct, correct_answer=correct_answer)


# Finalize an attempt and return its graded state.
@app.post("/quizzes/{quiz_id}/complete", response_model=AttemptOut)
def complete_attempt(
    quiz_id: str,
    payload: AttemptComplete,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    attempt = attempt_engine.complete_attempt(
        db, quiz_id, payload.attempt_id, user, time_spent=payload.time_spent
    )
    return attempt_out(attempt)


@app.get("/users/profile", response_model=UserProfileOut)
def get_profile(user: User = Depends(get_current_user)):
    return UserProfileOut(
        id=user.id,
        username=user.username,
        email=user.email,
        quizzes_created=user.quizzes_created,
        quizzes_taken=user.quizzes_taken,
        total_score=user.total_score,
        created_at=iso_timestamp(user.created_at),
    )


@app.get("/users/attempts", response_model=AttemptListOut)
def list_attempts(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    attempts, total = attempt_engine.list_user_attempts(db, user, page=page, limit=limit)
    return AttemptListOut(
        attempts=[attempt_out(attempt) for attempt in attempts],
        total=total,
        total_pages=catalog.page_count(total, limit),
        current_page=page,
    )


# Review one of the caller's attempts next to the full quiz.
@app.get("/users/attempts/{attempt_id}", response_model=AttemptDetailOut)
def get_attempt(
    attempt_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    attempt = attempt_engine.get_user_attempt(db, attempt_id, user)
    quiz = attempt.quiz
    return AttemptDetailOut(
        attempt=attempt_out(attempt),
        quiz=quiz_out(quiz, include_answers=True) if quiz else None,
    )


@app.get("/users/quizzes", response_model=QuizListOut)
def list_user_quizzes(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_my_quizzes(page=page, limit=limit, user=user, db=db)


@app.get("/users/leaderboard", response_model=List[LeaderboardEntryOut])
def get_leaderboard(
    category: Optional[str] = None,
    timeframe: str = "all",
    db: Session = Depends(get_db),
):
    rows = build_leaderboard(
        db, category=category, timeframe=timeframe, limit=get_leaderboard_limit()
    )
    return [
        LeaderboardEntryOut(
            user=LeaderboardUserOut(
                id=row.user.id,
                username=row.user.username,
                quizzes_created=row.user.quizzes_created,
                quizzes_taken=row.user.quizzes_taken,
                total_score=row.user.total_score,
            ),
            total_score=row.total_score,
            total_quizzes=row.total_quizzes,
            average_score=row.average_score,
        )
        for row in rows
    ]


# Live quiz rooms: join by quiz id, relay submitted answers to the room.
@app.websocket("/ws")
async def quiz_room_socket(websocket: WebSocket):
    await relay(websocket, rooms)
