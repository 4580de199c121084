# Pydantic request/response schemas.
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from quizcraft.models import CATEGORIES, DEFAULT_QUESTION_POINTS, DIFFICULTIES

# Request payload for one multiple-choice question.
class QuestionCreate(BaseModel):
    question: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=2, max_length=6)
    correct_answer: int = Field(..., ge=0)
    points: int = Field(DEFAULT_QUESTION_POINTS, ge=1)
    explanation: str = ""

    @field_validator("question")
    @classmethod
    def strip_question(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("question must not be blank")
        return value

    @model_validator(mode="after")
    def check_correct_answer(self):
        if self.correct_answer >= len(self.options):
            raise ValueError("correct_answer must reference one of the options")
        return self

# Request payload for creating a quiz.
class QuizCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=500)
    category: str
    difficulty: str = "medium"
    questions: List[QuestionCreate] = Field(..., min_length=1)
    time_limit: int = Field(10, ge=1)
    max_attempts: int = Field(3, ge=1)
    is_public: bool = True
    tags: List[str] = Field(default_factory=list)

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()

    @field_validator("category")
    @classmethod
    def check_category(cls, value: str) -> str:
        if value not in CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(CATEGORIES)}")
        return value

    @field_validator("difficulty")
    @classmethod
    def check_difficulty(cls, value: str) -> str:
        if value not in DIFFICULTIES:
            raise ValueError(f"difficulty must be one of: {', '.join(DIFFICULTIES)}")
        return value

# Question as shown while an attempt is running.
class QuestionPublicOut(BaseModel):
    question: str
    options: List[str]
    points: int = DEFAULT_QUESTION_POINTS
    explanation: str = ""

# Question including its answer key.
class QuestionOut(QuestionPublicOut):
    correct_answer: int


class QuizStatsOut(BaseModel):
    total_attempts: int
    average_score: float
    best_score: float


class CreatorOut(BaseModel):
    id: str
    username: str


class QuizBaseOut(BaseModel):
    id: str
    title: str
    description: str
    category: str
    difficulty: str
    created_by: CreatorOut
    time_limit: int
    max_attempts: int
    is_public: bool
    tags: List[str]
    stats: QuizStatsOut
    created_at: str
    updated_at: str

# Response model for a quiz with its answer key.
class QuizOut(QuizBaseOut):
    questions: List[QuestionOut]

# Response model for a quiz with answer keys stripped.
class QuizPublicOut(QuizBaseOut):
    questions: List[QuestionPublicOut]

# Paginated quiz listing.
class QuizListOut(BaseModel):
    quizzes: List[QuizPublicOut]
    total: int
    total_pages: int
    current_page: int


class MessageOut(BaseModel):
    message: str

# Response model for a freshly started attempt.
class AttemptStartOut(BaseModel):
    attempt_id: str
    quiz: QuizPublicOut
    time_limit: int

# Request payload for submitting an answer.
class AnswerCreate(BaseModel):
    attempt_id: str
    question_index: int = Field(..., ge=0)
    selected_option: int = Field(..., ge=0)
    time_taken: int = Field(0, ge=0)

# Response model for answer feedback.
class AnswerOut(BaseModel):
    is_correct: bool
    correct_answer: int

# Request payload for completing an attempt.
class AttemptComplete(BaseModel):
    attempt_id: str
    time_spent: int = Field(0, ge=0)


class AnswerRecordOut(BaseModel):
    question_index: int
    selected_option: int
    is_correct: bool
    time_taken: int


class QuizBriefOut(BaseModel):
    id: str
    title: str
    category: str
    difficulty: str

# Response model for an attempt and its recorded answers.
class AttemptOut(BaseModel):
    id: str
    user_id: str
    quiz_id: Optional[str]
    quiz: Optional[QuizBriefOut]
    answers: List[AnswerRecordOut]
    total_questions: int
    correct_answers: int
    score: int
    time_spent: int
    completed: bool
    completed_at: Optional[str]
    created_at: str


class AttemptListOut(BaseModel):
    attempts: List[AttemptOut]
    total: int
    total_pages: int
    current_page: int

# Attempt review: the attempt plus the full quiz it was taken against.
class AttemptDetailOut(BaseModel):
    attempt: AttemptOut
    quiz: Optional[QuizOut]


class UserProfileOut(BaseModel):
    id: str
    username: str
    email: Optional[str]
    quizzes_created: int
    quizzes_taken: int
    total_score: int
    created_at: str

# Public user identity: no email or other contact fields.
class LeaderboardUserOut(BaseModel):
    id: str
    username: str
    quizzes_created: int
    quizzes_taken: int
    total_score: int


class LeaderboardEntryOut(BaseModel):
    user: LeaderboardUserOut
    total_score: float
    total_quizzes: int
    average_score: float
