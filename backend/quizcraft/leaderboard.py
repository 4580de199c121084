# Leaderboard built from completed attempts.
import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quizcraft.errors import ValidationError
from quizcraft.models import Quiz, QuizAttempt, User

TIMEFRAMES = ("week", "month", "year", "all")


@dataclass
class LeaderboardRow:
    user: User
    total_score: float
    total_quizzes: int
    average_score: float


def _months_back(moment: datetime, months: int) -> datetime:
    # Clamp to the last day of the target month (e.g. Mar 31 -> Feb 28).
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


# Earliest completion time included for a timeframe; None means unbounded.
def timeframe_start(timeframe: str, now: Optional[datetime] = None) -> Optional[datetime]:
    if timeframe not in TIMEFRAMES:
        raise ValidationError(f"timeframe must be one of: {', '.join(TIMEFRAMES)}")
    now = now or datetime.now(tz=timezone.utc)
    if timeframe == "week":
        return now - timedelta(days=7)
    if timeframe == "month":
        return _months_back(now, 1)
    if timeframe == "year":
        return _months_back(now, 12)
    return None


# Rank users by summed completed-attempt score; ties go to the lower user id.
# Users that no longer exist are skipped.
def build_leaderboard(
    db: Session,
    category: Optional[str] = None,
    timeframe: str = "all",
    limit: int = 50,
    now: Optional[datetime] = None,
) -> List[LeaderboardRow]:
    start = timeframe_start(timeframe, now)

    total_score = func.sum(QuizAttempt.score).label("total_score")
    query = db.query(
        QuizAttempt.user_id,
        total_score,
        func.count(QuizAttempt.id).label("total_quizzes"),
        func.avg(QuizAttempt.score).label("average_score"),
    ).filter(QuizAttempt.completed.is_(True))
    if category:
        query = query.filter(
            QuizAttempt.quiz_id.in_(select(Quiz.id).where(Quiz.category == category))
        )
    if start is not None:
        query = query.filter(QuizAttempt.completed_at >= start)

    rows = (
        query.group_by(QuizAttempt.user_id)
        .order_by(total_score.desc(), QuizAttempt.user_id)
        .limit(limit)
        .all()
    )
    user_ids = [row.user_id for row in rows]
    users = {user.id: user for user in db.query(User).filter(User.id.in_(user_ids)).all()}

    return [
        LeaderboardRow(
            user=users[row.user_id],
            total_score=float(row.total_score or 0),
            total_quizzes=int(row.total_quizzes),
            average_score=float(row.average_score or 0),
        )
        for row in rows
        if row.user_id in users
    ]
