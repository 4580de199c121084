# Engine, session factory and the request-scoped session dependency.
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from quizcraft.config import get_database_url


# SQLite connections are shared across the threadpool FastAPI runs sync routes
# in; server databases get liveness checks on pooled connections instead.
def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


engine = build_engine(get_database_url())
SessionLocal = sessionmaker(bind=engine, autoflush=False)

Base = declarative_base()


def get_db():
    with SessionLocal() as db:
        yield db
