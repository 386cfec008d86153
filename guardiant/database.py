from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from guardiant.config import DATABASE_URL


def make_engine(url: str, **kwargs):

    if url.startswith("sqlite"):
        # Needed for SQLite
        kwargs.setdefault("connect_args", {"check_same_thread": False})

    return create_engine(url, **kwargs)


# Create engine
engine = make_engine(DATABASE_URL)

# Session
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Base for models
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
