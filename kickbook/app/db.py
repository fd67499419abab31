# kickbook/app/db.py
from contextlib import contextmanager
from urllib.parse import urlparse

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from .settings import settings
from .utils.logger import setup_logger

logger = setup_logger(__name__)

# Prefer a full DATABASE_URL (hosting platforms inject this). Fallback to individual parts for local dev.
DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    logger.info(
        "DB CONFIG (local fallback) -> user=%s host=%s port=%s db=%s",
        settings.PGUSER, settings.PGHOST, settings.PGPORT, settings.PGDATABASE,
    )
    DATABASE_URL = (
        f"postgresql://{settings.PGUSER}:{settings.PGPASSWORD}"
        f"@{settings.PGHOST}:{settings.PGPORT}/{settings.PGDATABASE}"
    )

connect_args = {}
parsed = urlparse(DATABASE_URL)
if parsed.scheme.startswith("sqlite"):
    connect_args["check_same_thread"] = False
elif parsed.hostname not in {"localhost", "127.0.0.1", None}:
    # remote Postgres requires SSL
    connect_args["sslmode"] = "require"

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session):
    """
    Commit everything written inside the block as one unit, or nothing.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
