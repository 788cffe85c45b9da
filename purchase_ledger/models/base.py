"""
Database engine, session management, and base model.

Every model inherits from Base. Every request gets a session
from get_db(). The audit sink opens its own sessions from
SessionLocal so that audit writes never share a transaction
with the business mutation they describe.
"""

from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from purchase_ledger.config import get_settings

settings = get_settings()

# --- Engine ---
# pool_pre_ping=True tests connections before using them,
# which handles a restarted database or a stale connection.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)

# --- Session Factory ---
# autocommit=False: the write pipeline decides when to commit.
# autoflush=False: SQL is only sent on explicit flush/commit,
# so validation can finish before anything reaches the database.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# --- Dependency for FastAPI ---
def get_db():
    """
    Provide a database session for a single request.

    The try/finally guarantees the session is closed even if
    the endpoint raises, so connections are never leaked.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
