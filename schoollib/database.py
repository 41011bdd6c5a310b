import os
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./library.db")

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    Dependency function that provides a database session.

    This generator function:
    1. Creates a new SQLAlchemy session
    2. Yields it to the caller (FastAPI endpoint)
    3. Ensures the session is closed after use (in finally block)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db):
    """
    Run a block of writes as one all-or-nothing unit.

    Internal Working:
    1. The session autobegins a transaction on first use
    2. Every write inside the block is flushed into that transaction
    3. On normal exit the transaction is committed
    4. On any exception it is rolled back and the exception re-raised

    After a rollback the session expires its loaded objects, so the next
    attribute access reloads the committed state from the database.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
