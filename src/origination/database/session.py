"""
Database session management
"""
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from origination.database.connection import DatabasePool
from origination.database.models.base import Base
from origination.utils.exceptions import DatabaseError
from origination.utils.logging import get_logger

logger = get_logger(__name__)

# Session factory - will be initialized after pool is ready
SessionLocal: Optional[sessionmaker] = None


def init_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """
    Initialize the session factory with the database engine.
    Should be called after DatabasePool.initialize()
    """
    global SessionLocal
    if SessionLocal is None:
        engine = engine or DatabasePool.get_engine()
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    return SessionLocal


def init_db(engine: Optional[Engine] = None) -> None:
    """
    Create all tables defined in models.
    """
    # Register every model on the metadata
    import origination.database.models  # noqa: F401

    Base.metadata.create_all(bind=engine or DatabasePool.get_engine())


def get_session() -> Session:
    """
    Get a new database session from the pool.
    Use this for manual session management outside of FastAPI dependencies.

    Raises:
        RuntimeError: If session factory is not initialized
    """
    if SessionLocal is None:
        init_session_factory()

    if SessionLocal is None:
        raise RuntimeError("Session factory not initialized. Call DatabasePool.initialize() first.")

    return SessionLocal()


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """
    Unit of work: every write made inside the block is committed together,
    or all of them are rolled back.

    Database failures are re-raised as DatabaseError; other exceptions
    (business rule violations raised mid-block) roll back and propagate as is.
    """
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[red]❌ Transaction rolled back:[/red] {e}")
        raise DatabaseError(detail="Database transaction failed") from e
    except Exception:
        session.rollback()
        raise
