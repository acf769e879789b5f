"""
Database Connection Pool Manager
Uses SQLAlchemy for connection pooling (PostgreSQL in production, SQLite for local runs)
"""
from sqlalchemy import create_engine, Engine
from sqlalchemy.pool import Pool, QueuePool
from typing import Optional
from origination.core.config import settings
from origination.utils.logging import get_logger

logger = get_logger(__name__)


class DatabasePool:
    """
    Connection pool manager using SQLAlchemy.
    Manages a single shared engine for all database operations.
    """

    _engine: Optional[Engine] = None
    _pool: Optional[Pool] = None
    _initialized: bool = False

    @classmethod
    def initialize(cls, url: Optional[str] = None) -> None:
        """
        Initialize the database connection pool.
        Should be called at application startup.

        Args:
            url: Optional database URL overriding settings.database
        """
        if cls._initialized:
            logger.warning("Database pool already initialized")
            return

        db_config = settings.database
        pool_config = db_config.pool
        url = url or db_config.url

        engine_kwargs = {"echo": pool_config.echo}
        if url.startswith("sqlite"):
            # Sessions are used from the event loop and from background tasks
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs.update(
                pool_pre_ping=True,  # Verify connections before using
                pool_size=pool_config.size,
                max_overflow=pool_config.max_overflow,
                pool_timeout=pool_config.timeout,
                pool_recycle=pool_config.recycle,
            )
            if db_config.is_postgres and db_config.db_schema:
                engine_kwargs["connect_args"] = {"options": f"-csearch_path={db_config.db_schema}"}

        try:
            cls._engine = create_engine(url, **engine_kwargs)
        except Exception as e:
            logger.error(f"[red]❌ Failed to initialize database pool:[/red] {e}")
            raise

        cls._pool = cls._engine.pool
        cls._initialized = True

        logger.info(
            f"[green]Database pool initialized:[/green] "
            f"[cyan]{cls._engine.dialect.name}[/cyan], "
            f"[cyan]size={pool_config.size}[/cyan], [cyan]max_overflow={pool_config.max_overflow}[/cyan]"
        )

    @classmethod
    def get_engine(cls) -> Engine:
        """
        Get the database engine.
        Initializes the pool if not already initialized.
        """
        if not cls._initialized:
            cls.initialize()

        if cls._engine is None:
            raise RuntimeError("Database pool not initialized")

        return cls._engine

    @classmethod
    def close(cls) -> None:
        """
        Close the database connection pool.
        Should be called at application shutdown.
        """
        if cls._engine is not None:
            try:
                cls._engine.dispose()
                logger.info("[green]Database pool closed successfully[/green]")
            finally:
                cls._engine = None
                cls._pool = None
                cls._initialized = False

    @classmethod
    def get_pool_status(cls) -> dict:
        """
        Get the current status of the connection pool.
        Counters are only reported for queue pools.
        """
        if not cls._initialized or cls._pool is None:
            return {
                "initialized": False,
                "size": 0,
                "checked_in": 0,
                "checked_out": 0,
                "overflow": 0,
            }

        if not isinstance(cls._pool, QueuePool):
            return {"initialized": True, "size": 1, "checked_in": 0, "checked_out": 0, "overflow": 0}

        return {
            "initialized": True,
            "size": cls._pool.size(),
            "checked_in": cls._pool.checkedin(),
            "checked_out": cls._pool.checkedout(),
            "overflow": cls._pool.overflow(),
        }
