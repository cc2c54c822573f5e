"""Database Session Manager — async engine, request-scoped sessions, unit of work.

Invariants:
    - A session that raises rolls back before it is closed (no partial commits leak)
    - transaction() commits a unit of work only when its body completes
    - SQLAlchemy exceptions escaping a session surface as DatabaseError (core/errors.py)
    - Services never commit on their own; the engine operation owns the transaction

Design Decisions:
    - Singleton db_manager created by the FastAPI lifespan; the scheduler and the
      readiness probe reach it through this module, never through a copy
    - expire_on_commit=False: returned rows stay readable after the commit
    - SQLite URLs skip pool sizing (tests run on aiosqlite in memory)
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

from bloodmatch.core.errors import DatabaseError

logger = logging.getLogger(__name__)

# Most specific first: IntegrityError and OperationalError are DBAPIErrors
_ERROR_MAP: tuple[tuple[type[SQLAlchemyError], str, str], ...] = (
    (IntegrityError, "constraint violated", "commit"),
    (OperationalError, "connection lost or statement timed out", "execute"),
    (DBAPIError, "driver rejected the statement", "query"),
    (SQLAlchemyError, "unexpected ORM failure", "unknown"),
)


def _as_database_error(exc: SQLAlchemyError) -> DatabaseError:
    for exc_type, message, operation in _ERROR_MAP:
        if isinstance(exc, exc_type):
            return DatabaseError(message, operation)
    return DatabaseError("unexpected ORM failure", "unknown")


class DatabaseSessionManager:
    """Owns the async engine and hands out sessions."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        options = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            options.update(
                pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600,
            )
        self.engine = create_async_engine(database_url, **options)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            error = _as_database_error(e)
            logger.error(
                f"Session aborted: {error.message}",
                extra={"error_code": error.code},
                exc_info=True,
            )
            raise error from e
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """SELECT 1 through a fresh session (readiness probe)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"DB health check failed: {e}")
            return False
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Unit of work: commit on success, roll back everything on any exception."""
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per HTTP request."""
    if db_manager is None:
        raise DatabaseError("database not initialized", "connect")
    async with db_manager.session() as session:
        yield session
