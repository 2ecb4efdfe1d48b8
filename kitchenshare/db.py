from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .errors import ConstraintViolationError, PoolExhaustionError, RollbackError
from .settings import settings

logger = logging.getLogger("kitchenshare.db")


class Base(DeclarativeBase):
    pass


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """SQLite ignores FOREIGN KEY clauses unless asked per connection."""

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class Store:
    """Explicitly constructed database handle.

    Owns the engine (and therefore the connection pool) and hands out
    sessions. Components receive a Store instead of importing a global pool.

    - unit_of_work(): one transaction, committed on success, rolled back on
      any exception, session always closed.
    - session(): read-only scope, nothing is committed.
    """

    def __init__(self, database_url: Optional[str] = None, *, engine: Optional[Engine] = None):
        if engine is None:
            url = database_url or settings.database_url
            kwargs = {"pool_pre_ping": True}
            if not url.startswith("sqlite"):
                kwargs.update(
                    pool_size=settings.db_pool_size,
                    max_overflow=settings.db_max_overflow,
                    pool_timeout=settings.db_pool_timeout,
                )
            engine = create_engine(url, **kwargs)
        if engine.dialect.name == "sqlite":
            enable_sqlite_foreign_keys(engine)

        self.engine = engine
        self._sessionmaker = sessionmaker(
            bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def dispose(self) -> None:
        self.engine.dispose()

    def _open(self) -> Session:
        # Acquire the connection eagerly so pool exhaustion is reported
        # before any statement runs.
        session = self._sessionmaker()
        try:
            session.connection()
        except PoolTimeoutError as exc:
            session.close()
            logger.error(f"Connection pool exhausted: {exc}")
            raise PoolExhaustionError("No database connection available") from exc
        return session

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        session = self._open()
        try:
            yield session
            session.commit()
        except Exception as exc:
            _rollback(session, exc)
            if isinstance(exc, IntegrityError):
                logger.warning(f"Constraint violation, transaction rolled back: {exc.orig}")
                raise ConstraintViolationError(str(exc.orig), orig=exc) from exc
            raise
        finally:
            session.close()

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self._open()
        try:
            yield session
        finally:
            session.close()


def _rollback(session: Session, exc: BaseException) -> None:
    try:
        session.rollback()
    except Exception as rollback_exc:
        logger.error(f"Rollback failed after {type(exc).__name__}: {rollback_exc}")
        raise RollbackError(f"Rollback failed: {rollback_exc}", original=exc) from rollback_exc
