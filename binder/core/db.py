"""
binder/core/db.py
Database engine setup and session management.

  • One engine per process, built from DATABASE_URL
  • session_scope() commits on success, rolls back and re-raises on error
  • Blocking ORM work is pushed off the event loop with run_sync()
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Callable, Generator, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from binder.core.config import DATABASE_URL
from binder.core.errors import StorageError

log = logging.getLogger("db")

T = TypeVar("T")


class Base(DeclarativeBase):
    """The base class for all ORM models in this application."""
    pass


def make_engine(url: str = DATABASE_URL) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            # one shared connection, or every thread would see its own empty db
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True, pool_recycle=3600)


class Database:
    """Engine + session factory. Built once in the app lifespan."""

    def __init__(self, url: str = DATABASE_URL):
        self.engine = make_engine(url)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_tables(self) -> None:
        log.info("Creating database tables if they do not exist...")
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    async def run_sync(self, fn: Callable[[Session], T]) -> T:
        """Run fn(session) in a worker thread inside one transaction."""

        def _work() -> T:
            try:
                with self.session_scope() as session:
                    return fn(session)
            except SQLAlchemyError as ex:
                raise StorageError(str(ex)) from ex

        return await asyncio.to_thread(_work)
