"""
database.py — SQLAlchemy engine and session management for Travel Notes.

Provides:
  engine       — the shared SQLAlchemy engine
  SessionLocal — sessionmaker bound to the engine
  get_db()     — FastAPI dependency yielding one session per request
  init_db()    — create all tables (called at startup)
  check_db()   — connectivity check for /health
  run_in_session() — run_in_threadpool for work on a request session

SQLAlchemy calls stay synchronous.  Async route handlers wrap them in
starlette.concurrency.run_in_threadpool so the event loop is never blocked.
"""

import asyncio
import logging
import os
from typing import Any, Callable, Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from models import db

logger = logging.getLogger(__name__)


def _safe_db_url(url: str) -> str:
    """Hosted Postgres providers still hand out postgres:// URLs, which
    SQLAlchemy 1.4+ no longer accepts."""
    if url.startswith('postgres://'):
        url = 'postgresql://' + url[len('postgres://'):]
    return url


_db_url = _safe_db_url(os.getenv('DATABASE_URL', 'sqlite:///travel_notes.db'))

_connect_args: dict = {}
if _db_url.startswith('sqlite'):
    _connect_args = {'timeout': 15, 'check_same_thread': False}

engine = create_engine(
    _db_url,
    connect_args=_connect_args,
    pool_pre_ping=True,
)

# WAL lets readers proceed while one writer commits.  No-op for PostgreSQL.
if _db_url.startswith('sqlite'):
    @event.listens_for(engine, 'connect')
    def _set_sqlite_pragmas(dbapi_conn, _connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute('PRAGMA journal_mode=WAL')
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,   # ORM objects stay readable after commit in async handlers
)


def init_db() -> None:
    """Create all tables.  Safe to call repeatedly."""
    db.metadata.create_all(engine)
    logger.info('Database ready (%s)', engine.url.get_backend_name())


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session for the duration of a request, then close it."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def check_db() -> bool:
    """Run a trivial query; used by the health route."""
    try:
        with engine.connect() as conn:
            conn.execute(text('SELECT 1'))
        return True
    except SQLAlchemyError as exc:
        logger.error('Database health check failed: %s', exc)
        return False


async def run_in_session(func: Callable[..., Any], *args: Any) -> Any:
    """
    run_in_threadpool for callables that touch a request-scoped Session.

    When the awaiting coroutine is cancelled (the generation deadline, a client
    disconnect) the thread cannot be stopped.  Wait for it to finish before
    re-raising, so get_db() never closes the Session under a running query.
    """
    task = asyncio.ensure_future(run_in_threadpool(func, *args))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.warning('Session work failed after cancellation: %s', task.exception())
        raise
