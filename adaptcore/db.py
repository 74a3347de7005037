from __future__ import annotations

import time
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from adaptcore.config import get_settings
from adaptcore.logging_config import get_logger

logger = get_logger(__name__)

SLOW_STATEMENT_MS = 250.0


def instrument_engine(engine: Engine, slow_ms: float = SLOW_STATEMENT_MS) -> Engine:
    """Log statements that run longer than ``slow_ms``."""

    @event.listens_for(engine, "before_cursor_execute")
    def _start(conn, cursor, statement, parameters, context, executemany):
        context._adapt_started = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def _finish(conn, cursor, statement, parameters, context, executemany):
        elapsed = (time.perf_counter() - context._adapt_started) * 1000
        if elapsed > slow_ms:
            logger.warning(
                "Slow statement",
                extra={"ctx_elapsed_ms": round(elapsed, 2), "ctx_statement": statement[:200]},
            )

    return engine


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return instrument_engine(create_engine(get_settings().database_url, pool_pre_ping=True))


@lru_cache(maxsize=1)
def get_session_factory():
    # previews are read back after commit, so keep loaded attributes
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, expire_on_commit=False)


@contextmanager
def session_scope() -> Iterator[Session]:
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
