from __future__ import annotations

import logging

import pytest
from sqlalchemy import create_engine, select, text

from adaptcore import db, models
from adaptcore.config import get_settings


@pytest.fixture()
def sqlite_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'scope.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    get_settings.cache_clear()
    db.get_engine.cache_clear()
    db.get_session_factory.cache_clear()
    models.Base.metadata.create_all(db.get_engine())
    yield url
    db.get_engine().dispose()
    get_settings.cache_clear()
    db.get_engine.cache_clear()
    db.get_session_factory.cache_clear()


def test_session_scope_commits(sqlite_url):
    with db.session_scope() as s:
        s.add(models.Plan(id="p1", athlete_id="ath-1", version=1))
    with db.session_scope() as s:
        assert s.execute(select(models.Plan.version)).scalar_one() == 1


def test_session_scope_rolls_back_on_error(sqlite_url):
    with pytest.raises(RuntimeError):
        with db.session_scope() as s:
            s.add(models.Plan(id="p1", athlete_id="ath-1", version=1))
            s.flush()
            raise RuntimeError("boom")
    with db.session_scope() as s:
        assert s.execute(select(models.Plan)).first() is None


def test_instrumented_engine_logs_slow_statements(caplog):
    engine = db.instrument_engine(create_engine("sqlite://"), slow_ms=-1.0)
    with caplog.at_level(logging.WARNING, logger="adaptcore.db"):
        with engine.connect() as conn:
            conn.execute(text("select 1"))
    assert any(r.getMessage() == "Slow statement" for r in caplog.records)
    engine.dispose()
