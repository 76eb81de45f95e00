import logging
import sqlite3

import pytest

from fluentorm.config import DatabaseSettings, get_settings
from fluentorm.database import DatabaseEngine, Mode, get_engine, reset_engine, set_engine


@pytest.fixture
def items(engine):
    engine.statement("CREATE TABLE items (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT)")
    engine.flush_queries()
    return engine


def test_execute_modes(items):
    engine = items

    assert engine.insert("INSERT INTO items (name) VALUES (?)", ["a"]) == 1
    assert engine.insert("INSERT INTO items (name) VALUES (?)", ["b"]) == 2
    assert engine.select("SELECT name FROM items ORDER BY id") == [{"name": "a"}, {"name": "b"}]
    assert engine.first("SELECT * FROM items WHERE id = ?", [2]) == {"id": 2, "name": "b"}
    assert engine.first("SELECT * FROM items WHERE id = ?", [9]) is None
    assert engine.update("UPDATE items SET name = ?", ["z"]) == 2
    assert engine.delete("DELETE FROM items WHERE id = ?", [1]) == 1
    assert engine.execute("SELECT 1", mode=Mode.STATEMENT) is None


def test_queries_are_recorded_and_flushed(items):
    engine = items
    engine.select("SELECT * FROM items WHERE id = ?", (1,))

    assert engine.queries == [("SELECT * FROM items WHERE id = ?", [1])]
    engine.flush_queries()
    assert engine.queries == []


def test_recording_is_off_by_default():
    with DatabaseEngine(":memory:") as engine:
        engine.select("SELECT 1")
        assert engine.queries == []


def test_driver_errors_propagate(engine):
    with pytest.raises(sqlite3.OperationalError):
        engine.select("SELECT * FROM missing_table")


def test_transaction_commits_and_rolls_back(items):
    engine = items

    with engine.transaction():
        engine.insert("INSERT INTO items (name) VALUES (?)", ["kept"])

    with pytest.raises(RuntimeError):
        with engine.transaction():
            engine.insert("INSERT INTO items (name) VALUES (?)", ["lost"])
            raise RuntimeError("boom")

    assert engine.select("SELECT name FROM items") == [{"name": "kept"}]


def test_statements_are_logged(engine, caplog):
    caplog.set_level(logging.DEBUG, logger="fluentorm")

    engine.select("SELECT ? AS x", [5])

    assert "[SQL EXECUTE]: SELECT ? AS x | [PARAMS]: [5]" in caplog.text


def test_log_level_follows_settings(caplog):
    settings = DatabaseSettings(log_queries=True, log_level="INFO")
    caplog.set_level(logging.INFO, logger="fluentorm")

    with DatabaseEngine(":memory:", settings=settings) as engine:
        engine.select("SELECT 1")

    assert [r.levelno for r in caplog.records] == [logging.INFO]


def test_default_engine_registry():
    reset_engine()
    try:
        lazy = get_engine()
        assert get_engine() is lazy

        custom = DatabaseEngine(":memory:")
        assert set_engine(custom) is custom
        assert get_engine() is custom
        custom.close()
        lazy.close()
    finally:
        reset_engine()


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("FLUENTORM_DEFAULT_PER_PAGE", "40")
    monkeypatch.setenv("FLUENTORM_RECORD_QUERIES", "true")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.default_per_page == 40
        assert settings.record_queries is True
        assert settings.database_path == ":memory:"
    finally:
        get_settings.cache_clear()
