import pytest

from fluentorm.database import DatabaseEngine, reset_engine, set_engine


@pytest.fixture
def engine():
    """In-memory engine recording every statement, installed as the default."""
    engine = DatabaseEngine(":memory:", record_queries=True)
    set_engine(engine)
    yield engine
    reset_engine()
    engine.close()


@pytest.fixture
def users_table(engine):
    engine.statement(
        "CREATE TABLE users ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "name TEXT, email TEXT, age INTEGER, active INTEGER DEFAULT 1, "
        "tags TEXT, created_at TEXT, updated_at TEXT)"
    )
    engine.flush_queries()
    return "users"
