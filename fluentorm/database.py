import logging
import sqlite3
from contextlib import contextmanager
from enum import Enum, auto

from fluentorm.config import get_settings


class Mode(Enum):
    SELECT = auto()
    INSERT = auto()
    UPDATE = auto()
    DELETE = auto()
    STATEMENT = auto()


def _dict_factory(cursor, row):
    return {column[0]: row[i] for i, column in enumerate(cursor.description)}


def _find_in_set(needle, haystack):
    """1-based position of ``needle`` in a comma-separated ``haystack``, 0 when absent."""
    if needle is None or haystack is None:
        return None
    items = str(haystack).split(",")
    needle = str(needle)
    if needle not in items:
        return 0
    return items.index(needle) + 1


class DatabaseEngine:
    logger = logging.getLogger("fluentorm")

    def __init__(self, db_path=None, settings=None, record_queries=None):
        self.settings = settings or get_settings()
        self.db_path = db_path or self.settings.database_path
        # autocommit; explicit boundaries go through transaction()
        self.connection = sqlite3.connect(self.db_path, isolation_level=None)
        self.connection.row_factory = _dict_factory
        # where_in_set compiles to FIND_IN_SET, which sqlite lacks
        self.connection.create_function("FIND_IN_SET", 2, _find_in_set, deterministic=True)
        if record_queries is None:
            record_queries = self.settings.record_queries
        self.record_queries = record_queries
        self.queries = []

    def _log(self, sql, params=None):
        msg = f"[SQL EXECUTE]: {sql}"
        if params:
            msg += f" | [PARAMS]: {list(params)}"
        level = logging.DEBUG
        if self.settings.log_queries:
            level = logging.getLevelName(self.settings.log_level.upper())
            if not isinstance(level, int):
                level = logging.INFO
        self.logger.log(level, msg)

    def execute(self, sql, params=None, mode=Mode.SELECT):
        """Run one statement and shape the result according to ``mode``."""
        params = list(params or ())
        self._log(sql, params)
        if self.record_queries:
            self.queries.append((sql, params))

        cursor = self.connection.cursor()
        try:
            cursor.execute(sql, params)
            if mode is Mode.SELECT:
                return cursor.fetchall()
            if mode is Mode.INSERT:
                return cursor.lastrowid
            if mode in (Mode.UPDATE, Mode.DELETE):
                return cursor.rowcount
            return None
        finally:
            cursor.close()

    def select(self, sql, params=None):
        return self.execute(sql, params, Mode.SELECT)

    def first(self, sql, params=None):
        rows = self.select(sql, params)
        return rows[0] if rows else None

    def insert(self, sql, params=None):
        return self.execute(sql, params, Mode.INSERT)

    def update(self, sql, params=None):
        return self.execute(sql, params, Mode.UPDATE)

    def delete(self, sql, params=None):
        return self.execute(sql, params, Mode.DELETE)

    def statement(self, sql, params=None):
        return self.execute(sql, params, Mode.STATEMENT)

    def flush_queries(self):
        self.queries = []

    @contextmanager
    def transaction(self):
        self.execute("BEGIN", mode=Mode.STATEMENT)
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def commit(self):
        if self.connection.in_transaction:
            self.execute("COMMIT", mode=Mode.STATEMENT)

    def rollback(self):
        if self.connection.in_transaction:
            self.execute("ROLLBACK", mode=Mode.STATEMENT)

    def close(self):
        self.connection.close()

    def __enter__(self): return self
    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


_default_engine = None


def set_engine(engine):
    """Install ``engine`` as the default for builders and models without one."""
    global _default_engine
    _default_engine = engine
    return engine


def get_engine():
    global _default_engine
    if _default_engine is None:
        _default_engine = DatabaseEngine()
    return _default_engine


def reset_engine():
    global _default_engine
    _default_engine = None
