"""
DDL generation.

A Blueprint collects column and index definitions for one table and renders
them as ``CREATE TABLE`` (action ``"create"``) or ``ALTER TABLE`` (action
``"table"``) statements. ``Schema`` builds a blueprint from a callback and runs
the resulting statements through the engine.
"""

import logging

from fluentorm.database import get_engine
from fluentorm.exceptions import QueryValidationError

logger = logging.getLogger("fluentorm")

_UNSET = object()
_SQL_CONSTANTS = ("CURRENT_TIMESTAMP", "CURRENT_DATE", "CURRENT_TIME")
_INDEX_SUFFIXES = {"primary": "primary", "unique": "unique"}


def _quote(identifier):
    return "`" + identifier.replace("`", "``") + "`"


def _escape_string(value):
    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace('"', '\\"')
    return f"'{escaped}'"


class ColumnDefinition:
    def __init__(self, blueprint, name, sql_type):
        self.blueprint = blueprint
        self.name = name
        self.sql_type = sql_type
        self.is_nullable = False
        self.is_unsigned = False
        self.default_value = _UNSET

    def nullable(self, value=True):
        self.is_nullable = value
        return self

    def unsigned(self, value=True):
        self.is_unsigned = value
        return self

    def default(self, value):
        self.default_value = value
        return self

    def use_current(self):
        return self.default("CURRENT_TIMESTAMP")

    @property
    def has_default(self):
        return self.default_value is not _UNSET

    def primary(self, name=None):
        self.blueprint.primary(self.name, name)
        return self

    def unique(self, name=None):
        self.blueprint.unique(self.name, name)
        return self

    def index(self, name=None):
        self.blueprint.index(self.name, name)
        return self

    def to_sql(self):
        sql_type = self.sql_type
        if self.is_unsigned and "UNSIGNED" not in sql_type.upper():
            sql_type += " UNSIGNED"

        definition = f"{_quote(self.name)} {sql_type}"
        definition += " NULL" if self.is_nullable else " NOT NULL"
        if self.has_default:
            definition += " DEFAULT " + self.format_default(self.default_value)
        return definition

    @staticmethod
    def format_default(value):
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float)):
            return str(value)
        value = str(value)
        if value.upper() in _SQL_CONSTANTS:
            return value.upper()
        return _escape_string(value)

    def __repr__(self):
        return f"<ColumnDefinition {self.to_sql()}>"


class IndexDefinition:
    KINDS = ("primary", "unique", "index")

    def __init__(self, kind, columns, name):
        self.kind = kind
        self.columns = columns
        self.name = name

    def _column_list(self):
        return ", ".join(_quote(c) for c in self.columns)

    def create_sql(self):
        if self.kind == "primary":
            return f"PRIMARY KEY ({self._column_list()})"
        if self.kind == "unique":
            return f"UNIQUE KEY {_quote(self.name)} ({self._column_list()})"
        return f"KEY {_quote(self.name)} ({self._column_list()})"

    def alter_sql(self):
        if self.kind == "primary":
            return f"ADD PRIMARY KEY ({self._column_list()})"
        if self.kind == "unique":
            return f"ADD UNIQUE KEY {_quote(self.name)} ({self._column_list()})"
        return f"ADD INDEX {_quote(self.name)} ({self._column_list()})"


class Blueprint:
    ACTIONS = ("create", "table")

    def __init__(self, table, action="table"):
        if action not in self.ACTIONS:
            raise QueryValidationError(f"Invalid blueprint action: {action!r}")
        self.table = table
        self.action = action
        self.columns = []
        self.indexes = []
        # alter mode: ColumnDefinition, IndexDefinition or raw string, in call order
        self.operations = []

    @property
    def creating(self):
        return self.action == "create"

    # -------------------------
    # Columns
    # -------------------------

    def _add_column(self, name, sql_type):
        definition = ColumnDefinition(self, name, sql_type)
        if self.creating:
            self.columns.append(definition)
        else:
            self.operations.append(definition)
        return definition

    @staticmethod
    def _apply(definition, unsigned=False, nullable=False, default=_UNSET):
        if unsigned:
            definition.unsigned()
        if nullable:
            definition.nullable()
        if default is not _UNSET:
            definition.default(default)
        return definition

    def id(self, column="id"):
        return self._add_column(column, "BIGINT UNSIGNED AUTO_INCREMENT").nullable(False).primary()

    def increments(self, column):
        return self.id(column)

    def integer(self, column, unsigned=False, nullable=False, default=_UNSET):
        return self._apply(self._add_column(column, "INT"), unsigned, nullable, default)

    def big_integer(self, column, unsigned=False, nullable=False, default=_UNSET):
        return self._apply(self._add_column(column, "BIGINT"), unsigned, nullable, default)

    def string(self, column, length=255, nullable=False, default=_UNSET):
        definition = self._add_column(column, f"VARCHAR({int(length)})")
        return self._apply(definition, nullable=nullable, default=default)

    def text(self, column, nullable=True):
        return self._apply(self._add_column(column, "TEXT"), nullable=nullable)

    def enum(self, column, allowed, nullable=False, default=None):
        options = ", ".join(_escape_string(str(v)) for v in allowed)
        definition = self._add_column(column, f"ENUM({options})")
        if default is not None:
            definition.default(default)
        return self._apply(definition, nullable=nullable)

    def boolean(self, column, nullable=False, default=False):
        definition = self._add_column(column, "TINYINT(1)")
        return self._apply(definition, nullable=nullable, default=bool(default))

    def timestamp(self, column, nullable=False, default=_UNSET):
        return self._apply(self._add_column(column, "TIMESTAMP"), nullable=nullable, default=default)

    def datetime(self, column, nullable=False, default=_UNSET):
        return self._apply(self._add_column(column, "DATETIME"), nullable=nullable, default=default)

    def foreign_id(self, column, nullable=False):
        return self._apply(self._add_column(column, "BIGINT"), unsigned=True, nullable=nullable)

    def timestamps(self):
        self.timestamp("created_at").nullable()
        self.timestamp("updated_at").nullable()
        return self

    def soft_deletes(self):
        self.timestamp("deleted_at").nullable()
        return self

    # -------------------------
    # Indexes
    # -------------------------

    def primary(self, columns, name=None):
        return self._add_index("primary", columns, name)

    def unique(self, columns, name=None):
        return self._add_index("unique", columns, name)

    def index(self, columns, name=None):
        return self._add_index("index", columns, name)

    def _add_index(self, kind, columns, name):
        if isinstance(columns, str):
            columns = [columns]
        columns = [c.strip() for c in columns]
        index = IndexDefinition(kind, columns, name or self.index_name(kind, columns))
        if self.creating:
            self.indexes.append(index)
        else:
            self.operations.append(index)
        return self

    def index_name(self, kind, columns):
        suffix = _INDEX_SUFFIXES.get(kind, "index")
        name = f"{self.table}_{'_'.join(columns)}_{suffix}".lower()
        return name[:64]

    # -------------------------
    # Alter operations
    # -------------------------

    def drop_column(self, column):
        self.operations.append(f"DROP COLUMN {_quote(column)}")
        return self

    def rename_column(self, old, new):
        self.operations.append(f"RENAME COLUMN {_quote(old)} TO {_quote(new)}")
        return self

    def raw(self, definition):
        if self.creating:
            self.columns.append(definition)
        else:
            self.operations.append(definition)
        return self

    # -------------------------
    # Rendering
    # -------------------------

    def to_sql(self):
        """Return the statements for this blueprint, possibly none."""
        if self.creating:
            definitions = [c.to_sql() if isinstance(c, ColumnDefinition) else c for c in self.columns]
            definitions += [i.create_sql() for i in self.indexes]
            body = ",\n    ".join(definitions)
            return [f"CREATE TABLE {_quote(self.table)} (\n    {body}\n)"]

        operations = []
        for operation in self.operations:
            if isinstance(operation, ColumnDefinition):
                operations.append("ADD COLUMN " + operation.to_sql())
            elif isinstance(operation, IndexDefinition):
                operations.append(operation.alter_sql())
            else:
                operations.append(operation)

        if not operations:
            return []
        return [f"ALTER TABLE {_quote(self.table)} {', '.join(operations)}"]


class Schema:
    """
    Build a blueprint from a callback and execute what it compiles to.

    Statements are MySQL DDL (``AUTO_INCREMENT``, ``UNIQUE KEY``, ``ENUM``), so
    the facade expects a MySQL-compatible engine. The bundled sqlite gateway
    only accepts the subset shared with SQLite, such as the plain columns and
    PRIMARY KEY used in the tests.
    """

    @staticmethod
    def _run(statements, engine=None):
        engine = engine or get_engine()
        for sql in statements:
            engine.statement(sql)
        return statements

    @classmethod
    def create(cls, table, callback, engine=None):
        blueprint = Blueprint(table, "create")
        callback(blueprint)
        return cls._run(blueprint.to_sql(), engine)

    @classmethod
    def table(cls, table, callback, engine=None):
        blueprint = Blueprint(table, "table")
        callback(blueprint)
        statements = blueprint.to_sql()
        if not statements:
            logger.debug(f"No schema changes queued for {table}")
        return cls._run(statements, engine)

    @classmethod
    def drop(cls, table, engine=None):
        return cls._run([f"DROP TABLE {_quote(table)}"], engine)

    @classmethod
    def drop_if_exists(cls, table, engine=None):
        return cls._run([f"DROP TABLE IF EXISTS {_quote(table)}"], engine)
