import re

from fluentorm.clauses import (
    Basic,
    Between,
    Exists,
    Expression,
    In,
    InSet,
    Join,
    Nested,
    Null,
    Order,
    Raw,
    clone_value,
)
from fluentorm.compiler import QueryCompiler
from fluentorm.config import get_settings
from fluentorm.database import get_engine
from fluentorm.exceptions import QueryValidationError
from fluentorm.paginator import Paginator

_MISSING = object()
_ALIAS_PATTERN = re.compile(r"\s+as\s+", re.IGNORECASE)


def raw(sql, bindings=()):
    """Wrap ``sql`` so the compiler emits it verbatim."""
    return Expression(sql, bindings)


def parse_table_alias(table, alias=None):
    """Split ``"users as u"`` / ``"users u"`` into ``("users", "u")``."""
    table = table.strip()
    if alias:
        return table, alias

    parts = _ALIAS_PATTERN.split(table, maxsplit=1)
    if len(parts) == 2:
        return parts[0].strip(), parts[1].strip()

    parts = table.split()
    if len(parts) == 2:
        return parts[0], parts[1]

    return table, None


def guess_column_alias(column):
    """Name under which ``column`` appears in a result row."""
    if isinstance(column, Expression):
        column = column.sql
    match = re.search(r"\s+as\s+(.+)$", column, re.IGNORECASE)
    if match:
        return match.group(1).strip("`\" ")
    if "." in column:
        return column.rsplit(".", 1)[1].strip("`\" ")
    return column.strip("`\" ")


def _flatten(columns):
    flat = []
    for column in columns:
        if isinstance(column, (list, tuple)):
            flat.extend(_flatten(column))
        else:
            flat.append(column)
    return flat


class QueryBuilder:
    """
    Fluent builder for one table.

    Chain methods mutate and return ``self``. Terminal operations work on a
    clone, so a builder can be executed repeatedly and keep composing.
    """
    compiler = QueryCompiler()

    def __init__(self, engine=None):
        self._engine = engine
        self.table_name = None
        self.alias = None
        self.columns = []
        self.joins = []
        self.wheres = []
        self.groups = []
        self.havings = []
        self.orders = []
        self.limit_value = None
        self.offset_value = None

    @classmethod
    def table(cls, table, alias=None, engine=None):
        return cls(engine=engine).from_(table, alias)

    @property
    def engine(self):
        return self._engine or get_engine()

    def from_(self, table, alias=None):
        self.table_name, self.alias = parse_table_alias(table, alias)
        return self

    def clone(self):
        copy = self.__class__(engine=self._engine)
        copy.table_name = self.table_name
        copy.alias = self.alias
        copy.columns = [clone_value(c) for c in self.columns]
        copy.joins = [j.clone() for j in self.joins]
        copy.wheres = [w.clone() for w in self.wheres]
        copy.groups = [clone_value(g) for g in self.groups]
        copy.havings = [h.clone() for h in self.havings]
        copy.orders = [o.clone() for o in self.orders]
        copy.limit_value = self.limit_value
        copy.offset_value = self.offset_value
        return copy

    def _scoped(self):
        # fresh builder on the same table for nested groups
        return self.__class__(engine=self._engine).from_(self.table_name or "", self.alias)

    # -------------------------
    # Selection
    # -------------------------

    def select(self, *columns):
        self.columns = _flatten(columns)
        return self

    def add_select(self, *columns):
        self.columns.extend(_flatten(columns))
        return self

    def select_raw(self, sql, bindings=()):
        self.columns.append(Expression(sql, bindings))
        return self

    # -------------------------
    # WHERE
    # -------------------------

    def where(self, column, operator=_MISSING, value=_MISSING, boolean="AND"):
        if callable(column):
            return self._where_nested(column, boolean)

        if isinstance(column, dict):
            for key, item in column.items():
                self.where(key, "=", item, boolean)
            return self

        if value is _MISSING:
            value = None if operator is _MISSING else operator
            operator = "="

        if value is None:
            negated = str(operator).strip() in ("!=", "<>")
            return self.where_null(column, boolean, negated)

        self.wheres.append(Basic(column, str(operator), value, boolean))
        return self

    def or_where(self, column, operator=_MISSING, value=_MISSING):
        return self.where(column, operator, value, "OR")

    def where_not(self, column, value, boolean="AND"):
        return self.where(column, "!=", value, boolean)

    def or_where_not(self, column, value):
        return self.where_not(column, value, "OR")

    def _where_nested(self, callback, boolean):
        nested = self._scoped()
        callback(nested)
        if nested.wheres:
            self.wheres.append(Nested(nested.wheres, boolean))
        return self

    def where_in(self, column, values, boolean="AND", negated=False):
        values = list(values)
        if not values:
            if negated:
                return self
            return self.where_raw("1 = 0", boolean=boolean)
        self.wheres.append(In(column, values, boolean, negated))
        return self

    def where_not_in(self, column, values, boolean="AND"):
        return self.where_in(column, values, boolean, negated=True)

    def or_where_in(self, column, values):
        return self.where_in(column, values, "OR")

    def or_where_not_in(self, column, values):
        return self.where_not_in(column, values, "OR")

    def where_in_set(self, column, values, boolean="AND", negated=False):
        values = list(values)
        if not values:
            if negated:
                return self
            return self.where_raw("1 = 0", boolean=boolean)
        self.wheres.append(InSet(column, values, boolean, negated))
        return self

    def where_not_in_set(self, column, values, boolean="AND"):
        return self.where_in_set(column, values, boolean, negated=True)

    def or_where_in_set(self, column, values):
        return self.where_in_set(column, values, "OR")

    def or_where_not_in_set(self, column, values):
        return self.where_not_in_set(column, values, "OR")

    def where_between(self, column, values, boolean="AND", negated=False):
        values = list(values)
        if len(values) != 2:
            raise QueryValidationError("Between requires exactly two values.")
        self.wheres.append(Between(column, values[0], values[1], boolean, negated))
        return self

    def where_not_between(self, column, values, boolean="AND"):
        return self.where_between(column, values, boolean, negated=True)

    def or_where_between(self, column, values):
        return self.where_between(column, values, "OR")

    def or_where_not_between(self, column, values):
        return self.where_not_between(column, values, "OR")

    def where_null(self, column, boolean="AND", negated=False):
        self.wheres.append(Null(column, boolean, negated))
        return self

    def where_not_null(self, column, boolean="AND"):
        return self.where_null(column, boolean, negated=True)

    def or_where_null(self, column):
        return self.where_null(column, "OR")

    def or_where_not_null(self, column):
        return self.where_not_null(column, "OR")

    def where_raw(self, sql, bindings=(), boolean="AND"):
        self.wheres.append(Raw(sql, bindings, boolean))
        return self

    def or_where_raw(self, sql, bindings=()):
        return self.where_raw(sql, bindings, "OR")

    def where_exists(self, query, boolean="AND", negated=False):
        self.wheres.append(Exists(query.clone(), boolean, negated))
        return self

    def where_not_exists(self, query, boolean="AND"):
        return self.where_exists(query, boolean, negated=True)

    def or_where_exists(self, query):
        return self.where_exists(query, "OR")

    def or_where_not_exists(self, query):
        return self.where_not_exists(query, "OR")

    # -------------------------
    # JOIN / GROUP / HAVING / ORDER
    # -------------------------

    def join(self, table, first, operator=None, second=None, kind="INNER", alias=None):
        if second is None:
            raise QueryValidationError("Join requires a second column.")
        kind = kind.upper()
        if kind not in Join.KINDS:
            raise QueryValidationError(f"Unknown join type: {kind}")
        join_table, join_alias = parse_table_alias(table, alias)
        self.joins.append(Join(kind, join_table, join_alias, first, operator or "=", second))
        return self

    def left_join(self, table, first, operator=None, second=None, alias=None):
        return self.join(table, first, operator, second, "LEFT", alias)

    def right_join(self, table, first, operator=None, second=None, alias=None):
        return self.join(table, first, operator, second, "RIGHT", alias)

    def group_by(self, *columns):
        self.groups.extend(_flatten(columns))
        return self

    def having(self, column, operator=_MISSING, value=_MISSING, boolean="AND"):
        if callable(column):
            return self._having_nested(column, boolean)

        if value is _MISSING:
            value = None if operator is _MISSING else operator
            operator = "="

        if value is None:
            raise QueryValidationError("HAVING requires a value.")

        self.havings.append(Basic(column, str(operator), value, boolean))
        return self

    def or_having(self, column, operator=_MISSING, value=_MISSING):
        return self.having(column, operator, value, "OR")

    def having_raw(self, sql, bindings=(), boolean="AND"):
        self.havings.append(Raw(sql, bindings, boolean))
        return self

    def or_having_raw(self, sql, bindings=()):
        return self.having_raw(sql, bindings, "OR")

    def _having_nested(self, callback, boolean):
        nested = self._scoped()
        callback(nested)
        if nested.havings:
            self.havings.append(Nested(nested.havings, boolean))
        return self

    def order_by(self, column, direction="ASC"):
        direction = direction.upper()
        if direction not in Order.DIRECTIONS:
            raise QueryValidationError("Order direction must be ASC or DESC.")
        self.orders.append(Order(column, direction))
        return self

    def order_by_desc(self, column):
        return self.order_by(column, "DESC")

    def order_by_raw(self, sql, bindings=()):
        self.orders.append(Order(Expression(sql, bindings)))
        return self

    # -------------------------
    # Windowing
    # -------------------------

    def limit(self, value):
        self.limit_value = None if value is None else max(0, int(value))
        return self

    def offset(self, value):
        self.offset_value = None if value is None else max(0, int(value))
        return self

    def for_page(self, page, per_page):
        page = max(1, int(page))
        self.limit(per_page)
        return self.offset((page - 1) * per_page)

    def when(self, value, callback, default=None):
        if value:
            callback(self, value)
        elif default is not None:
            default(self, value)
        return self

    # -------------------------
    # Compilation
    # -------------------------

    def to_sql(self):
        return self.compiler.compile_select(self)[0]

    def get_bindings(self):
        return self.compiler.compile_select(self)[1]

    def __repr__(self):
        return f"<QueryBuilder {self.table_name!r}>"

    # -------------------------
    # Terminal reads
    # -------------------------

    def get(self, columns=None):
        query = self.clone()
        if columns:
            query.select(columns)
        sql, bindings = self.compiler.compile_select(query)
        return self.engine.select(sql, bindings)

    def first(self, columns=None):
        query = self.clone().limit(1)
        if columns:
            query.select(columns)
        sql, bindings = self.compiler.compile_select(query)
        return self.engine.first(sql, bindings)

    def value(self, column):
        row = self.first([column])
        if not row:
            return None
        return row.get(guess_column_alias(column))

    def pluck(self, column, key=None):
        columns = [column] if key is None else [column, key]
        rows = self.get(columns)
        value_key = guess_column_alias(column)
        if key is None:
            return [row.get(value_key) for row in rows]
        key_name = guess_column_alias(key)
        return {row.get(key_name): row.get(value_key) for row in rows}

    def count(self, column="*"):
        query = self.clone()
        target = "*" if column == "*" else self.compiler.wrap(column)
        query.select(raw(f"COUNT({target}) AS aggregate"))
        query.orders = []
        query.limit(None).offset(None)
        sql, bindings = self.compiler.compile_select(query)
        row = self.engine.first(sql, bindings)
        if not row:
            return 0
        return int(row.get("aggregate") or 0)

    def exists(self):
        query = self.clone()
        query.select(raw("1"))
        query.orders = []
        query.limit(1).offset(None)
        sql, bindings = self.compiler.compile_select(query)
        return self.engine.first(sql, bindings) is not None

    # -------------------------
    # Terminal writes
    # -------------------------

    def insert(self, values):
        """Insert one row (dict) or many rows (list of dicts); returns the last insert id."""
        if not self.table_name:
            raise QueryValidationError("Cannot insert without a table name.")
        if not values:
            raise QueryValidationError("Insert values cannot be empty.")
        rows = self._prepare_insert_rows(values)
        sql, bindings = self.compiler.compile_insert(self.table_name, rows)
        return self.engine.insert(sql, bindings)

    def update(self, values):
        if not self.table_name:
            raise QueryValidationError("Cannot update without a table name.")
        if not values:
            raise QueryValidationError("Update values cannot be empty.")
        sql, bindings = self.compiler.compile_update(self, values)
        return self.engine.update(sql, bindings)

    def delete(self):
        if not self.table_name:
            raise QueryValidationError("Cannot delete without a table name.")
        sql, bindings = self.compiler.compile_delete(self)
        return self.engine.delete(sql, bindings)

    @staticmethod
    def _prepare_insert_rows(values):
        if isinstance(values, dict):
            return [values]

        if not isinstance(values, (list, tuple)) or not all(isinstance(r, dict) for r in values):
            raise QueryValidationError(
                "Insert expects a mapping or a list of mappings."
            )

        columns = list(values[0].keys())
        expected = set(columns)
        rows = []
        for row in values:
            if set(row.keys()) != expected:
                raise QueryValidationError("All insert rows must share the same columns.")
            rows.append({column: row[column] for column in columns})
        return rows

    # -------------------------
    # Pagination
    # -------------------------

    def paginate(self, per_page=None, page=1):
        page, per_page = self._page_window(per_page, page)

        count_query = self.clone()
        count_query.orders = []
        count_query.limit(None).offset(None)
        total = count_query.count()

        items = self.clone().for_page(page, per_page).get()
        return Paginator(items=items, total=total, per_page=per_page, current_page=page)

    def simple_paginate(self, per_page=None, page=1):
        """Page without a COUNT query; ``total`` only covers rows up to this page."""
        page, per_page = self._page_window(per_page, page)
        items = self.clone().for_page(page, per_page).get()
        total = (page - 1) * per_page + len(items)
        return Paginator(items=items, total=total, per_page=per_page, current_page=page)

    @staticmethod
    def _page_window(per_page, page):
        if per_page is None:
            per_page = get_settings().default_per_page
        return max(1, int(page)), max(1, int(per_page))
