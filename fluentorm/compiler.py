"""
SQL compiler for fluentorm.

Turns the state accumulated by a QueryBuilder into ``(sql, bindings)``.
Bindings are gathered while fragments are emitted, so their order always
follows the placeholders in the final string.
"""

import re

from fluentorm.clauses import (
    Basic,
    Between,
    Exists,
    Expression,
    In,
    InSet,
    Nested,
    Null,
    Raw,
)
from fluentorm.exceptions import QueryValidationError

_AS_PATTERN = re.compile(r"\s+as\s+", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


class QueryCompiler:
    QUOTE = "`"

    def __init__(self):
        self._clause_compilers = {
            Basic: self._compile_basic,
            Raw: self._compile_raw,
            In: self._compile_in,
            InSet: self._compile_in_set,
            Between: self._compile_between,
            Null: self._compile_null,
            Nested: self._compile_nested,
            Exists: self._compile_exists,
        }

    # -------------------------
    # Statements
    # -------------------------

    def compile_select(self, query):
        """Compile a builder into a SELECT statement and its bindings."""
        self._require_table(query)
        bindings = []
        components = [
            self._compile_columns(query, bindings),
            self._compile_from(query),
            self._compile_joins(query),
            self.compile_wheres(query.wheres, bindings),
            self._compile_groups(query, bindings),
            self._compile_havings(query, bindings),
            self._compile_orders(query, bindings),
            self._compile_limit(query),
            self._compile_offset(query),
        ]
        return self._concatenate(components), bindings

    def compile_insert(self, table, rows):
        """``rows`` must already be validated to share the same column order."""
        columns = list(rows[0].keys())
        placeholders = "(" + ", ".join("?" for _ in columns) + ")"
        bindings = []
        for row in rows:
            for column in columns:
                bindings.append(row[column])

        sql = (
            f"INSERT INTO {self.wrap_table(table)} "
            f"({', '.join(self.wrap(c) for c in columns)}) "
            f"VALUES {', '.join(placeholders for _ in rows)}"
        )
        return sql, bindings

    def compile_update(self, query, values):
        """SET bindings come first, WHERE bindings after them."""
        self._require_table(query)
        bindings = []
        sets = []
        for column, value in values.items():
            if isinstance(value, Expression):
                sets.append(f"{self.wrap(column)} = {value.sql}")
                bindings.extend(value.bindings)
            else:
                sets.append(f"{self.wrap(column)} = ?")
                bindings.append(value)

        components = [
            f"UPDATE {self.wrap_table(query.table_name, query.alias)}",
            "SET " + ", ".join(sets),
            self.compile_wheres(query.wheres, bindings),
        ]
        return self._concatenate(components), bindings

    def compile_delete(self, query):
        self._require_table(query)
        bindings = []
        components = [
            f"DELETE FROM {self.wrap_table(query.table_name)}",
            self.compile_wheres(query.wheres, bindings),
        ]
        return self._concatenate(components), bindings

    # -------------------------
    # SELECT components
    # -------------------------

    def _compile_columns(self, query, bindings):
        columns = query.columns or ["*"]
        compiled = [self._compile_column(column, bindings) for column in columns]
        return "SELECT " + ", ".join(compiled)

    def _compile_from(self, query):
        return "FROM " + self.wrap_table(query.table_name, query.alias)

    def _compile_joins(self, query):
        if not query.joins:
            return None
        segments = []
        for join in query.joins:
            segments.append(
                f"{join.kind} JOIN {self.wrap_table(join.table, join.alias)} "
                f"ON {self.wrap(join.first)} {join.operator} {self.wrap(join.second)}"
            )
        return " ".join(segments)

    def compile_wheres(self, clauses, bindings):
        conditions = self.compile_conditions(clauses, bindings)
        return f"WHERE {conditions}" if conditions else None

    def _compile_groups(self, query, bindings):
        if not query.groups:
            return None
        columns = [self._compile_column(column, bindings) for column in query.groups]
        return "GROUP BY " + ", ".join(columns)

    def _compile_havings(self, query, bindings):
        conditions = self.compile_conditions(query.havings, bindings)
        return f"HAVING {conditions}" if conditions else None

    def _compile_orders(self, query, bindings):
        if not query.orders:
            return None
        segments = []
        for order in query.orders:
            if order.is_raw:
                segments.append(self._compile_column(order.column, bindings))
                continue
            segments.append(f"{self._compile_column(order.column, bindings)} {order.direction}")
        return "ORDER BY " + ", ".join(segments)

    def _compile_limit(self, query):
        if query.limit_value is None:
            return None
        return f"LIMIT {int(query.limit_value)}"

    def _compile_offset(self, query):
        if query.offset_value is None:
            return None
        return f"OFFSET {int(query.offset_value)}"

    # -------------------------
    # Conditions
    # -------------------------

    def compile_conditions(self, clauses, bindings):
        """Render a clause list without its leading keyword.

        The first rendered fragment never carries its boolean connector.
        """
        parts = []
        for clause in clauses:
            compiler = self._clause_compilers.get(type(clause))
            if compiler is None:
                raise QueryValidationError(
                    f"Unsupported clause type: {type(clause).__name__}"
                )
            fragment = compiler(clause, bindings)
            if not fragment:
                continue
            parts.append(f"{clause.boolean} {fragment}" if parts else fragment)
        return " ".join(parts)

    def _compile_basic(self, clause, bindings):
        column = self.wrap(clause.column)
        if isinstance(clause.value, Expression):
            bindings.extend(clause.value.bindings)
            return f"{column} {clause.operator} {clause.value.sql}"
        bindings.append(clause.value)
        return f"{column} {clause.operator} ?"

    def _compile_raw(self, clause, bindings):
        bindings.extend(clause.bindings)
        return clause.sql

    def _compile_in(self, clause, bindings):
        if not clause.values:
            # empty set: IN is never true, NOT IN always is
            return None if clause.negated else "1 = 0"
        bindings.extend(clause.values)
        placeholders = ", ".join("?" for _ in clause.values)
        negation = "NOT " if clause.negated else ""
        return f"{self.wrap(clause.column)} {negation}IN ({placeholders})"

    def _compile_in_set(self, clause, bindings):
        if not clause.values:
            return None if clause.negated else "1 = 0"
        column = self.wrap(clause.column)
        operator = "= 0" if clause.negated else "> 0"
        glue = " AND " if clause.negated else " OR "
        bindings.extend(clause.values)
        comparisons = [f"FIND_IN_SET(?, {column}) {operator}" for _ in clause.values]
        return "(" + glue.join(comparisons) + ")"

    def _compile_between(self, clause, bindings):
        bindings.extend([clause.low, clause.high])
        negation = "NOT " if clause.negated else ""
        return f"{self.wrap(clause.column)} {negation}BETWEEN ? AND ?"

    def _compile_null(self, clause, bindings):
        negation = "NOT " if clause.negated else ""
        return f"{self.wrap(clause.column)} IS {negation}NULL"

    def _compile_nested(self, clause, bindings):
        inner = self.compile_conditions(clause.clauses, bindings)
        if not inner:
            return None
        return f"({inner})"

    def _compile_exists(self, clause, bindings):
        sql, sub_bindings = self.compile_select(clause.query)
        bindings.extend(sub_bindings)
        negation = "NOT " if clause.negated else ""
        return f"{negation}EXISTS ({sql})"

    # -------------------------
    # Identifier quoting
    # -------------------------

    def _compile_column(self, column, bindings):
        if isinstance(column, Expression):
            bindings.extend(column.bindings)
            return column.sql
        return self.wrap_column_for_select(column)

    def wrap_column_for_select(self, column):
        if isinstance(column, Expression):
            return column.sql
        parts = _AS_PATTERN.split(column.strip(), maxsplit=1)
        if len(parts) == 2:
            name, alias = parts
            return f"{self.wrap(name.strip())} AS {self.wrap_value(alias.strip())}"
        return self.wrap(column)

    def wrap_table(self, table, alias=None):
        wrapped = self.wrap(table)
        if alias:
            wrapped += " AS " + self.wrap_value(alias)
        return wrapped

    def wrap(self, value):
        """Quote every dot-separated segment unless ``value`` already reads as SQL."""
        if isinstance(value, Expression):
            return value.sql
        value = value.strip()
        if value == "*":
            return value
        if self.is_expression(value):
            return value
        return ".".join(self.wrap_value(segment) for segment in value.split("."))

    def wrap_value(self, value):
        value = value.strip(" \"`'")
        if value == "*":
            return value
        return self.QUOTE + value.replace(self.QUOTE, self.QUOTE * 2) + self.QUOTE

    @staticmethod
    def is_expression(value):
        # NOTE: any parenthesis or space marks the value as raw SQL, which also
        # catches identifiers that legitimately contain them.
        return "(" in value or ")" in value or " " in value

    # -------------------------
    # Helpers
    # -------------------------

    @staticmethod
    def _concatenate(components):
        sql = " ".join(c for c in components if c)
        return _WHITESPACE.sub(" ", sql).strip()

    @staticmethod
    def _require_table(query):
        if not query.table_name:
            raise QueryValidationError("Table is not defined for the query.")
