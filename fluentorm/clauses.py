"""
Clause model for the query builder.

Every WHERE/HAVING fragment is one node object carrying its own boolean
connector and the values it binds. Nodes own their data outright, so a
builder clone is a plain recursive copy of its node lists.
"""

from fluentorm.exceptions import QueryValidationError

BOOLEANS = ("AND", "OR")
OPERATORS = (
    "=", "<", ">", "<=", ">=", "<>", "!=", "<=>",
    "LIKE", "NOT LIKE", "LIKE BINARY", "REGEXP", "NOT REGEXP",
    "&", "|", "^", "<<", ">>",
)


def check_operator(operator):
    operator = " ".join(str(operator).split()).upper()
    if operator not in OPERATORS:
        raise QueryValidationError(f"Unsupported operator: {operator}")
    return operator


class Expression:
    """Raw SQL passed through the compiler untouched."""
    def __init__(self, sql, bindings=None):
        self.sql = sql
        self.bindings = list(bindings or [])

    def __str__(self):
        return self.sql

    def __repr__(self):
        return f"<Expression {self.sql!r} bindings={self.bindings}>"

    def __eq__(self, other):
        if not isinstance(other, Expression):
            return NotImplemented
        return self.sql == other.sql and self.bindings == other.bindings

    __hash__ = None

    def clone(self):
        return Expression(self.sql, self.bindings)


def clone_value(value):
    if isinstance(value, Expression):
        return value.clone()
    return value


class Clause:
    """Base class for WHERE/HAVING nodes."""
    def __init__(self, boolean="AND"):
        boolean = boolean.upper()
        if boolean not in BOOLEANS:
            raise QueryValidationError(f"Unknown boolean connector: {boolean}")
        self.boolean = boolean

    def clone(self):
        raise NotImplementedError

    def __repr__(self):
        fields = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items())
        return f"<{self.__class__.__name__} {fields}>"


class Basic(Clause):
    """``column operator ?``"""
    def __init__(self, column, operator, value, boolean="AND"):
        super().__init__(boolean)
        self.column = column
        self.operator = check_operator(operator)
        self.value = value

    def clone(self):
        return Basic(self.column, self.operator, clone_value(self.value), self.boolean)


class Raw(Clause):
    def __init__(self, sql, bindings=None, boolean="AND"):
        super().__init__(boolean)
        self.sql = sql
        self.bindings = list(bindings or [])

    def clone(self):
        return Raw(self.sql, self.bindings, self.boolean)


class In(Clause):
    def __init__(self, column, values, boolean="AND", negated=False):
        super().__init__(boolean)
        self.column = column
        self.values = list(values)
        self.negated = negated

    def clone(self):
        return In(self.column, self.values, self.boolean, self.negated)


class InSet(Clause):
    """Membership test against a comma-delimited (SET typed) column."""
    def __init__(self, column, values, boolean="AND", negated=False):
        super().__init__(boolean)
        self.column = column
        self.values = list(values)
        self.negated = negated

    def clone(self):
        return InSet(self.column, self.values, self.boolean, self.negated)


class Between(Clause):
    def __init__(self, column, low, high, boolean="AND", negated=False):
        super().__init__(boolean)
        self.column = column
        self.low = low
        self.high = high
        self.negated = negated

    def clone(self):
        return Between(self.column, self.low, self.high, self.boolean, self.negated)


class Null(Clause):
    def __init__(self, column, boolean="AND", negated=False):
        super().__init__(boolean)
        self.column = column
        self.negated = negated

    def clone(self):
        return Null(self.column, self.boolean, self.negated)


class Nested(Clause):
    """Parenthesised group holding its own list of child nodes."""
    def __init__(self, clauses, boolean="AND"):
        super().__init__(boolean)
        self.clauses = list(clauses)

    def clone(self):
        return Nested([c.clone() for c in self.clauses], self.boolean)


class Exists(Clause):
    """``[NOT] EXISTS (subquery)``; ``query`` is a builder owned by this node."""
    def __init__(self, query, boolean="AND", negated=False):
        super().__init__(boolean)
        self.query = query
        self.negated = negated

    def clone(self):
        return Exists(self.query.clone(), self.boolean, self.negated)


class Join:
    KINDS = ("INNER", "LEFT", "RIGHT")

    def __init__(self, kind, table, alias, first, operator, second):
        self.kind = kind
        self.table = table
        self.alias = alias
        self.first = first
        self.operator = check_operator(operator)
        self.second = second

    def clone(self):
        return Join(self.kind, self.table, self.alias, self.first, self.operator, self.second)

    def __repr__(self):
        return f"<Join {self.kind} {self.table} ON {self.first} {self.operator} {self.second}>"


class Order:
    """ORDER BY directive; ``column`` may be an identifier or an Expression."""
    DIRECTIONS = ("ASC", "DESC")

    def __init__(self, column, direction=None):
        self.column = column
        self.direction = direction

    @property
    def is_raw(self):
        return self.direction is None

    def clone(self):
        return Order(clone_value(self.column), self.direction)

    def __repr__(self):
        return f"<Order {self.column} {self.direction or 'RAW'}>"
