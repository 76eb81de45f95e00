class ModelQuery:
    """
    QueryBuilder wrapper that returns model instances.

    Only the chainable clause methods listed here are forwarded; each one
    mutates the wrapped builder and returns the wrapper.
    """
    def __init__(self, model_class, builder):
        self.model_class = model_class
        self.builder = builder

    def __repr__(self):
        return f"<ModelQuery {self.model_class.__name__} {self.builder.to_sql()!r}>"

    def clone(self):
        return self.__class__(self.model_class, self.builder.clone())

    def to_base(self):
        return self.builder

    # chainable surface

    def select(self, *columns):
        self.builder.select(*columns)
        return self

    def add_select(self, *columns):
        self.builder.add_select(*columns)
        return self

    def select_raw(self, sql, bindings=()):
        self.builder.select_raw(sql, bindings)
        return self

    def where(self, *args, **kwargs):
        self.builder.where(*args, **kwargs)
        return self

    def or_where(self, *args, **kwargs):
        self.builder.or_where(*args, **kwargs)
        return self

    def where_not(self, column, value):
        self.builder.where_not(column, value)
        return self

    def or_where_not(self, column, value):
        self.builder.or_where_not(column, value)
        return self

    def where_in(self, column, values):
        self.builder.where_in(column, values)
        return self

    def where_not_in(self, column, values):
        self.builder.where_not_in(column, values)
        return self

    def or_where_in(self, column, values):
        self.builder.or_where_in(column, values)
        return self

    def or_where_not_in(self, column, values):
        self.builder.or_where_not_in(column, values)
        return self

    def where_in_set(self, column, values):
        self.builder.where_in_set(column, values)
        return self

    def where_not_in_set(self, column, values):
        self.builder.where_not_in_set(column, values)
        return self

    def where_between(self, column, values):
        self.builder.where_between(column, values)
        return self

    def where_not_between(self, column, values):
        self.builder.where_not_between(column, values)
        return self

    def where_null(self, column):
        self.builder.where_null(column)
        return self

    def where_not_null(self, column):
        self.builder.where_not_null(column)
        return self

    def or_where_null(self, column):
        self.builder.or_where_null(column)
        return self

    def or_where_not_null(self, column):
        self.builder.or_where_not_null(column)
        return self

    def where_raw(self, sql, bindings=()):
        self.builder.where_raw(sql, bindings)
        return self

    def or_where_raw(self, sql, bindings=()):
        self.builder.or_where_raw(sql, bindings)
        return self

    def where_exists(self, query):
        self.builder.where_exists(_unwrap(query))
        return self

    def where_not_exists(self, query):
        self.builder.where_not_exists(_unwrap(query))
        return self

    def or_where_in_set(self, column, values):
        self.builder.or_where_in_set(column, values)
        return self

    def or_where_not_in_set(self, column, values):
        self.builder.or_where_not_in_set(column, values)
        return self

    def or_where_between(self, column, values):
        self.builder.or_where_between(column, values)
        return self

    def or_where_not_between(self, column, values):
        self.builder.or_where_not_between(column, values)
        return self

    def or_where_exists(self, query):
        self.builder.or_where_exists(_unwrap(query))
        return self

    def or_where_not_exists(self, query):
        self.builder.or_where_not_exists(_unwrap(query))
        return self

    def join(self, *args, **kwargs):
        self.builder.join(*args, **kwargs)
        return self

    def left_join(self, *args, **kwargs):
        self.builder.left_join(*args, **kwargs)
        return self

    def right_join(self, *args, **kwargs):
        self.builder.right_join(*args, **kwargs)
        return self

    def group_by(self, *columns):
        self.builder.group_by(*columns)
        return self

    def having(self, *args, **kwargs):
        self.builder.having(*args, **kwargs)
        return self

    def or_having(self, *args, **kwargs):
        self.builder.or_having(*args, **kwargs)
        return self

    def having_raw(self, sql, bindings=()):
        self.builder.having_raw(sql, bindings)
        return self

    def order_by(self, column, direction="ASC"):
        self.builder.order_by(column, direction)
        return self

    def order_by_desc(self, column):
        self.builder.order_by_desc(column)
        return self

    def order_by_raw(self, sql, bindings=()):
        self.builder.order_by_raw(sql, bindings)
        return self

    def limit(self, value):
        self.builder.limit(value)
        return self

    def offset(self, value):
        self.builder.offset(value)
        return self

    def for_page(self, page, per_page):
        self.builder.for_page(page, per_page)
        return self

    def when(self, value, callback, default=None):
        # callbacks receive this wrapper, not the raw builder
        if value:
            callback(self, value)
        elif default is not None:
            default(self, value)
        return self

    # hydrating terminals

    def get(self, columns=None):
        return self._hydrate(self.builder.get(columns))

    def first(self, columns=None):
        row = self.builder.first(columns)
        if row is None:
            return None
        return self.model_class.new_from_row(row)

    def find(self, key, columns=None):
        query = self.clone()
        query.where(self.model_class.get_mapper().pk, key)
        return query.first(columns)

    def paginate(self, per_page=None, page=1):
        result = self.builder.paginate(per_page, page)
        return result.model_copy(update={"items": self._hydrate(result.items)})

    def simple_paginate(self, per_page=None, page=1):
        result = self.builder.simple_paginate(per_page, page)
        return result.model_copy(update={"items": self._hydrate(result.items)})

    def _hydrate(self, rows):
        return [self.model_class.new_from_row(row) for row in rows]

    # pass-through terminals

    def count(self, column="*"):
        return self.builder.count(column)

    def exists(self):
        return self.builder.exists()

    def pluck(self, column, key=None):
        return self.builder.pluck(column, key)

    def value(self, column):
        return self.builder.value(column)

    def to_sql(self):
        return self.builder.to_sql()

    def get_bindings(self):
        return self.builder.get_bindings()


def _unwrap(query):
    if isinstance(query, ModelQuery):
        return query.to_base()
    return query
