from fluentorm.inflection import guess_table_name, snake_case


class Mapper:
    """Per-model settings resolved once from the model's ``Meta`` class."""
    DEFAULTS = {
        "table_name": None,
        "primary_key": "id",
        "incrementing": True,
        "uses_uuid": False,
        "uuid_column": None,
        "fillable": (),
        "timestamps": True,
        "created_at_column": "created_at",
        "updated_at_column": "updated_at",
        "engine": None,
    }

    def __init__(self, cls, meta_attrs, relations):
        self.cls = cls
        self.meta = dict(meta_attrs or {})

        unknown = set(self.meta) - set(self.DEFAULTS)
        if unknown:
            raise ValueError(f"Unknown Meta option(s) on {cls.__name__}: {sorted(unknown)}")

        options = {**self.DEFAULTS, **self.meta}
        self.table_name = options["table_name"] or guess_table_name(cls.__name__)
        self.pk = options["primary_key"]
        self.incrementing = options["incrementing"]
        self.uses_uuid = options["uses_uuid"]
        self.uuid_column = options["uuid_column"] or self.pk
        self.fillable = tuple(options["fillable"])
        self.timestamps = options["timestamps"]
        self.created_at_column = options["created_at_column"]
        self.updated_at_column = options["updated_at_column"]
        self.engine = options["engine"]
        self.relations = tuple(relations)

    @property
    def foreign_key(self):
        """Default ``<snake class>_id`` column other tables use to point here."""
        return f"{snake_case(self.cls.__name__)}_id"

    def is_fillable(self, key):
        return not self.fillable or key in self.fillable

    def __repr__(self):
        return (
            f"<Mapper class={self.cls.__name__} table={self.table_name} "
            f"pk={self.pk} relations=[{', '.join(self.relations)}]>"
        )
