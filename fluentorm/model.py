import logging
import uuid
from datetime import datetime

from fluentorm.builder import QueryBuilder
from fluentorm.config import get_settings
from fluentorm.exceptions import ModelStateError
from fluentorm.inflection import pivot_table_name, snake_case
from fluentorm.mapper import Mapper
from fluentorm.model_query import ModelQuery
from fluentorm.relations import BelongsTo, BelongsToMany, HasMany, HasOne

logger = logging.getLogger("fluentorm")


class Model:
    """
    Active-record base class.

    Subclasses configure themselves through an inner ``Meta`` class::

        class User(Model):
            class Meta:
                fillable = ["name", "email"]

            @relation
            def roles(self):
                return self.belongs_to_many(Role, relation_name="roles")

    Attributes live in a plain dict reached through ``get_attribute`` /
    ``set_attribute`` or item access (``user["name"]``).
    """
    _registry = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        meta_cls = cls.__dict__.get("Meta")
        meta_attrs = {}
        if meta_cls:
            for attr in dir(meta_cls):
                if not attr.startswith("_"):
                    meta_attrs[attr] = getattr(meta_cls, attr)

        relations = [
            name for name in dir(cls)
            if getattr(getattr(cls, name, None), "is_relation", False)
        ]

        cls._mapper = Mapper(cls, meta_attrs, relations)
        Model._registry[cls.__name__] = cls

    def __init__(self, attributes=None, exists=False):
        self._attributes = {}
        self._original = {}
        self._relations = {}
        self.exists = exists

        if exists:
            self.force_fill(attributes or {})
        else:
            self.fill(attributes or {})
        self.sync_original()

    def __repr__(self):
        pk_val = self.get_key()
        return f"<{self.__class__.__name__}(id={pk_val if pk_val is not None else 'New'})>"

    # -------------------------
    # Class-level API
    # -------------------------

    @classmethod
    def get_mapper(cls):
        return cls._mapper

    @classmethod
    def get_table(cls):
        return cls._mapper.table_name

    @classmethod
    def query(cls):
        return ModelQuery(cls, cls._base_query())

    @classmethod
    def _base_query(cls):
        return QueryBuilder.table(cls._mapper.table_name, engine=cls._mapper.engine)

    @classmethod
    def all(cls):
        return cls.query().get()

    @classmethod
    def find(cls, key):
        return cls.query().find(key)

    @classmethod
    def create(cls, attributes):
        model = cls()
        model.fill(attributes)
        model.save()
        return model

    @classmethod
    def paginate(cls, per_page=None, page=1):
        return cls.query().paginate(per_page, page)

    @classmethod
    def simple_paginate(cls, per_page=None, page=1):
        return cls.query().simple_paginate(per_page, page)

    @classmethod
    def new_from_row(cls, row):
        return cls(dict(row), exists=True)

    # -------------------------
    # Attributes
    # -------------------------

    def fill(self, attributes):
        """Assign only whitelisted keys; an empty whitelist allows everything."""
        for key, value in attributes.items():
            if self._mapper.is_fillable(key):
                self._attributes[key] = value
        return self

    def force_fill(self, attributes):
        self._attributes.update(attributes)
        return self

    def get_attribute(self, key, default=None):
        return self._attributes.get(key, default)

    def set_attribute(self, key, value):
        self._attributes[key] = value
        return self

    def has_attribute(self, key):
        return key in self._attributes

    def __getitem__(self, key):
        return self._attributes[key]

    def __setitem__(self, key, value):
        self.set_attribute(key, value)

    def __contains__(self, key):
        return self.has_attribute(key)

    def to_dict(self):
        return dict(self._attributes)

    def get_key(self):
        return self._attributes.get(self._mapper.pk)

    def get_original(self):
        return dict(self._original)

    def get_dirty(self):
        dirty = {}
        for key, value in self._attributes.items():
            if key not in self._original:
                dirty[key] = value
                continue
            original = self._original[key]
            if type(original) is not type(value) or original != value:
                dirty[key] = value
        return dirty

    def is_dirty(self):
        return bool(self.get_dirty())

    def sync_original(self):
        self._original = dict(self._attributes)
        return self

    def fresh_timestamp(self):
        return datetime.now().strftime(get_settings().timestamp_format)

    # -------------------------
    # Persistence
    # -------------------------

    def save(self):
        if self.exists:
            return self._perform_update()
        return self._perform_insert()

    def _perform_insert(self):
        mapper = self._mapper
        self.before_create()
        self.before_save()

        self._ensure_uuid()
        if not mapper.incrementing and self.get_key() is None:
            raise ModelStateError(
                self.__class__.__name__,
                f"Primary key {mapper.pk} must be set before inserting a non-incrementing model.",
            )

        attributes = dict(self._attributes)
        if mapper.timestamps:
            now = self.fresh_timestamp()
            if attributes.get(mapper.created_at_column) is None:
                attributes[mapper.created_at_column] = now
            if attributes.get(mapper.updated_at_column) is None:
                attributes[mapper.updated_at_column] = now

        insert_id = self._base_query().insert(attributes)
        self._attributes.update(attributes)

        if mapper.incrementing and self.get_key() is None:
            if not insert_id:
                raise ModelStateError(
                    self.__class__.__name__, "Insert did not return a generated primary key."
                )
            self._attributes[mapper.pk] = insert_id

        self.exists = True
        self.sync_original()
        logger.debug(f"{self.__class__.__name__} inserted with key {self.get_key()}")

        self.after_create()
        self.after_save()
        return True

    def _perform_update(self):
        mapper = self._mapper
        dirty = self.get_dirty()
        if not dirty:
            return True

        self.before_update()
        self.before_save()

        if mapper.timestamps:
            dirty[mapper.updated_at_column] = self.fresh_timestamp()

        # primary keys are immutable once persisted
        if mapper.pk in dirty:
            del dirty[mapper.pk]
            if mapper.pk in self._original:
                self._attributes[mapper.pk] = self._original[mapper.pk]

        if not dirty:
            self.after_update()
            self.after_save()
            return True

        key = self.get_key()
        if key is None:
            raise ModelStateError(
                self.__class__.__name__, "Cannot update a model without a primary key value."
            )

        affected = self._base_query().where(mapper.pk, key).update(dirty)
        if not affected:
            return False

        self.force_fill(dirty)
        self.sync_original()
        logger.debug(f"{self.__class__.__name__} {key} updated: {sorted(dirty)}")

        self.after_update()
        self.after_save()
        return True

    def delete(self):
        if not self.exists:
            return False

        key = self.get_key()
        if key is None:
            raise ModelStateError(
                self.__class__.__name__, "Cannot delete a model without a primary key value."
            )

        self.before_delete()
        deleted = self._base_query().where(self._mapper.pk, key).delete()
        if not deleted:
            return False

        self.exists = False
        logger.debug(f"{self.__class__.__name__} {key} deleted")
        self.after_delete()
        self.sync_original()
        return True

    def refresh(self):
        """Reload attributes from storage and drop cached relations."""
        if not self.exists:
            return self

        key = self.get_key()
        if key is None:
            raise ModelStateError(
                self.__class__.__name__, "Cannot refresh a model without a primary key value."
            )

        row = self._base_query().where(self._mapper.pk, key).first()
        if row is not None:
            self.force_fill(row)
            self.exists = True
            self._relations = {}
            self.sync_original()
        return self

    def _ensure_uuid(self):
        if not self._mapper.uses_uuid:
            return
        column = self._mapper.uuid_column
        if self._attributes.get(column) in (None, ""):
            self._attributes[column] = str(uuid.uuid4())

    # -------------------------
    # Hooks
    # -------------------------

    def before_create(self): pass
    def after_create(self): pass
    def before_update(self): pass
    def after_update(self): pass
    def before_save(self): pass
    def after_save(self): pass
    def before_delete(self): pass
    def after_delete(self): pass

    # -------------------------
    # Relations
    # -------------------------

    def relation_loaded(self, name):
        return name in self._relations

    def get_relation(self, name):
        return self._relations.get(name)

    def set_relation(self, name, value):
        self._relations[name] = value
        return self

    def forget_relation(self, name):
        self._relations.pop(name, None)
        return self

    def get_relations(self):
        return dict(self._relations)

    def load(self, name):
        """Resolve relation ``name`` once and cache the result on this instance."""
        if self.relation_loaded(name):
            return self._relations[name]

        if name not in self._mapper.relations:
            raise AttributeError(f"Model {self.__class__.__name__} has no relation {name}")

        results = getattr(self, name)().get_results()
        self.set_relation(name, results)
        return results

    @classmethod
    def _check_relation_name(cls, name):
        # the name keys the relation cache that pivot changes and associate() touch
        if name not in cls._mapper.relations:
            raise ValueError(f"Model {cls.__name__} declares no relation named {name!r}")

    @staticmethod
    def _resolve_related(related):
        if isinstance(related, str):
            if related not in Model._registry:
                raise ValueError(f"Unknown model: {related}")
            return Model._registry[related]
        return related

    def has_one(self, related, foreign_key=None, local_key=None):
        related = self._resolve_related(related)
        foreign_key = foreign_key or self._mapper.foreign_key
        local_key = local_key or self._mapper.pk
        local_value = self.get_attribute(local_key)

        query = related.query()
        if local_value is not None:
            query.where(foreign_key, local_value)
        else:
            query.where_raw("1 = 0")
        query.limit(1)
        return HasOne(query, self, local_value)

    def has_many(self, related, foreign_key=None, local_key=None):
        related = self._resolve_related(related)
        foreign_key = foreign_key or self._mapper.foreign_key
        local_key = local_key or self._mapper.pk
        local_value = self.get_attribute(local_key)

        query = related.query()
        if local_value is not None:
            query.where(foreign_key, local_value)
        else:
            query.where_raw("1 = 0")
        return HasMany(query, self, local_value)

    def belongs_to(self, related, relation_name, foreign_key=None, owner_key=None):
        self._check_relation_name(relation_name)
        related = self._resolve_related(related)
        foreign_key = foreign_key or f"{snake_case(relation_name)}_id"
        owner_key = owner_key or related.get_mapper().pk
        foreign_value = self.get_attribute(foreign_key)

        query = related.query()
        if foreign_value is not None:
            query.where(owner_key, foreign_value)
        else:
            query.where_raw("1 = 0")
        query.limit(1)
        return BelongsTo(query, self, foreign_key, owner_key, foreign_value, relation_name)

    def belongs_to_many(self, related, relation_name, table=None, foreign_pivot_key=None,
                        related_pivot_key=None, parent_key=None, related_key=None):
        self._check_relation_name(relation_name)
        related = self._resolve_related(related)
        related_mapper = related.get_mapper()
        related_table = related_mapper.table_name

        table = table or pivot_table_name(self._mapper.table_name, related_table)
        foreign_pivot_key = foreign_pivot_key or self._mapper.foreign_key
        related_pivot_key = related_pivot_key or related_mapper.foreign_key
        parent_key = parent_key or self._mapper.pk
        related_key = related_key or related_mapper.pk
        parent_value = self.get_attribute(parent_key)

        query = (
            related.query()
            .select(f"{related_table}.*")
            .join(table, f"{related_table}.{related_key}", "=", f"{table}.{related_pivot_key}")
        )
        if parent_value is not None:
            query.where(f"{table}.{foreign_pivot_key}", parent_value)
        else:
            query.where_raw("1 = 0")

        return BelongsToMany(
            query, self, table, foreign_pivot_key, related_pivot_key,
            parent_key, related_key, parent_value, relation_name,
        )
