import logging

from fluentorm.builder import QueryBuilder
from fluentorm.exceptions import ModelStateError

logger = logging.getLogger("fluentorm")


def relation(method):
    """Mark a model method as a relation so ``Model.load(name)`` can resolve it."""
    method.is_relation = True
    return method


def _id_of(value):
    if hasattr(value, "get_key"):
        return value.get_key()
    return value


class Relation:
    """A pre-scoped ModelQuery for the related model plus the owning record."""
    def __init__(self, query, parent):
        self.query = query
        self.parent = parent

    def get_query(self):
        return self.query

    def get_results(self):
        raise NotImplementedError

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.query.model_class.__name__}>"


class HasMany(Relation):
    def __init__(self, query, parent, local_value):
        super().__init__(query, parent)
        self.local_value = local_value

    def get_results(self):
        if self.local_value is None:
            return []
        return self.query.get()


class HasOne(Relation):
    def __init__(self, query, parent, local_value):
        super().__init__(query, parent)
        self.local_value = local_value

    def get_results(self):
        if self.local_value is None:
            return None
        return self.query.first()


class BelongsTo(Relation):
    def __init__(self, query, parent, foreign_key, owner_key, foreign_value, relation_name):
        super().__init__(query, parent)
        self.foreign_key = foreign_key
        self.owner_key = owner_key
        self.foreign_value = foreign_value
        self.relation_name = relation_name

    def get_results(self):
        if self.foreign_value is None:
            return None
        return self.query.first()

    def associate(self, model):
        """Point the parent's foreign key at ``model`` and cache it as the relation value."""
        self.parent.set_attribute(self.foreign_key, model.get_attribute(self.owner_key))
        self.parent.set_relation(self.relation_name, model)
        return self.parent

    def dissociate(self):
        self.parent.set_attribute(self.foreign_key, None)
        self.parent.set_relation(self.relation_name, None)
        return self.parent


class BelongsToMany(Relation):
    """
    Many-to-many through a pivot table.

    ``ids`` arguments accept a single id, a list of ids (or models), or a
    mapping of ``{id: {pivot column: value}}``.
    """
    def __init__(self, query, parent, pivot_table, foreign_pivot_key, related_pivot_key,
                 parent_key, related_key, parent_value, relation_name):
        super().__init__(query, parent)
        self.pivot_table = pivot_table
        self.foreign_pivot_key = foreign_pivot_key
        self.related_pivot_key = related_pivot_key
        self.parent_key = parent_key
        self.related_key = related_key
        self.parent_value = parent_value
        self.relation_name = relation_name
        self.timestamps = False
        self.pivot_created_at = "created_at"
        self.pivot_updated_at = "updated_at"

    def get_results(self):
        if self.parent_value is None:
            return []
        return self.query.get()

    def with_timestamps(self, created_at="created_at", updated_at="updated_at"):
        self.timestamps = True
        self.pivot_created_at = created_at
        self.pivot_updated_at = updated_at
        return self

    def _pivot(self):
        return QueryBuilder.table(self.pivot_table, engine=self.parent.get_mapper().engine)

    def _pivot_for_parent(self):
        return self._pivot().where(self.foreign_pivot_key, self.parent_value)

    def _require_parent(self, action):
        if self.parent_value is None:
            raise ModelStateError(
                self.parent.__class__.__name__,
                f"Cannot {action} records without a persisted parent model.",
            )

    def attach(self, ids, attributes=None):
        self._require_parent("attach")
        records = self._build_pivot_records(ids, attributes)
        if not records:
            return
        self._insert_records(records)
        logger.debug(
            f"Attached {[r[self.related_pivot_key] for r in records]} on {self.pivot_table}"
        )
        self._forget_cached_relation()

    def detach(self, ids=None):
        """Remove links for ``ids`` (all links when omitted); returns the deleted count."""
        if self.parent_value is None:
            return 0

        query = self._pivot_for_parent()
        if ids is not None:
            ids = self._normalize_ids(ids)
            if not ids:
                return 0
            query.where_in(self.related_pivot_key, ids)

        deleted = query.delete()
        if deleted > 0:
            logger.debug(f"Detached {deleted} row(s) from {self.pivot_table}")
            self._forget_cached_relation()
        return deleted

    def sync(self, ids, detaching=True):
        """
        Converge the pivot rows of this parent to exactly ``ids``.

        Missing links are inserted, links carrying pivot attributes are
        rewritten, and (when ``detaching``) links not listed are removed.
        Returns the ids grouped by what happened to them.
        """
        self._require_parent("sync")

        desired = {}
        for record in self._build_pivot_records(ids, None):
            desired[str(record[self.related_pivot_key])] = record

        linked = self._pivot_for_parent().pluck(self.related_pivot_key)
        existing = {str(value): value for value in linked}

        to_insert = [r for key, r in desired.items() if key not in existing]
        to_update = {key: r for key, r in desired.items() if key in existing}
        detached = []
        if detaching:
            detached = [value for key, value in existing.items() if key not in desired]

        if detached:
            self._pivot_for_parent().where_in(self.related_pivot_key, detached).delete()

        if to_insert:
            self._insert_records(to_insert)

        updated = []
        for key, record in to_update.items():
            values = self._prepare_pivot_update(record)
            if not values:
                continue
            self._pivot_for_parent().where(self.related_pivot_key, existing[key]).update(values)
            updated.append(existing[key])

        changes = {
            "attached": [r[self.related_pivot_key] for r in to_insert],
            "detached": detached,
            "updated": updated,
        }
        logger.debug(f"Synced {self.pivot_table} for {self.parent_value}: {changes}")

        if detached or to_insert or updated:
            self._forget_cached_relation()
        return changes

    def _insert_records(self, records):
        # rows with different pivot columns cannot share one INSERT
        batches = {}
        for record in records:
            batches.setdefault(tuple(record.keys()), []).append(record)
        for batch in batches.values():
            self._pivot().insert(batch)

    def _build_pivot_records(self, ids, attributes):
        records = []
        for related_id, extra in self._normalize_attach_data(ids, attributes).items():
            record = {
                self.foreign_pivot_key: self.parent_value,
                self.related_pivot_key: related_id,
            }
            record.update(extra)
            records.append(self._apply_pivot_timestamps(record))
        return records

    @staticmethod
    def _normalize_attach_data(ids, attributes):
        attributes = attributes or {}
        if isinstance(ids, dict):
            return {
                _id_of(key): dict(value) if isinstance(value, dict) else dict(attributes)
                for key, value in ids.items()
            }
        if isinstance(ids, (list, tuple, set)):
            return {_id_of(value): dict(attributes) for value in ids}
        return {_id_of(ids): dict(attributes)}

    @staticmethod
    def _normalize_ids(ids):
        if isinstance(ids, dict):
            return [_id_of(key) for key in ids]
        if isinstance(ids, (list, tuple, set)):
            return [_id_of(value) for value in ids]
        return [_id_of(ids)]

    def _apply_pivot_timestamps(self, record, updating=False):
        if not self.timestamps:
            return record
        now = self.parent.fresh_timestamp()
        if updating:
            record[self.pivot_updated_at] = now
            return record
        record.setdefault(self.pivot_created_at, now)
        record.setdefault(self.pivot_updated_at, now)
        return record

    def _prepare_pivot_update(self, record):
        values = dict(record)
        values.pop(self.foreign_pivot_key, None)
        values.pop(self.related_pivot_key, None)
        if self.timestamps:
            values.pop(self.pivot_created_at, None)
            values.pop(self.pivot_updated_at, None)
        if not values:
            return {}
        return self._apply_pivot_timestamps(values, updating=True)

    def _forget_cached_relation(self):
        self.parent.forget_relation(self.relation_name)
