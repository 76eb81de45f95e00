# fluentorm - fluent query builder, schema compiler and active-record models
from fluentorm.builder import QueryBuilder, raw
from fluentorm.compiler import QueryCompiler
from fluentorm.database import DatabaseEngine, Mode, get_engine, reset_engine, set_engine
from fluentorm.exceptions import FluentORMError, ModelStateError, QueryValidationError
from fluentorm.model import Model
from fluentorm.model_query import ModelQuery
from fluentorm.paginator import Paginator
from fluentorm.relations import BelongsTo, BelongsToMany, HasMany, HasOne, relation
from fluentorm.schema import Blueprint, Schema

__version__ = "0.1.0"
__all__ = [
    "QueryBuilder", "raw", "QueryCompiler", "DatabaseEngine", "Mode",
    "get_engine", "set_engine", "reset_engine",
    "FluentORMError", "QueryValidationError", "ModelStateError",
    "Model", "ModelQuery", "Paginator",
    "HasOne", "HasMany", "BelongsTo", "BelongsToMany", "relation",
    "Blueprint", "Schema",
]
