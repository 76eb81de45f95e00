"""
Exceptions raised by fluentorm.

Driver errors coming out of the execution gateway are not wrapped here;
they reach the caller unchanged.
"""


class FluentORMError(Exception):
    """Base class for every error raised by fluentorm itself."""


class QueryValidationError(FluentORMError, ValueError):
    """Malformed builder or blueprint usage, detected before any SQL runs."""


class ModelStateError(FluentORMError, RuntimeError):
    """An operation needs a persisted identity that the record does not have."""
    def __init__(self, model_name, message):
        self.model_name = model_name
        super().__init__(f"{model_name}: {message}")
