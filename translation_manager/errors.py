"""Error taxonomy shared by the store, the translator and the HTTP surface."""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    INVALID_ARGUMENT = "InvalidArgument"
    UPSTREAM_TRANSLATION_FAILURE = "UpstreamTranslationFailure"
    SCHEMA_CONFLICT = "SchemaConflict"
    # Logged only: a stored value needed a JSON parse that failed.
    SERIALIZATION_FALLBACK = "SerializationFallback"


class TranslationManagerError(Exception):
    """Base class for every error raised by this package."""
    kind: ErrorKind = ErrorKind.INVALID_ARGUMENT

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(TranslationManagerError):
    kind = ErrorKind.NOT_FOUND


class InvalidArgumentError(TranslationManagerError):
    kind = ErrorKind.INVALID_ARGUMENT


class SchemaConflictError(TranslationManagerError):
    kind = ErrorKind.SCHEMA_CONFLICT


class UpstreamTranslationFailure(TranslationManagerError):
    """A single completion call failed. Always recovered by falling back to source text."""
    kind = ErrorKind.UPSTREAM_TRANSLATION_FAILURE


class StaleWriteError(SchemaConflictError):
    """The document changed in the store after it was read for this write."""
