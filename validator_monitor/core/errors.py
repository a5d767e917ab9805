"""Error kinds and the tagged result returned across the core boundary."""

from typing import Generic, Literal, TypeVar

from pydantic import BaseModel

ErrorKind = Literal["not_found", "provider_error", "persistence_error", "invalid_input"]

T = TypeVar("T")


class MonitorError(Exception):
    """Base class for recoverable monitor failures."""

    kind: ErrorKind = "provider_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MonitorError):
    """The provider has no record for the requested identifier."""

    kind: ErrorKind = "not_found"


class ProviderError(MonitorError):
    """Network/HTTP failure, non-2xx status or malformed payload."""

    kind: ErrorKind = "provider_error"


class PersistenceError(MonitorError):
    """Local store could not be read or written."""

    kind: ErrorKind = "persistence_error"


class Result(BaseModel, Generic[T]):
    """Tagged success/failure value.

    The presentation layer only ever sees these; exceptions raised by the
    provider or the stores are converted where they occur.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    kind: ErrorKind | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> "Result[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: MonitorError | str, kind: ErrorKind | None = None) -> "Result[T]":
        if isinstance(error, MonitorError):
            return cls(success=False, error=error.message, kind=kind or error.kind)
        return cls(success=False, error=error, kind=kind or "invalid_input")
