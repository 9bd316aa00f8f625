"""Tagged success/failure results and the error taxonomy shared by all layers."""
from __future__ import annotations

import enum
from typing import Any, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")
R = TypeVar("R")


class ErrorKind(str, enum.Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER = "server"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    PARSE = "parse"
    VALIDATION = "validation"
    UNKNOWN = "unknown"

    @property
    def is_transient(self) -> bool:
        """Network and timeout failures are safe to retry."""
        return self in (ErrorKind.NETWORK, ErrorKind.TIMEOUT)


class ApiError(BaseModel):
    """A failure crossing a component boundary."""
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    status_code: Optional[int] = None

    @classmethod
    def network(cls, message: str = "Network error occurred") -> "ApiError":
        return cls(kind=ErrorKind.NETWORK, message=message)

    @classmethod
    def timeout(cls, message: str = "Request timed out") -> "ApiError":
        return cls(kind=ErrorKind.TIMEOUT, message=message)

    @classmethod
    def server(cls, message: str = "Server error occurred", status_code: int | None = None) -> "ApiError":
        return cls(kind=ErrorKind.SERVER, message=message, status_code=status_code)

    @classmethod
    def auth(cls, message: str = "Authentication failed", status_code: int | None = None) -> "ApiError":
        return cls(kind=ErrorKind.AUTH, message=message, status_code=status_code)

    @classmethod
    def not_found(cls, message: str = "Not found") -> "ApiError":
        return cls(kind=ErrorKind.NOT_FOUND, message=message)

    @classmethod
    def parse(cls, message: str) -> "ApiError":
        return cls(kind=ErrorKind.PARSE, message=message)

    @classmethod
    def validation(cls, message: str) -> "ApiError":
        return cls(kind=ErrorKind.VALIDATION, message=message)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ApiError":
        if isinstance(exc, ParseError):
            return cls.parse(str(exc))
        return cls(kind=ErrorKind.UNKNOWN, message=f"{type(exc).__name__}: {exc}")

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ApiResult(Generic[T]):
    """Either ``data`` or ``error``.

    A success may also carry a ``warning``: the repository uses it when the
    upstream failed but cached data could be served instead (``stale`` is then
    True).
    """

    __slots__ = ("_data", "_error", "warning", "stale")

    def __init__(
        self,
        data: Optional[T] = None,
        error: Optional[ApiError] = None,
        warning: Optional[ApiError] = None,
        stale: bool = False,
    ):
        self._data = data
        self._error = error
        self.warning = warning
        self.stale = stale

    @classmethod
    def success(cls, data: T, warning: ApiError | None = None, stale: bool = False) -> "ApiResult[T]":
        return cls(data=data, warning=warning, stale=stale)

    @classmethod
    def failure(cls, error: ApiError) -> "ApiResult[T]":
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self._error is None

    @property
    def is_failure(self) -> bool:
        return self._error is not None

    @property
    def data(self) -> T:
        if self._error is not None:
            raise ValueError(f"Cannot access data on a failure result ({self._error})")
        return self._data  # type: ignore[return-value]

    @property
    def error(self) -> ApiError:
        if self._error is None:
            raise ValueError("Cannot access error on a success result")
        return self._error

    def map(self, mapper: Callable[[T], R]) -> "ApiResult[R]":
        if self.is_failure:
            return ApiResult.failure(self.error)
        return ApiResult(data=mapper(self.data), warning=self.warning, stale=self.stale)

    def to_dict(self, serialize: Callable[[T], Any] | None = None) -> dict:
        if self.is_failure:
            return {"ok": False, "error": self.error.model_dump(mode="json")}
        payload = serialize(self.data) if serialize else self.data
        return {
            "ok": True,
            "data": payload,
            "stale": self.stale,
            "warning": self.warning.model_dump(mode="json") if self.warning else None,
        }

    def __repr__(self) -> str:
        if self.is_failure:
            return f"ApiResult(error={self._error!r})"
        return f"ApiResult(data={type(self._data).__name__}, stale={self.stale})"


class ParseError(Exception):
    """A whole document (playlist or XMLTV feed) could not be used."""

    INVALID_PLAYLIST = "invalid_playlist"
    MALFORMED_XML = "malformed_xml"
    MISSING_ROOT = "missing_root"
    EPG_EMPTY = "epg_empty"

    def __init__(self, message: str, reason: str = MALFORMED_XML):
        super().__init__(message)
        self.reason = reason
