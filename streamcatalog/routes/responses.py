"""ApiResult -> JSON response conversion shared by the API routes."""
from __future__ import annotations

from typing import Any, Callable

from fastapi.responses import JSONResponse
from pydantic_core import to_jsonable_python

from streamcatalog.models.result import ApiResult, ErrorKind

STATUS_FOR_ERROR = {
    ErrorKind.AUTH: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.NETWORK: 503,
    ErrorKind.SERVER: 502,
    ErrorKind.PARSE: 502,
    ErrorKind.UNKNOWN: 500,
}


def result_response(result: ApiResult, serialize: Callable[[Any], Any] | None = None) -> JSONResponse:
    body = result.to_dict(serialize or to_jsonable_python)
    if result.is_failure:
        return JSONResponse(body, status_code=STATUS_FOR_ERROR.get(result.error.kind, 500))
    return JSONResponse(body)


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"ok": False, "error": {"kind": None, "message": message}}, status_code=status_code)
