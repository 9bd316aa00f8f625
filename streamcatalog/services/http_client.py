"""HTTP client service: one shared httpx.AsyncClient with connection pooling."""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from streamcatalog.models.result import ApiError, ApiResult

logger = logging.getLogger(__name__)

# Panels commonly reject non-browser user agents
HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
}


def error_for_status(status_code: int) -> ApiError:
    if status_code in (401, 403):
        return ApiError.auth(f"Access denied (HTTP {status_code})", status_code=status_code)
    return ApiError.server(f"Upstream returned HTTP {status_code}", status_code=status_code)


def error_for_exception(exc: Exception) -> ApiError:
    if isinstance(exc, httpx.TimeoutException):
        return ApiError.timeout(f"Request timed out: {type(exc).__name__}")
    if isinstance(exc, httpx.InvalidURL):
        return ApiError.validation(f"Invalid URL: {exc}")
    if isinstance(exc, httpx.HTTPError):
        return ApiError.network(f"{type(exc).__name__}: {exc}")
    return ApiError.from_exception(exc)


def _redact(url: str) -> str:
    # Xtream credentials travel in the query string
    return url.split("?", 1)[0]


class HttpClientService:
    """Lazily creates and owns the process-wide ``httpx.AsyncClient``.

    *transport* is forwarded to httpx; tests pass an ``httpx.MockTransport``.
    Per-request timeouts are given by callers, the client default only covers
    requests that do not set one.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str | None = None,
        connect_timeout: float = 15.0,
    ):
        self._client: Optional[httpx.AsyncClient] = None
        self._transport = transport
        self._headers = dict(HEADERS)
        if user_agent:
            self._headers["User-Agent"] = user_agent
        self._connect_timeout = connect_timeout

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=self._headers,
                timeout=httpx.Timeout(60.0, connect=self._connect_timeout),
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def timeout(self, seconds: float) -> httpx.Timeout:
        """A request timeout of *seconds* that keeps the configured connect limit."""
        return httpx.Timeout(seconds, connect=min(self._connect_timeout, seconds))

    async def fetch(self, url: str, params: dict | None = None, timeout: float = 60.0) -> ApiResult[httpx.Response]:
        """GET *url*; any failure comes back as an :class:`ApiError`."""
        try:
            client = await self.get_client()
            response = await client.get(url, params=params, timeout=self.timeout(timeout))
        except Exception as e:  # mapped to the error taxonomy
            error = error_for_exception(e)
            logger.warning(f"GET {_redact(url)} failed: {error}")
            return ApiResult.failure(error)

        if not response.is_success:
            error = error_for_status(response.status_code)
            logger.warning(f"GET {_redact(url)} failed: {error}")
            return ApiResult.failure(error)
        return ApiResult.success(response)

    async def close(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("Global HTTP client closed")
