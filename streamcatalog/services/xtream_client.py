"""Xtream Codes API client (``player_api.php``, ``xmltv.php``, ``get.php``).

Every public coroutine returns an :class:`ApiResult`; transport, HTTP and
decoding failures are converted into the error taxonomy instead of raised.
No retries happen here.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar

from streamcatalog.models.config import Timeouts
from streamcatalog.models.domain import Category, Channel, Series, VodItem
from streamcatalog.models.profile import AccountInfo, XtreamCredentials
from streamcatalog.models.result import ApiError, ApiResult
from streamcatalog.services import xtream_mapper
from streamcatalog.services.coercion import parse_int, parse_optional_str, parse_str, parse_timestamp
from streamcatalog.services.http_client import HttpClientService

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _as_item_list(payload: Any) -> Optional[list]:
    """Normalize a list endpoint body; ``None`` when it is not list-shaped."""
    if payload is None or payload == {}:
        return []
    if isinstance(payload, dict):
        # Some panels key list items by index
        if all(isinstance(v, dict) for v in payload.values()):
            return list(payload.values())
        return None
    return payload if isinstance(payload, list) else None


def parse_account(payload: Any) -> ApiResult[AccountInfo]:
    """Decide whether a login response describes a usable account."""
    if not isinstance(payload, dict) or not isinstance(payload.get("user_info"), dict):
        return ApiResult.failure(ApiError.auth("Login response has no user_info"))
    user = payload["user_info"]
    server = payload.get("server_info") if isinstance(payload.get("server_info"), dict) else {}

    status = parse_str(user.get("status"))
    active = status.lower() == "active" or parse_int(user.get("auth")) == 1
    if not active:
        return ApiResult.failure(ApiError.auth(f"Account is not active (status: {status or 'unknown'})"))

    formats = user.get("allowed_output_formats") or []
    if isinstance(formats, str):
        formats = [formats]
    server_url = parse_optional_str(server.get("url"))
    if server_url and server.get("port"):
        server_url = f"{server_url}:{parse_str(server.get('port'))}"

    return ApiResult.success(AccountInfo(
        username=parse_str(user.get("username")),
        status=status,
        is_active=True,
        expires_at=parse_timestamp(user.get("exp_date")),
        created_at=parse_timestamp(user.get("created_at")),
        is_trial=parse_int(user.get("is_trial"), 0) == 1,
        max_connections=parse_int(user.get("max_connections"), 1),
        active_connections=parse_int(user.get("active_cons"), 0),
        allowed_output_formats=[parse_str(f) for f in formats if parse_str(f)],
        server_url=server_url,
        server_timezone=parse_optional_str(server.get("timezone")),
    ))


class XtreamApiClient:
    """Client for one Xtream account."""

    def __init__(
        self,
        credentials: XtreamCredentials,
        http_client: HttpClientService,
        timeouts: Timeouts | None = None,
        live_extension: str = "ts",
    ):
        self.credentials = credentials
        self.http_client = http_client
        self.timeouts = timeouts or Timeouts()
        self.live_extension = live_extension

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _api(self, action: str | None, timeout: float | None = None, **extra) -> ApiResult[Any]:
        params = {"username": self.credentials.username, "password": self.credentials.password}
        if action:
            params["action"] = action
        params.update({k: v for k, v in extra.items() if v is not None})

        result = await self.http_client.fetch(self.credentials.api_url, params, timeout or self.timeouts.catalog)
        if result.is_failure:
            return ApiResult.failure(result.error)
        response = result.data
        if not response.content.strip():
            return ApiResult.success(None)
        try:
            payload = response.json()
        except ValueError as e:
            logger.warning(f"Xtream '{action or 'login'}' returned non-JSON body: {e}")
            return ApiResult.failure(ApiError.parse(f"Response to '{action or 'login'}' is not valid JSON"))
        if action and isinstance(payload, dict) and "user_info" in payload:
            # Panels answer rejected catalog calls with the login body
            return self._login_echo(action, payload)
        return ApiResult.success(payload)

    def _login_echo(self, action: str, payload: dict) -> ApiResult[Any]:
        account = parse_account(payload)
        if account.is_failure:
            logger.warning(f"Xtream '{action}' rejected for '{self.credentials.username}': {account.error.message}")
            return ApiResult.failure(account.error)
        return ApiResult.failure(ApiError.parse(f"Response to '{action}' is account info, not catalog data"))

    async def _list(
        self,
        action: str,
        mapper: Callable[[Any], T],
        label: str,
        **extra,
    ) -> ApiResult[list[T]]:
        result = await self._api(action, **extra)
        if result.is_failure:
            return ApiResult.failure(result.error)

        payload = _as_item_list(result.data)
        if payload is None:
            return ApiResult.failure(ApiError.parse(f"Expected a list from '{action}'"))

        items = xtream_mapper.map_list(payload, mapper, label)
        logger.info(f"Xtream '{action}': {len(items)} {label}(s)")
        return ApiResult.success(items)

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def authenticate(self) -> ApiResult[AccountInfo]:
        result = await self._api(None, timeout=self.timeouts.login)
        if result.is_failure:
            return ApiResult.failure(result.error)
        account = parse_account(result.data)
        if account.is_failure:
            logger.warning(f"Xtream login for '{self.credentials.username}' rejected: {account.error.message}")
        return account

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def _categories(self, action: str) -> ApiResult[list[Category]]:
        result = await self._api(action)
        if result.is_failure:
            return ApiResult.failure(result.error)
        payload = _as_item_list(result.data)
        if payload is None:
            return ApiResult.failure(ApiError.parse(f"Expected a list from '{action}'"))

        # sort_order records the provider's list position
        categories = xtream_mapper.map_list(
            list(enumerate(payload)),
            lambda pair: xtream_mapper.map_category(pair[1], pair[0]),
            "category",
        )
        return ApiResult.success(categories)

    async def get_live_categories(self) -> ApiResult[list[Category]]:
        return await self._categories("get_live_categories")

    async def get_live_streams(
        self,
        category_id: str | None = None,
        category_names: dict[str, str] | None = None,
    ) -> ApiResult[list[Channel]]:
        return await self._list(
            "get_live_streams",
            lambda raw: xtream_mapper.map_channel(raw, self.credentials, self.live_extension, category_names),
            "channel",
            category_id=category_id,
        )

    async def get_vod_categories(self) -> ApiResult[list[Category]]:
        return await self._categories("get_vod_categories")

    async def get_vod_streams(self, category_id: str | None = None) -> ApiResult[list[VodItem]]:
        return await self._list(
            "get_vod_streams",
            lambda raw: xtream_mapper.map_movie(raw, self.credentials),
            "movie",
            category_id=category_id,
        )

    async def get_vod_info(self, vod_id: str) -> ApiResult[VodItem]:
        result = await self._api("get_vod_info", vod_id=vod_id)
        if result.is_failure:
            return ApiResult.failure(result.error)
        if not result.data or (isinstance(result.data, dict) and not result.data.get("movie_data")):
            return ApiResult.failure(ApiError.not_found(f"VOD {vod_id} not found"))
        try:
            return ApiResult.success(xtream_mapper.map_vod_info(result.data, self.credentials))
        except (xtream_mapper.MappingError, ValueError, TypeError) as e:
            return ApiResult.failure(ApiError.parse(f"Unusable VOD info for {vod_id}: {e}"))

    async def get_series_categories(self) -> ApiResult[list[Category]]:
        return await self._categories("get_series_categories")

    async def get_series(self, category_id: str | None = None) -> ApiResult[list[Series]]:
        return await self._list("get_series", xtream_mapper.map_series, "series", category_id=category_id)

    async def get_series_info(self, series_id: str) -> ApiResult[Series]:
        result = await self._api("get_series_info", series_id=series_id)
        if result.is_failure:
            return ApiResult.failure(result.error)
        if not result.data or (isinstance(result.data, dict) and not result.data.get("info")
                               and not result.data.get("episodes")):
            return ApiResult.failure(ApiError.not_found(f"Series {series_id} not found"))
        try:
            return ApiResult.success(xtream_mapper.map_series_info(result.data, series_id))
        except (xtream_mapper.MappingError, ValueError, TypeError) as e:
            return ApiResult.failure(ApiError.parse(f"Unusable series info for {series_id}: {e}"))

    # ------------------------------------------------------------------
    # Bulk downloads
    # ------------------------------------------------------------------

    async def download_xmltv_epg(self) -> ApiResult[bytes]:
        base = self.credentials.base_url
        result = await self.http_client.fetch(self.credentials.xmltv_url, timeout=self.timeouts.epg)
        if result.is_failure:
            return ApiResult.failure(result.error)
        content = result.data.content
        if not content.strip():
            return ApiResult.failure(ApiError.not_found("Provider returned an empty XMLTV document"))
        logger.info(f"Fetched XMLTV from {base}: {len(content)} bytes")
        return ApiResult.success(content)

    async def download_playlist(self) -> ApiResult[str]:
        """The account's full ``m3u_plus`` playlist from ``get.php``."""
        base = self.credentials.base_url
        result = await self.http_client.fetch(self.credentials.playlist_url(self.live_extension), timeout=self.timeouts.epg)
        if result.is_failure:
            return ApiResult.failure(result.error)
        text = result.data.text
        logger.info(f"Fetched playlist from {base}: {len(text)} chars")
        return ApiResult.success(text)
