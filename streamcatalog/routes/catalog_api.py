"""Profile management, catalog reads, refresh triggers and cache status."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from streamcatalog.dependencies import get_repository
from streamcatalog.models.cache import DataKind
from streamcatalog.models.profile import ContentSourceStrategy, Profile
from streamcatalog.routes.responses import error_response, result_response
from streamcatalog.services.catalog_repository import CatalogRepository


router = APIRouter(prefix="/api", tags=["catalog"])


def _profile_json(profile: Profile) -> dict:
    data = profile.model_dump(mode="json")
    if data.get("credentials"):
        data["credentials"]["password"] = "********"
    return data


async def _json_body(request: Request):
    """Decoded JSON body, or None when the body is not JSON."""
    try:
        return await request.json()
    except ValueError:
        return None


# ----------------------------------------------------------------------
# Profiles
# ----------------------------------------------------------------------

@router.get("/profiles")
async def list_profiles(repo: CatalogRepository = Depends(get_repository)):
    active = repo.active_profile()
    return {
        "profiles": [_profile_json(p) for p in repo.list_profiles()],
        "active_profile_id": active.id if active else None,
    }


@router.post("/profiles")
async def add_profile(request: Request, repo: CatalogRepository = Depends(get_repository)):
    data = await _json_body(request)
    if not isinstance(data, dict):
        return error_response("Expected a JSON object", 400)
    activate = bool(data.pop("activate", False))
    data.pop("is_active", None)
    try:
        profile = Profile.model_validate(data)
    except ValidationError as e:
        return error_response(f"Invalid profile: {e.error_count()} error(s): {e.errors()[0]['msg']}", 400)
    return result_response(repo.add_profile(profile, activate=activate), _profile_json)


@router.post("/profiles/{profile_id}/activate")
async def activate_profile(profile_id: str, repo: CatalogRepository = Depends(get_repository)):
    profile = repo.set_active_profile(profile_id)
    if profile is None:
        return error_response("Profile not found", 404)
    return {"ok": True, "data": _profile_json(profile)}


@router.put("/profiles/{profile_id}/strategy")
async def set_strategy(profile_id: str, request: Request, repo: CatalogRepository = Depends(get_repository)):
    data = await _json_body(request)
    try:
        strategy = ContentSourceStrategy(data.get("strategy") if isinstance(data, dict) else None)
    except ValueError:
        allowed = ", ".join(s.value for s in ContentSourceStrategy)
        return error_response(f"strategy must be one of: {allowed}", 400)
    return result_response(repo.set_strategy(profile_id, strategy), _profile_json)


@router.delete("/profiles/{profile_id}")
async def delete_profile(profile_id: str, repo: CatalogRepository = Depends(get_repository)):
    if await repo.remove_profile(profile_id):
        return {"ok": True}
    return error_response("Profile not found", 404)


# ----------------------------------------------------------------------
# Catalog
# ----------------------------------------------------------------------

@router.get("/live/categories")
async def live_categories(repo: CatalogRepository = Depends(get_repository)):
    return result_response(await repo.get_live_categories())


@router.get("/live/channels")
async def live_channels(
    category_id: Optional[str] = None,
    epg: bool = False,
    repo: CatalogRepository = Depends(get_repository),
):
    if epg:
        return result_response(await repo.get_live_channels_with_epg(category_id))
    return result_response(await repo.get_live_channels(category_id))


@router.get("/vod/categories")
async def vod_categories(repo: CatalogRepository = Depends(get_repository)):
    return result_response(await repo.get_vod_categories())


@router.get("/vod/items")
async def vod_items(category_id: Optional[str] = None, repo: CatalogRepository = Depends(get_repository)):
    return result_response(await repo.get_vod_items(category_id))


@router.get("/vod/{vod_id}")
async def vod_info(vod_id: str, repo: CatalogRepository = Depends(get_repository)):
    return result_response(await repo.get_vod_info(vod_id))


@router.get("/series/categories")
async def series_categories(repo: CatalogRepository = Depends(get_repository)):
    return result_response(await repo.get_series_categories())


@router.get("/series")
async def series(category_id: Optional[str] = None, repo: CatalogRepository = Depends(get_repository)):
    return result_response(await repo.get_series(category_id))


@router.get("/series/{series_id}")
async def series_info(series_id: str, repo: CatalogRepository = Depends(get_repository)):
    return result_response(await repo.get_series_info(series_id))


# ----------------------------------------------------------------------
# Refresh / status
# ----------------------------------------------------------------------

@router.post("/refresh")
async def refresh_all(repo: CatalogRepository = Depends(get_repository)):
    results = await repo.refresh_all()
    body = {kind: result.to_dict() for kind, result in results.items()}
    ok = all(r.is_success for r in results.values())
    return JSONResponse({"ok": ok, "results": body}, status_code=200 if ok else 207)


@router.post("/refresh/{kind}")
async def refresh_kind(kind: str, repo: CatalogRepository = Depends(get_repository)):
    try:
        data_kind = DataKind(kind)
    except ValueError:
        return error_response(f"Unknown kind '{kind}'", 400)
    return result_response(await repo.refresh(data_kind))


@router.get("/cache/status")
async def cache_status(repo: CatalogRepository = Depends(get_repository)):
    return await repo.cache_status()
