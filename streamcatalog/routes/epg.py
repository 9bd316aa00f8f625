"""EPG routes: now/next lookups and guide refresh."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from streamcatalog.dependencies import get_repository
from streamcatalog.models.cache import DataKind
from streamcatalog.routes.responses import result_response
from streamcatalog.services.catalog_repository import CatalogRepository

router = APIRouter(prefix="/api/epg", tags=["epg"])


@router.get("/{channel_id}/now_next")
async def now_next(channel_id: str, repo: CatalogRepository = Depends(get_repository)):
    return result_response(await repo.now_next(channel_id))


@router.post("/refresh")
async def refresh_epg(repo: CatalogRepository = Depends(get_repository)):
    return result_response(await repo.refresh(DataKind.EPG))
