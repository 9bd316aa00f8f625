"""FastAPI dependency injection: provides services via Depends()."""
from __future__ import annotations

from fastapi import Request

from streamcatalog.services.catalog_repository import CatalogRepository


def get_repository(request: Request) -> CatalogRepository:
    return request.app.state.repository
