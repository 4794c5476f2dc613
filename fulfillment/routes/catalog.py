from __future__ import annotations

from fastapi import APIRouter, HTTPException

from fulfillment.application import get_fulfillment_service
from fulfillment.core.errors import CatalogLoadError

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("")
async def get_catalog_summary() -> dict:
    service = get_fulfillment_service()
    try:
        catalog = service.get_catalog()
    except CatalogLoadError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    stores = [
        {
            "name": store.name,
            "categories": [
                {"name": category.name, "products": len(category.products)}
                for category in store.categories
            ],
        }
        for store in catalog.stores
    ]
    return {**catalog.summary(), "items": stores}


@router.post("/reload")
async def reload_catalog() -> dict:
    service = get_fulfillment_service()
    try:
        catalog = service.reload_catalog()
    except CatalogLoadError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return catalog.summary()
