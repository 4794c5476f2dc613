from __future__ import annotations

from fastapi import APIRouter, HTTPException

from fulfillment.application import get_fulfillment_service
from fulfillment.core.errors import CatalogLoadError, SinkError
from fulfillment.core.schema import OrderRequest

router = APIRouter(tags=["orders"])


@router.post("/orders")
async def submit_order(payload: OrderRequest) -> dict:
    """Run one dispatch pass for the submitted order."""
    service = get_fulfillment_service()
    try:
        run = await service.submit_order(payload)
    except CatalogLoadError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except SinkError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return run


@router.get("/runs")
async def list_runs() -> dict:
    service = get_fulfillment_service()
    return {"items": service.list_runs()}


@router.get("/runs/{run_id}")
async def get_run(run_id: str) -> dict:
    service = get_fulfillment_service()
    run = service.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="run not found")
    return run


@router.get("/runs/{run_id}/matches")
async def get_run_matches(run_id: str) -> dict:
    service = get_fulfillment_service()
    matches = service.read_matches(run_id)
    if matches is None:
        raise HTTPException(status_code=404, detail="run not found")
    return {"run_id": run_id, "items": matches}
