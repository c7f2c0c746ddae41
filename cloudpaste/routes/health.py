"""
Health check route.
"""
from fastapi import APIRouter, Depends
from cloudpaste.models import HealthCheck
from cloudpaste.service import PasteService, get_paste_service

router = APIRouter()


@router.get("/api/healthz", response_model=HealthCheck)
async def health_check(service: PasteService = Depends(get_paste_service)) -> HealthCheck:
    """
    Health check endpoint.
    Returns ok=true only if the record store is reachable and the storage backend is ready.
    """
    store_ok = await service.store.is_healthy()
    return HealthCheck(
        ok=store_ok and service.backend.is_ready,
        store=store_ok,
        backend=service.backend.state.value,
    )
