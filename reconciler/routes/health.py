import asyncio

from fastapi import APIRouter, Depends

from reconciler.core.exceptions import StateStoreError
from reconciler.dependencies import get_state_store
from reconciler.services.state_store import RedisStateStore

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "Inventory Reconciler"}


@router.get("/health/redis")
async def store_health(store: RedisStateStore = Depends(get_state_store)):
    """Check connectivity to the durable store"""
    try:
        await asyncio.to_thread(store.ping)
        return {"status": "healthy", "redis": "connected"}
    except StateStoreError as e:
        return {
            "status": "unhealthy",
            "redis": "error",
            "error": str(e)
        }
