from fastapi import APIRouter, HTTPException, status
from storefront.common.utils import success_response
from storefront.kv.utils import kv_ping

home_router = APIRouter()


@home_router.get("/health")
async def health_check():
    if not await kv_ping():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="KV connection error")
    return success_response({"status": "healthy"})
