from fastapi import APIRouter
from limit_engine.api.v1.health import router as health_router
from limit_engine.api.v1.orders import router as orders_router
from limit_engine.api.v1.wallets import router as wallets_router
from limit_engine.api.v1.notifications import router as notifications_router


api_router = APIRouter()
api_router.include_router(health_router, prefix="/v1", tags=["health"])
api_router.include_router(wallets_router, prefix="/v1", tags=["wallets"])
api_router.include_router(orders_router, prefix="/v1", tags=["orders"])
api_router.include_router(notifications_router, prefix="/v1/notifications", tags=["notifications"])
