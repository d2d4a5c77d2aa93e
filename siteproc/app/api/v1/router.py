from fastapi import APIRouter

from siteproc.app.api.v1.endpoints.health import router as health_router
from siteproc.app.api.v1.endpoints.requests import router as requests_router
from siteproc.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router
from siteproc.app.api.v1.endpoints.deliveries import router as deliveries_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(requests_router, tags=["requests"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
router.include_router(deliveries_router, tags=["deliveries"])
