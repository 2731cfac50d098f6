"""Admin API routers."""

from fastapi import APIRouter

from .pool import router as pool_router
from .proxies import router as proxies_router
from .users import router as users_router

router = APIRouter()
router.include_router(pool_router)
router.include_router(proxies_router)
router.include_router(users_router)

__all__ = ["router"]
