"""API v1 routers."""

from fastapi import APIRouter

from .determinations import router as determinations_router
from .portals import router as portals_router
from .submissions import router as submissions_router

router = APIRouter(prefix="/v1")

router.include_router(submissions_router)
router.include_router(portals_router)
router.include_router(determinations_router)

__all__ = ["determinations_router", "portals_router", "router", "submissions_router"]
