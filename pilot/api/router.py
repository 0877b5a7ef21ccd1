"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter, Depends

from ..core.dependencies import require_tenant

router = APIRouter()


# ── Health (no auth) ─────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "pilot"}


# ── V1 routes (auth required) ───────────────────────────────────────

from .ai import ai_router
from .conversations import conversations_router
from .text import text_router

router.include_router(ai_router, prefix="/v1", dependencies=[Depends(require_tenant)])
router.include_router(text_router, prefix="/v1", dependencies=[Depends(require_tenant)])
router.include_router(conversations_router, prefix="/v1", dependencies=[Depends(require_tenant)])
