"""
API router - aggregates all endpoints.

Usage in main.py:
    from api.routes import router
    app.include_router(router)
"""

from fastapi import APIRouter

from api.routes import agents, auth, webhooks

router = APIRouter()

# Agent lifecycle
router.include_router(
    agents.router,
    tags=["Agents"],
)

# Chat tokens
router.include_router(
    auth.router,
    tags=["Authentication"],
)

# Chat transport events
router.include_router(
    webhooks.router,
    tags=["Webhooks"],
)

__all__ = ["router"]
