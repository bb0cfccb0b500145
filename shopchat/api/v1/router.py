"""API v1 router combining all route modules."""

from fastapi import APIRouter

from shopchat.api.v1 import auth, chat, health

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Chat endpoints (for widget, no auth)
api_router.include_router(
    chat.router,
    prefix="/chat",
    tags=["chat"],
)

# Customer account authorization (token polling + OAuth callback)
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["auth"],
)
