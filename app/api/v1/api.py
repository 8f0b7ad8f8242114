# app/api/v1/api.py

from fastapi import APIRouter
from app.api.v1.endpoints import (
    segments,
    campaigns,
    tracking,
    email_settings,
    ai,
    analytics,
)

# This is the main router for the v1 API.
# It will include all the specific endpoint routers.
api_router = APIRouter()

api_router.include_router(segments.router, tags=["segments"])
api_router.include_router(campaigns.router, tags=["campaigns"])
api_router.include_router(tracking.router, tags=["tracking"])
api_router.include_router(email_settings.router, tags=["email-settings"])
api_router.include_router(ai.router, tags=["ai"])
api_router.include_router(analytics.router, tags=["analytics"])
