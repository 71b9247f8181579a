"""
API v1 router aggregation.

WHAT: Combine all v1 endpoint routers
WHY: Single place to register all API routes
HOW: Include routers from endpoints with prefixes
"""

from fastapi import APIRouter

from .endpoints import status, conversations, offers, test_drives, suggestions

# Create main v1 router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(
    status.router,
    prefix="/api/v1",
    tags=["status"]
)

api_router.include_router(
    conversations.router,
    prefix="/api/v1",
    tags=["conversations"]
)

api_router.include_router(
    offers.router,
    prefix="/api/v1",
    tags=["offers"]
)

api_router.include_router(
    test_drives.router,
    prefix="/api/v1",
    tags=["test-drives"]
)

api_router.include_router(
    suggestions.router,
    prefix="/api/v1",
    tags=["suggestions"]
)
