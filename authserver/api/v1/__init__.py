"""
API v1 Router
"""

from fastapi import APIRouter

from authserver.api.v1 import auth, oauth

router = APIRouter()

# Include all endpoint routers
router.include_router(oauth.router)
router.include_router(auth.router)

__all__ = ["router"]
