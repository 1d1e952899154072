"""
API router. Everything here is mounted under /api.
"""

from fastapi import APIRouter

from . import auth, users

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Auth"])
router.include_router(users.router, prefix="/users", tags=["Users"])
