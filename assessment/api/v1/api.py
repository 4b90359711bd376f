"""
API v1 router combining all v1 endpoints.
"""
from fastapi import APIRouter
from assessment.api.v1 import sessions, tests

api_router = APIRouter()

# Include all v1 routers
api_router.include_router(tests.router, prefix="/tests", tags=["tests"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
