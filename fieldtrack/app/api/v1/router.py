"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from fieldtrack.app.api.v1.endpoints import gps, visits

router = APIRouter()

# Trip tracking endpoints
router.include_router(gps.router)

# Visit endpoints
router.include_router(visits.router)
