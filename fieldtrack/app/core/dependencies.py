"""
Application dependencies for FastAPI.

This module wires the tracking engine to its collaborators and exposes it to
route handlers.
"""

from fastapi import Depends, Request

from fieldtrack.app.core.redis_client import get_redis, redis_client
from fieldtrack.app.db.session import AsyncSessionLocal
from fieldtrack.app.domain.tracking.engine import TrackingEngine
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds
from fieldtrack.app.services.location_cache import RedisLocationCache
from fieldtrack.app.services.persistence import SqlAlchemyPersistenceGateway
from fieldtrack.app.services.rates import StaffRateProvider


def build_engine() -> TrackingEngine:
    """
    Create the production engine.

    Trips and visits are mirrored to the database, rates come from
    staff_members and the last known location is mirrored to Redis.
    """
    return TrackingEngine(
        persistence=SqlAlchemyPersistenceGateway(AsyncSessionLocal),
        rates=StaffRateProvider(AsyncSessionLocal),
        location_sink=RedisLocationCache(redis_client),
        thresholds=TrackingThresholds.from_settings(),
    )


async def get_engine(request: Request) -> TrackingEngine:
    """FastAPI dependency returning the engine created at startup."""
    return request.app.state.engine


async def get_location_cache(redis=Depends(get_redis)) -> RedisLocationCache:
    """FastAPI dependency for reading the last known location cache."""
    return RedisLocationCache(redis)
