"""
Last known location cache.

Mirrors each staff member's latest sample into Redis so live status survives
an engine restart.
"""

import json
import logging
from datetime import datetime
from typing import Optional

from redis.exceptions import RedisError

from fieldtrack.app.core.config import settings
from fieldtrack.app.domain.tracking.models import LocationSample

logger = logging.getLogger(__name__)

KEY_PREFIX = "staff:location:"


def _key(staff_id: str) -> str:
    return f"{KEY_PREFIX}{staff_id}"


def encode_sample(sample: LocationSample) -> str:
    return json.dumps({
        "latitude": sample.latitude,
        "longitude": sample.longitude,
        "accuracy": sample.accuracy_meters,
        "speed": sample.speed_mps,
        "heading": sample.heading_deg,
        "timestamp": sample.captured_at.isoformat(),
    })


def decode_sample(raw: str) -> LocationSample:
    data = json.loads(raw)
    return LocationSample(
        latitude=data["latitude"],
        longitude=data["longitude"],
        accuracy_meters=data["accuracy"],
        speed_mps=data.get("speed"),
        heading_deg=data.get("heading"),
        captured_at=datetime.fromisoformat(data["timestamp"]),
    )


class RedisLocationCache:
    """
    Location sink backed by Redis.

    Usage:
        cache = RedisLocationCache(redis_client)
        engine = TrackingEngine(location_sink=cache)
    """

    def __init__(self, redis, ttl_seconds: int = settings.location_cache_ttl_seconds):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    async def record(self, staff_id: str, sample: LocationSample) -> None:
        await self.redis.set(_key(staff_id), encode_sample(sample), ex=self.ttl_seconds)

    async def get(self, staff_id: str) -> Optional[LocationSample]:
        try:
            raw = await self.redis.get(_key(staff_id))
        except (RedisError, OSError) as e:
            logger.warning("Location cache unavailable", extra={"staff_id": staff_id, "error": str(e)})
            return None

        if raw is None:
            return None
        try:
            return decode_sample(raw)
        except (ValueError, KeyError) as e:
            logger.warning("Discarding unreadable cached location", extra={"staff_id": staff_id, "error": str(e)})
            await self.redis.delete(_key(staff_id))
            return None
