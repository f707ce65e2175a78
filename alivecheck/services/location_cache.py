# alivecheck/services/location_cache.py
"""Last-known location store.

Backed by redis.asyncio when enabled, otherwise by an in-process dict with the
same get/setex surface. Read and write errors are logged and treated as a miss.
"""
import json
import time
from typing import Dict, Optional, Tuple

import structlog
from redis.asyncio import Redis

from alivecheck.core.config import settings
from alivecheck.models.dto import Coordinate, SourceKind

logger = structlog.get_logger(__name__)

LAST_LOCATION_KEY = "alivecheck:last_location"


class InMemoryStore:
    def __init__(self):
        self.store: Dict[str, Tuple[float, str]] = {}

    async def get(self, key: str):
        entry = self.store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            del self.store[key]
            return None
        return value

    async def setex(self, key: str, ttl: int, value: str):
        self.store[key] = (time.monotonic() + ttl, value)


class LocationCache:
    def __init__(self, client=None, ttl: int = settings.LAST_LOCATION_TTL_SECONDS):
        self._client = client if client is not None else InMemoryStore()
        self.ttl = ttl

    @classmethod
    def from_settings(cls) -> "LocationCache":
        if settings.ENABLE_REDIS:
            if not settings.REDIS_URL:
                raise ValueError("REDIS_URL is not set in the environment")
            return cls(Redis.from_url(settings.REDIS_URL))
        return cls()

    async def save(self, coordinate: Coordinate) -> None:
        payload = coordinate.model_dump_json()
        try:
            await self._client.setex(LAST_LOCATION_KEY, self.ttl, payload)
        except Exception as e:
            logger.error("location_cache_save_error", error=str(e))

    async def load(self) -> Optional[Coordinate]:
        try:
            raw = await self._client.get(LAST_LOCATION_KEY)
        except Exception as e:
            logger.error("location_cache_load_error", error=str(e))
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            data["source_kind"] = SourceKind.LAST
            return Coordinate.model_validate(data)
        except Exception:
            logger.error("location_cache_parse_error", raw_value=str(raw))
            return None

    async def aclose(self) -> None:
        close = getattr(self._client, "aclose", None)
        if close is None:
            return
        try:
            await close()
        except Exception as e:
            logger.error("location_cache_close_error", error=str(e))
