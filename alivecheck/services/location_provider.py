# alivecheck/services/location_provider.py
"""Location provider backends.

A session talks to exactly one provider through the `LocationProvider`
protocol; which backend it gets is decided by `build_location_provider`.
"""
import asyncio
import contextlib
from enum import Enum
from typing import Optional, Protocol

import httpx
import structlog

from alivecheck.core.config import settings
from alivecheck.core.errors import ProviderTimeout, ProviderUnavailable
from alivecheck.models.dto import Coordinate, SourceKind
from alivecheck.services.location_cache import LocationCache

logger = structlog.get_logger(__name__)


class TimeoutBehavior(str, Enum):
    # Provider enforces the timeout hint and reports expiry as a failure
    PROVIDER = "PROVIDER"
    # Provider ignores the hint; the session has to bound the request
    SESSION = "SESSION"


class CancellationToken:
    """Cooperative cancellation flag shared between a session and its provider."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class LocationProvider(Protocol):
    timeout_behavior: TimeoutBehavior

    async def get_current_location(
        self, timeout_hint: float, cancel_token: CancellationToken
    ) -> Optional[Coordinate]: ...

    async def get_last_location(self) -> Optional[Coordinate]: ...


class IpGeolocationProvider:
    """
    Current location from an IP geolocation endpoint.

    Successful fixes are written to the LocationCache, which is what
    `get_last_location` reads back.
    """
    provider_name = "network"
    timeout_behavior = TimeoutBehavior.PROVIDER

    def __init__(
        self,
        cache: LocationCache,
        url: str = settings.IP_GEOLOCATION_URL,
        accuracy_meters: float = settings.IP_LOCATION_ACCURACY_METERS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache = cache
        self.url = url
        self.accuracy_meters = accuracy_meters
        self._transport = transport

    async def _fetch(self, timeout_hint: float) -> Coordinate:
        try:
            async with httpx.AsyncClient(timeout=timeout_hint, transport=self._transport) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException:
            raise ProviderTimeout(f"no response from {self.url} within {timeout_hint}s")
        except httpx.HTTPError as e:
            raise ProviderUnavailable(str(e))

        # ip-api style payload: {"status": "success", "lat": .., "lon": ..}
        if data.get("status", "success") != "success":
            raise ProviderUnavailable(data.get("message", "lookup failed"))
        try:
            latitude = float(data["lat"])
            longitude = float(data["lon"])
        except (KeyError, TypeError, ValueError):
            raise ProviderUnavailable("response carried no coordinates")

        return Coordinate(
            latitude=latitude,
            longitude=longitude,
            accuracy_meters=self.accuracy_meters,
            provider=self.provider_name,
            source_kind=SourceKind.CURRENT,
        )

    async def get_current_location(
        self, timeout_hint: float, cancel_token: CancellationToken
    ) -> Optional[Coordinate]:
        if cancel_token.cancelled:
            return None

        request = asyncio.ensure_future(asyncio.wait_for(self._fetch(timeout_hint), timeout_hint))
        cancelled = asyncio.ensure_future(cancel_token.wait())
        try:
            await asyncio.wait({request, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not request.done():
                request.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await request

        if request.cancelled():
            logger.info("current_location_cancelled", url=self.url)
            return None

        try:
            coordinate = request.result()
        except asyncio.TimeoutError:
            # wait_for caps the whole request; httpx limits apply per phase
            raise ProviderTimeout(f"no fix from {self.url} within {timeout_hint}s")
        await self.cache.save(coordinate)
        return coordinate

    async def get_last_location(self) -> Optional[Coordinate]:
        return await self.cache.load()


class FixedLocationProvider:
    """Serves a configured fix. Used for stationary installs and local testing."""
    provider_name = "fixed"
    timeout_behavior = TimeoutBehavior.SESSION

    def __init__(self, latitude: float, longitude: float, accuracy_meters: float = settings.FIXED_ACCURACY_METERS):
        self.latitude = latitude
        self.longitude = longitude
        self.accuracy_meters = accuracy_meters

    def _fix(self, source_kind: SourceKind) -> Coordinate:
        return Coordinate(
            latitude=self.latitude,
            longitude=self.longitude,
            accuracy_meters=self.accuracy_meters,
            provider=self.provider_name,
            source_kind=source_kind,
        )

    async def get_current_location(
        self, timeout_hint: float, cancel_token: CancellationToken
    ) -> Optional[Coordinate]:
        if cancel_token.cancelled:
            return None
        return self._fix(SourceKind.CURRENT)

    async def get_last_location(self) -> Optional[Coordinate]:
        return self._fix(SourceKind.LAST)


def build_location_provider(cache: LocationCache) -> LocationProvider:
    if settings.LOCATION_PROVIDER == "fixed":
        if settings.FIXED_LATITUDE is None or settings.FIXED_LONGITUDE is None:
            raise ValueError("FIXED_LATITUDE and FIXED_LONGITUDE must be set for the fixed provider")
        return FixedLocationProvider(
            settings.FIXED_LATITUDE, settings.FIXED_LONGITUDE, settings.FIXED_ACCURACY_METERS
        )
    if settings.LOCATION_PROVIDER == "ip":
        return IpGeolocationProvider(cache)
    raise ValueError(f"Unknown LOCATION_PROVIDER: {settings.LOCATION_PROVIDER}")
