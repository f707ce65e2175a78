import asyncio

import httpx
import pytest

from alivecheck.core.config import settings
from alivecheck.core.errors import ProviderTimeout, ProviderUnavailable
from alivecheck.models.dto import Coordinate, SourceKind
from alivecheck.services.location_cache import InMemoryStore, LocationCache
from alivecheck.services.location_provider import (
    CancellationToken,
    FixedLocationProvider,
    IpGeolocationProvider,
    TimeoutBehavior,
    build_location_provider,
)


def ip_provider(handler, cache=None):
    return IpGeolocationProvider(
        cache or LocationCache(),
        url="https://geo.test/json",
        accuracy_meters=5000.0,
        transport=httpx.MockTransport(handler),
    )


def test_ip_provider_returns_and_caches_current_fix():
    provider = ip_provider(lambda r: httpx.Response(200, json={"status": "success", "lat": 40.09, "lon": -83.01}))

    async def main():
        current = await provider.get_current_location(5.0, CancellationToken())
        last = await provider.get_last_location()
        return current, last

    current, last = asyncio.run(main())
    assert current.latitude == 40.09
    assert current.longitude == -83.01
    assert current.accuracy_meters == 5000.0
    assert current.source_kind == SourceKind.CURRENT
    assert last.latitude == 40.09
    assert last.source_kind == SourceKind.LAST
    assert provider.timeout_behavior == TimeoutBehavior.PROVIDER


def test_ip_provider_failed_lookup_is_unavailable():
    provider = ip_provider(lambda r: httpx.Response(200, json={"status": "fail", "message": "reserved range"}))
    with pytest.raises(ProviderUnavailable):
        asyncio.run(provider.get_current_location(5.0, CancellationToken()))


def test_ip_provider_timeout_is_reported():
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    with pytest.raises(ProviderTimeout):
        asyncio.run(ip_provider(handler).get_current_location(5.0, CancellationToken()))


def test_ip_provider_honors_cancellation():
    events = []

    async def handler(request):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            events.append("request_cancelled")
            raise
        return httpx.Response(200, json={"lat": 1, "lon": 2})

    cache = LocationCache()
    provider = ip_provider(handler, cache)

    async def main():
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)
        current = await provider.get_current_location(30.0, token)
        return current, await cache.load()

    current, cached = asyncio.run(main())
    assert current is None
    assert cached is None
    assert events == ["request_cancelled"]


def test_ip_provider_bounds_whole_request_by_timeout_hint():
    async def handler(request):
        # MockTransport never applies httpx timeouts
        await asyncio.sleep(1.0)
        return httpx.Response(200, json={"lat": 1, "lon": 2})

    provider = ip_provider(handler)
    with pytest.raises(ProviderTimeout):
        asyncio.run(provider.get_current_location(0.05, CancellationToken()))



def test_last_location_is_empty_without_cache():
    provider = ip_provider(lambda r: httpx.Response(500))
    assert asyncio.run(provider.get_last_location()) is None


def test_fixed_provider_serves_configured_fix():
    provider = FixedLocationProvider(51.5, -0.12, accuracy_meters=20.0)
    current = asyncio.run(provider.get_current_location(1.0, CancellationToken()))
    last = asyncio.run(provider.get_last_location())
    assert (current.latitude, current.longitude, current.source_kind) == (51.5, -0.12, SourceKind.CURRENT)
    assert last.source_kind == SourceKind.LAST
    assert provider.timeout_behavior == TimeoutBehavior.SESSION


def test_build_location_provider_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "LOCATION_PROVIDER", "fixed")
    monkeypatch.setattr(settings, "FIXED_LATITUDE", 1.0)
    monkeypatch.setattr(settings, "FIXED_LONGITUDE", 2.0)
    assert isinstance(build_location_provider(LocationCache()), FixedLocationProvider)

    monkeypatch.setattr(settings, "FIXED_LATITUDE", None)
    with pytest.raises(ValueError):
        build_location_provider(LocationCache())

    monkeypatch.setattr(settings, "LOCATION_PROVIDER", "ip")
    assert isinstance(build_location_provider(LocationCache()), IpGeolocationProvider)


def test_cache_entries_expire():
    cache = LocationCache(InMemoryStore(), ttl=0)
    fix = Coordinate(latitude=1.0, longitude=2.0, accuracy_meters=3.0, provider="gps", source_kind=SourceKind.CURRENT)

    async def main():
        await cache.save(fix)
        return await cache.load()

    assert asyncio.run(main()) is None


def test_cache_errors_are_a_miss():
    class DownRedis:
        async def get(self, key):
            raise ConnectionError("redis down")

        async def setex(self, key, ttl, value):
            raise ConnectionError("redis down")

    cache = LocationCache(DownRedis())
    fix = Coordinate(latitude=1.0, longitude=2.0, accuracy_meters=3.0, provider="gps", source_kind=SourceKind.CURRENT)

    async def main():
        await cache.save(fix)
        return await cache.load()

    assert asyncio.run(main()) is None


def test_cache_close_releases_client():
    class ClosingRedis:
        closed = False

        async def aclose(self):
            self.closed = True

    client = ClosingRedis()
    asyncio.run(LocationCache(client).aclose())
    assert client.closed


def test_cache_close_without_client_close_is_a_no_op():
    asyncio.run(LocationCache().aclose())
