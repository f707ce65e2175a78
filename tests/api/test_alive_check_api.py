import pytest
from fastapi.testclient import TestClient

from alivecheck.core.config import settings
from alivecheck.main import app
from alivecheck.models.dto import AddressCandidate
from alivecheck.services.i18n import MessageTemplates
from alivecheck.services.location_cache import LocationCache


class StaticGeocoder:
    def __init__(self, lines):
        self.lines = lines

    async def reverse_geocode(self, latitude, longitude, max_results):
        return [AddressCandidate(lines=tuple(self.lines))]


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "LOCATION_PROVIDER", "fixed")
    monkeypatch.setattr(settings, "FIXED_LATITUDE", 40.0931)
    monkeypatch.setattr(settings, "FIXED_LONGITUDE", -83.017)
    monkeypatch.setattr(settings, "FIXED_ACCURACY_METERS", 50.0)
    monkeypatch.setattr(
        "alivecheck.main.geocoder_class",
        lambda: lambda language=None: StaticGeocoder(["Worthington, Ohio", "USA"]),
    )
    with TestClient(app) as test_client:
        yield test_client


def test_health_contract_shape(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["location_provider"] == "fixed"


def test_alive_check_returns_addressed_message(client):
    response = client.post(
        "/api/alive-check",
        json={
            "fine_location_granted": True,
            "background_location_granted": True,
            "enabled_providers": ["gps", "passive"],
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["outcome"] == "GEOCODED"
    assert body["session_id"]
    assert body["message"] == MessageTemplates("en").addressed_location(
        40.0931, -83.017, 50.0, "Worthington, Ohio. USA. "
    )
    assert "X-Request-ID" in response.headers


def test_alive_check_without_permission_is_still_answered(client):
    response = client.post(
        "/api/alive-check",
        json={
            "fine_location_granted": True,
            "background_location_granted": False,
            "language": "es",
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["outcome"] == "PERMISSION_DENIED"
    assert body["message"] == MessageTemplates("es").location_invalid()


@pytest.mark.parametrize(
    "name, value",
    [("LOCATION_PROVIDER", "satellite"), ("GEOCODER", "bing"), ("FIXED_LATITUDE", None)],
)
def test_bad_backend_config_fails_at_startup(monkeypatch, name, value):
    monkeypatch.setattr(settings, "LOCATION_PROVIDER", "fixed")
    monkeypatch.setattr(settings, "FIXED_LATITUDE", 40.0931)
    monkeypatch.setattr(settings, "FIXED_LONGITUDE", -83.017)
    monkeypatch.setattr(settings, name, value)
    with pytest.raises(ValueError):
        with TestClient(app):
            pass


def test_shutdown_closes_location_cache(monkeypatch):
    class ClosingStore:
        closed = False

        async def get(self, key):
            return None

        async def setex(self, key, ttl, value):
            pass

        async def aclose(self):
            self.closed = True

    store = ClosingStore()
    monkeypatch.setattr(settings, "LOCATION_PROVIDER", "ip")
    monkeypatch.setattr(LocationCache, "from_settings", staticmethod(lambda: LocationCache(store)))
    with TestClient(app):
        assert not store.closed
    assert store.closed
