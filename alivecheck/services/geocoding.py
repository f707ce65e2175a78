# alivecheck/services/geocoding.py
"""Reverse geocoding backends and the timeout-guarded geocoding stage."""

import asyncio
import inspect
import random
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import httpx
import structlog

from alivecheck.core.config import settings
from alivecheck.core.errors import GeocodeFailure
from alivecheck.models.dto import AddressCandidate, Coordinate, SessionOutcome
from alivecheck.services.i18n import MessageTemplates

logger = structlog.get_logger(__name__)

MAPBOX_REVERSE_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{lon},{lat}.json"

# Appended after every address line
ADDRESS_LINE_SEPARATOR = ". "

Completion = Callable[[str, SessionOutcome], None]


class Geocoder(Protocol):
    """
    Reverse geocoder contract. `reverse_geocode` may be a coroutine function
    or a plain blocking function; GeocodingStage handles both.
    """
    def reverse_geocode(self, latitude: float, longitude: float, max_results: int): ...


class MapboxReverseGeocoder:
    """Async reverse geocoding against the Mapbox Geocoding API."""

    def __init__(
        self,
        token: Optional[str] = settings.MAPBOX_TOKEN,
        language: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.language = language
        self._transport = transport

    async def reverse_geocode(self, latitude: float, longitude: float, max_results: int = 1) -> List[AddressCandidate]:
        if not self.token:
            raise GeocodeFailure("MAPBOX_TOKEN is not configured")

        url = MAPBOX_REVERSE_URL.format(lon=longitude, lat=latitude)
        params = {"access_token": self.token, "limit": max_results}
        if max_results > 1:
            # Mapbox only accepts limit > 1 on reverse queries restricted to one type
            params["types"] = "address"
        if self.language:
            params["language"] = self.language

        max_retries = settings.MAPBOX_MAX_RETRIES
        backoff_time = settings.MAPBOX_INITIAL_BACKOFF

        for attempt in range(max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=settings.MAPBOX_TIMEOUT, transport=self._transport) as client:
                    response = await client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()
            except httpx.TimeoutException:
                logger.warning("mapbox_reverse_timeout", attempt=attempt + 1)
                if attempt < max_retries:
                    wait_time = max(0.0, backoff_time * (2 ** attempt) + random.uniform(-0.2, 0.2))
                    await asyncio.sleep(wait_time)
                    continue
                raise GeocodeFailure("Mapbox reverse geocoding timed out")
            except httpx.HTTPStatusError as e:
                raise GeocodeFailure(f"Mapbox returned status {e.response.status_code}")
            except httpx.HTTPError as e:
                raise GeocodeFailure(f"Mapbox request failed: {e}")

            return [
                AddressCandidate(lines=(feature["place_name"],))
                for feature in data.get("features", [])[:max_results]
                if feature.get("place_name")
            ]

        return []


class NominatimReverseGeocoder:
    """Blocking reverse geocoding against a Nominatim server."""

    def __init__(
        self,
        url: str = settings.NOMINATIM_URL,
        user_agent: str = settings.NOMINATIM_USER_AGENT,
        language: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.user_agent = user_agent
        self.language = language
        self._transport = transport

    def reverse_geocode(self, latitude: float, longitude: float, max_results: int = 1) -> List[AddressCandidate]:
        params = {"lat": latitude, "lon": longitude, "format": "jsonv2"}
        headers = {"User-Agent": self.user_agent}
        if self.language:
            headers["Accept-Language"] = self.language

        try:
            with httpx.Client(timeout=settings.NOMINATIM_TIMEOUT, transport=self._transport) as client:
                response = client.get(self.url, params=params, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise GeocodeFailure(f"Nominatim request failed: {e}")

        # Nominatim answers a reverse query with a single place, or an "error" key
        if not isinstance(data, dict) or "error" in data or not data.get("display_name"):
            return []
        return [AddressCandidate(lines=(data["display_name"],))][:max_results]


def geocoder_class() -> Callable[..., Geocoder]:
    """Resolves the configured backend. Called once at startup so a bad GEOCODER fails there."""
    if settings.GEOCODER == "mapbox":
        return MapboxReverseGeocoder
    if settings.GEOCODER == "nominatim":
        return NominatimReverseGeocoder
    raise ValueError(f"Unknown GEOCODER: {settings.GEOCODER}")


def assemble_address(candidates: Sequence[AddressCandidate], max_length: int) -> str:
    """
    Joins the first candidate's lines, each followed by ". ", for as long as
    the running total stays under `max_length`. Stops at the first line that
    does not fit. Returns "" when nothing usable was found.
    """
    if not candidates:
        logger.info("geocode_no_address_results")
        return ""

    address = ""
    lines = candidates[0].lines
    logger.debug("geocode_address_lines", line_count=len(lines))
    for line in lines:
        line = line.strip()
        if not line:
            continue
        if len(address) + len(line) + len(ADDRESS_LINE_SEPARATOR) < max_length:
            address += line + ADDRESS_LINE_SEPARATOR
        else:
            logger.info("geocode_address_line_dropped", line=line, max_length=max_length)
            break
    return address


class GeocodingStage:
    """
    Turns a coordinate into the final location message.

    Always calls `completion` with some message: an addressed one if
    reverse geocoding worked, the raw-coordinate one if it failed, came
    back empty, or did not finish before the geocoding timer fired.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        templates: MessageTemplates,
        timeout: float = settings.GEOCODING_REQUEST_TIMEOUT,
        max_length: int = settings.SMS_MESSAGE_MAX_LENGTH,
    ):
        self.geocoder = geocoder
        self.templates = templates
        self.timeout = timeout
        self.max_length = max_length

    def raw_message(self, coordinate: Coordinate) -> str:
        return self.templates.raw_location(
            coordinate.latitude, coordinate.longitude, coordinate.accuracy_meters
        )

    def build_message(self, address: str, coordinate: Coordinate) -> str:
        if address == "":
            return self.raw_message(coordinate)
        return self.templates.addressed_location(
            coordinate.latitude, coordinate.longitude, coordinate.accuracy_meters, address
        )

    async def _reverse_geocode(self, coordinate: Coordinate) -> List[AddressCandidate]:
        if inspect.iscoroutinefunction(self.geocoder.reverse_geocode):
            result = await self.geocoder.reverse_geocode(coordinate.latitude, coordinate.longitude, 1)
        else:
            # Blocking geocoder runs off the loop so the timer can still fire
            result = await asyncio.to_thread(
                self.geocoder.reverse_geocode, coordinate.latitude, coordinate.longitude, 1
            )
        return list(result or [])

    async def _lookup(self, coordinate: Coordinate) -> Tuple[str, SessionOutcome]:
        try:
            candidates = await self._reverse_geocode(coordinate)
        except Exception as e:
            logger.warning("geocode_failed", error=str(e), error_type=type(e).__name__)
            return self.raw_message(coordinate), SessionOutcome.GEOCODE_FAILED

        address = assemble_address(candidates, self.max_length)
        if not address:
            return self.raw_message(coordinate), SessionOutcome.GEOCODE_FAILED
        return self.build_message(address, coordinate), SessionOutcome.GEOCODED

    async def geocode(self, coordinate: Coordinate, completion: Completion) -> None:
        """Calls `completion` exactly once, from the lookup or from the timer."""
        logger.info(
            "geocoding_location",
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
            accuracy=coordinate.accuracy_meters,
        )
        completed = False

        def finish(message: str, outcome: SessionOutcome) -> None:
            nonlocal completed
            if completed:
                return
            completed = True
            completion(message, outcome)

        lookup = asyncio.ensure_future(self._lookup(coordinate))

        def on_timeout():
            logger.warning("geocoding_timeout", timeout=self.timeout)
            lookup.cancel()
            finish(self.raw_message(coordinate), SessionOutcome.GEOCODE_TIMEOUT)

        timer = asyncio.get_running_loop().call_later(self.timeout, on_timeout)
        try:
            message, outcome = await lookup
        except asyncio.CancelledError:
            # Cancelled by our own timer: the timeout message is already out
            if not completed or asyncio.current_task().cancelling():
                raise
            return
        finally:
            timer.cancel()

        finish(message, outcome)
