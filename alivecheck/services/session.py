# alivecheck/services/session.py
"""
Location acquisition session.

One session resolves one location message for one trigger. Provider results,
geocoder results and the timers all race on the same event loop; every path
that ends the session goes through `_complete`, and only the first one to get
there has any effect.
"""

import asyncio
import threading
import uuid
from enum import Enum
from typing import Optional, Protocol, Set

import structlog
from structlog.contextvars import bind_contextvars

from alivecheck.core.config import settings
from alivecheck.core.errors import (
    AliveCheckError,
    GlobalTimeout,
    PermissionDenied,
    ProviderTimeout,
    ProviderUnavailable,
)
from alivecheck.models.dto import Coordinate, PowerSnapshot, SessionOutcome, SessionState
from alivecheck.services.geocoding import GeocodingStage
from alivecheck.services.i18n import MessageTemplates
from alivecheck.services.location_provider import CancellationToken, LocationProvider, TimeoutBehavior
from alivecheck.services.result_sink import ResultChannel, ResultSink

logger = structlog.get_logger(__name__)


class PermissionKind(str, Enum):
    FINE_LOCATION = "FINE_LOCATION"
    BACKGROUND_LOCATION = "BACKGROUND_LOCATION"


class PermissionChecker(Protocol):
    def has_permission(self, kind: PermissionKind) -> bool: ...


class DeclaredPermissions:
    """Permission answers reported by the triggering device."""

    def __init__(self, fine_location: bool, background_location: bool):
        self._granted = {
            PermissionKind.FINE_LOCATION: fine_location,
            PermissionKind.BACKGROUND_LOCATION: background_location,
        }

    def has_permission(self, kind: PermissionKind) -> bool:
        return self._granted.get(kind, False)


class LocationAcquisitionSession:
    def __init__(
        self,
        provider: LocationProvider,
        geocoding: GeocodingStage,
        sink: ResultSink,
        permissions: PermissionChecker,
        snapshot: PowerSnapshot,
        templates: Optional[MessageTemplates] = None,
        global_timeout: float = settings.GLOBAL_TIMEOUT,
        location_timeout: float = settings.LOCATION_REQUEST_TIMEOUT,
    ):
        self.session_id = str(uuid.uuid4())
        self.provider = provider
        self.geocoding = geocoding
        self.permissions = permissions
        self.snapshot = snapshot
        self.templates = templates or geocoding.templates
        self.global_timeout = global_timeout
        self.location_timeout = location_timeout

        self.state = SessionState.IDLE
        self.outcome: Optional[SessionOutcome] = None
        self.error: Optional[AliveCheckError] = None
        self.last_location_attempts = 0

        self._channel = ResultChannel(sink)
        self._state_lock = threading.Lock()
        self._cancel_token: Optional[CancellationToken] = None
        self._global_timer: Optional[asyncio.TimerHandle] = None
        self._location_timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    # --- Public API ---

    def start(self) -> None:
        """
        Begins resolving the location. Must be called from a running event loop.
        The result arrives only through the ResultSink (or `wait()`).
        """
        if self.state is not SessionState.IDLE:
            raise RuntimeError("session already started")

        loop = asyncio.get_running_loop()
        self._cancel_token = CancellationToken()
        # Spawned tasks and timer callbacks copy this context
        bind_contextvars(session_id=self.session_id)

        if not self._has_location_permissions():
            logger.info("location_permission_missing")
            self._complete(
                self.templates.location_invalid(),
                SessionOutcome.PERMISSION_DENIED,
                PermissionDenied("fine and background location are both required"),
            )
            return

        self.state = SessionState.AWAITING_LOCATION
        self._global_timer = loop.call_later(self.global_timeout, self._on_global_timeout)

        logger.info(
            "session_started",
            device_idle=self.snapshot.device_idle,
            power_save=self.snapshot.power_save,
            location_enabled=self.snapshot.location_enabled,
            available_providers=sorted(self.snapshot.available_providers),
        )

        if self.snapshot.device_idle:
            # Current-location requests never return while the device is idle
            logger.info("device_idle_skipping_current_location")
            self._request_last_location()
            return

        try:
            request = self.provider.get_current_location(self.location_timeout, self._cancel_token)
        except Exception as e:
            logger.warning("current_location_request_failed", error=str(e))
            self._request_last_location()
            return

        if self.provider.timeout_behavior is TimeoutBehavior.SESSION:
            self._location_timer = loop.call_later(self.location_timeout, self._on_location_timeout)
        self._spawn(self._await_current_location(request))

    async def wait(self) -> str:
        """Awaits the delivered message."""
        return await self._channel.wait()

    async def run(self) -> str:
        """Starts the session and returns the delivered message."""
        self.start()
        return await self.wait()

    @property
    def message(self) -> Optional[str]:
        return self._channel.message

    # --- Location stages ---

    def _has_location_permissions(self) -> bool:
        try:
            return self.permissions.has_permission(PermissionKind.FINE_LOCATION) and \
                self.permissions.has_permission(PermissionKind.BACKGROUND_LOCATION)
        except Exception as e:
            logger.error("permission_check_failed", error=str(e))
            return False

    async def _await_current_location(self, request) -> None:
        coordinate: Optional[Coordinate] = None
        try:
            coordinate = await request
        except Exception as e:
            logger.warning("current_location_failed", error=str(e), error_type=type(e).__name__)
        finally:
            self._cancel_location_timer()

        if self.state is SessionState.COMPLETED:
            return

        if coordinate is None:
            self._request_last_location()
            return

        await self._geocode(coordinate)

    def _request_last_location(self) -> None:
        if self.state is SessionState.COMPLETED:
            return
        self.last_location_attempts += 1
        logger.info("requesting_last_location")
        try:
            request = self.provider.get_last_location()
        except Exception as e:
            logger.warning("last_location_request_failed", error=str(e))
            self._complete(
                self.templates.location_invalid(),
                SessionOutcome.LOCATION_UNAVAILABLE,
                ProviderUnavailable(str(e)),
            )
            return
        self._spawn(self._await_last_location(request))

    async def _await_last_location(self, request) -> None:
        coordinate: Optional[Coordinate] = None
        error: Optional[AliveCheckError] = None
        try:
            coordinate = await request
        except AliveCheckError as e:
            error = e
        except Exception as e:
            error = ProviderUnavailable(str(e))

        if self.state is SessionState.COMPLETED:
            return

        if coordinate is None:
            logger.info("location_unavailable", error=str(error) if error else None)
            self._complete(
                self.templates.location_invalid(),
                SessionOutcome.LOCATION_UNAVAILABLE,
                error or ProviderUnavailable("no last-known location"),
            )
            return

        await self._geocode(coordinate)

    async def _geocode(self, coordinate: Coordinate) -> None:
        logger.info(
            "location_acquired",
            source_kind=coordinate.source_kind.value,
            provider=coordinate.provider,
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
            accuracy=coordinate.accuracy_meters,
        )
        with self._state_lock:
            if self.state is SessionState.COMPLETED:
                return
            self.state = SessionState.AWAITING_GEOCODE
        await self.geocoding.geocode(coordinate, self._on_geocode_complete)

    # --- Events ---

    def _on_geocode_complete(self, message: str, outcome: SessionOutcome) -> None:
        self._complete(message, outcome)

    def _on_location_timeout(self) -> None:
        self._location_timer = None
        logger.warning("location_request_timeout", timeout=self.location_timeout)
        self._complete(
            self.templates.location_invalid(),
            SessionOutcome.LOCATION_TIMEOUT,
            ProviderTimeout(f"current location not received within {self.location_timeout}s"),
        )

    def _on_global_timeout(self) -> None:
        self._global_timer = None
        if self._cancel_token is not None:
            self._cancel_token.cancel()
        logger.warning("global_timeout_reached", timeout=self.global_timeout)
        self._complete(
            self.templates.location_invalid(),
            SessionOutcome.GLOBAL_TIMEOUT,
            GlobalTimeout(f"session did not finish within {self.global_timeout}s"),
        )

    def _complete(
        self,
        message: str,
        outcome: SessionOutcome,
        error: Optional[AliveCheckError] = None,
    ) -> bool:
        """The only transition into COMPLETED. Returns False if already completed."""
        with self._state_lock:
            if self.state is SessionState.COMPLETED:
                logger.debug("late_completion_ignored", outcome=outcome.value)
                return False
            self.state = SessionState.COMPLETED
            self.outcome = outcome
            self.error = error

        self._teardown()
        logger.info(
            "session_completed",
            outcome=outcome.value,
            error=error.code if error else None,
        )
        self._channel.complete(message)
        return True

    # --- Plumbing ---

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_location_timer(self) -> None:
        if self._location_timer is not None:
            self._location_timer.cancel()
            self._location_timer = None

    def _teardown(self) -> None:
        if self._global_timer is not None:
            self._global_timer.cancel()
            self._global_timer = None
        self._cancel_location_timer()
        if self._cancel_token is not None:
            self._cancel_token.cancel()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current and not task.done():
                task.cancel()
