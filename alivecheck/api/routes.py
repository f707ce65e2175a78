# alivecheck/api/routes.py

from fastapi import APIRouter, Request
import logging
from typing import Callable

from alivecheck.core.config import settings
from alivecheck.models.dto import AliveCheckRequest, AliveCheckResponse
from alivecheck.services.geocoding import Geocoder, GeocodingStage
from alivecheck.services.i18n import MessageTemplates
from alivecheck.services.location_provider import LocationProvider
from alivecheck.services.power_probe import DeclaredPlatformContext, PowerStateProbe
from alivecheck.services.result_sink import ResultSink
from alivecheck.services.session import DeclaredPermissions, LocationAcquisitionSession

router = APIRouter()
logger = logging.getLogger(__name__)


class AlertPipelineSink:
    """Hands the message to the alert pipeline. Here that is just the log."""

    def deliver(self, message: str) -> None:
        logger.info(f"Location message ready for alert pipeline: {message}")


def build_session(
    data: AliveCheckRequest,
    provider: LocationProvider,
    geocoder_factory: Callable[..., Geocoder],
    sink: ResultSink,
) -> LocationAcquisitionSession:
    """Wires one session from the trigger payload and the backends built at startup."""
    language = data.language or settings.DEFAULT_LANGUAGE
    templates = MessageTemplates(language)
    snapshot = PowerStateProbe.capture(
        DeclaredPlatformContext(
            is_location_enabled=data.location_enabled,
            providers=list(data.enabled_providers),
            is_device_idle=data.device_idle,
            is_power_save=data.power_save,
        )
    )
    return LocationAcquisitionSession(
        provider=provider,
        geocoding=GeocodingStage(geocoder_factory(language=language), templates),
        sink=sink,
        permissions=DeclaredPermissions(
            fine_location=data.fine_location_granted,
            background_location=data.background_location_granted,
        ),
        snapshot=snapshot,
        templates=templates,
    )


# ----------------------------------------------------------------------
# Alive Check Endpoint
# ----------------------------------------------------------------------
@router.post("/alive-check", response_model=AliveCheckResponse)
async def alive_check(request: Request, data: AliveCheckRequest):
    """Resolve the device location into an alert message. Always answers with a message."""
    session = build_session(
        data,
        request.app.state.location_provider,
        request.app.state.geocoder_factory,
        AlertPipelineSink(),
    )
    message = await session.run()
    return AliveCheckResponse(
        session_id=session.session_id,
        message=message,
        outcome=session.outcome,
    )
