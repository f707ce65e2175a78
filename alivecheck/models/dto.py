from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# --- Internal Value Objects ---

class SourceKind(str, Enum):
    CURRENT = "CURRENT"
    LAST = "LAST"

class SessionState(str, Enum):
    IDLE = "IDLE"
    AWAITING_LOCATION = "AWAITING_LOCATION"
    AWAITING_GEOCODE = "AWAITING_GEOCODE"
    COMPLETED = "COMPLETED"

class SessionOutcome(str, Enum):
    """Which completion path won the race for a session."""
    GEOCODED = "GEOCODED"
    GEOCODE_FAILED = "GEOCODE_FAILED"
    GEOCODE_TIMEOUT = "GEOCODE_TIMEOUT"
    LOCATION_UNAVAILABLE = "LOCATION_UNAVAILABLE"
    LOCATION_TIMEOUT = "LOCATION_TIMEOUT"
    GLOBAL_TIMEOUT = "GLOBAL_TIMEOUT"
    PERMISSION_DENIED = "PERMISSION_DENIED"

class Coordinate(BaseModel):
    """A single location fix."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., description="Latitude in decimal degrees.")
    longitude: float = Field(..., description="Longitude in decimal degrees.")
    accuracy_meters: float = Field(..., description="Horizontal accuracy radius in meters.")
    provider: str = Field(..., description="Name of the source that produced the fix.")
    source_kind: SourceKind = Field(..., description="Fresh fix or cached last-known fix.")

class AddressCandidate(BaseModel):
    """Address lines for one reverse-geocoded result, most specific first."""
    model_config = ConfigDict(frozen=True)

    lines: Tuple[str, ...] = Field(default_factory=tuple, description="Ordered address lines.")

class PowerSnapshot(BaseModel):
    """Location and power state read once at session start."""
    model_config = ConfigDict(frozen=True)

    location_enabled: bool = False
    available_providers: FrozenSet[str] = Field(default_factory=frozenset)
    device_idle: bool = False
    power_save: bool = False

# --- API Request Models ---

class AliveCheckRequest(BaseModel):
    """Request model for the /api/alive-check endpoint.

    The triggering device reports its own permission and power state; the
    server does not poll the device.
    """
    fine_location_granted: bool = Field(..., description="Fine location permission granted.")
    background_location_granted: bool = Field(..., description="Background location permission granted.")
    location_enabled: bool = Field(True, description="Location services switched on.")
    enabled_providers: List[str] = Field(default_factory=list, description="Location providers the device reports as enabled.")
    device_idle: bool = Field(False, description="Device is in idle (doze) mode.")
    power_save: bool = Field(False, description="Device is in power save mode.")
    language: Optional[str] = Field(None, description="Language for the message templates.")

# --- Public Data Transfer Objects (DTOs) ---

class AliveCheckResponse(BaseModel):
    """Public DTO for the /api/alive-check response."""
    session_id: str = Field(..., description="Identifier of the location session.")
    message: str = Field(..., description="Human-readable location message for the alert.")
    outcome: SessionOutcome = Field(..., description="Which completion path produced the message.")
