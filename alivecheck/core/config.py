from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "alivecheck"
    VERSION: str = "0.1.0"
    BRIEF_DESCRIPTION: str = "Background are-you-alive monitor: resolves the device location and address for an alert message."

    ENV: str = Field("development", description="Application environment (e.g., production, development)")
    LOG_LEVEL: str = Field("INFO", description="Root log level (DEBUG, INFO, WARNING, ...)")

    # --- Timeouts (seconds) ---
    # Global backstop for a whole session, slightly above the sum of the stage timers
    GLOBAL_TIMEOUT: float = Field(61.0, description="Upper bound on total session duration")
    LOCATION_REQUEST_TIMEOUT: float = Field(30.0, description="Bound on the current-location request")
    GEOCODING_REQUEST_TIMEOUT: float = Field(30.0, description="Bound on the reverse-geocode request")

    # --- Message shaping ---
    SMS_MESSAGE_MAX_LENGTH: int = Field(160, description="Length budget for the assembled address")
    DEFAULT_LANGUAGE: str = Field("en", description="Language for message templates")

    # --- Location provider ---
    LOCATION_PROVIDER: str = Field("ip", description="Location provider backend: ip or fixed")
    IP_GEOLOCATION_URL: str = Field("http://ip-api.com/json/", description="IP geolocation endpoint")
    IP_LOCATION_ACCURACY_METERS: float = Field(5000.0, description="Accuracy reported for IP based fixes")
    FIXED_LATITUDE: Optional[float] = Field(None, description="Latitude for the fixed provider")
    FIXED_LONGITUDE: Optional[float] = Field(None, description="Longitude for the fixed provider")
    FIXED_ACCURACY_METERS: float = Field(50.0, description="Accuracy for the fixed provider")

    # --- Geocoder ---
    GEOCODER: str = Field("nominatim", description="Reverse geocoder backend: mapbox or nominatim")
    MAPBOX_TOKEN: Optional[str] = Field(None, description="Mapbox Geocoding API Token")
    MAPBOX_MAX_RETRIES: int = 1
    MAPBOX_INITIAL_BACKOFF: float = 1.0 # seconds
    MAPBOX_TIMEOUT: int = 8 # seconds
    NOMINATIM_URL: str = Field("https://nominatim.openstreetmap.org/reverse", description="Nominatim reverse endpoint")
    NOMINATIM_USER_AGENT: str = Field("alivecheck/0.1 (set your email)", description="User-Agent required by the Nominatim usage policy")
    NOMINATIM_TIMEOUT: int = 10 # seconds

    # --- Last-known location cache ---
    ENABLE_REDIS: bool = Field(False, description="Feature flag for Redis")
    REDIS_URL: Optional[str] = Field(None, description="Redis URL for the last-known location cache")
    LAST_LOCATION_TTL_SECONDS: int = Field(86400, description="How long a cached fix stays usable")

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
