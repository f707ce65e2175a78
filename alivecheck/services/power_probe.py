# alivecheck/services/power_probe.py

from dataclasses import dataclass, field
from typing import List, Protocol

import structlog

from alivecheck.models.dto import PowerSnapshot

logger = structlog.get_logger(__name__)

# Only delivers fixes piggybacked on other apps' requests, so it stalls most of the time
PASSIVE_PROVIDER = "passive"


class PlatformContext(Protocol):
    """Read-only view of the device's location and power services."""
    def location_enabled(self) -> bool: ...
    def enabled_providers(self) -> List[str]: ...
    def device_idle(self) -> bool: ...
    def power_save(self) -> bool: ...


@dataclass(frozen=True)
class DeclaredPlatformContext:
    """Platform state as reported by the triggering device."""
    is_location_enabled: bool = False
    providers: List[str] = field(default_factory=list)
    is_device_idle: bool = False
    is_power_save: bool = False

    def location_enabled(self) -> bool:
        return self.is_location_enabled

    def enabled_providers(self) -> List[str]:
        return list(self.providers)

    def device_idle(self) -> bool:
        return self.is_device_idle

    def power_save(self) -> bool:
        return self.is_power_save


class PowerStateProbe:
    @staticmethod
    def capture(context: PlatformContext) -> PowerSnapshot:
        """
        Takes a one-time snapshot of location and power state.

        Never raises. Any failing read yields the conservative defaults,
        which makes the session behave as if location were unavailable
        rather than crash.
        """
        try:
            snapshot = PowerSnapshot(
                location_enabled=bool(context.location_enabled()),
                available_providers=frozenset(
                    p for p in context.enabled_providers() if p != PASSIVE_PROVIDER
                ),
                device_idle=bool(context.device_idle()),
                power_save=bool(context.power_save()),
            )
        except Exception as e:
            logger.error("power_probe_read_failed", error=str(e))
            snapshot = PowerSnapshot()

        logger.debug(
            "power_snapshot_captured",
            location_enabled=snapshot.location_enabled,
            available_providers=sorted(snapshot.available_providers),
            device_idle=snapshot.device_idle,
            power_save=snapshot.power_save,
        )
        return snapshot
