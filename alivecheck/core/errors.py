"""Error taxonomy for location resolution.

None of these cross the session boundary: the session catches them and turns
them into a degraded message. They exist so providers and geocoders can say
*why* they failed, and so logs carry a stable machine-readable code.
"""


class AliveCheckError(Exception):
    code = "ALIVECHECK_ERROR"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail


class PermissionDenied(AliveCheckError):
    code = "PERMISSION_DENIED"


class ProviderUnavailable(AliveCheckError):
    code = "PROVIDER_UNAVAILABLE"


class ProviderTimeout(AliveCheckError):
    code = "PROVIDER_TIMEOUT"


class GeocodeFailure(AliveCheckError):
    code = "GEOCODE_FAILURE"


class GlobalTimeout(AliveCheckError):
    code = "GLOBAL_TIMEOUT"
