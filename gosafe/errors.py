"""Exception types shared across the tracking and SOS layers."""


class GoSafeError(Exception):
    """Base class for all GoSafe errors."""


class GeolocationError(GoSafeError):
    """A position could not be produced by a GeoStream."""


class GeolocationUnavailable(GeolocationError):
    """The host has no usable geolocation capability."""


class PermissionDenied(GeolocationError):
    """The user (or the location broker) refused access to position data."""


class LocationTimeout(GeolocationError):
    """No position arrived within the requested bound."""


class DispatchInProgress(GoSafeError):
    """An SOS attempt is already resolving its location or dispatching."""

    def __init__(self, status):
        super().__init__(f"SOS already sending (status={status.value})")
        self.status = status


class UpstreamError(GoSafeError):
    """The GoSafe backend answered with an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
