class HeatmapError(Exception):
    """Base class for every error raised by the heat-map pipeline."""


class InvalidCoordinate(HeatmapError, ValueError):
    """Latitude/longitude missing, non-finite or out of range."""

    def __init__(self, latitude, longitude, reason=None):
        self.latitude = latitude
        self.longitude = longitude
        message = f"Invalid coordinate ({latitude}, {longitude})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class StoreIOError(HeatmapError):
    """A read, write or subscription call against the report store failed."""


class PublishError(HeatmapError):
    """The heat layer consumer rejected a dataset."""
