import math
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from ..config import DEFAULT_WEIGHT
from ..core.errors import InvalidCoordinate


def validate_coordinate(latitude, longitude):
    """Return (lat, lon) as floats or raise InvalidCoordinate."""
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise InvalidCoordinate(latitude, longitude, "not a number")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidCoordinate(latitude, longitude, "not finite")
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(latitude, longitude, "latitude outside [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise InvalidCoordinate(latitude, longitude, "longitude outside [-180, 180]")
    return lat, lon


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def report_fields(latitude, longitude, weight, accuracy=None):
    """Stored fields of a new report, minus ``_id`` and ``reportedAt``.

    ``geo`` mirrors ``location`` as a GeoJSON point for the 2dsphere index.
    """
    fields = {
        "location": {"lat": latitude, "lng": longitude},
        "geo": {"type": "Point", "coordinates": [longitude, latitude]},
        "weight": weight,
    }
    if accuracy is not None:
        fields["accuracy"] = accuracy
    return fields


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class LocationReport(BaseModel):
    id: str
    latitude: float
    longitude: float
    weight: float = DEFAULT_WEIGHT
    reported_at: datetime
    accuracy: Optional[float] = None

    @classmethod
    def from_document(cls, doc: dict) -> Optional["LocationReport"]:
        """Build a report from a stored record, or None if the record is unusable."""
        location = doc.get("location")
        if doc.get("_id") is None or not isinstance(location, dict):
            return None
        try:
            lat, lon = validate_coordinate(location.get("lat"), location.get("lng"))
        except InvalidCoordinate:
            return None
        reported_at = doc.get("reportedAt")
        if not isinstance(reported_at, datetime):
            return None
        weight = doc.get("weight")
        if weight is None:
            weight = DEFAULT_WEIGHT
        if not _is_number(weight) or not weight > 0:
            return None
        accuracy = doc.get("accuracy")
        if accuracy is not None and (not _is_number(accuracy) or accuracy < 0):
            return None
        try:
            return cls(
                id=str(doc["_id"]),
                latitude=lat,
                longitude=lon,
                weight=float(weight),
                reported_at=as_utc(reported_at),
                accuracy=accuracy,
            )
        except ValidationError:
            return None


class AggregatedFeature(BaseModel):
    latitude: float
    longitude: float
    magnitude: float


class ReportRequest(BaseModel):
    latitude: float
    longitude: float
    weight: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    accuracy: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)


class SensorEvent(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
