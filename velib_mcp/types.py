"""Core domain types for Velib stations and their availability."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from .errors import JsonError, ValidationError

EARTH_RADIUS_METERS = 6_371_000.0
PARIS_CITY_HALL_LAT = 48.8565
PARIS_CITY_HALL_LON = 2.3514
MAX_SERVICE_DISTANCE_METERS = 50_000.0
MAX_STATION_CAPACITY = 200
_U16_MAX = 0xFFFF


def _number(data: Mapping[str, Any], key: str) -> float:
    try:
        value = data[key]
    except (KeyError, TypeError) as exc:
        raise JsonError(f"missing field `{key}`") from exc
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise JsonError(f"invalid type for `{key}`: expected a number")
    return float(value)


def _format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Coordinates:
    """A point in WGS84 degrees."""

    latitude: float
    longitude: float

    def distance_to(self, other: Coordinates) -> float:
        """Great-circle distance in metres (haversine formula)."""
        lat1 = math.radians(self.latitude)
        lat2 = math.radians(other.latitude)
        delta_lat = math.radians(other.latitude - self.latitude)
        delta_lon = math.radians(other.longitude - self.longitude)
        a = (
            math.sin(delta_lat / 2.0) ** 2
            + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lon / 2.0) ** 2
        )
        c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
        return EARTH_RADIUS_METERS * c

    def is_valid_paris_metro(self) -> bool:
        """Whether the point lies inside the approximate Paris metro bounding box."""
        return 48.7 <= self.latitude <= 49.0 and 2.0 <= self.longitude <= 2.6

    def is_within_paris_service_area(self) -> bool:
        """Whether the point lies within 50 km of Paris City Hall."""
        return self.distance_to(PARIS_CITY_HALL) <= MAX_SERVICE_DISTANCE_METERS

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Coordinates:
        if not isinstance(data, Mapping):
            raise JsonError("invalid type: expected an object for coordinates")
        return cls(_number(data, "latitude"), _number(data, "longitude"))


PARIS_CITY_HALL = Coordinates(PARIS_CITY_HALL_LAT, PARIS_CITY_HALL_LON)


class StationStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    MAINTENANCE = "MAINTENANCE"


@dataclass(frozen=True)
class ServiceCapabilities:
    accepts_credit_card: bool = False
    has_charging_station: bool = False
    is_virtual_station: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "accepts_credit_card": self.accepts_credit_card,
            "has_charging_station": self.has_charging_station,
            "is_virtual_station": self.is_virtual_station,
        }


@dataclass(frozen=True)
class BikeAvailability:
    mechanical: int = 0
    electric: int = 0

    def total(self) -> int:
        """Total bikes, saturating at the 16-bit maximum."""
        return min(self.mechanical + self.electric, _U16_MAX)

    def has_bikes(self) -> bool:
        return self.total() > 0

    def has_mechanical(self) -> bool:
        return self.mechanical > 0

    def has_electric(self) -> bool:
        return self.electric > 0

    def to_dict(self) -> dict[str, int]:
        return {"mechanical": self.mechanical, "electric": self.electric}


class DataFreshness(Enum):
    FRESH = "Fresh"
    RECENT = "Recent"
    STALE = "Stale"
    VERY_STALE = "VeryStale"

    @classmethod
    def from_age(cls, age_minutes: float) -> DataFreshness:
        """Classify data by its age in minutes."""
        if age_minutes < 5.0:
            return cls.FRESH
        if age_minutes < 15.0:
            return cls.RECENT
        if age_minutes < 60.0:
            return cls.STALE
        return cls.VERY_STALE


class BikeTypeFilter(Enum):
    MECHANICAL_ONLY = "mechanical"
    ELECTRIC_ONLY = "electric"
    ANY_TYPE = "any"


@dataclass(frozen=True)
class StationReference:
    station_code: str
    name: str
    coordinates: Coordinates
    capacity: int
    capabilities: ServiceCapabilities = field(default_factory=ServiceCapabilities)

    def validate(self) -> None:
        """Raise ValidationError if the reference data is inconsistent."""
        if not self.station_code:
            raise ValidationError("Station code cannot be empty")
        if not self.name:
            raise ValidationError("Station name cannot be empty")
        if self.capacity == 0:
            raise ValidationError("Station capacity must be greater than 0")
        if self.capacity > MAX_STATION_CAPACITY:
            raise ValidationError("Station capacity seems unreasonably high")
        if not self.coordinates.is_valid_paris_metro():
            raise ValidationError("Coordinates are outside valid Paris metro area")

    def to_dict(self) -> dict[str, Any]:
        return {
            "station_code": self.station_code,
            "name": self.name,
            "coordinates": self.coordinates.to_dict(),
            "capacity": self.capacity,
            "capabilities": self.capabilities.to_dict(),
        }


@dataclass(frozen=True)
class RealTimeStatus:
    bikes: BikeAvailability
    available_docks: int
    status: StationStatus
    last_update: datetime
    data_freshness: DataFreshness

    @classmethod
    def create(
        cls,
        bikes: BikeAvailability,
        available_docks: int,
        status: StationStatus,
        last_update: datetime,
    ) -> RealTimeStatus:
        """Build a status whose freshness is derived from the age of last_update."""
        if last_update.tzinfo is None:
            last_update = last_update.replace(tzinfo=timezone.utc)
        elapsed = datetime.now(timezone.utc) - last_update
        age_minutes = float(math.trunc(elapsed.total_seconds() / 60.0))
        return cls(
            bikes=bikes,
            available_docks=available_docks,
            status=status,
            last_update=last_update,
            data_freshness=DataFreshness.from_age(age_minutes),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "bikes": self.bikes.to_dict(),
            "available_docks": self.available_docks,
            "status": self.status.value,
            "last_update": _format_timestamp(self.last_update),
            "data_freshness": self.data_freshness.value,
        }


@dataclass(frozen=True)
class VelibStation:
    reference: StationReference
    real_time: Optional[RealTimeStatus] = None

    def with_real_time(self, real_time: RealTimeStatus) -> VelibStation:
        return replace(self, real_time=real_time)

    def is_operational(self) -> bool:
        """Open stations are operational; stations without live data are assumed to be."""
        if self.real_time is None:
            return True
        return self.real_time.status is StationStatus.OPEN

    def has_available_bikes(self, bike_type: BikeTypeFilter) -> bool:
        if self.real_time is None:
            return False
        bikes = self.real_time.bikes
        if bike_type is BikeTypeFilter.MECHANICAL_ONLY:
            return bikes.has_mechanical()
        if bike_type is BikeTypeFilter.ELECTRIC_ONLY:
            return bikes.has_electric()
        return bikes.has_bikes()

    def has_available_docks(self, min_docks: int) -> bool:
        if self.real_time is None:
            return False
        return self.real_time.available_docks >= min_docks

    def validate(self) -> None:
        """Raise ValidationError if reference or live data is inconsistent."""
        self.reference.validate()
        if self.real_time is not None:
            total_bikes = self.real_time.bikes.total()
            total_docks = self.real_time.available_docks
            capacity = self.reference.capacity
            if total_bikes + total_docks > capacity:
                raise ValidationError(
                    f"Total bikes ({total_bikes}) + docks ({total_docks}) "
                    f"exceeds capacity ({capacity})"
                )

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference.to_dict(),
            "real_time": None if self.real_time is None else self.real_time.to_dict(),
        }


class DataSource(Enum):
    PARIS_OPEN_DATA = "paris_open_data"
    CACHE = "cache"
    FALLBACK = "fallback"