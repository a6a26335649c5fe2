"""Request, response and tool payload types of the MCP interface."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, TypeVar

from .errors import JsonError, VelibError
from .types import BikeTypeFilter, Coordinates, DataSource, VelibStation

T = TypeVar("T")

_SKIP_NONE = {"skip_none": True}
_FLATTEN = {"flatten": True}
_MISSING: Any = object()


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _dataclass_to_dict(obj: Any) -> dict:
    out: dict = {}
    for spec in fields(obj):
        value = getattr(obj, spec.name)
        if value is None and spec.metadata.get("skip_none"):
            continue
        converted = to_jsonable(value)
        if spec.metadata.get("flatten"):
            out.update(converted)
        else:
            out[spec.name] = converted
    return out


def to_jsonable(value: Any) -> Any:
    """Convert a payload object into plain JSON-compatible data."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return _format_timestamp(value)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return _dataclass_to_dict(value)
    if isinstance(value, Mapping):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    raise TypeError(f"cannot convert {type(value).__name__} to JSON")


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise JsonError(f"invalid type: expected an object for {what}")
    return data


def _get(data: Mapping[str, Any], key: str, default: Any = _MISSING) -> Any:
    if key in data:
        return data[key]
    if default is _MISSING:
        raise JsonError(f"missing field `{key}`")
    return default


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise JsonError(f"invalid type for `{key}`: expected a number")
    return float(value)


def _as_uint(value: Any, key: str, bits: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise JsonError(f"invalid type for `{key}`: expected an unsigned integer")
    if not 0 <= value < (1 << bits):
        raise JsonError(f"invalid value for `{key}`: {value} is out of range for u{bits}")
    return value


def _as_bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise JsonError(f"invalid type for `{key}`: expected a boolean")
    return value


def _as_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise JsonError(f"invalid type for `{key}`: expected a string")
    return value


def _as_bike_type(value: Any, key: str) -> BikeTypeFilter:
    text = _as_str(value, key)
    try:
        return BikeTypeFilter(text)
    except ValueError as exc:
        variants = ", ".join(f"`{item.value}`" for item in BikeTypeFilter)
        raise JsonError(f"unknown variant `{text}`, expected one of {variants}") from exc


def _optional(data: Mapping[str, Any], key: str, parse: Callable[[Any], T]) -> Optional[T]:
    value = data.get(key)
    return None if value is None else parse(value)


@dataclass
class GeographicQuery:
    center: Coordinates
    radius_meters: int
    limit: int = 50


@dataclass
class AvailabilityFilter:
    min_bikes: Optional[int] = field(default=None, metadata=_SKIP_NONE)
    min_docks: Optional[int] = field(default=None, metadata=_SKIP_NONE)
    bike_type: Optional[BikeTypeFilter] = field(default=None, metadata=_SKIP_NONE)
    exclude_out_of_service: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> AvailabilityFilter:
        data = _mapping(data, "availability filter")
        return cls(
            min_bikes=_optional(data, "min_bikes", lambda v: _as_uint(v, "min_bikes", 16)),
            min_docks=_optional(data, "min_docks", lambda v: _as_uint(v, "min_docks", 16)),
            bike_type=_optional(data, "bike_type", lambda v: _as_bike_type(v, "bike_type")),
            exclude_out_of_service=_as_bool(
                _get(data, "exclude_out_of_service", True), "exclude_out_of_service"
            ),
        )


@dataclass
class StationQuery:
    geographic: Optional[GeographicQuery] = field(default=None, metadata=_SKIP_NONE)
    availability: Optional[AvailabilityFilter] = field(default=None, metadata=_SKIP_NONE)
    station_codes: Optional[List[str]] = field(default=None, metadata=_SKIP_NONE)
    include_real_time: bool = True


@dataclass
class PaginationInfo:
    offset: int
    limit: int
    has_more: bool


@dataclass
class ResponseMetadata:
    response_time: datetime
    processing_time_ms: int
    real_time_source: DataSource
    reference_source: DataSource


@dataclass
class StationListResponse:
    stations: List[VelibStation]
    total_count: int
    metadata: ResponseMetadata
    pagination: Optional[PaginationInfo] = field(default=None, metadata=_SKIP_NONE)


@dataclass(frozen=True)
class GeographicBounds:
    north: float
    south: float
    east: float
    west: float

    def contains(self, coords: Coordinates) -> bool:
        """Whether the point lies inside the bounds, edges included."""
        return (
            self.south <= coords.latitude <= self.north
            and self.west <= coords.longitude <= self.east
        )

    @classmethod
    def from_dict(cls, data: Any) -> GeographicBounds:
        data = _mapping(data, "bounds")
        return cls(
            *(_as_float(_get(data, key), key) for key in ("north", "south", "east", "west"))
        )


@dataclass
class StationWithDistance:
    station: VelibStation = field(metadata=_FLATTEN)
    distance_meters: int = 0


@dataclass
class JourneyRecommendation:
    pickup_station: VelibStation
    dropoff_station: VelibStation
    walk_to_pickup: int
    walk_from_dropoff: int
    confidence_score: float


@dataclass
class BikeJourney:
    pickup_stations: List[StationWithDistance]
    dropoff_stations: List[StationWithDistance]
    recommendations: List[JourneyRecommendation]


@dataclass
class AvailableBikesStats:
    mechanical: int
    electric: int
    total: int


@dataclass
class AreaStatistics:
    total_stations: int
    operational_stations: int
    total_capacity: int
    available_bikes: AvailableBikesStats
    available_docks: int
    occupancy_rate: float


@dataclass
class FindNearbyStationsInput:
    latitude: float
    longitude: float
    radius_meters: int = 500
    limit: int = 10
    availability_filter: Optional[AvailabilityFilter] = field(default=None, metadata=_SKIP_NONE)

    @classmethod
    def from_dict(cls, data: Any) -> FindNearbyStationsInput:
        data = _mapping(data, "find_nearby_stations arguments")
        return cls(
            latitude=_as_float(_get(data, "latitude"), "latitude"),
            longitude=_as_float(_get(data, "longitude"), "longitude"),
            radius_meters=_as_uint(_get(data, "radius_meters", 500), "radius_meters", 32),
            limit=_as_uint(_get(data, "limit", 10), "limit", 16),
            availability_filter=_optional(
                data, "availability_filter", AvailabilityFilter.from_dict
            ),
        )


@dataclass
class GetStationByCodeInput:
    station_code: str
    include_real_time: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> GetStationByCodeInput:
        data = _mapping(data, "get_station_by_code arguments")
        return cls(
            station_code=_as_str(_get(data, "station_code"), "station_code"),
            include_real_time=_as_bool(
                _get(data, "include_real_time", True), "include_real_time"
            ),
        )


@dataclass
class SearchStationsByNameInput:
    query: str
    limit: int = 10
    fuzzy: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> SearchStationsByNameInput:
        data = _mapping(data, "search_stations_by_name arguments")
        return cls(
            query=_as_str(_get(data, "query"), "query"),
            limit=_as_uint(_get(data, "limit", 10), "limit", 16),
            fuzzy=_as_bool(_get(data, "fuzzy", True), "fuzzy"),
        )


@dataclass
class GetAreaStatisticsInput:
    bounds: GeographicBounds
    include_real_time: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> GetAreaStatisticsInput:
        data = _mapping(data, "get_area_statistics arguments")
        return cls(
            bounds=GeographicBounds.from_dict(_get(data, "bounds")),
            include_real_time=_as_bool(
                _get(data, "include_real_time", True), "include_real_time"
            ),
        )


@dataclass
class JourneyPreferences:
    bike_type: BikeTypeFilter = BikeTypeFilter.ANY_TYPE
    max_walk_distance: int = 500

    @classmethod
    def from_dict(cls, data: Any) -> JourneyPreferences:
        data = _mapping(data, "journey preferences")
        return cls(
            bike_type=_as_bike_type(_get(data, "bike_type", "any"), "bike_type"),
            max_walk_distance=_as_uint(
                _get(data, "max_walk_distance", 500), "max_walk_distance", 32
            ),
        )


@dataclass
class PlanBikeJourneyInput:
    origin: Coordinates
    destination: Coordinates
    preferences: Optional[JourneyPreferences] = field(default=None, metadata=_SKIP_NONE)

    @classmethod
    def from_dict(cls, data: Any) -> PlanBikeJourneyInput:
        data = _mapping(data, "plan_bike_journey arguments")
        return cls(
            origin=Coordinates.from_dict(_get(data, "origin")),
            destination=Coordinates.from_dict(_get(data, "destination")),
            preferences=_optional(data, "preferences", JourneyPreferences.from_dict),
        )


@dataclass
class SearchMetadata:
    query_point: Coordinates
    radius_meters: int
    total_found: int
    search_time_ms: int


@dataclass
class FindNearbyStationsOutput:
    stations: List[StationWithDistance]
    search_metadata: SearchMetadata


@dataclass
class GetStationByCodeOutput:
    station: Optional[VelibStation] = field(default=None, metadata=_SKIP_NONE)
    found: bool = False


@dataclass
class TextSearchMetadata:
    query: str
    total_found: int
    fuzzy_enabled: bool
    search_time_ms: int


@dataclass
class SearchStationsByNameOutput:
    stations: List[VelibStation]
    search_metadata: TextSearchMetadata


@dataclass
class GetAreaStatisticsOutput:
    area_stats: AreaStatistics
    bounds: GeographicBounds


@dataclass
class PlanBikeJourneyOutput:
    journey: BikeJourney


@dataclass
class JsonRpcRequest:
    id: Any
    method: str
    params: Any
    jsonrpc: str = "2.0"

    @classmethod
    def from_dict(cls, data: Any) -> JsonRpcRequest:
        data = _mapping(data, "JSON-RPC request")
        return cls(
            id=_get(data, "id"),
            method=_as_str(_get(data, "method"), "method"),
            params=_get(data, "params"),
            jsonrpc=_as_str(_get(data, "jsonrpc", "2.0"), "jsonrpc"),
        )


@dataclass
class JsonRpcError:
    code: int
    message: str
    data: Any = None

    @classmethod
    def from_error(cls, error: VelibError) -> JsonRpcError:
        """Describe a package error with its MCP code and error type."""
        return cls(
            code=error.mcp_error_code,
            message=str(error),
            data={"error_type": error.error_type},
        )

    def to_dict(self) -> dict:
        out = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = to_jsonable(self.data)
        return out


@dataclass
class JsonRpcResponse:
    id: Any
    result: Any = None
    error: Optional[JsonRpcError] = None
    jsonrpc: str = "2.0"

    def to_dict(self) -> dict:
        out: dict = {"jsonrpc": self.jsonrpc, "id": to_jsonable(self.id)}
        if self.result is not None:
            out["result"] = to_jsonable(self.result)
        if self.error is not None:
            out["error"] = self.error.to_dict()
        return out