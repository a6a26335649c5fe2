"""Implementations of the MCP tools over live Velib data."""

from __future__ import annotations

import asyncio
import math
import time
from typing import Any, List, Mapping, Optional, Tuple, Type, TypeVar

from .client import VelibDataClient
from .errors import (
    InternalError,
    InvalidCoordinatesError,
    JsonError,
    OutsideServiceAreaError,
    ResultLimitExceededError,
    SearchRadiusTooLargeError,
)
from .mcp_types import (
    AreaStatistics,
    AvailableBikesStats,
    BikeJourney,
    FindNearbyStationsInput,
    FindNearbyStationsOutput,
    GetAreaStatisticsInput,
    GetAreaStatisticsOutput,
    GetStationByCodeInput,
    GetStationByCodeOutput,
    JourneyPreferences,
    JourneyRecommendation,
    PlanBikeJourneyInput,
    PlanBikeJourneyOutput,
    SearchMetadata,
    SearchStationsByNameInput,
    SearchStationsByNameOutput,
    StationWithDistance,
    TextSearchMetadata,
)
from .types import PARIS_CITY_HALL, Coordinates

MAX_SEARCH_RADIUS = 5000
MAX_RESULT_LIMIT = 100
JOURNEY_CANDIDATES = 3

T = TypeVar("T")


def _coerce(params: Any, cls: Type[T]) -> T:
    if isinstance(params, cls):
        return params
    if isinstance(params, Mapping):
        return cls.from_dict(params)  # type: ignore[attr-defined]
    raise JsonError(f"invalid type: expected an object for {cls.__name__}")


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _check_point(point: Coordinates) -> None:
    if not point.is_valid_paris_metro():
        raise InvalidCoordinatesError(point.latitude, point.longitude)


def _check_service_area(point: Coordinates) -> None:
    if not point.is_within_paris_service_area():
        raise OutsideServiceAreaError(point.distance_to(PARIS_CITY_HALL) / 1000.0)


class McpToolHandler:
    """Answers the MCP tool calls using a Velib data client."""

    def __init__(self, data_client: Optional[VelibDataClient] = None) -> None:
        self.data_client = data_client if data_client is not None else VelibDataClient()
        self._lock = asyncio.Lock()

    async def _stations(self):
        async with self._lock:
            return await self.data_client.get_all_stations(True)

    async def find_nearby_stations(self, params: Any) -> FindNearbyStationsOutput:
        """Operational stations within the radius, nearest first."""
        start = time.perf_counter()
        query = _coerce(params, FindNearbyStationsInput)

        if query.radius_meters > MAX_SEARCH_RADIUS:
            raise SearchRadiusTooLargeError(query.radius_meters, MAX_SEARCH_RADIUS)
        if query.limit > MAX_RESULT_LIMIT:
            raise ResultLimitExceededError(query.limit, MAX_RESULT_LIMIT)

        query_point = Coordinates(query.latitude, query.longitude)
        _check_point(query_point)
        _check_service_area(query_point)

        bike_type = (
            query.availability_filter.bike_type if query.availability_filter else None
        )
        nearby: List[StationWithDistance] = []
        for station in await self._stations():
            distance = int(query_point.distance_to(station.reference.coordinates))
            if distance > query.radius_meters:
                continue
            if bike_type is not None and not station.has_available_bikes(bike_type):
                continue
            if station.is_operational():
                nearby.append(StationWithDistance(station, distance))

        nearby.sort(key=lambda item: item.distance_meters)
        stations = nearby[: query.limit]

        return FindNearbyStationsOutput(
            stations=stations,
            search_metadata=SearchMetadata(
                query_point=query_point,
                radius_meters=query.radius_meters,
                total_found=len(stations),
                search_time_ms=_elapsed_ms(start),
            ),
        )

    async def get_station_by_code(self, params: Any) -> GetStationByCodeOutput:
        """The station with the requested code, with live data, if it exists."""
        query = _coerce(params, GetStationByCodeInput)
        async with self._lock:
            station = await self.data_client.get_station_by_code(query.station_code, True)
        return GetStationByCodeOutput(station=station, found=station is not None)

    async def search_stations_by_name(self, params: Any) -> SearchStationsByNameOutput:
        """Stations whose name contains (fuzzy) or starts with the query, by name."""
        start = time.perf_counter()
        query = _coerce(params, SearchStationsByNameInput)

        if len(query.query.encode("utf-8")) < 2:
            raise InternalError("Search query too short")
        if query.limit > MAX_RESULT_LIMIT:
            raise ResultLimitExceededError(query.limit, MAX_RESULT_LIMIT)

        needle = query.query.lower()

        def matches(name: str) -> bool:
            name = name.lower()
            return needle in name if query.fuzzy else name.startswith(needle)

        matching = sorted(
            (s for s in await self._stations() if matches(s.reference.name)),
            key=lambda s: s.reference.name,
        )
        stations = matching[: query.limit]

        return SearchStationsByNameOutput(
            stations=stations,
            search_metadata=TextSearchMetadata(
                query=query.query,
                total_found=len(stations),
                fuzzy_enabled=query.fuzzy,
                search_time_ms=_elapsed_ms(start),
            ),
        )

    async def get_area_statistics(self, params: Any) -> GetAreaStatisticsOutput:
        """Aggregate capacity and availability of the stations inside the bounds."""
        query = _coerce(params, GetAreaStatisticsInput)
        area = [
            s for s in await self._stations() if query.bounds.contains(s.reference.coordinates)
        ]

        live = [s.real_time for s in area if s.real_time is not None]
        total_capacity = sum(s.reference.capacity for s in area)
        mechanical = sum(rt.bikes.mechanical for rt in live)
        electric = sum(rt.bikes.electric for rt in live)
        docks = sum(rt.available_docks for rt in live)
        total_bikes = mechanical + electric

        stats = AreaStatistics(
            total_stations=len(area),
            operational_stations=sum(1 for s in area if s.is_operational()),
            total_capacity=total_capacity,
            available_bikes=AvailableBikesStats(mechanical, electric, total_bikes),
            available_docks=docks,
            occupancy_rate=total_bikes / total_capacity if total_capacity > 0 else 0.0,
        )
        return GetAreaStatisticsOutput(area_stats=stats, bounds=query.bounds)

    async def plan_bike_journey(self, params: Any) -> PlanBikeJourneyOutput:
        """Suggest pickup and dropoff stations and the best pairing of them."""
        query = _coerce(params, PlanBikeJourneyInput)
        _check_point(query.origin)
        _check_point(query.destination)
        _check_service_area(query.origin)
        _check_service_area(query.destination)

        stations = await self._stations()
        preferences = query.preferences or JourneyPreferences()
        max_walk = preferences.max_walk_distance

        def candidates(point: Coordinates, usable) -> List[StationWithDistance]:
            found = []
            for station in stations:
                distance = int(point.distance_to(station.reference.coordinates))
                if distance <= max_walk and station.is_operational() and usable(station):
                    found.append(StationWithDistance(station, distance))
            found.sort(key=lambda item: item.distance_meters)
            return found[:JOURNEY_CANDIDATES]

        pickups = candidates(
            query.origin, lambda s: s.has_available_bikes(preferences.bike_type)
        )
        dropoffs = candidates(query.destination, lambda s: s.has_available_docks(1))

        recommendations: List[JourneyRecommendation] = []
        if pickups and dropoffs:
            best_pickup, best_dropoff = pickups[0], dropoffs[0]
            pickup_ratio, dropoff_ratio = self._walk_ratios(
                best_pickup.distance_meters, best_dropoff.distance_meters, max_walk
            )
            confidence = 1.0 - ((pickup_ratio + dropoff_ratio) / 2.0) * 0.5
            recommendations.append(
                JourneyRecommendation(
                    pickup_station=best_pickup.station,
                    dropoff_station=best_dropoff.station,
                    walk_to_pickup=best_pickup.distance_meters,
                    walk_from_dropoff=best_dropoff.distance_meters,
                    confidence_score=min(max(confidence, 0.1), 1.0),
                )
            )

        return PlanBikeJourneyOutput(
            journey=BikeJourney(
                pickup_stations=pickups,
                dropoff_stations=dropoffs,
                recommendations=recommendations,
            )
        )

    @staticmethod
    def _walk_ratios(pickup: int, dropoff: int, max_walk: int) -> Tuple[float, float]:
        if max_walk == 0:
            return math.nan, math.nan
        return pickup / max_walk, dropoff / max_walk

    def cleanup_cache(self) -> None:
        """Drop expired entries from the data client's caches."""
        self.data_client.cleanup_cache()

    def cache_stats(self) -> Tuple[int, int]:
        """Entry counts of the reference and real-time caches."""
        return self.data_client.cache_stats()