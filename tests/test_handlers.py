import json
from datetime import datetime, timezone

import pytest

from velib_mcp.errors import (
    InternalError,
    InvalidCoordinatesError,
    JsonError,
    ResultLimitExceededError,
    SearchRadiusTooLargeError,
)
from velib_mcp.handlers import McpToolHandler
from velib_mcp.mcp_types import (
    AvailabilityFilter,
    FindNearbyStationsInput,
    GeographicBounds,
    GetAreaStatisticsInput,
    GetStationByCodeInput,
    PlanBikeJourneyInput,
    SearchStationsByNameInput,
    to_jsonable,
)
from velib_mcp.types import (
    BikeAvailability,
    BikeTypeFilter,
    Coordinates,
    DataFreshness,
    RealTimeStatus,
    StationReference,
    StationStatus,
    VelibStation,
)

CENTER_LAT = 48.8566
CENTER_LON = 2.3522


def make_station(code, name, lat_offset, mech, elec, docks, status=StationStatus.OPEN):
    reference = StationReference(
        code, name, Coordinates(CENTER_LAT + lat_offset, CENTER_LON), 20
    )
    real_time = RealTimeStatus(
        BikeAvailability(mech, elec),
        docks,
        status,
        datetime.now(timezone.utc),
        DataFreshness.FRESH,
    )
    return VelibStation(reference, real_time)


STATIONS = [
    make_station("A", "Bastille", 0.0, 2, 0, 5),
    make_station("B", "Beaubourg", 0.002, 0, 3, 4),
    make_station("C", "Chatelet", 0.004, 1, 1, 6, StationStatus.CLOSED),
    make_station("D", "Denfert", 0.003, 0, 0, 10),
    make_station("E", "Etoile", 0.03, 4, 4, 2),
]


class StubDataClient:
    def __init__(self, stations):
        self.stations = list(stations)
        self.cleaned = False

    async def get_all_stations(self, include_realtime=True):
        return list(self.stations)

    async def get_station_by_code(self, station_code, include_realtime=True):
        return next(
            (s for s in self.stations if s.reference.station_code == station_code), None
        )

    def cleanup_cache(self):
        self.cleaned = True

    def cache_stats(self):
        return (3, 4)


@pytest.fixture
def handler():
    return McpToolHandler(StubDataClient(STATIONS))


def codes(items):
    return [item.station.reference.station_code for item in items]


@pytest.mark.asyncio
async def test_radius_too_large(handler):
    with pytest.raises(SearchRadiusTooLargeError):
        await handler.find_nearby_stations(
            FindNearbyStationsInput(CENTER_LAT, CENTER_LON, radius_meters=5001)
        )


@pytest.mark.asyncio
async def test_limit_exceeded(handler):
    with pytest.raises(ResultLimitExceededError):
        await handler.find_nearby_stations(
            FindNearbyStationsInput(CENTER_LAT, CENTER_LON, limit=101)
        )


@pytest.mark.asyncio
async def test_nearby_rejects_invalid_coordinates(handler):
    with pytest.raises(InvalidCoordinatesError):
        await handler.find_nearby_stations(FindNearbyStationsInput(40.7128, -74.0060))


@pytest.mark.asyncio
async def test_nearby_sorted_and_filtered(handler):
    output = await handler.find_nearby_stations({"latitude": CENTER_LAT, "longitude": CENTER_LON})
    assert codes(output.stations) == ["A", "B", "D"]
    distances = [item.distance_meters for item in output.stations]
    assert distances == sorted(distances)
    assert all(d <= 500 for d in distances)
    assert output.search_metadata.total_found == len(output.stations)
    assert output.search_metadata.radius_meters == 500


@pytest.mark.asyncio
async def test_nearby_limit_truncates(handler):
    output = await handler.find_nearby_stations(
        FindNearbyStationsInput(CENTER_LAT, CENTER_LON, limit=2)
    )
    assert codes(output.stations) == ["A", "B"]


@pytest.mark.asyncio
async def test_nearby_bike_type_filter(handler):
    output = await handler.find_nearby_stations(
        FindNearbyStationsInput(
            CENTER_LAT,
            CENTER_LON,
            availability_filter=AvailabilityFilter(bike_type=BikeTypeFilter.ELECTRIC_ONLY),
        )
    )
    assert codes(output.stations) == ["B"]


@pytest.mark.asyncio
async def test_nearby_output_is_json_serialisable(handler):
    output = await handler.find_nearby_stations(FindNearbyStationsInput(CENTER_LAT, CENTER_LON))
    decoded = json.loads(json.dumps(to_jsonable(output)))
    assert decoded["search_metadata"]["query_point"] == {
        "latitude": CENTER_LAT,
        "longitude": CENTER_LON,
    }
    assert decoded["stations"][0]["reference"]["station_code"] == "A"


@pytest.mark.asyncio
async def test_nearby_bad_params_type(handler):
    with pytest.raises(JsonError):
        await handler.find_nearby_stations(["not", "an", "object"])


@pytest.mark.asyncio
async def test_get_station_by_code(handler):
    found = await handler.get_station_by_code(GetStationByCodeInput("B"))
    assert found.found is True
    assert found.station.reference.name == "Beaubourg"
    missing = await handler.get_station_by_code({"station_code": "nonexistent"})
    assert missing.found is False
    assert missing.station is None


@pytest.mark.asyncio
async def test_search_query_too_short(handler):
    with pytest.raises(InternalError):
        await handler.search_stations_by_name(SearchStationsByNameInput("b"))


@pytest.mark.asyncio
async def test_search_limit_exceeded(handler):
    with pytest.raises(ResultLimitExceededError):
        await handler.search_stations_by_name(SearchStationsByNameInput("et", limit=101))


@pytest.mark.asyncio
async def test_search_fuzzy_and_prefix(handler):
    fuzzy = await handler.search_stations_by_name(SearchStationsByNameInput("ET"))
    assert [s.reference.name for s in fuzzy.stations] == ["Chatelet", "Etoile"]
    assert fuzzy.search_metadata.fuzzy_enabled is True
    assert fuzzy.search_metadata.total_found == 2

    prefix = await handler.search_stations_by_name(
        SearchStationsByNameInput("ET", fuzzy=False)
    )
    assert [s.reference.name for s in prefix.stations] == ["Etoile"]
    assert prefix.search_metadata.query == "ET"


@pytest.mark.asyncio
async def test_area_statistics(handler):
    bounds = GeographicBounds(north=48.862, south=48.856, east=2.36, west=2.35)
    output = await handler.get_area_statistics(GetAreaStatisticsInput(bounds))
    inside = [s for s in STATIONS if bounds.contains(s.reference.coordinates)]
    stats = output.area_stats
    assert stats.total_stations == len(inside) == 4
    assert stats.operational_stations == 3
    assert stats.total_capacity == sum(s.reference.capacity for s in inside)
    bikes = stats.available_bikes
    assert bikes.total == bikes.mechanical + bikes.electric
    assert bikes.mechanical == sum(s.real_time.bikes.mechanical for s in inside)
    assert stats.available_docks == sum(s.real_time.available_docks for s in inside)
    assert stats.occupancy_rate == pytest.approx(bikes.total / stats.total_capacity)
    assert output.bounds == bounds


@pytest.mark.asyncio
async def test_area_statistics_empty_area(handler):
    bounds = GeographicBounds(north=48.75, south=48.74, east=2.1, west=2.0)
    output = await handler.get_area_statistics({"bounds": to_jsonable(bounds)})
    assert output.area_stats.total_stations == 0
    assert output.area_stats.occupancy_rate == 0.0


@pytest.mark.asyncio
async def test_plan_journey_between_stations(handler):
    origin = STATIONS[0].reference.coordinates
    destination = STATIONS[3].reference.coordinates
    output = await handler.plan_bike_journey(PlanBikeJourneyInput(origin, destination))
    journey = output.journey
    assert codes(journey.pickup_stations) == ["A", "B"]
    assert codes(journey.dropoff_stations) == ["D", "B", "A"]
    (recommendation,) = journey.recommendations
    assert recommendation.pickup_station.reference.station_code == "A"
    assert recommendation.dropoff_station.reference.station_code == "D"
    assert recommendation.confidence_score == 1.0


@pytest.mark.asyncio
async def test_plan_journey_confidence_in_range(handler):
    origin = Coordinates(CENTER_LAT + 0.001, CENTER_LON)
    destination = STATIONS[3].reference.coordinates
    output = await handler.plan_bike_journey(PlanBikeJourneyInput(origin, destination))
    recommendation = output.journey.recommendations[0]
    assert recommendation.walk_to_pickup > 0
    assert 0.1 <= recommendation.confidence_score < 1.0


@pytest.mark.asyncio
async def test_plan_journey_without_candidates(handler):
    output = await handler.plan_bike_journey(
        {
            "origin": {"latitude": 48.80, "longitude": 2.30},
            "destination": {"latitude": 48.80, "longitude": 2.31},
            "preferences": {"max_walk_distance": 50},
        }
    )
    assert output.journey.pickup_stations == []
    assert output.journey.recommendations == []


@pytest.mark.asyncio
async def test_plan_journey_invalid_destination(handler):
    with pytest.raises(InvalidCoordinatesError):
        await handler.plan_bike_journey(
            PlanBikeJourneyInput(Coordinates(CENTER_LAT, CENTER_LON), Coordinates(51.5, -0.12))
        )


def test_cache_delegation():
    client = StubDataClient(STATIONS)
    handler = McpToolHandler(client)
    handler.cleanup_cache()
    assert client.cleaned is True
    assert handler.cache_stats() == (3, 4)


def test_default_handler_has_empty_caches():
    handler = McpToolHandler()
    handler.cleanup_cache()
    assert handler.cache_stats() == (0, 0)