"""Client for the Paris Open Data Velib datasets, with caching."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple

import aiohttp

from .cache import InMemoryCache
from .errors import HttpError, InternalError, JsonError
from .types import (
    BikeAvailability,
    Coordinates,
    RealTimeStatus,
    ServiceCapabilities,
    StationReference,
    StationStatus,
    VelibStation,
)

logger = logging.getLogger(__name__)

VELIB_STATIONS_URL = (
    "https://opendata.paris.fr/api/explore/v2.1/catalog/datasets/"
    "velib-emplacement-des-stations/records"
)
VELIB_REALTIME_URL = (
    "https://opendata.paris.fr/api/explore/v2.1/catalog/datasets/"
    "velib-disponibilite-en-temps-reel/records"
)

REFERENCE_CACHE_TTL = timedelta(minutes=5)
REALTIME_CACHE_TTL = timedelta(minutes=2)
PAGE_SIZE = 100

_REFERENCE_KEY = "all_reference_stations"
_REALTIME_KEY = "all_realtime_status"
_U16_MASK = 0xFFFF

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})(\.\d+)?"
    r"(?:([Zz])|([+-])(\d{2}):(\d{2}))$"
)


def _field(record: Any, key: str) -> Any:
    return record.get(key) if isinstance(record, Mapping) else None


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _as_u64(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def _as_f64(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _parse_rfc3339(text: str) -> Optional[datetime]:
    match = _RFC3339.match(text)
    if match is None:
        return None
    year, month, day, hour, minute, second = (int(part) for part in match.groups()[:6])
    fraction, zulu, sign, off_hours, off_minutes = match.groups()[6:]
    micros = int(fraction[1:7].ljust(6, "0")) if fraction else 0
    try:
        if zulu:
            tz = timezone.utc
        else:
            offset = timedelta(hours=int(off_hours), minutes=int(off_minutes))
            tz = timezone(-offset if sign == "-" else offset)
        moment = datetime(year, month, day, hour, minute, second, micros, tzinfo=tz)
    except ValueError:
        return None
    return moment.astimezone(timezone.utc)


def parse_reference_station(record: Any) -> StationReference:
    """Build a station reference from one API record, raising InternalError on missing data."""
    station_code = _as_str(_field(record, "stationcode"))
    if station_code is None:
        raise InternalError("Missing station code")
    name = _as_str(_field(record, "name"))
    if name is None:
        raise InternalError("Missing station name")
    capacity = _as_u64(_field(record, "capacity"))
    if capacity is None:
        raise InternalError("Missing capacity")
    geo_point = _field(record, "coordonnees_geo")
    if not isinstance(geo_point, Mapping):
        raise InternalError("Missing geo coordinates")
    latitude = _as_f64(geo_point.get("lat"))
    if latitude is None:
        raise InternalError("Missing latitude")
    longitude = _as_f64(geo_point.get("lon"))
    if longitude is None:
        raise InternalError("Missing longitude")
    return StationReference(
        station_code=station_code,
        name=name,
        coordinates=Coordinates(latitude, longitude),
        capacity=capacity & _U16_MASK,
        capabilities=ServiceCapabilities(),
    )


def parse_realtime_status(record: Any) -> Tuple[str, RealTimeStatus]:
    """Build (station code, live status) from one API record."""
    station_code = _as_str(_field(record, "stationcode"))
    if station_code is None:
        raise InternalError("Missing station code")

    def count(key: str) -> int:
        value = _as_u64(_field(record, key))
        return 0 if value is None else value & _U16_MASK

    if (_as_str(_field(record, "is_installed")) or "NON") == "OUI":
        renting = (_as_str(_field(record, "is_renting")) or "NON") == "OUI"
        returning = (_as_str(_field(record, "is_returning")) or "NON") == "OUI"
        status = StationStatus.OPEN if renting and returning else StationStatus.MAINTENANCE
    else:
        status = StationStatus.CLOSED

    due_date = _as_str(_field(record, "duedate"))
    last_update = _parse_rfc3339(due_date) if due_date is not None else None
    if last_update is None:
        last_update = datetime.now(timezone.utc)

    bikes = BikeAvailability(count("mechanical"), count("ebike"))
    return station_code, RealTimeStatus.create(
        bikes, count("numdocksavailable"), status, last_update
    )


class VelibDataClient:
    """Fetches station reference and live data, caching each for a short time."""

    def __init__(
        self,
        stations_url: str = VELIB_STATIONS_URL,
        realtime_url: str = VELIB_REALTIME_URL,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.stations_url = stations_url
        self.realtime_url = realtime_url
        self._session = session
        self._owns_session = session is None
        self._reference_cache: InMemoryCache[str, List[StationReference]] = InMemoryCache(
            REFERENCE_CACHE_TTL
        )
        self._realtime_cache: InMemoryCache[str, Dict[str, RealTimeStatus]] = InMemoryCache(
            REALTIME_CACHE_TTL
        )

    async def __aenter__(self) -> VelibDataClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or (self._owns_session and self._session.closed):
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _fetch_page(self, url: str, offset: int) -> List[Any]:
        params = {"limit": str(PAGE_SIZE), "offset": str(offset)}
        try:
            async with self._get_session().get(url, params=params) as response:
                if not 200 <= response.status < 300:
                    reason = f" {response.reason}" if response.reason else ""
                    raise InternalError(
                        f"API request failed with status: {response.status}{reason}"
                    )
                body = await response.read()
        except aiohttp.ClientError as exc:
            raise HttpError(exc) from exc
        try:
            document = json.loads(body)
        except ValueError as exc:
            raise JsonError(exc) from exc
        records = document.get("results") if isinstance(document, dict) else None
        if not isinstance(records, list):
            raise InternalError("Invalid API response format")
        return records

    async def _records(self, url: str) -> AsyncIterator[Any]:
        offset = 0
        while True:
            records = await self._fetch_page(url, offset)
            if not records:
                return
            for record in records:
                yield record
            offset += PAGE_SIZE
            if len(records) < PAGE_SIZE:
                return

    async def fetch_reference_stations(self) -> List[StationReference]:
        """All station reference records; malformed records are skipped."""
        cached = self._reference_cache.get(_REFERENCE_KEY)
        if cached is not None:
            logger.debug("Using cached reference stations: %d stations", len(cached))
            return list(cached)

        logger.info("Fetching reference stations from Paris Open Data API")
        stations: List[StationReference] = []
        async for record in self._records(self.stations_url):
            try:
                stations.append(parse_reference_station(record))
            except InternalError:
                continue
        logger.info("Fetched %d reference stations", len(stations))
        self._reference_cache.insert(_REFERENCE_KEY, list(stations))
        return stations

    async def fetch_realtime_status(self) -> Dict[str, RealTimeStatus]:
        """Live status keyed by station code; malformed records are skipped."""
        cached = self._realtime_cache.get(_REALTIME_KEY)
        if cached is not None:
            logger.debug("Using cached real-time status: %d stations", len(cached))
            return dict(cached)

        logger.info("Fetching real-time status from Paris Open Data API")
        statuses: Dict[str, RealTimeStatus] = {}
        async for record in self._records(self.realtime_url):
            try:
                code, status = parse_realtime_status(record)
            except InternalError:
                continue
            statuses[code] = status
        logger.info("Fetched real-time status for %d stations", len(statuses))
        self._realtime_cache.insert(_REALTIME_KEY, dict(statuses))
        return statuses

    async def get_all_stations(self, include_realtime: bool = True) -> List[VelibStation]:
        """All stations, joined with live status when include_realtime is set."""
        references = await self.fetch_reference_stations()
        if not include_realtime:
            return [VelibStation(reference) for reference in references]
        statuses = await self.fetch_realtime_status()
        return [
            VelibStation(reference, statuses.get(reference.station_code))
            for reference in references
        ]

    async def get_station_by_code(
        self, station_code: str, include_realtime: bool = True
    ) -> Optional[VelibStation]:
        """The station with the given code, or None."""
        stations = await self.get_all_stations(include_realtime)
        return next(
            (s for s in stations if s.reference.station_code == station_code), None
        )

    def cleanup_cache(self) -> None:
        """Drop expired entries from both caches."""
        self._reference_cache.cleanup_expired()
        self._realtime_cache.cleanup_expired()

    def cache_stats(self) -> Tuple[int, int]:
        """Entry counts of the reference and real-time caches."""
        return len(self._reference_cache), len(self._realtime_cache)

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()