# velib-mcp

A Model Context Protocol (MCP) server that exposes live data about Paris
Vélib' bike-sharing stations. Station locations and real-time availability
come from the Paris Open Data API. The server keeps them in a short-lived
in-memory cache and offers them as JSON-RPC tools over HTTP and WebSocket.

## Installation

```
pip install .
```

To run the test suite as well:

```
pip install ".[test]"
pytest
```

## Running the server

```
velib-mcp
```

The command takes no options besides `--help`. It serves until interrupted.
The listening address comes from two environment variables:

| Variable | Default   | Notes                                                        |
|----------|-----------|--------------------------------------------------------------|
| `IP`     | `0.0.0.0` | An IPv4 address, or an IPv6 address in brackets (`[::1]`)    |
| `PORT`   | `8080`    | A value that is not an integer falls back to 8080            |

An invalid IP address, a negative port or a port above 65535 stops the
command at startup with an "Invalid IP or PORT" error.

```
IP=127.0.0.1 PORT=3000 velib-mcp
```

Log output goes to standard error. Its level is taken from the `LOG_LEVEL`
variable (for example `INFO` or `DEBUG`) and is `ERROR` when the variable is
unset or not a known level name.

## Endpoints

- `GET /health`: liveness check, `{"status": "healthy", "timestamp": ..., "service": "velib-mcp"}`.
- `POST /mcp`: a single JSON-RPC 2.0 request in the body, sent with
  `Content-Type: application/json`.
- `GET /mcp/ws`: WebSocket. Each text message is one JSON-RPC request and
  gets one response.
- `GET /resources/{uri}`: resource bodies for the `velib://` URIs; an unknown
  URI gives a 404.

### JSON-RPC methods

- `tools/list`: describes the available tools and their input schemas.
- `tools/call`: runs a tool. Takes `{"name": ..., "arguments": {...}}`.
- `resources/list`: lists the `velib://` resources.

An unknown method or tool name is answered with a JSON-RPC error response
(code `-32603`, `error_type` `mcp_protocol_error`).

### Tools

| Tool                      | Purpose                                                              |
|---------------------------|----------------------------------------------------------------------|
| `find_nearby_stations`    | Operational stations within a radius (up to 5000 m), nearest first   |
| `get_station_by_code`     | One station with its real-time status, and whether it was found      |
| `search_stations_by_name` | Match by name prefix, or by substring when `fuzzy` is set (default)  |
| `get_area_statistics`     | Capacity, bikes, docks and occupancy inside a bounding box           |
| `plan_bike_journey`       | Up to three pickup and dropoff stations, and the best pairing        |

Tool results are returned as MCP text content: the output object rendered as
indented JSON.

Limits checked by the tools:

- coordinates must lie in the Paris metro area (latitude 48.7–49.0,
  longitude 2.0–2.6) and within 50 km of the Hôtel de Ville;
- `radius_meters` at most 5000, `limit` at most 100;
- a name query at least two bytes long.

How a broken limit is reported depends on the transport:

- over WebSocket, the reply is a JSON-RPC error with `id` set to `null`, the
  error's code (`-32602` for invalid parameters) and a `data.error_type`
  such as `search_radius_too_large` or `invalid_coordinates`;
- over `POST /mcp`, the reply is HTTP 500 with a body of the form
  `{"error": "<message>"}`. A body that is not JSON gets HTTP 400, one that
  is not a JSON-RPC request gets HTTP 422, and a missing JSON content type
  gets HTTP 415.

Example request:

```json
{
  "jsonrpc": "2.0",
  "id": 1,
  "method": "tools/call",
  "params": {
    "name": "find_nearby_stations",
    "arguments": {"latitude": 48.8566, "longitude": 2.3522, "radius_meters": 500, "limit": 5}
  }
}
```

## Using the library

```python
import asyncio

from velib_mcp.client import VelibDataClient
from velib_mcp.handlers import McpToolHandler


async def demo():
    async with VelibDataClient() as client:
        handler = McpToolHandler(client)
        result = await handler.search_stations_by_name({"query": "bastille"})
        for station in result.stations:
            print(station.reference.station_code, station.reference.name)


asyncio.run(demo())
```

The main pieces:

- `velib_mcp.types`: `Coordinates` (haversine `distance_to`, Paris area
  checks), `VelibStation`, `StationReference`, `RealTimeStatus`,
  `BikeAvailability` and the `StationStatus`, `DataFreshness`,
  `BikeTypeFilter` enums.
- `velib_mcp.client`: `VelibDataClient`, which pages through the Open Data
  API and caches the results; `parse_reference_station` and
  `parse_realtime_status` for single API records.
- `velib_mcp.cache`: `InMemoryCache`, a time-to-live cache.
- `velib_mcp.handlers`: `McpToolHandler`, one coroutine per tool. Each
  accepts either a dict of arguments or the matching input object from
  `velib_mcp.mcp_types`.
- `velib_mcp.mcp_server`: `McpServer`, whose `add_routes` registers the
  endpoints on an `aiohttp.web.Application`.
- `velib_mcp.app`: `Server` and the `main` entry point.
- `velib_mcp.errors`: `VelibError` and its subclasses, each carrying an
  `mcp_error_code` and an `error_type`.

Reference data is cached for five minutes. Real-time availability is cached
for two minutes.

## What it does not do

- The `/resources/{uri}` bodies are fixed placeholders: the station lists
  are empty and the health figures (uptime, lag, cache hit rate) are
  constants, not measurements.
- The `include_real_time` arguments of `get_station_by_code` and
  `get_area_statistics` are accepted but ignored; real-time data is always
  included.
- Nothing is stored between runs; all data lives in the in-memory caches.