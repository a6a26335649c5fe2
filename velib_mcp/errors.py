"""Error hierarchy with MCP error codes and structured error types."""

from __future__ import annotations

import math

MAX_SERVICE_DISTANCE_KM = 50


def _display_float(value: float) -> str:
    """Render a float the way a plain decimal display would: no trailing '.0'."""
    value = float(value)
    if math.isfinite(value) and value.is_integer():
        return str(int(value))
    return repr(value)


class VelibError(Exception):
    """Base class for every error raised by the package."""

    mcp_error_code: int = -32603
    error_type: str = "internal_error"


class HttpError(VelibError):
    """An HTTP request to the data provider failed."""

    mcp_error_code = -32001
    error_type = "http_error"

    def __init__(self, detail: object) -> None:
        self.detail = str(detail)
        super().__init__(f"HTTP request failed: {self.detail}")


class JsonError(VelibError):
    """A JSON document could not be parsed or did not have the expected shape."""

    mcp_error_code = -32700
    error_type = "json_error"

    def __init__(self, detail: object) -> None:
        self.detail = str(detail)
        super().__init__(f"JSON parsing error: {self.detail}")


class InvalidCoordinatesError(VelibError):
    """Coordinates fall outside the accepted Paris metro bounds."""

    mcp_error_code = -32602
    error_type = "invalid_coordinates"

    def __init__(self, latitude: float, longitude: float) -> None:
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(
            f"Invalid coordinates: latitude {_display_float(latitude)}, "
            f"longitude {_display_float(longitude)}"
        )


class OutsideServiceAreaError(VelibError):
    """Coordinates lie too far from Paris City Hall."""

    mcp_error_code = -32602
    error_type = "outside_service_area"

    def __init__(self, distance_km: float) -> None:
        self.distance_km = distance_km
        super().__init__(
            f"Coordinates outside service area: {distance_km:.1f}km from Paris "
            f"(max: {MAX_SERVICE_DISTANCE_KM}km)"
        )


class SearchRadiusTooLargeError(VelibError):
    """The requested search radius exceeds the allowed maximum."""

    mcp_error_code = -32602
    error_type = "search_radius_too_large"

    def __init__(self, radius: int, maximum: int) -> None:
        self.radius = radius
        self.maximum = maximum
        super().__init__(f"Search radius too large: {radius}m (max: {maximum}m)")


class ResultLimitExceededError(VelibError):
    """The requested result limit exceeds the allowed maximum."""

    mcp_error_code = -32602
    error_type = "result_limit_exceeded"

    def __init__(self, limit: int, maximum: int) -> None:
        self.limit = limit
        self.maximum = maximum
        super().__init__(f"Result limit exceeded: {limit} (max: {maximum})")


class StationNotFoundError(VelibError):
    """No station carries the requested code."""

    mcp_error_code = -32600
    error_type = "station_not_found"

    def __init__(self, station_code: str) -> None:
        self.station_code = station_code
        super().__init__(f"Station not found: {station_code}")


class McpProtocolError(VelibError):
    """A request violated the MCP / JSON-RPC protocol."""

    mcp_error_code = -32603
    error_type = "mcp_protocol_error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"MCP protocol error: {detail}")


class ValidationError(VelibError):
    """Station data failed a consistency check."""

    mcp_error_code = -32602
    error_type = "validation_error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Data validation error: {detail}")


class CacheError(VelibError):
    """The cache could not complete an operation."""

    mcp_error_code = -32603
    error_type = "cache_error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Cache error: {detail}")


class InternalError(VelibError):
    """An unexpected internal failure."""

    mcp_error_code = -32603
    error_type = "internal_error"

    def __init__(self, detail: object) -> None:
        self.detail = str(detail)
        super().__init__(f"Internal error: {self.detail}")