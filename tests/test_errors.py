import pytest

from velib_mcp.errors import (
    CacheError,
    HttpError,
    InternalError,
    InvalidCoordinatesError,
    JsonError,
    McpProtocolError,
    OutsideServiceAreaError,
    ResultLimitExceededError,
    SearchRadiusTooLargeError,
    StationNotFoundError,
    ValidationError,
    VelibError,
)


@pytest.mark.parametrize(
    ("error", "code", "error_type"),
    [
        (HttpError("boom"), -32001, "http_error"),
        (JsonError("bad"), -32700, "json_error"),
        (InvalidCoordinatesError(1.5, 2.5), -32602, "invalid_coordinates"),
        (OutsideServiceAreaError(60.0), -32602, "outside_service_area"),
        (SearchRadiusTooLargeError(6000, 5000), -32602, "search_radius_too_large"),
        (ResultLimitExceededError(150, 100), -32602, "result_limit_exceeded"),
        (StationNotFoundError("123"), -32600, "station_not_found"),
        (McpProtocolError("x"), -32603, "mcp_protocol_error"),
        (ValidationError("x"), -32602, "validation_error"),
        (CacheError("x"), -32603, "cache_error"),
        (InternalError("x"), -32603, "internal_error"),
    ],
)
def test_codes_and_types(error, code, error_type):
    assert error.mcp_error_code == code
    assert error.error_type == error_type
    assert isinstance(error, VelibError)


def test_search_radius_message():
    err = SearchRadiusTooLargeError(6000, 5000)
    assert str(err) == "Search radius too large: 6000m (max: 5000m)"
    assert (err.radius, err.maximum) == (6000, 5000)


def test_result_limit_message():
    assert str(ResultLimitExceededError(150, 100)) == "Result limit exceeded: 150 (max: 100)"


def test_station_not_found_message():
    err = StationNotFoundError("nonexistent")
    assert str(err) == "Station not found: nonexistent"
    assert err.station_code == "nonexistent"


def test_invalid_coordinates_message():
    err = InvalidCoordinatesError(40.7128, -74.006)
    assert str(err) == "Invalid coordinates: latitude 40.7128, longitude -74.006"


def test_outside_service_area_message_mentions_limit():
    err = OutsideServiceAreaError(130.0)
    assert str(err).startswith("Coordinates outside service area: 130.0km from Paris")
    assert str(err).endswith("(max: 50km)")


@pytest.mark.parametrize(
    ("error", "prefix"),
    [
        (HttpError("timeout"), "HTTP request failed: "),
        (JsonError("eof"), "JSON parsing error: "),
        (McpProtocolError("Missing tool name"), "MCP protocol error: "),
        (ValidationError("Station code cannot be empty"), "Data validation error: "),
        (CacheError("full"), "Cache error: "),
        (InternalError("Search query too short"), "Internal error: "),
    ],
)
def test_message_prefixes(error, prefix):
    assert str(error) == prefix + error.detail


def test_catch_through_base_class():
    error = McpProtocolError("Unknown method: foo")
    assert str(error) == "MCP protocol error: Unknown method: foo"
    assert error.detail == "Unknown method: foo"
    assert error.mcp_error_code == -32603
    assert error.error_type == "mcp_protocol_error"
    assert issubclass(McpProtocolError, VelibError)
    with pytest.raises(VelibError, match="Unknown method: foo"):
        raise error