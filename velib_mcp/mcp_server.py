"""HTTP and WebSocket front end that speaks JSON-RPC for the MCP tools."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from aiohttp import WSMsgType, web

from .errors import JsonError, McpProtocolError, VelibError
from .handlers import McpToolHandler
from .mcp_types import JsonRpcError, JsonRpcRequest, JsonRpcResponse, to_jsonable

logger = logging.getLogger(__name__)

SERVICE_NAME = "velib-mcp"
JSON_CONTENT_TYPE = "application/json"


def _field(kind: str, **constraints: Any) -> Dict[str, Any]:
    return {"type": kind, **constraints}


def _object(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required is not None:
        schema["required"] = required
    return schema


def _point_schema() -> Dict[str, Any]:
    return _object(
        {"latitude": _field("number"), "longitude": _field("number")},
        ["latitude", "longitude"],
    )


def _bounds_schema() -> Dict[str, Any]:
    sides = ["north", "south", "east", "west"]
    return _object({side: _field("number") for side in sides}, sides)


def _tool_catalog() -> Dict[str, Any]:
    """Fresh description of every tool the server offers."""
    entries = [
        (
            "find_nearby_stations",
            "Find Velib stations within a radius of coordinates",
            {
                "latitude": _field("number", minimum=48.7, maximum=49.0),
                "longitude": _field("number", minimum=2.0, maximum=2.6),
                "radius_meters": _field("integer", minimum=100, maximum=5000, default=500),
                "limit": _field("integer", minimum=1, maximum=100, default=10),
                "availability_filter": _field("object"),
            },
            ["latitude", "longitude"],
        ),
        (
            "get_station_by_code",
            "Get detailed information about a specific station",
            {
                "station_code": _field("string"),
                "include_real_time": _field("boolean", default=True),
            },
            ["station_code"],
        ),
        (
            "search_stations_by_name",
            "Search stations by name with optional fuzzy matching",
            {
                "query": _field("string", minLength=2),
                "limit": _field("integer", minimum=1, maximum=50, default=10),
                "fuzzy": _field("boolean", default=True),
            },
            ["query"],
        ),
        (
            "get_area_statistics",
            "Get aggregated statistics for a geographic area",
            {
                "bounds": _bounds_schema(),
                "include_real_time": _field("boolean", default=True),
            },
            ["bounds"],
        ),
        (
            "plan_bike_journey",
            "Plan a bike journey with pickup and dropoff suggestions",
            {
                "origin": _point_schema(),
                "destination": _point_schema(),
                "preferences": _field("object"),
            },
            ["origin", "destination"],
        ),
    ]
    return {
        "tools": [
            {"name": name, "description": text, "inputSchema": _object(props, required)}
            for name, text, props, required in entries
        ]
    }


_RESOURCE_ENTRIES = (
    ("stations/reference", "Velib Station Reference Data",
     "Complete catalog of Velib stations with static metadata"),
    ("stations/realtime", "Velib Real-time Availability",
     "Current bike and dock availability for all stations"),
    ("stations/complete", "Velib Complete Station Data",
     "Combined reference and real-time data for all stations"),
    ("health", "Service Health Status",
     "System health and data source status information"),
)


def _resource_catalog() -> Dict[str, Any]:
    """Fresh description of every resource the server lists."""
    return {
        "resources": [
            {
                "uri": f"velib://{path}",
                "name": name,
                "description": description,
                "mimeType": JSON_CONTENT_TYPE,
            }
            for path, name, description in _RESOURCE_ENTRIES
        ]
    }


def _now() -> str:
    return to_jsonable(datetime.now(timezone.utc))


def health_payload() -> Dict[str, Any]:
    """Body of the service health check."""
    return {"status": "healthy", "timestamp": _now(), "service": SERVICE_NAME}


def _reference_resource() -> Dict[str, Any]:
    return {"stations": [], "metadata": {"total_stations": 0, "last_updated": _now()}}


def _live_resource() -> Dict[str, Any]:
    return {"stations": [], "metadata": {"data_freshness": "Fresh", "response_time": _now()}}


def _health_resource() -> Dict[str, Any]:
    healthy = "healthy"
    return {
        "status": healthy,
        "version": "1.0.0",
        "uptime_seconds": 0,
        "data_sources": {
            "real_time": {"status": healthy, "last_update": _now(), "lag_seconds": 45},
            "reference": {"status": healthy, "last_update": _now()},
        },
        "cache_stats": {"hit_rate": 0.85, "entries": 1400},
    }


_RESOURCE_BUILDERS: Dict[str, Callable[[], Dict[str, Any]]] = {
    "velib://stations/reference": _reference_resource,
    "velib://stations/realtime": _live_resource,
    "velib://stations/complete": _live_resource,
    "velib://health": _health_resource,
}


def resource_payload(uri: str) -> Optional[Dict[str, Any]]:
    """Body served for a resource URI, or None if the URI is unknown."""
    builder = _RESOURCE_BUILDERS.get(uri)
    return builder() if builder is not None else None


@dataclass
class _WebSocketClient:
    id: str


def _text_content(output: Any) -> Dict[str, Any]:
    text = json.dumps(to_jsonable(output), indent=2, ensure_ascii=False)
    return {"content": [{"type": "text", "text": text}]}


class McpServer:
    """Routes JSON-RPC requests over HTTP and WebSocket to the MCP tool handler."""

    def __init__(self, tool_handler: Optional[McpToolHandler] = None) -> None:
        self.tool_handler = tool_handler if tool_handler is not None else McpToolHandler()
        self._clients: Dict[str, _WebSocketClient] = {}
        handler = self.tool_handler
        self._tools: Dict[str, Callable[[Any], Awaitable[Any]]] = {
            name: getattr(handler, name)
            for name in (
                "find_nearby_stations",
                "get_station_by_code",
                "search_stations_by_name",
                "get_area_statistics",
                "plan_bike_journey",
            )
        }

    def client_count(self) -> int:
        """Number of WebSocket clients currently connected."""
        return len(self._clients)

    def add_routes(self, app: web.Application) -> None:
        """Register /health, /mcp, /mcp/ws and /resources/{uri} on the application."""
        app.router.add_get("/health", self._handle_health)
        app.router.add_post("/mcp", self._handle_http)
        app.router.add_get("/mcp/ws", self._handle_websocket)
        app.router.add_get("/resources/{uri:.*}", self._handle_resource)

    async def process_jsonrpc_request(self, request: Any) -> JsonRpcResponse:
        """Answer one JSON-RPC request.

        Unknown methods and tools yield an error response; malformed tool calls
        and tool failures raise the corresponding VelibError.
        """
        if not isinstance(request, JsonRpcRequest):
            request = JsonRpcRequest.from_dict(request)
        try:
            result = await self._dispatch(request)
        except McpProtocolError as exc:
            if getattr(exc, "_answerable", False):
                return JsonRpcResponse(id=request.id, error=JsonRpcError.from_error(exc))
            raise
        return JsonRpcResponse(id=request.id, result=result)

    async def _dispatch(self, request: JsonRpcRequest) -> Any:
        method = request.method
        if method == "tools/list":
            return _tool_catalog()
        if method == "resources/list":
            return _resource_catalog()
        if method == "tools/call":
            return await self._call_tool(request.params)
        raise self._answerable(McpProtocolError(f"Unknown method: {method}"))

    @staticmethod
    def _answerable(error: McpProtocolError) -> McpProtocolError:
        error._answerable = True  # type: ignore[attr-defined]
        return error

    async def _call_tool(self, params: Any) -> Any:
        if not isinstance(params, Mapping):
            raise McpProtocolError("Invalid params")
        tool_name = params.get("name")
        if not isinstance(tool_name, str):
            raise McpProtocolError("Missing tool name")
        arguments = params["arguments"] if "arguments" in params else {}
        tool = self._tools.get(tool_name)
        if tool is None:
            raise self._answerable(McpProtocolError(f"Unknown tool: {tool_name}"))
        return _text_content(await tool(arguments))

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(health_payload())

    async def _handle_resource(self, request: web.Request) -> web.Response:
        payload = resource_payload(request.match_info["uri"])
        if payload is None:
            return web.json_response({"error": "Resource not found"}, status=404)
        return web.json_response(payload)

    async def _handle_http(self, request: web.Request) -> web.Response:
        if request.content_type != JSON_CONTENT_TYPE:
            return web.Response(
                status=415,
                text="Expected request with `Content-Type: application/json`",
            )
        body = await request.read()
        try:
            document = json.loads(body)
        except ValueError as exc:
            return web.Response(
                status=400, text=f"Failed to parse the request body as JSON: {exc}"
            )
        try:
            rpc_request = JsonRpcRequest.from_dict(document)
        except JsonError as exc:
            return web.Response(
                status=422,
                text=f"Failed to deserialize the JSON body into the target type: {exc.detail}",
            )
        try:
            response = await self.process_jsonrpc_request(rpc_request)
        except VelibError as exc:
            logger.error("HTTP request error: %s", exc)
            return web.json_response({"error": str(exc)}, status=500)
        return web.json_response(response.to_dict())

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        client_id = str(uuid.uuid4())
        logger.info("New WebSocket connection: %s", client_id)
        self._clients[client_id] = _WebSocketClient(client_id)
        try:
            async for message in ws:
                if message.type == WSMsgType.TEXT:
                    if not await self._answer_text(ws, message.data):
                        break
                elif message.type == WSMsgType.ERROR:
                    logger.error("WebSocket error: %s", ws.exception())
                    break
            logger.info("WebSocket connection closed: %s", client_id)
        finally:
            self._clients.pop(client_id, None)
            logger.info("WebSocket connection terminated: %s", client_id)
        return ws

    async def _answer_text(self, ws: web.WebSocketResponse, text: str) -> bool:
        """Answer one text frame; False when the connection can no longer be used."""
        try:
            rpc_request = JsonRpcRequest.from_dict(json.loads(text))
        except (ValueError, JsonError) as exc:
            logger.warning("Invalid JSON-RPC request: %s", exc)
            error = JsonRpcError(
                code=-32700, message="Parse error", data={"original_error": str(exc)}
            )
            await self._send_quietly(ws, JsonRpcResponse(id=None, error=error))
            return True

        try:
            response = await self.process_jsonrpc_request(rpc_request)
        except VelibError as exc:
            logger.error("Request processing error: %s", exc)
            failure = JsonRpcResponse(id=None, error=JsonRpcError.from_error(exc))
            await self._send_quietly(ws, failure)
            return True

        try:
            await ws.send_str(json.dumps(response.to_dict()))
        except (ConnectionError, RuntimeError) as exc:
            logger.error("Failed to send WebSocket message: %s", exc)
            return False
        return True

    @staticmethod
    async def _send_quietly(ws: web.WebSocketResponse, response: JsonRpcResponse) -> None:
        try:
            await ws.send_str(json.dumps(response.to_dict()))
        except (ConnectionError, RuntimeError):
            pass