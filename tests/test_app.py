import asyncio
import contextlib
import ipaddress
import socket

import aiohttp
import pytest
from aiohttp.test_utils import TestClient, TestServer

from velib_mcp.app import Server, main
from velib_mcp.config import ServerAddress
from velib_mcp.mcp_server import McpServer

LOCALHOST = ipaddress.IPv4Address("127.0.0.1")


@contextlib.asynccontextmanager
async def _client(server=None):
    server = server or Server(ServerAddress(LOCALHOST, 0))
    async with TestClient(TestServer(server.build_app())) as client:
        yield client


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.asyncio
async def test_health_route():
    async with _client() as client:
        response = await client.get("/health")
        body = await response.json()
    assert response.status == 200
    assert body["status"] == "healthy"
    assert body["service"] == "velib-mcp"


@pytest.mark.asyncio
async def test_tools_list_over_http():
    async with _client() as client:
        response = await client.post(
            "/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list", "params": {}}
        )
        body = await response.json()
    names = [tool["name"] for tool in body["result"]["tools"]]
    assert names == [
        "find_nearby_stations",
        "get_station_by_code",
        "search_stations_by_name",
        "get_area_statistics",
        "plan_bike_journey",
    ]
    assert body["id"] == 1


@pytest.mark.asyncio
async def test_resources_list_over_http():
    async with _client() as client:
        response = await client.post(
            "/mcp", json={"jsonrpc": "2.0", "id": "r", "method": "resources/list", "params": {}}
        )
        body = await response.json()
    uris = [resource["uri"] for resource in body["result"]["resources"]]
    assert uris == [
        "velib://stations/reference",
        "velib://stations/realtime",
        "velib://stations/complete",
        "velib://health",
    ]


@pytest.mark.asyncio
async def test_unknown_method_yields_error_response():
    async with _client() as client:
        response = await client.post(
            "/mcp", json={"jsonrpc": "2.0", "id": 7, "method": "nope", "params": {}}
        )
        body = await response.json()
    assert body["id"] == 7
    assert body["error"]["code"] == -32603
    assert body["error"]["data"]["error_type"] == "mcp_protocol_error"
    assert "result" not in body


@pytest.mark.asyncio
async def test_unknown_resource_is_not_found():
    async with _client() as client:
        response = await client.get("/resources/missing")
        body = await response.json()
    assert response.status == 404
    assert body == {"error": "Resource not found"}


@pytest.mark.asyncio
async def test_given_mcp_server_is_used():
    mcp_server = McpServer()
    server = Server(ServerAddress(LOCALHOST, 0), mcp_server)
    async with _client(server) as client:
        response = await client.get("/health")
        body = await response.json()
    assert server.mcp_server is mcp_server
    assert body["service"] == "velib-mcp"
    assert mcp_server.client_count() == 0


@pytest.mark.asyncio
async def test_run_listens_on_address():
    port = _free_port()
    server = Server(ServerAddress(LOCALHOST, port))
    task = asyncio.create_task(server.run())
    body = None
    try:
        async with aiohttp.ClientSession() as session:
            for _ in range(100):
                try:
                    async with session.get(f"http://127.0.0.1:{port}/health") as response:
                        body = await response.json()
                    break
                except aiohttp.ClientConnectionError:
                    await asyncio.sleep(0.05)
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    assert body is not None
    assert body["status"] == "healthy"


def test_main_rejects_invalid_address(monkeypatch):
    monkeypatch.delenv("IP", raising=False)
    monkeypatch.setenv("PORT", "70000")
    with pytest.raises(SystemExit) as info:
        main([])
    assert "Invalid IP or PORT" in str(info.value.code)