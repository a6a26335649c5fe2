"""The HTTP server process and its command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional, Sequence

from aiohttp import web

from .config import ServerAddress, parse_server_address
from .mcp_server import McpServer

logger = logging.getLogger(__name__)

LOG_LEVEL_VARIABLE = "LOG_LEVEL"


class Server:
    """Serves the MCP endpoints on one address."""

    def __init__(self, address: ServerAddress, mcp_server: Optional[McpServer] = None) -> None:
        self.address = address
        self.mcp_server = mcp_server if mcp_server is not None else McpServer()

    def build_app(self) -> web.Application:
        """An application with the health check and every MCP route."""
        app = web.Application()
        self.mcp_server.add_routes(app)
        app.on_cleanup.append(self._close_data_client)
        return app

    async def _close_data_client(self, app: web.Application) -> None:
        await self.mcp_server.tool_handler.data_client.close()

    async def run(self) -> None:
        """Listen on the address and serve until cancelled."""
        app = self.build_app()
        logger.info("Starting server on %s", self.address)
        runner = web.AppRunner(app)
        await runner.setup()
        try:
            site = web.TCPSite(runner, str(self.address.ip), self.address.port)
            await site.start()
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()


def _configure_logging() -> None:
    level_name = os.environ.get(LOG_LEVEL_VARIABLE, "ERROR").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.ERROR
    logging.basicConfig(level=level)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Start the server on the address given by the IP and PORT variables."""
    parser = argparse.ArgumentParser(
        prog="velib-mcp",
        description="MCP server for Velib Paris bike sharing data. "
        "The listen address comes from the IP and PORT environment variables.",
    )
    parser.parse_args(argv)
    _configure_logging()

    try:
        address = parse_server_address()
    except ValueError as exc:
        raise SystemExit(
            f"Failed to parse server address from IP and PORT environment variables: {exc}"
        ) from exc

    try:
        asyncio.run(Server(address).run())
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())