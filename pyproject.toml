[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "velib-mcp"
version = "0.1.0"
description = "MCP server for Velib Paris bike sharing data"
requires-python = ">=3.10"
keywords = ["mcp", "velib", "paris", "bike-sharing", "transport", "json-rpc"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "aiohttp>=3.8",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
    "pytest-asyncio>=0.21",
]

[project.scripts]
velib-mcp = "velib_mcp.app:main"

[tool.hatch.build.targets.wheel]
packages = ["velib_mcp"]

[tool.pytest.ini_options]
addopts = "-ra"
