"""Server address configuration read from the environment."""

from __future__ import annotations

import ipaddress
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional, Union

DEFAULT_IP = "0.0.0.0"
DEFAULT_PORT = 8080

_SIGNED_INT = re.compile(r"[+-]?[0-9]+")
_DIGITS = re.compile(r"[0-9]+")
_I32_MIN = -(1 << 31)
_I32_MAX = (1 << 31) - 1
_U32_MAX = (1 << 32) - 1
_PORT_MAX = 65535
_ERROR_PREFIX = "Invalid IP or PORT environment variables"
_SYNTAX_ERROR = "invalid socket address syntax"

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class ServerAddress:
    """An IP address and TCP port the server listens on."""

    ip: IPAddress
    port: int

    def __str__(self) -> str:
        if isinstance(self.ip, ipaddress.IPv6Address):
            return f"[{self.ip}]:{self.port}"
        return f"{self.ip}:{self.port}"


def _port_setting(text: Optional[str]) -> int:
    """The PORT value as a signed 32-bit number, or the default if it is not one."""
    if text is None or not _SIGNED_INT.fullmatch(text):
        return DEFAULT_PORT
    value = int(text)
    if not _I32_MIN <= value <= _I32_MAX:
        return DEFAULT_PORT
    return value


def _parse_ip(host: str) -> IPAddress:
    if host.startswith("[") and host.endswith("]"):
        inner = host[1:-1]
        _, has_scope, scope = inner.partition("%")
        if has_scope and (not _DIGITS.fullmatch(scope) or int(scope) > _U32_MAX):
            raise ValueError(_SYNTAX_ERROR)
        return ipaddress.IPv6Address(inner)
    return ipaddress.IPv4Address(host)


def _parse_socket_address(text: str) -> ServerAddress:
    host, separator, port_text = text.rpartition(":")
    if not separator or not _DIGITS.fullmatch(port_text):
        raise ValueError(_SYNTAX_ERROR)
    port = int(port_text)
    if port > _PORT_MAX:
        raise ValueError(_SYNTAX_ERROR)
    try:
        ip = _parse_ip(host)
    except ValueError as exc:
        raise ValueError(_SYNTAX_ERROR) from exc
    return ServerAddress(ip, port)


def parse_server_address(environ: Optional[Mapping[str, str]] = None) -> ServerAddress:
    """Build the listen address from the IP and PORT variables.

    An unparsable PORT falls back to 8080; an address that does not form a valid
    socket address raises ValueError.
    """
    env = os.environ if environ is None else environ
    port = _port_setting(env.get("PORT"))
    ip = env.get("IP", DEFAULT_IP)
    try:
        return _parse_socket_address(f"{ip}:{port}")
    except ValueError as exc:
        raise ValueError(f"{_ERROR_PREFIX}: {exc}") from exc