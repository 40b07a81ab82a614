"""SOCKS5 proxy client.

TCP connections are tunnelled with python-socks.  Name resolution through
Tor uses Tor's SOCKS RESOLVE extension (command 0xF0), which python-socks
does not implement, so that exchange is spoken directly over asyncio
streams.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import struct
from urllib.parse import quote

import python_socks
from python_socks.async_.asyncio import Proxy

from nmcd.config.addresses import join_host_port, split_host_port
from nmcd.proxy.exceptions import (
    ProxyConnectionError,
    ProxyError,
    ProxyTimeoutError,
    TorResolveError,
)

logger = logging.getLogger(__name__)

SOCKS_VERSION = 0x05
SOCKS_NO_AUTH = 0x00
SOCKS_ATYP_IPV4 = 0x01
SOCKS_ATYP_DOMAIN = 0x03
SOCKS_ATYP_IPV6 = 0x04
TOR_CMD_RESOLVE = 0xF0

TOR_STATUS_ERRORS: dict[int, str] = {
    0x00: "tor succeeded",
    0x01: "tor general error",
    0x02: "tor not allowed",
    0x03: "tor network is unreachable",
    0x04: "tor host is unreachable",
    0x05: "tor connection refused",
    0x06: "tor TTL expired",
    0x07: "tor command not supported",
    0x08: "tor address type not supported",
}


class SocksProxyClient:
    """Open TCP connections through a SOCKS5 proxy."""

    def __init__(
        self,
        address: str,
        username: str = "",
        password: str = "",
        timeout: float = 30.0,
    ):
        """Initialize proxy client.

        Args:
            address: Proxy endpoint as host:port
            username: Optional username for authentication
            password: Optional password for authentication
            timeout: Connect timeout in seconds

        """
        self.address = address
        self.username = username
        self.password = password
        self.timeout = timeout

    def _build_proxy_url(self) -> str:
        host, port = split_host_port(self.address)
        endpoint = join_host_port(host, port)
        if self.username or self.password:
            creds = f"{quote(self.username, safe='')}:{quote(self.password, safe='')}"
            return f"socks5://{creds}@{endpoint}"
        return f"socks5://{endpoint}"

    async def open_connection(
        self, host: str, port: int
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """Connect to host:port through the proxy.

        Remote DNS is used so hostnames (including .onion names) are
        resolved by the proxy.

        Raises:
            ProxyTimeoutError: If the proxy handshake times out
            ProxyConnectionError: If the proxy cannot be reached
            ProxyError: If the proxy rejects the request

        """
        proxy = Proxy.from_url(self._build_proxy_url(), rdns=True)
        try:
            sock = await proxy.connect(dest_host=host, dest_port=port, timeout=self.timeout)
        except python_socks.ProxyTimeoutError as e:
            msg = f"timed out connecting to {host}:{port} via {self.address}"
            raise ProxyTimeoutError(msg) from e
        except python_socks.ProxyConnectionError as e:
            msg = f"unable to reach proxy {self.address}: {e}"
            raise ProxyConnectionError(msg) from e
        except python_socks.ProxyError as e:
            msg = f"proxy {self.address} refused {host}:{port}: {e}"
            raise ProxyError(msg) from e

        logger.debug("Connected to %s:%d via proxy %s", host, port, self.address)
        return await asyncio.open_connection(sock=sock)


async def tor_lookup_ip(host: str, proxy: str) -> list[str]:
    """Resolve host through a Tor SOCKS proxy.

    Returns:
        A single-element list with the resolved IP address

    Raises:
        ProxyConnectionError: If the proxy cannot be reached
        TorResolveError: If Tor reports an error or answers malformed data

    """
    encoded = host.encode("idna") if not host.isascii() else host.encode()
    if len(encoded) > 255:
        msg = f"hostname too long for SOCKS resolve: {host}"
        raise TorResolveError(msg)

    proxy_host, proxy_port = split_host_port(proxy)
    try:
        reader, writer = await asyncio.open_connection(proxy_host, int(proxy_port))
    except OSError as e:
        msg = f"unable to reach tor proxy {proxy}: {e}"
        raise ProxyConnectionError(msg) from e

    try:
        writer.write(bytes([SOCKS_VERSION, 1, SOCKS_NO_AUTH]))
        await writer.drain()
        ver, method = await reader.readexactly(2)
        if ver != SOCKS_VERSION:
            msg = "invalid proxy response"
            raise TorResolveError(msg)
        if method != SOCKS_NO_AUTH:
            msg = "unrecognized auth method"
            raise TorResolveError(msg)

        request = (
            bytes([SOCKS_VERSION, TOR_CMD_RESOLVE, 0, SOCKS_ATYP_DOMAIN, len(encoded)])
            + encoded
            + struct.pack(">H", 0)
        )
        writer.write(request)
        await writer.drain()

        ver, status, _reserved, atyp = await reader.readexactly(4)
        if ver != SOCKS_VERSION:
            msg = "invalid proxy response"
            raise TorResolveError(msg)
        if status != 0:
            msg = TOR_STATUS_ERRORS.get(status, "invalid proxy response")
            raise TorResolveError(msg, {"status": status, "host": host})

        if atyp == SOCKS_ATYP_IPV4:
            raw = await reader.readexactly(4)
        elif atyp == SOCKS_ATYP_IPV6:
            raw = await reader.readexactly(16)
        else:
            msg = "invalid address response"
            raise TorResolveError(msg, {"atyp": atyp})
    except asyncio.IncompleteReadError as e:
        msg = "invalid proxy response"
        raise TorResolveError(msg) from e
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug("Error closing tor proxy connection %s: %s", proxy, e)

    return [str(ipaddress.ip_address(raw))]
