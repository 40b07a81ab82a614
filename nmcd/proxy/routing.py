"""Dial and lookup strategies for clearnet and onion traffic.

The resolver binds one strategy pair for ordinary traffic and one for
onion traffic.  The engine only calls ``dial``/``lookup`` on whichever
variant it was given.
"""

from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass, field
from typing import Union

from nmcd.config.addresses import split_host_port
from nmcd.proxy.client import SocksProxyClient, tor_lookup_ip
from nmcd.utils.exceptions import ConfigError, ConfigErrorReason

TOR_DISABLED_MSG = "tor has been disabled"

Streams = tuple[asyncio.StreamReader, asyncio.StreamWriter]


@dataclass(frozen=True)
class ProxyEndpoint:
    """SOCKS proxy address and credentials."""

    address: str
    username: str = ""
    password: str = field(default="", repr=False)


@dataclass(frozen=True)
class DirectDialer:
    """Plain TCP connect."""

    async def dial(self, address: str) -> Streams:
        host, port = split_host_port(address)
        return await asyncio.open_connection(host, int(port))


@dataclass(frozen=True)
class ProxyDialer:
    """TCP connect tunnelled through a SOCKS5 proxy."""

    endpoint: ProxyEndpoint

    async def dial(self, address: str) -> Streams:
        host, port = split_host_port(address)
        client = SocksProxyClient(
            self.endpoint.address,
            username=self.endpoint.username,
            password=self.endpoint.password,
        )
        return await client.open_connection(host, int(port))


@dataclass(frozen=True)
class DisabledDialer:
    """Refuses every dial."""

    async def dial(self, address: str) -> Streams:
        raise ConfigError(
            ConfigErrorReason.TOR_DISABLED, TOR_DISABLED_MSG, {"address": address}
        )


@dataclass(frozen=True)
class SystemResolver:
    """Resolve through the operating system resolver."""

    async def lookup(self, host: str) -> list[str]:
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
        return list(dict.fromkeys(str(info[4][0]) for info in infos))


@dataclass(frozen=True)
class TorResolver:
    """Resolve through Tor's SOCKS RESOLVE extension."""

    endpoint: ProxyEndpoint

    async def lookup(self, host: str) -> list[str]:
        return await tor_lookup_ip(host, self.endpoint.address)


@dataclass(frozen=True)
class DisabledResolver:
    """Refuses every lookup."""

    async def lookup(self, host: str) -> list[str]:
        raise ConfigError(
            ConfigErrorReason.TOR_DISABLED, TOR_DISABLED_MSG, {"host": host}
        )


Dialer = Union[DirectDialer, ProxyDialer, DisabledDialer]
Resolver = Union[SystemResolver, TorResolver, DisabledResolver]


@dataclass(frozen=True)
class RoutingConfig:
    """Dial/lookup strategies bound once during configuration resolution."""

    dial: Dialer
    lookup: Resolver
    onion_dial: Dialer
    onion_lookup: Resolver


def provision_routing(
    proxy: str = "",
    proxy_user: str = "",
    proxy_pass: str = "",
    onion: str = "",
    onion_user: str = "",
    onion_pass: str = "",
    no_onion: bool = False,
) -> RoutingConfig:
    """Choose dial and lookup strategies from the proxy options.

    Without a proxy, connections are direct and names go to the system
    resolver.  With a proxy, connections go through it and lookups go
    through Tor on the same endpoint unless onion routing is disabled.
    Onion traffic follows the same choice unless a dedicated onion proxy is
    configured; disabling onion routing makes the onion pair refuse.
    """
    dial: Dialer = DirectDialer()
    lookup: Resolver = SystemResolver()
    if proxy:
        endpoint = ProxyEndpoint(proxy, proxy_user, proxy_pass)
        dial = ProxyDialer(endpoint)
        if not no_onion:
            lookup = TorResolver(endpoint)

    onion_dial: Dialer = dial
    onion_lookup: Resolver = lookup
    if onion:
        onion_endpoint = ProxyEndpoint(onion, onion_user, onion_pass)
        onion_dial = ProxyDialer(onion_endpoint)
        onion_lookup = TorResolver(onion_endpoint)

    if no_onion:
        onion_dial = DisabledDialer()
        onion_lookup = DisabledResolver()

    return RoutingConfig(
        dial=dial,
        lookup=lookup,
        onion_dial=onion_dial,
        onion_lookup=onion_lookup,
    )
