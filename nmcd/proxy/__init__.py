"""SOCKS proxy and onion routing support for nmcd.

Builds the dial and lookup strategies the node engine uses for clearnet
and onion traffic.
"""

from __future__ import annotations

from nmcd.proxy.client import SocksProxyClient, tor_lookup_ip
from nmcd.proxy.exceptions import (
    ProxyConnectionError,
    ProxyError,
    ProxyTimeoutError,
    TorResolveError,
)
from nmcd.proxy.routing import RoutingConfig, provision_routing

__all__ = [
    "ProxyConnectionError",
    "ProxyError",
    "ProxyTimeoutError",
    "RoutingConfig",
    "SocksProxyClient",
    "TorResolveError",
    "provision_routing",
    "tor_lookup_ip",
]
