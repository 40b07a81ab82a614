"""Proxy-related exceptions."""

from __future__ import annotations

from nmcd.utils.exceptions import NmcdError


class ProxyError(NmcdError):
    """Base exception for proxy-related errors."""


class ProxyConnectionError(ProxyError):
    """Proxy connection error."""


class ProxyTimeoutError(ProxyError):
    """Proxy timeout error."""


class TorResolveError(ProxyError):
    """Tor refused or failed a SOCKS RESOLVE request."""
