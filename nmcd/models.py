"""Pydantic models for nmcd configuration.

``RawOptions`` is the mutable option set filled from defaults, the config
file and the command line.  Field aliases are the option names used in the
config file and as ``--long`` command line flags; a ``short`` entry in
``json_schema_extra`` adds a single-letter flag.

``EffectiveConfig`` is the frozen result handed to the daemon.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from nmcd.address import Address
from nmcd.config.defaults import (
    DEFAULT_BAN_DURATION,
    DEFAULT_BLOCK_MAX_SIZE,
    DEFAULT_BLOCK_MIN_SIZE,
    DEFAULT_BLOCK_PRIORITY_SIZE,
    DEFAULT_DB_TYPE,
    DEFAULT_FREE_TX_RELAY_LIMIT,
    DEFAULT_GENERATE,
    DEFAULT_MAX_PEERS,
    DEFAULT_MAX_RPC_CLIENTS,
    DEFAULT_MAX_RPC_WEBSOCKETS,
)
from nmcd.netparams import NetworkProfile
from nmcd.proxy.routing import RoutingConfig

UINT32_MAX = 2**32 - 1


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_LOG_LEVEL_ALIASES = {
    "TRACE": "DEBUG",
    "WARN": "WARNING",
    "OFF": "CRITICAL",
}

_DURATION_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str) -> float:
    """Parse a Go style duration ("24h", "1h30m", "500ms") into seconds.

    A bare number is taken as seconds.
    """
    text = value.strip()
    if not text:
        msg = "empty duration"
        raise ValueError(msg)
    try:
        return float(text)
    except ValueError:
        pass

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    pos = 0
    total = 0.0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        msg = f"invalid duration {value!r}"
        raise ValueError(msg)
    return sign * total


def _split_list(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, tuple):
        return list(value)
    return value


class RawOptions(BaseModel):
    """Every configurable option before resolution."""

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        validate_assignment=True,
        # TOML ports and ids arrive as integers
        coerce_numbers_to_str=True,
    )

    config_file: str = Field(
        default="",
        alias="configfile",
        description="Path to configuration file",
        json_schema_extra={"short": "C"},
    )
    data_dir: str = Field(
        default="",
        alias="datadir",
        description="Directory to store data",
        json_schema_extra={"short": "b"},
    )
    log_dir: str = Field(
        default="",
        alias="logdir",
        description="Directory to log output",
    )
    debug_level: LogLevel = Field(
        default=LogLevel.INFO,
        alias="debuglevel",
        description="Logging level {trace, debug, info, warn, error, critical}",
        json_schema_extra={"short": "d"},
    )

    # Network selection
    testnet: bool = Field(default=False, description="Use the test network")
    regtest: bool = Field(
        default=False, description="Use the regression test network"
    )
    simnet: bool = Field(
        default=False, description="Use the simulation test network"
    )

    # Peers
    add_peers: list[str] = Field(
        default_factory=list,
        alias="addpeer",
        description="Add a peer to connect with at startup",
        json_schema_extra={"short": "a"},
    )
    connect_peers: list[str] = Field(
        default_factory=list,
        alias="connect",
        description="Connect only to the specified peers at startup",
    )
    listeners: list[str] = Field(
        default_factory=list,
        alias="listen",
        description="Add an interface/port to listen for connections",
    )
    disable_listen: bool = Field(
        default=False,
        alias="nolisten",
        description="Disable listening for incoming connections",
    )
    max_peers: int = Field(
        default=DEFAULT_MAX_PEERS,
        ge=0,
        alias="maxpeers",
        description="Max number of inbound and outbound peers",
    )
    ban_duration: float = Field(
        default=DEFAULT_BAN_DURATION,
        alias="banduration",
        description="How long to ban misbehaving peers (e.g. 24h, 90m, 30s)",
    )
    disable_dns_seed: bool = Field(
        default=False,
        alias="nodnsseed",
        description="Disable DNS seeding for peers",
    )

    # RPC
    rpc_user: str = Field(
        default="",
        alias="rpcuser",
        description="Username for RPC connections",
        json_schema_extra={"short": "u"},
    )
    rpc_pass: str = Field(
        default="",
        alias="rpcpass",
        description="Password for RPC connections",
        json_schema_extra={"short": "P"},
    )
    rpc_listeners: list[str] = Field(
        default_factory=list,
        alias="rpclisten",
        description="Add an interface/port to listen for RPC connections",
    )
    rpc_cert: str = Field(
        default="",
        alias="rpccert",
        description="File containing the certificate file",
    )
    rpc_key: str = Field(
        default="",
        alias="rpckey",
        description="File containing the certificate key",
    )
    rpc_max_clients: int = Field(
        default=DEFAULT_MAX_RPC_CLIENTS,
        ge=0,
        alias="rpcmaxclients",
        description="Max number of RPC clients for standard connections",
    )
    rpc_max_websockets: int = Field(
        default=DEFAULT_MAX_RPC_WEBSOCKETS,
        ge=0,
        alias="rpcmaxwebsockets",
        description="Max number of RPC websocket connections",
    )
    disable_rpc: bool = Field(
        default=False,
        alias="norpc",
        description="Disable built-in RPC server",
    )
    disable_tls: bool = Field(
        default=False,
        alias="notls",
        description="Disable TLS for the RPC server (localhost only)",
    )

    # Proxy and onion routing
    proxy: str = Field(
        default="",
        description="Connect via SOCKS5 proxy (eg. 127.0.0.1:9050)",
    )
    proxy_user: str = Field(
        default="",
        alias="proxyuser",
        description="Username for proxy server",
    )
    proxy_pass: str = Field(
        default="",
        alias="proxypass",
        description="Password for proxy server",
    )
    onion: str = Field(
        default="",
        description="Connect to tor hidden services via SOCKS5 proxy (eg. 127.0.0.1:9050)",
    )
    onion_user: str = Field(
        default="",
        alias="onionuser",
        description="Username for onion proxy server",
    )
    onion_pass: str = Field(
        default="",
        alias="onionpass",
        description="Password for onion proxy server",
    )
    no_onion: bool = Field(
        default=False,
        alias="noonion",
        description="Disable connecting to tor hidden services",
    )

    # Block template policy
    free_tx_relay_limit: float = Field(
        default=DEFAULT_FREE_TX_RELAY_LIMIT,
        ge=0,
        alias="limitfreerelay",
        description="Limit relay of transactions with no transaction fee to the given amount in thousands of bytes per minute",
    )
    block_min_size: int = Field(
        default=DEFAULT_BLOCK_MIN_SIZE,
        ge=0,
        le=UINT32_MAX,
        alias="blockminsize",
        description="Minimum block size in bytes to be used when creating a block",
    )
    block_max_size: int = Field(
        default=DEFAULT_BLOCK_MAX_SIZE,
        ge=0,
        le=UINT32_MAX,
        alias="blockmaxsize",
        description="Maximum block size in bytes to be used when creating a block",
    )
    block_priority_size: int = Field(
        default=DEFAULT_BLOCK_PRIORITY_SIZE,
        ge=0,
        le=UINT32_MAX,
        alias="blockprioritysize",
        description="Size in bytes for high-priority/low-fee transactions when creating a block",
    )

    # Mining
    generate: bool = Field(
        default=DEFAULT_GENERATE,
        description="Generate (mine) coins using the CPU",
    )
    mining_addrs: list[str] = Field(
        default_factory=list,
        alias="miningaddr",
        description="Add the specified payment address to the list of addresses to use for generated blocks",
    )
    getwork_keys: list[str] = Field(
        default_factory=list,
        alias="getworkkey",
        description="DEPRECATED -- Use the miningaddr option instead",
    )

    # Misc
    db_type: str = Field(
        default=DEFAULT_DB_TYPE,
        alias="dbtype",
        description="Database backend to use for the Block Chain",
    )
    profile: str = Field(
        default="",
        description="Enable HTTP profiling on given port (1024-65535)",
    )
    show_version: bool = Field(
        default=False,
        alias="version",
        description="Display version information and exit",
        json_schema_extra={"short": "V"},
    )

    # Service options
    service_command: str = Field(
        default="",
        alias="service",
        description="Service command {install, remove, start, stop}",
        json_schema_extra={"short": "s"},
    )
    pid_file: str = Field(
        default="",
        alias="pidfile",
        description="Write the daemon PID to this file",
    )
    uid: str = Field(
        default="",
        description="Drop privileges to this user (name or numeric id)",
    )
    gid: str = Field(
        default="",
        description="Drop privileges to this group (name or numeric id)",
    )
    engine: str = Field(
        default="",
        description="Import path of the node engine backend module",
    )

    @field_validator(
        "add_peers",
        "connect_peers",
        "listeners",
        "rpc_listeners",
        "mining_addrs",
        "getwork_keys",
        mode="before",
    )
    @classmethod
    def split_list(cls, v: Any) -> Any:
        """Accept a comma-separated string for list options."""
        return _split_list(v)

    @field_validator("debug_level", mode="before")
    @classmethod
    def validate_debug_level(cls, v: Any) -> Any:
        """Accept lowercase names and common aliases."""
        if isinstance(v, str):
            upper = v.strip().upper()
            return _LOG_LEVEL_ALIASES.get(upper, upper)
        return v

    @field_validator("ban_duration", mode="before")
    @classmethod
    def validate_ban_duration(cls, v: Any) -> Any:
        """Parse duration strings into seconds."""
        if isinstance(v, str):
            return parse_duration(v)
        return v


class RPCConfig(BaseModel):
    """Resolved RPC server settings."""

    model_config = ConfigDict(frozen=True)

    user: str = ""
    password: str = Field(default="", repr=False)
    listeners: tuple[str, ...] = ()
    cert_file: Path
    key_file: Path
    max_clients: int = DEFAULT_MAX_RPC_CLIENTS
    max_websockets: int = DEFAULT_MAX_RPC_WEBSOCKETS
    disabled: bool = False
    disable_tls: bool = False


class EffectiveConfig(BaseModel):
    """Fully resolved, validated and immutable daemon configuration."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    config_file: Path
    data_dir: Path
    log_dir: Path
    debug_level: LogLevel = LogLevel.INFO
    net: NetworkProfile

    add_peers: tuple[str, ...] = ()
    connect_peers: tuple[str, ...] = ()
    listeners: tuple[str, ...] = ()
    disable_listen: bool = False
    max_peers: int = DEFAULT_MAX_PEERS
    ban_duration: float = DEFAULT_BAN_DURATION
    disable_dns_seed: bool = False

    rpc: RPCConfig

    proxy: str = ""
    onion: str = ""
    no_onion: bool = False
    routing: RoutingConfig

    free_tx_relay_limit: float = DEFAULT_FREE_TX_RELAY_LIMIT
    block_min_size: int = DEFAULT_BLOCK_MIN_SIZE
    block_max_size: int = DEFAULT_BLOCK_MAX_SIZE
    block_priority_size: int = DEFAULT_BLOCK_PRIORITY_SIZE

    generate: bool = DEFAULT_GENERATE
    mining_addrs: tuple[Address, ...] = ()

    db_type: str = DEFAULT_DB_TYPE
    profile: str = ""

    pid_file: str = ""
    uid: str = ""
    gid: str = ""
    engine: str = ""
