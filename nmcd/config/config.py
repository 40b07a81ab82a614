"""Configuration resolution for nmcd.

Resolution proceeds as follows:
    1) Start with built-in defaults
    2) Pre-parse the command line for an alternative config file, the
       version flag or a service command
    3) Load the config file over the defaults
    4) Parse the command line again; its values take precedence
    5) Select the network, validate and derive the remaining settings

The daemon therefore runs without any config file while still letting
users override everything from the file or the command line.
"""

from __future__ import annotations

import re
import socket
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import click
import toml
from pydantic import ValidationError as PydanticValidationError

from nmcd import __version__
from nmcd.address import Address, decode_address
from nmcd.config.addresses import join_host_port, normalize_addresses
from nmcd.config.defaults import (
    APP_NAME,
    BLOCK_MAX_SIZE_MAX,
    BLOCK_MAX_SIZE_MIN,
    DEFAULT_LOG_LEVEL,
    KNOWN_DB_TYPES,
    ConfigDefaults,
    default_config_defaults,
)
from nmcd.config.network import namespaced_path, select_network
from nmcd.config.options import build_command, parse_args
from nmcd.models import EffectiveConfig, RawOptions, RPCConfig
from nmcd.netparams import NetworkProfile
from nmcd.proxy.routing import provision_routing
from nmcd.utils.exceptions import (
    AddressError,
    ConfigError,
    ConfigErrorReason,
    EarlyExit,
    NmcdError,
)
from nmcd.utils.logging_config import get_logger

logger = get_logger(__name__)

_INTEGER_RE = re.compile(r"[+-]?\d+")

LookupHost = Callable[[str], Sequence[str]]
ServiceCommandRunner = Callable[[str, str], None]


def lookup_host(host: str) -> list[str]:
    """Resolve host to its addresses using the system resolver."""
    infos = socket.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return list(dict.fromkeys(str(info[4][0]) for info in infos))


def valid_db_type(db_type: str) -> bool:
    """Return whether db_type names a supported database backend."""
    return db_type in KNOWN_DB_TYPES


def _field_aliases() -> dict[str, str]:
    aliases: dict[str, str] = {}
    for name, field in RawOptions.model_fields.items():
        aliases[name] = name
        if field.alias:
            aliases[field.alias] = name
    return aliases


class ConfigResolver:
    """Merge defaults, config file and command line into an EffectiveConfig."""

    def __init__(
        self,
        defaults: ConfigDefaults | None = None,
        app_name: str = APP_NAME,
        version: str = __version__,
        lookup_host: LookupHost = lookup_host,
        service_command_runner: ServiceCommandRunner | None = None,
    ):
        """Initialize the resolver.

        Args:
            defaults: Default file locations (platform data dir if None)
            app_name: Program name used in usage and version output
            version: Version string printed by ``--version``
            lookup_host: Resolver used for the default RPC listeners
            service_command_runner: Runs ``--service`` commands, given the
                command and the pre-parsed PID file

        """
        self.defaults = defaults or default_config_defaults()
        self.app_name = app_name
        self.version = version
        self.lookup_host = lookup_host
        self.service_command_runner = service_command_runner
        self.command = build_command(app_name)

    @property
    def usage_message(self) -> str:
        return f"Use {self.app_name} -h to show usage"

    def default_options(self) -> RawOptions:
        """Return RawOptions seeded with the built-in defaults."""
        return RawOptions(
            config_file=str(self.defaults.config_file),
            data_dir=str(self.defaults.data_dir),
            log_dir=str(self.defaults.log_dir),
            debug_level=DEFAULT_LOG_LEVEL,
            rpc_key=str(self.defaults.rpc_key_file),
            rpc_cert=str(self.defaults.rpc_cert_file),
        )

    def resolve(self, argv: Sequence[str]) -> tuple[EffectiveConfig, list[str]]:
        """Resolve the effective configuration from argv.

        Returns:
            The effective configuration and the positional arguments

        Raises:
            ConfigError: On any invalid or conflicting option
            EarlyExit: When help, version or a service command was handled

        """
        opts = self.default_options()

        try:
            self.defaults.home_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            msg = f"unable to create home directory {self.defaults.home_dir}: {e}"
            raise NmcdError(msg) from e

        # Errors here are caught by the strict parse below
        try:
            pre, _ = parse_args(self.command, argv, lenient=True)
        except click.ClickException:
            pre = {}

        if pre.get("show_version"):
            click.echo(f"{self.app_name} version {self.version}")
            raise EarlyExit(0)

        service_command = pre.get("service_command")
        if service_command and self.service_command_runner is not None:
            self._run_service_command(service_command, pre.get("pid_file") or "")

        pre_regtest = bool(pre.get("regtest"))
        pre_simnet = bool(pre.get("simnet"))
        config_file = Path(pre.get("config_file") or opts.config_file)

        config_file_error: str | None = None
        if not (pre_regtest or pre_simnet) or config_file != self.defaults.config_file:
            opts, config_file_error = self._load_config_file(opts, config_file)
        opts.config_file = str(config_file)

        # Regression runs never inherit peers from the config file
        if pre_regtest and opts.add_peers:
            opts.add_peers = []

        try:
            cli_values, remaining = parse_args(self.command, argv)
        except click.exceptions.Exit as e:
            raise EarlyExit(e.exit_code) from e
        except click.UsageError as e:
            raise ConfigError(ConfigErrorReason.USAGE, e.format_message()) from e
        opts = self._merge(opts, cli_values, ConfigErrorReason.USAGE, "command line")

        config = self._finalize(opts)

        # Warn only after everything else succeeded so help output and
        # invalid options are not preceded by it
        if config_file_error is not None:
            logger.warning("%s", config_file_error)

        return config, remaining

    def _run_service_command(self, command: str, pid_file: str) -> None:
        assert self.service_command_runner is not None
        try:
            self.service_command_runner(command, pid_file)
        except NmcdError as e:
            click.echo(str(e), err=True)
            raise EarlyExit(1) from e
        raise EarlyExit(0)

    def _merge(
        self,
        opts: RawOptions,
        values: dict[str, Any],
        reason: ConfigErrorReason,
        source: str,
    ) -> RawOptions:
        if not values:
            return opts
        merged = opts.model_dump()
        merged.update(values)
        try:
            return RawOptions.model_validate(merged)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            msg = f"invalid {source} option: {problems}"
            raise ConfigError(reason, msg) from e

    def _load_config_file(
        self, opts: RawOptions, path: Path
    ) -> tuple[RawOptions, str | None]:
        """Merge the TOML config file over opts.

        Returns:
            Updated options and a deferred warning when the file is missing

        """
        try:
            with open(path, encoding="utf-8") as f:
                data = toml.load(f)
        except FileNotFoundError as e:
            return opts, f"{e.strerror}: {path}"
        except (OSError, toml.TomlDecodeError) as e:
            msg = f"Error parsing config file {path}: {e}"
            raise ConfigError(
                ConfigErrorReason.CONFIG_FILE_INVALID, msg, {"path": str(path)}
            ) from e

        aliases = _field_aliases()
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = aliases.get(key)
            if name is None:
                logger.warning("Ignoring unknown option %r in config file %s", key, path)
                continue
            values[name] = value

        logger.debug("Loaded %d option(s) from %s", len(values), path)
        return (
            self._merge(opts, values, ConfigErrorReason.CONFIG_FILE_INVALID, "config file"),
            None,
        )

    def _finalize(self, opts: RawOptions) -> EffectiveConfig:
        """Select the network, validate and derive the effective config."""
        net = select_network(opts.testnet, opts.regtest, opts.simnet)
        disable_dns_seed = opts.disable_dns_seed or net.namespace == "simnet"

        # Namespace per network so each network's state lives apart
        home = self.defaults.home_dir
        data_dir = namespaced_path(opts.data_dir, net, home)
        log_dir = namespaced_path(opts.log_dir, net, home)

        if not valid_db_type(opts.db_type):
            msg = (
                f"The specified database type [{opts.db_type}] is invalid -- "
                f"supported types {list(KNOWN_DB_TYPES)}"
            )
            raise ConfigError(ConfigErrorReason.INVALID_DB_TYPE, msg)

        if opts.profile:
            if (
                not _INTEGER_RE.fullmatch(opts.profile)
                or not 1024 <= int(opts.profile) <= 65535
            ):
                msg = "The profile port must be between 1024 and 65535"
                raise ConfigError(
                    ConfigErrorReason.INVALID_PROFILE_PORT, msg, {"profile": opts.profile}
                )

        if opts.ban_duration < 1.0:
            msg = (
                "The banduration option may not be less than 1s -- "
                f"parsed [{opts.ban_duration}s]"
            )
            raise ConfigError(ConfigErrorReason.BAN_DURATION_TOO_SHORT, msg)

        if opts.add_peers and opts.connect_peers:
            msg = "the --addpeer and --connect options can not be mixed"
            raise ConfigError(ConfigErrorReason.CONFLICTING_PEER_LISTS, msg)

        listeners = list(opts.listeners)
        disable_listen = opts.disable_listen
        # --proxy or --connect without --listen disables listening
        if (opts.proxy or opts.connect_peers) and not listeners:
            disable_listen = True

        if opts.connect_peers:
            disable_dns_seed = True

        if not listeners:
            listeners = [join_host_port("", net.default_port)]

        disable_rpc = opts.disable_rpc or not opts.rpc_user or not opts.rpc_pass

        rpc_listeners = list(opts.rpc_listeners)
        if not disable_rpc and not rpc_listeners:
            rpc_listeners = self._default_rpc_listeners(net)

        if not BLOCK_MAX_SIZE_MIN <= opts.block_max_size <= BLOCK_MAX_SIZE_MAX:
            msg = (
                f"The blockmaxsize option must be in between {BLOCK_MAX_SIZE_MIN} "
                f"and {BLOCK_MAX_SIZE_MAX} -- parsed [{opts.block_max_size}]"
            )
            raise ConfigError(ConfigErrorReason.INVALID_BLOCK_MAX_SIZE, msg)

        block_priority_size = min(opts.block_priority_size, opts.block_max_size)
        block_min_size = min(opts.block_min_size, opts.block_max_size)

        mining_addrs = [
            self._decode_mining_address(value, net, "getworkkey")
            for value in opts.getwork_keys
        ]
        mining_addrs.extend(
            self._decode_mining_address(value, net, "mining address")
            for value in opts.mining_addrs
        )

        if opts.generate and not mining_addrs:
            msg = (
                "the generate flag is set, but there are no mining "
                "addresses specified"
            )
            raise ConfigError(ConfigErrorReason.MISSING_MINING_ADDRESS, msg)

        listeners = normalize_addresses(listeners, net.default_port)
        rpc_listeners = normalize_addresses(rpc_listeners, net.rpc_port)
        add_peers = normalize_addresses(opts.add_peers, net.default_port)
        connect_peers = normalize_addresses(opts.connect_peers, net.default_port)

        routing = provision_routing(
            proxy=opts.proxy,
            proxy_user=opts.proxy_user,
            proxy_pass=opts.proxy_pass,
            onion=opts.onion,
            onion_user=opts.onion_user,
            onion_pass=opts.onion_pass,
            no_onion=opts.no_onion,
        )

        rpc = RPCConfig(
            user=opts.rpc_user,
            password=opts.rpc_pass,
            listeners=tuple(rpc_listeners),
            cert_file=Path(opts.rpc_cert),
            key_file=Path(opts.rpc_key),
            max_clients=opts.rpc_max_clients,
            max_websockets=opts.rpc_max_websockets,
            disabled=disable_rpc,
            disable_tls=opts.disable_tls,
        )

        return EffectiveConfig(
            config_file=Path(opts.config_file),
            data_dir=data_dir,
            log_dir=log_dir,
            debug_level=opts.debug_level,
            net=net,
            add_peers=tuple(add_peers),
            connect_peers=tuple(connect_peers),
            listeners=tuple(listeners),
            disable_listen=disable_listen,
            max_peers=opts.max_peers,
            ban_duration=opts.ban_duration,
            disable_dns_seed=disable_dns_seed,
            rpc=rpc,
            proxy=opts.proxy,
            onion=opts.onion,
            no_onion=opts.no_onion,
            routing=routing,
            free_tx_relay_limit=opts.free_tx_relay_limit,
            block_min_size=block_min_size,
            block_max_size=opts.block_max_size,
            block_priority_size=block_priority_size,
            generate=opts.generate,
            mining_addrs=tuple(mining_addrs),
            db_type=opts.db_type,
            profile=opts.profile,
            pid_file=opts.pid_file,
            uid=opts.uid,
            gid=opts.gid,
            engine=opts.engine,
        )

    def _default_rpc_listeners(self, net: NetworkProfile) -> list[str]:
        """Listen on every localhost address on the network's RPC port."""
        try:
            addrs = self.lookup_host("localhost")
        except OSError as e:
            msg = f"unable to resolve localhost for the default RPC listeners: {e}"
            raise ConfigError(ConfigErrorReason.LOOKUP_FAILED, msg) from e
        return [join_host_port(addr, net.rpc_port) for addr in addrs]

    @staticmethod
    def _decode_mining_address(value: str, net: NetworkProfile, kind: str) -> Address:
        try:
            addr = decode_address(value)
        except AddressError as e:
            msg = f"{kind} '{value}' failed to decode: {e}"
            raise ConfigError(
                ConfigErrorReason.INVALID_ADDRESS, msg, {"address": value}
            ) from e
        if not addr.is_for_net(net):
            msg = f"{kind} '{value}' is on the wrong network"
            raise ConfigError(
                ConfigErrorReason.WRONG_NETWORK_ADDRESS,
                msg,
                {"address": value, "network": net.name},
            )
        return addr


def load_config(
    argv: Sequence[str],
    defaults: ConfigDefaults | None = None,
) -> tuple[EffectiveConfig, list[str]]:
    """Resolve the effective configuration with the default resolver."""
    return ConfigResolver(defaults).resolve(argv)
