"""Active network selection and per-network path namespacing."""

from __future__ import annotations

from pathlib import Path

from nmcd.config.defaults import clean_and_expand_path
from nmcd.netparams import MAINNET, REGTEST, SIMNET, TESTNET, NetworkProfile
from nmcd.utils.exceptions import ConfigError, ConfigErrorReason


def select_network(testnet: bool, regtest: bool, simnet: bool) -> NetworkProfile:
    """Pick the network profile from the three selector flags.

    Raises:
        ConfigError: If more than one selector is set

    """
    selected = [
        profile
        for flag, profile in ((testnet, TESTNET), (regtest, REGTEST), (simnet, SIMNET))
        if flag
    ]
    if len(selected) > 1:
        msg = (
            "The testnet, regtest, and simnet params can't be used "
            "together -- choose one of the three"
        )
        raise ConfigError(
            ConfigErrorReason.MULTIPLE_NETWORKS_SELECTED,
            msg,
            {"selected": [p.name for p in selected]},
        )
    return selected[0] if selected else MAINNET


def namespaced_path(path: str | Path, profile: NetworkProfile, home_dir: Path) -> Path:
    """Expand and clean path, then append the network namespace segment."""
    return clean_and_expand_path(path, home_dir) / profile.namespace
