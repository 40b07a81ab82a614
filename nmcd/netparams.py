"""Network parameter sets the daemon can join."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "MAINNET",
    "NETWORK_PROFILES",
    "REGTEST",
    "SIMNET",
    "TESTNET",
    "NetworkProfile",
]


@dataclass(frozen=True)
class NetworkProfile:
    """Immutable network parameters.

    ``namespace`` is the directory segment appended to the data and log
    directories so that per-network state never collides on disk.
    """

    name: str
    namespace: str
    default_port: int
    rpc_port: int
    dns_seeding: bool
    pubkey_hash_addr_id: int
    script_hash_addr_id: int

    def __str__(self) -> str:
        return self.name


MAINNET = NetworkProfile(
    name="mainnet",
    namespace="mainnet",
    default_port=8334,
    rpc_port=8336,
    dns_seeding=True,
    pubkey_hash_addr_id=0x34,
    script_hash_addr_id=0x0D,
)

TESTNET = NetworkProfile(
    name="testnet3",
    namespace="testnet",
    default_port=18333,
    rpc_port=18334,
    dns_seeding=True,
    pubkey_hash_addr_id=0x6F,
    script_hash_addr_id=0xC4,
)

REGTEST = NetworkProfile(
    name="regtest",
    namespace="regtest",
    default_port=18444,
    rpc_port=18334,
    dns_seeding=False,
    pubkey_hash_addr_id=0x6F,
    script_hash_addr_id=0xC4,
)

SIMNET = NetworkProfile(
    name="simnet",
    namespace="simnet",
    default_port=18555,
    rpc_port=18556,
    dns_seeding=False,
    pubkey_hash_addr_id=0x3F,
    script_hash_addr_id=0x7B,
)

NETWORK_PROFILES: tuple[NetworkProfile, ...] = (MAINNET, TESTNET, REGTEST, SIMNET)
