"""Base58Check payment address decoding.

Only the two hash-based address forms are understood: pay-to-pubkey-hash
and pay-to-script-hash.  Decoding accepts the version byte of any known
network; whether the address belongs to the active network is a separate
check (``Address.is_for_net``).
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum

from nmcd.netparams import NETWORK_PROFILES, NetworkProfile
from nmcd.utils.exceptions import AddressError

B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {char: index for index, char in enumerate(B58_ALPHABET)}

HASH160_SIZE = 20
CHECKSUM_SIZE = 4


class AddressType(str, Enum):
    """Supported payment address forms."""

    PUBKEY_HASH = "pubkeyhash"
    SCRIPT_HASH = "scripthash"


@dataclass(frozen=True)
class Address:
    """A decoded payment address."""

    encoded: str
    address_type: AddressType
    net_id: int
    hash160: bytes

    def is_for_net(self, profile: NetworkProfile) -> bool:
        """Return True if the address is valid on the given network."""
        if self.address_type is AddressType.PUBKEY_HASH:
            return self.net_id == profile.pubkey_hash_addr_id
        return self.net_id == profile.script_hash_addr_id

    def __str__(self) -> str:
        return self.encoded


def _double_sha256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def b58decode(value: str) -> bytes:
    """Decode a base58 string into bytes.

    Raises:
        AddressError: If the string contains a character outside the alphabet

    """
    number = 0
    for char in value:
        digit = _B58_INDEX.get(char)
        if digit is None:
            msg = f"invalid base58 character {char!r}"
            raise AddressError(msg)
        number = number * 58 + digit

    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    # Each leading '1' encodes a leading zero byte
    leading_zeros = len(value) - len(value.lstrip("1"))
    return b"\x00" * leading_zeros + body


def b58encode(data: bytes) -> str:
    """Encode bytes as a base58 string."""
    number = int.from_bytes(data, "big")
    chars: list[str] = []
    while number:
        number, remainder = divmod(number, 58)
        chars.append(B58_ALPHABET[remainder])
    leading_zeros = len(data) - len(data.lstrip(b"\x00"))
    return "1" * leading_zeros + "".join(reversed(chars))


def check_decode(value: str) -> tuple[int, bytes]:
    """Decode a Base58Check string into (version byte, payload).

    Raises:
        AddressError: On bad characters, short input or checksum mismatch

    """
    raw = b58decode(value)
    if len(raw) < 1 + CHECKSUM_SIZE:
        msg = "invalid format: version and/or checksum bytes missing"
        raise AddressError(msg)

    body, checksum = raw[:-CHECKSUM_SIZE], raw[-CHECKSUM_SIZE:]
    if _double_sha256(body)[:CHECKSUM_SIZE] != checksum:
        msg = "checksum mismatch"
        raise AddressError(msg)
    return body[0], body[1:]


def check_encode(net_id: int, payload: bytes) -> str:
    """Encode a version byte and payload as Base58Check."""
    body = bytes([net_id]) + payload
    return b58encode(body + _double_sha256(body)[:CHECKSUM_SIZE])


def decode_address(value: str) -> Address:
    """Decode a payment address for any known network.

    Raises:
        AddressError: If the string is not a recognised address

    """
    net_id, payload = check_decode(value)
    if len(payload) != HASH160_SIZE:
        msg = f"decoded address is of unknown size {len(payload)}"
        raise AddressError(msg)

    if any(p.pubkey_hash_addr_id == net_id for p in NETWORK_PROFILES):
        address_type = AddressType.PUBKEY_HASH
    elif any(p.script_hash_addr_id == net_id for p in NETWORK_PROFILES):
        address_type = AddressType.SCRIPT_HASH
    else:
        msg = f"unknown address type (version byte {net_id:#04x})"
        raise AddressError(msg)

    return Address(
        encoded=value,
        address_type=address_type,
        net_id=net_id,
        hash160=payload,
    )


def encode_address(
    profile: NetworkProfile,
    hash160: bytes,
    address_type: AddressType = AddressType.PUBKEY_HASH,
) -> str:
    """Encode a 20-byte hash as an address on the given network."""
    if len(hash160) != HASH160_SIZE:
        msg = f"hash160 must be {HASH160_SIZE} bytes, got {len(hash160)}"
        raise AddressError(msg)
    if address_type is AddressType.PUBKEY_HASH:
        return check_encode(profile.pubkey_hash_addr_id, hash160)
    return check_encode(profile.script_hash_addr_id, hash160)
