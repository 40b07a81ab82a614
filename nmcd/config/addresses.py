"""host:port address list helpers.

``split_host_port`` and ``join_host_port`` follow the rules of Go's
``net.SplitHostPort``/``net.JoinHostPort`` so address strings written for
other node implementations keep their meaning.
"""

from __future__ import annotations

from collections.abc import Iterable


def split_host_port(hostport: str) -> tuple[str, str]:
    """Split ``host:port``, ``[host]:port`` or ``[ipv6%zone]:port``.

    Raises:
        ValueError: If the string has no port or is otherwise malformed

    """
    i = hostport.rfind(":")
    if i < 0:
        msg = f"address {hostport}: missing port in address"
        raise ValueError(msg)

    j = k = 0
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            msg = f"address {hostport}: missing ']' in address"
            raise ValueError(msg)
        if end + 1 == len(hostport):
            msg = f"address {hostport}: missing port in address"
            raise ValueError(msg)
        if end + 1 != i:
            if hostport[end + 1] == ":":
                msg = f"address {hostport}: too many colons in address"
            else:
                msg = f"address {hostport}: missing port in address"
            raise ValueError(msg)
        host = hostport[1:end]
        j, k = 1, end + 1
    else:
        host = hostport[:i]
        if ":" in host:
            msg = f"address {hostport}: too many colons in address"
            raise ValueError(msg)

    if "[" in hostport[j:]:
        msg = f"address {hostport}: unexpected '[' in address"
        raise ValueError(msg)
    if "]" in hostport[k:]:
        msg = f"address {hostport}: unexpected ']' in address"
        raise ValueError(msg)

    return host, hostport[i + 1 :]


def join_host_port(host: str, port: str | int) -> str:
    """Combine host and port, bracketing IPv6 literals.

    A host that is already bracketed is left as is.
    """
    if ":" in host and not (host.startswith("[") and host.endswith("]")):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _has_stray_brackets(addr: str) -> bool:
    if "[" not in addr and "]" not in addr:
        return False
    return not (
        addr.startswith("[")
        and addr.endswith("]")
        and addr.count("[") == 1
        and addr.count("]") == 1
    )


def normalize_address(addr: str, default_port: str | int) -> str:
    """Return addr with default_port appended if it carries no port.

    Entries with unbalanced or misplaced brackets are returned unchanged.
    """
    try:
        split_host_port(addr)
    except ValueError:
        if _has_stray_brackets(addr):
            return addr
        return join_host_port(addr, default_port)
    return addr


def remove_duplicate_addresses(addrs: Iterable[str]) -> list[str]:
    """Drop repeated entries, keeping the first occurrence of each."""
    return list(dict.fromkeys(addrs))


def normalize_addresses(addrs: Iterable[str], default_port: str | int) -> list[str]:
    """Normalize every address with default_port and remove duplicates."""
    return remove_duplicate_addresses(
        normalize_address(addr, default_port) for addr in addrs
    )
