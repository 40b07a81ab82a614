"""Exception hierarchy for nmcd.

Configuration problems, engine failures and service-manager failures all
derive from NmcdError so the command line entry point can map them to a
single non-zero exit path.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class NmcdError(Exception):
    """Base exception for all nmcd errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize nmcd error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ValidationError(NmcdError):
    """Data validation errors."""


class ConfigErrorReason(str, Enum):
    """Why configuration resolution was aborted."""

    MULTIPLE_NETWORKS_SELECTED = "multiple_networks_selected"
    INVALID_DB_TYPE = "invalid_db_type"
    INVALID_PROFILE_PORT = "invalid_profile_port"
    BAN_DURATION_TOO_SHORT = "ban_duration_too_short"
    CONFLICTING_PEER_LISTS = "conflicting_peer_lists"
    INVALID_BLOCK_MAX_SIZE = "invalid_block_max_size"
    INVALID_ADDRESS = "invalid_address"
    WRONG_NETWORK_ADDRESS = "wrong_network_address"
    MISSING_MINING_ADDRESS = "missing_mining_address"
    CONFIG_FILE_INVALID = "config_file_invalid"
    USAGE = "usage"
    LOOKUP_FAILED = "lookup_failed"
    TOR_DISABLED = "tor_disabled"


class ConfigError(ValidationError):
    """Fatal configuration error carrying the originating reason."""

    def __init__(
        self,
        reason: ConfigErrorReason,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        """Initialize configuration error."""
        super().__init__(message, details)
        self.reason = reason


class AddressError(ValidationError):
    """Payment address could not be decoded."""


class EngineError(NmcdError):
    """Errors reported by the node engine."""


class EngineStartError(EngineError):
    """The engine (or its block store) could not be started."""


class EngineRuntimeError(EngineError):
    """The engine stopped on its own because of an error."""


class ServiceError(NmcdError):
    """Service manager errors (privilege drop, PID file)."""


class EarlyExit(Exception):  # noqa: N818
    """Successful early termination (help, version, service command)."""

    def __init__(self, code: int = 0):
        """Initialize early exit with the process exit code."""
        super().__init__(code)
        self.code = code
