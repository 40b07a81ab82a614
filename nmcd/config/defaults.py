"""Built-in configuration defaults.

The default file locations are derived from the platform application data
directory by ``ConfigDefaults.for_home_dir`` instead of being computed at
import time, so tests and embedders can point the daemon at any home.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

APP_NAME = "nmcd"

DEFAULT_CONFIG_FILENAME = "nmcd.conf"
DEFAULT_DATA_DIRNAME = "data"
DEFAULT_LOG_DIRNAME = "logs"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_MAX_PEERS = 125
DEFAULT_BAN_DURATION = 24 * 60 * 60.0
DEFAULT_MAX_RPC_CLIENTS = 10
DEFAULT_MAX_RPC_WEBSOCKETS = 25
DEFAULT_DB_TYPE = "leveldb"
DEFAULT_FREE_TX_RELAY_LIMIT = 15.0
DEFAULT_BLOCK_MIN_SIZE = 0
DEFAULT_BLOCK_MAX_SIZE = 750_000
DEFAULT_BLOCK_PRIORITY_SIZE = 50_000
DEFAULT_GENERATE = False

KNOWN_DB_TYPES: tuple[str, ...] = ("leveldb", "memdb")

MAX_BLOCK_PAYLOAD = 1_000_000
BLOCK_MAX_SIZE_MIN = 1000
BLOCK_MAX_SIZE_MAX = MAX_BLOCK_PAYLOAD - 1000

IS_WINDOWS = sys.platform == "win32"
IS_MACOS = sys.platform == "darwin"


def app_data_dir(app_name: str = APP_NAME, roaming: bool = False) -> Path:
    """Return the per-user application data directory for app_name.

    POSIX: ``~/.<app>``; macOS: ``~/Library/Application Support/<App>``;
    Windows: ``%LOCALAPPDATA%\\<App>`` (``%APPDATA%`` when roaming).
    """
    app_name = app_name.lstrip(".")
    if not app_name:
        return Path(".")

    app_upper = app_name[0].upper() + app_name[1:]
    app_lower = app_name[0].lower() + app_name[1:]
    home = Path.home()

    if IS_WINDOWS:
        app_data = os.environ.get("APPDATA" if roaming else "LOCALAPPDATA")
        if app_data:
            return Path(app_data) / app_upper
        return home / app_upper
    if IS_MACOS:
        return home / "Library" / "Application Support" / app_upper
    return home / f".{app_lower}"


@dataclass(frozen=True)
class ConfigDefaults:
    """Default file locations rooted at the application home directory."""

    home_dir: Path
    config_file: Path
    data_dir: Path
    log_dir: Path
    rpc_key_file: Path
    rpc_cert_file: Path

    @classmethod
    def for_home_dir(cls, home_dir: str | Path) -> ConfigDefaults:
        """Build the defaults for a given application home directory."""
        home = Path(home_dir)
        return cls(
            home_dir=home,
            config_file=home / DEFAULT_CONFIG_FILENAME,
            data_dir=home / DEFAULT_DATA_DIRNAME,
            log_dir=home / DEFAULT_LOG_DIRNAME,
            rpc_key_file=home / "rpc.key",
            rpc_cert_file=home / "rpc.cert",
        )


def default_config_defaults() -> ConfigDefaults:
    """Defaults for the current user's platform data directory."""
    return ConfigDefaults.for_home_dir(app_data_dir(APP_NAME))


def clean_and_expand_path(path: str | Path, home_dir: Path) -> Path:
    """Expand a leading ``~`` and environment variables, then normalize.

    ``~`` resolves to the directory containing the application home, which
    is the user's home directory for the default layout.
    """
    value = str(path)
    if value.startswith("~"):
        value = value.replace("~", str(home_dir.parent), 1)
    return Path(os.path.normpath(os.path.expandvars(value)))
