"""TOML configuration file discovery and loading.

This module is the **only** place in the codebase that touches the
configuration file.  ``tomllib`` and ``OSError`` failures are re-raised
as :class:`~chclient.exceptions.ConfigFileError`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import tomllib

from chclient.exceptions import ConfigFileError

LOG = logging.getLogger(__name__)

CONFIG_FILE_NAME = "clickhouse-client.toml"
USER_CONFIG_FILE = Path(".clickhouse-client") / "config.toml"
SYSTEM_CONFIG_FILE = Path("/etc/clickhouse-client/config.toml")

PROFILES_KEY = "connections_credentials"


def candidate_paths(*, cwd: Path | None = None, home: Path | None = None) -> list[Path]:
    """Implicit lookup locations, most specific first."""
    cwd = cwd if cwd is not None else Path.cwd()
    home = home if home is not None else Path.home()
    return [cwd / CONFIG_FILE_NAME, home / USER_CONFIG_FILE, SYSTEM_CONFIG_FILE]


def find_config_file(
    explicit: str | None = None,
    *,
    cwd: Path | None = None,
    home: Path | None = None,
) -> Path | None:
    """Return the configuration file to load, or ``None``.

    Raises
    ------
    ConfigFileError
        When *explicit* is given and does not exist.
    """
    if explicit is not None:
        path = Path(explicit).expanduser()
        if not path.is_file():
            raise ConfigFileError(
                f"Config file {explicit} does not exist",
                hint="Check the path passed to --config.",
            )
        return path

    for path in candidate_paths(cwd=cwd, home=home):
        if path.is_file():
            LOG.debug("Using config file %s", path)
            return path
    return None


def load_config_file(path: Path) -> dict[str, Any]:
    """Parse *path* as TOML and return the raw document.

    Raises
    ------
    ConfigFileError
        When the file cannot be read or is not valid TOML.
    """
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigFileError(
            f"Cannot parse config file {path}: {exc}",
        ) from exc
    except OSError as exc:
        raise ConfigFileError(
            f"Cannot read config file {path}: {exc.strerror or exc}",
        ) from exc


def file_layer(raw: dict[str, Any]) -> dict[str, Any]:
    """Normalise a raw TOML document into a configuration layer.

    Dashes in key names become underscores, and profiles written either
    as an array of tables or as named sub-tables become a flat list.
    """
    layer: dict[str, Any] = {}
    for key, value in raw.items():
        name = _normalise_key(key)
        if name == PROFILES_KEY:
            layer[name] = _profiles(value)
        elif name == "prompt_by_server_display_name" and isinstance(value, dict):
            layer[name] = {str(k): str(v) for k, v in value.items()}
        else:
            layer[name] = value
    return layer


def read_config_layer(
    explicit: str | None = None,
    *,
    cwd: Path | None = None,
    home: Path | None = None,
) -> tuple[Path | None, dict[str, Any]]:
    """Locate, load and normalise the configuration file in one step."""
    path = find_config_file(explicit, cwd=cwd, home=home)
    if path is None:
        return None, {}
    layer = file_layer(load_config_file(path))
    layer["config_file"] = str(path)
    return path, layer


def _normalise_key(key: str) -> str:
    return key.replace("-", "_")


def _profiles(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, list):
        blocks = [(None, block) for block in value]
    elif isinstance(value, dict):
        blocks = list(value.items())
    else:
        raise ConfigFileError(
            f"'{PROFILES_KEY}' must be an array of tables or a table of tables",
        )

    profiles: list[dict[str, Any]] = []
    for block_name, block in blocks:
        if not isinstance(block, dict):
            raise ConfigFileError(f"Malformed entry in '{PROFILES_KEY}': {block!r}")
        profile = {_normalise_key(key): item for key, item in block.items()}
        if "name" not in profile and block_name is not None:
            profile["name"] = block_name
        if "name" not in profile:
            raise ConfigFileError(
                f"Every entry in '{PROFILES_KEY}' needs a 'name'",
            )
        profiles.append(profile)
    return profiles
