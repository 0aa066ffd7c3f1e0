"""Immutable, layered client configuration.

The configuration is built exactly once by merging ordered layers
(defaults, the config file, the environment, the command line) and
then passed by value through the pipeline.  Components that need a
variant (the winning host after failover, a forced password prompt)
derive a copy with :meth:`Configuration.with_updates`; nobody mutates a
shared object.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chclient.exceptions import ConfigurationConflict

ENV_USER = "CLICKHOUSE_USER"
ENV_PASSWORD = "CLICKHOUSE_PASSWORD"
ENV_HISTORY_FILE = "CLICKHOUSE_HISTORY_FILE"

DEFAULT_HTTP_PORT = 8123
DEFAULT_HTTPS_PORT = 8443


class ConnectionProfile(BaseModel):
    """Named block of overrides stored under ``connections_credentials``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    hostname: str | None = None
    port: int | None = None
    secure: bool | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    history_file: str | None = None
    history_max_entries: int | None = None
    accept_invalid_certificate: bool | None = Field(
        default=None, alias="accept-invalid-certificate"
    )
    prompt: str | None = None


class Configuration(BaseModel):
    """Shape of the merged client configuration."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    # Target
    host: str | None = None
    port: int | None = None
    http_port: int = DEFAULT_HTTP_PORT
    https_port: int = DEFAULT_HTTPS_PORT
    database: str | None = None
    bind_host: str | None = None

    # Transport security / compression
    secure: bool = False
    no_secure: bool = False
    accept_invalid_certificate: bool = False
    compression: bool | None = None
    max_client_network_bandwidth: int | None = None

    # Credentials
    user: str | None = None
    user_from_command_line: bool = False
    password: str | None = None
    ask_password: bool = False
    ssh_key_file: str | None = None
    ssh_key_passphrase: str | None = None
    jwt: str | None = None
    quota_key: str | None = None

    # Timeouts (seconds, handshake in milliseconds)
    connect_timeout: float | None = None
    send_timeout: float | None = None
    receive_timeout: float | None = None
    tcp_keep_alive_timeout: float | None = None
    handshake_timeout_ms: float | None = None
    sync_request_timeout: float | None = None

    proto_caps_send: str = "notchunked"
    proto_caps_recv: str = "notchunked"

    # Session presentation
    history_file: str | None = None
    history_max_entries: int | None = None
    prompt: str | None = None
    prompt_by_server_display_name: dict[str, str] = Field(default_factory=dict)
    prompt_suffix: str = " :) "
    prompt_decoration: bool = True
    use_client_time_zone: bool = False
    no_warnings: bool = False
    version_advisory: bool = True
    interactive: bool | None = None

    # Profiles
    connections_credentials: tuple[ConnectionProfile, ...] = ()
    connection: str | None = None
    config_file: str | None = None

    def with_updates(self, **changes: Any) -> Configuration:
        """Return a copy with *changes* applied and re-validated."""
        return build_configuration({**self.model_dump(), **changes})

    def find_profile(self, name: str) -> ConnectionProfile | None:
        for profile in self.connections_credentials:
            if profile.name == name:
                return profile
        return None


# ---------------------------------------------------------------------------
# Layer construction
# ---------------------------------------------------------------------------

def build_configuration(data: Mapping[str, Any]) -> Configuration:
    """Validate *data* into a :class:`Configuration`.

    Raises
    ------
    ConfigurationConflict
        When a value has the wrong type (e.g. a non-numeric port).
    """
    try:
        return Configuration.model_validate(dict(data))
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigurationConflict(
            f"Invalid configuration: {details}",
        ) from exc


def merge_layers(*layers: Mapping[str, Any]) -> Configuration:
    """Merge *layers* left to right; ``None`` never overwrites a value."""
    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in layer.items():
            if value is not None:
                merged[key] = value
    return build_configuration(merged)


def environment_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    """Extract the configuration keys the environment may override."""
    layer: dict[str, Any] = {}
    if ENV_USER in environ:
        layer["user"] = environ[ENV_USER]
    if ENV_PASSWORD in environ:
        layer["password"] = environ[ENV_PASSWORD]
    if ENV_HISTORY_FILE in environ:
        layer["history_file"] = environ[ENV_HISTORY_FILE]
    return layer
