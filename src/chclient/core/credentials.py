"""Credential resolution — configuration in, connection parameters out.

Given the merged :class:`~chclient.core.configuration.Configuration`,
this module:

* overlays the matching ``connections_credentials`` profile (once, up
  front, before anything else is resolved);
* infers transport security and compression from the host shape;
* picks exactly one credential mechanism (JWT, SSH key, password);
* resolves every timeout to an explicit value or its default.

The only side effect is the masked password/passphrase read, performed
through an injected :class:`~chclient.core.protocols.SecretProvider`.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence
from datetime import timedelta

from chclient.core.arguments import ASK_PASSWORD
from chclient.core.configuration import Configuration
from chclient.core.models import (
    Compression,
    ConnectionParameters,
    Credential,
    HostAndPort,
    JwtCredential,
    PasswordCredential,
    ProtoCaps,
    Security,
    SshKeyCredential,
    Timeouts,
)
from chclient.core.protocols import SecretProvider
from chclient.exceptions import ArgumentError, ConfigurationConflict, ProfileNotFoundError

LOG = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_USER = "default"

CLOUD_DOMAIN_SUFFIXES: tuple[str, ...] = (".clickhouse.cloud", ".clickhouse-staging.com")

DEFAULT_CONNECT_TIMEOUT_SEC = 10
DEFAULT_SEND_TIMEOUT_SEC = 300
DEFAULT_RECEIVE_TIMEOUT_SEC = 300
DEFAULT_TCP_KEEP_ALIVE_TIMEOUT_SEC = 290
DEFAULT_SYNC_REQUEST_TIMEOUT_SEC = 5

SSH_PASSPHRASE_PROMPT = "Enter your SSH private key passphrase (leave empty for no passphrase): "


# ---------------------------------------------------------------------------
# Connection profile substitution
# ---------------------------------------------------------------------------

def profile_target(
    config: Configuration,
    hosts: Sequence[HostAndPort],
    selector: str | None = None,
) -> str:
    """Name of the profile to look for: selector, first host, or default."""
    if selector:
        return selector
    if hosts:
        return hosts[0].host
    return config.host or DEFAULT_HOST


def apply_connection_profile(
    config: Configuration,
    hosts: Sequence[HostAndPort] = (),
    *,
    home: str | None = None,
) -> tuple[Configuration, list[HostAndPort]]:
    """Overlay the matching connection profile onto *config*.

    Fields are only written when the profile defines them.  When the
    profile redirects the host, the first explicit host is replaced
    (its port is kept).

    Raises
    ------
    ProfileNotFoundError
        When ``config.connection`` names a profile that does not exist.
    """
    selector = config.connection
    target = profile_target(config, hosts, selector)
    profile = config.find_profile(target)
    if profile is None:
        if selector:
            raise ProfileNotFoundError(
                f"No such connection '{target}' in connections_credentials",
                hint="Check the 'name' fields of your connections_credentials blocks.",
            )
        return config, list(hosts)

    LOG.debug("Applying connection profile %r", profile.name)
    hostname = profile.hostname or profile.name
    updates: dict[str, object] = {"host": hostname}
    if profile.port is not None:
        updates["port"] = profile.port
    if profile.secure is not None:
        if profile.secure:
            updates["secure"] = True
        else:
            updates["no_secure"] = True
    if profile.user is not None:
        updates["user"] = profile.user
    if profile.password is not None:
        updates["password"] = profile.password
    if profile.database is not None:
        updates["database"] = profile.database
    if profile.history_file is not None:
        updates["history_file"] = _expand_home(profile.history_file, home)
    if profile.history_max_entries is not None:
        updates["history_max_entries"] = profile.history_max_entries
    if profile.accept_invalid_certificate is not None:
        updates["accept_invalid_certificate"] = profile.accept_invalid_certificate
    if profile.prompt is not None:
        updates["prompt"] = profile.prompt

    resolved_hosts = list(hosts)
    if resolved_hosts:
        first = resolved_hosts[0]
        resolved_hosts[0] = HostAndPort(host=hostname, port=first.port)
    return config.with_updates(**updates), resolved_hosts


def _expand_home(path: str, home: str | None) -> str:
    if path.startswith("~"):
        base = home if home is not None else os.path.expanduser("~")
        if base and base != "~":
            return base + "/" + path[1:].lstrip("/")
    return path


# ---------------------------------------------------------------------------
# Security, port, compression
# ---------------------------------------------------------------------------

def infer_security(config: Configuration, host: str, port: int | None = None) -> Security:
    """First match wins: secure, no-secure, cloud suffix, secure port."""
    if config.secure:
        return Security.ENABLED
    if config.no_secure:
        return Security.DISABLED
    if host.endswith(CLOUD_DOMAIN_SUFFIXES):
        return Security.ENABLED
    requested = port if port is not None else config.port
    if requested is not None and requested == config.https_port:
        return Security.ENABLED
    return Security.DISABLED


def port_from_config(config: Configuration, host: str) -> int:
    """Configured port, else the default port for the inferred security."""
    if config.port is not None:
        return config.port
    if infer_security(config, host) is Security.ENABLED:
        return config.https_port
    return config.http_port


def default_hosts(config: Configuration) -> list[HostAndPort]:
    """Single-host list used when no ``--host``/``--port`` was given."""
    host = config.host or DEFAULT_HOST
    return [HostAndPort(host=host, port=port_from_config(config, host))]


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------

def resolve_timeouts(config: Configuration) -> Timeouts:
    """Explicit config value per timeout, else the hard-coded default."""

    def seconds(value: float | None, default: float, name: str) -> timedelta:
        chosen = default if value is None else value
        if chosen < 0:
            raise ArgumentError(f"Timeout {name} must be non-negative, got {chosen}")
        return timedelta(seconds=chosen)

    receive = seconds(config.receive_timeout, DEFAULT_RECEIVE_TIMEOUT_SEC, "receive_timeout")
    handshake_ms = (
        config.handshake_timeout_ms
        if config.handshake_timeout_ms is not None
        else DEFAULT_RECEIVE_TIMEOUT_SEC * 1000
    )
    if handshake_ms < 0:
        raise ArgumentError(f"Timeout handshake_timeout_ms must be non-negative, got {handshake_ms}")

    return Timeouts(
        connect=seconds(config.connect_timeout, DEFAULT_CONNECT_TIMEOUT_SEC, "connect_timeout"),
        send=seconds(config.send_timeout, DEFAULT_SEND_TIMEOUT_SEC, "send_timeout"),
        receive=receive,
        tcp_keep_alive=seconds(
            config.tcp_keep_alive_timeout,
            DEFAULT_TCP_KEEP_ALIVE_TIMEOUT_SEC,
            "tcp_keep_alive_timeout",
        ),
        handshake=timedelta(milliseconds=handshake_ms),
        sync_request=seconds(
            config.sync_request_timeout,
            DEFAULT_SYNC_REQUEST_TIMEOUT_SEC,
            "sync_request_timeout",
        ),
    )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class CredentialResolver:
    """Builds one :class:`ConnectionParameters` per target host.

    Parameters
    ----------
    secret_provider:
        Source for passwords and passphrases the user must type in.
    is_local_host:
        Predicate telling whether a host resolves to a loopback address;
        drives the compression default.  ``"localhost"`` is recognised
        without calling it.
    """

    def __init__(
        self,
        secret_provider: SecretProvider,
        *,
        is_local_host: Callable[[str], bool] = lambda host: False,
    ) -> None:
        self._secret_provider: SecretProvider = secret_provider
        self._is_local_host = is_local_host
        self._entered: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, config: Configuration, target: HostAndPort) -> ConnectionParameters:
        """Resolve parameters for a single host.

        Raises
        ------
        ConfigurationConflict
            For mutually exclusive credential settings.
        ArgumentError
            For negative timeouts.
        PasswordRequired
            When the user cancels a password prompt.
        """
        host = target.host
        security = infer_security(config, host, target.port)
        port = target.port if target.port is not None else port_from_config(config, host)
        user, credential = self._resolve_credential(config)

        return ConnectionParameters(
            host=host,
            port=port,
            user=user,
            credential=credential,
            default_database=config.database or "",
            security=security,
            compression=self._resolve_compression(config, host),
            quota_key=config.quota_key or "",
            timeouts=resolve_timeouts(config),
            proto_caps=ProtoCaps(send=config.proto_caps_send, recv=config.proto_caps_recv),
            bind_host=config.bind_host or "",
            accept_invalid_certificate=config.accept_invalid_certificate,
        )

    def resolve_all(
        self,
        config: Configuration,
        hosts: Sequence[HostAndPort],
    ) -> list[ConnectionParameters]:
        return [self.resolve(config, target) for target in hosts]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_compression(self, config: Configuration, host: str) -> Compression:
        if config.compression is not None:
            enabled = config.compression
        else:
            enabled = host != DEFAULT_HOST and not self._is_local_host(host)
        return Compression.ENABLED if enabled else Compression.DISABLED

    def _resolve_credential(self, config: Configuration) -> tuple[str, Credential]:
        user = config.user if config.user is not None else DEFAULT_USER

        if config.jwt is not None:
            # Only a user given on the command line conflicts; lower layers are ignored.
            if config.user_from_command_line and config.user not in (None, "", DEFAULT_USER):
                raise ConfigurationConflict(
                    "User and JWT flags can't be specified together",
                    hint="The user name is taken from the JWT; drop --user.",
                )
            return "", JwtCredential(token=config.jwt)

        if config.ssh_key_file is not None:
            passphrase = config.ssh_key_passphrase
            if passphrase is None:
                passphrase = self._ask(SSH_PASSPHRASE_PROMPT)
            return user, SshKeyCredential(key_file=config.ssh_key_file, passphrase=passphrase)

        prompt_for_password = False
        password = ""
        if config.ask_password:
            if config.password is not None:
                raise ConfigurationConflict(
                    "Specified both --password and --ask-password. Remove one of them",
                )
            prompt_for_password = True
        else:
            password = config.password or ""
            if password == ASK_PASSWORD:
                prompt_for_password = True

        if prompt_for_password:
            password = self._ask(f"Password for user ({user}): ")
        return user, PasswordCredential(password=password)

    def _ask(self, prompt: str) -> str:
        # Failover re-resolves every host; ask the user only once.
        if prompt not in self._entered:
            self._entered[prompt] = self._secret_provider.read_secret(prompt)
        return self._entered[prompt]
