"""Connection bootstrapper — failover, handshake and session commit.

This is the central service consumed by the CLI layer.  It depends on
an injected :class:`~chclient.core.credentials.CredentialResolver` and a
:class:`~chclient.core.protocols.ConnectionFactory`, keeping the core
free of any transport imports.

Guarantees
----------
* Hosts are tried strictly in order; a fatal failure stops the loop.
* Every failed attempt closes the connection it opened.
* At most one interactive password retry per bootstrap.
* Nothing is printed: progress is reported as :data:`BootstrapEvent`
  values to an optional reporter callable.
* Only :class:`~chclient.exceptions.ChClientError` subclasses escape.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from datetime import tzinfo
from typing import Union
from zoneinfo import ZoneInfo

from chclient.core.configuration import Configuration
from chclient.core.credentials import (
    CredentialResolver,
    apply_connection_profile,
    default_hosts,
)
from chclient.core.models import (
    AttemptFailure,
    BootstrapResult,
    ConnectionAttempt,
    ConnectionParameters,
    FailureKind,
    HostAndPort,
    ServerHandshake,
    ServerVersion,
    SessionFacts,
    Severity,
    VersionComparison,
)
from chclient.core.protocols import Connection, ConnectionFactory
from chclient.core.throttle import Throttler
from chclient.exceptions import (
    ArgumentError,
    AuthenticationFailure,
    ChClientError,
    ConfigurationConflict,
    PasswordRequired,
    ServerError,
    TimezoneAdoptionFailure,
    TransportFailure,
)
from chclient.version import VERSION_TUPLE

LOG = logging.getLogger(__name__)

CLOUD_DISPLAY_NAME = "clickhouse-cloud"

CLIENT_OLDER_ADVISORY = (
    "ClickHouse client version is older than ClickHouse server. "
    "It may lack support for new features."
)
SERVER_OLDER_ADVISORY = (
    "ClickHouse server version is older than ClickHouse client. "
    "It may indicate that the server is out of date and can be upgraded."
)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Connecting:
    host: str
    port: int
    database: str
    user: str


@dataclass(frozen=True, slots=True)
class AttemptFailed:
    target: HostAndPort
    error: ChClientError
    next_host: bool


@dataclass(frozen=True, slots=True)
class Connected:
    server_name: str
    server_version: ServerVersion
    display_name: str


@dataclass(frozen=True, slots=True)
class Advisory:
    comparison: VersionComparison
    message: str


@dataclass(frozen=True, slots=True)
class BootstrapWarning:
    """Non-fatal problem (server warning or timezone fallback)."""

    message: str
    source: str = "server"


BootstrapEvent = Union[Connecting, AttemptFailed, Connected, Advisory, BootstrapWarning]

Reporter = Callable[[BootstrapEvent], None]
TimezoneAdopter = Callable[[str], tzinfo]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

_FATAL_KINDS: tuple[tuple[type[ChClientError], FailureKind], ...] = (
    (AuthenticationFailure, FailureKind.AUTHENTICATION),
    (PasswordRequired, FailureKind.PASSWORD_REQUIRED),
    (ArgumentError, FailureKind.ARGUMENT),
    (ConfigurationConflict, FailureKind.CONFIGURATION),
)

_RECOVERABLE_KINDS: tuple[tuple[type[ChClientError], FailureKind], ...] = (
    (TransportFailure, FailureKind.TRANSPORT),
    (ServerError, FailureKind.SERVER),
)


def classify_failure(target: HostAndPort, error: ChClientError) -> AttemptFailure:
    """Tag *error* with the severity the failover loop acts on."""
    for error_type, kind in _FATAL_KINDS:
        if isinstance(error, error_type):
            return AttemptFailure(target, Severity.FATAL, kind, error)
    for error_type, kind in _RECOVERABLE_KINDS:
        if isinstance(error, error_type):
            return AttemptFailure(target, Severity.RECOVERABLE, kind, error)
    return AttemptFailure(target, Severity.RECOVERABLE, FailureKind.UNKNOWN, error)


def compare_versions(
    client: tuple[int, int, int],
    server: ServerVersion,
) -> VersionComparison:
    if client < server.as_tuple():
        return VersionComparison.CLIENT_OLDER
    if client > server.as_tuple():
        return VersionComparison.SERVER_OLDER
    return VersionComparison.EQUAL


def version_advisory(comparison: VersionComparison, display_name: str) -> str | None:
    """Message for *comparison*, or ``None`` when nothing should be said."""
    if comparison is VersionComparison.CLIENT_OLDER:
        return CLIENT_OLDER_ADVISORY
    if comparison is VersionComparison.SERVER_OLDER and display_name != CLOUD_DISPLAY_NAME:
        return SERVER_OLDER_ADVISORY
    return None


def should_retry_with_password(
    failure: AttemptFailure | None,
    config: Configuration,
    *,
    interactive: bool,
) -> bool:
    """Whether an authentication failure earns one prompted retry."""
    if failure is None or not interactive:
        return False
    if failure.kind not in (FailureKind.AUTHENTICATION, FailureKind.PASSWORD_REQUIRED):
        return False
    return config.password is None and not config.ask_password


# ---------------------------------------------------------------------------
# Bootstrapper
# ---------------------------------------------------------------------------

class ConnectionBootstrapper:
    """Establishes one committed session out of an ordered host list.

    Parameters
    ----------
    resolver:
        Turns configuration plus a host into connection parameters.
    connection_factory:
        Opens a transport connection for resolved parameters.
    reporter:
        Optional sink for :data:`BootstrapEvent` values.
    client_version:
        ``(major, minor, patch)`` announced during the handshake.
    timezone_adopter:
        Maps a server timezone name to a ``tzinfo``; raising means the
        local timezone is kept.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        connection_factory: ConnectionFactory,
        *,
        reporter: Reporter | None = None,
        client_version: tuple[int, int, int] = VERSION_TUPLE,
        timezone_adopter: TimezoneAdopter = ZoneInfo,
    ) -> None:
        self._resolver = resolver
        self._connection_factory = connection_factory
        self._reporter = reporter
        self._client_version = client_version
        self._timezone_adopter = timezone_adopter

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def bootstrap(
        self,
        config: Configuration,
        hosts: Sequence[HostAndPort] = (),
        *,
        interactive: bool = False,
    ) -> BootstrapResult:
        """Connect to the first reachable host and commit the session.

        Raises
        ------
        ChClientError
            The error of the final failed attempt.
        """
        config, targets = apply_connection_profile(config, hosts)
        if not targets:
            targets = default_hosts(config)

        attempt, failures = self._connect(config, targets)
        if should_retry_with_password(attempt.failure, config, interactive=interactive):
            LOG.info("Authentication failed; retrying with a password prompt")
            config = config.with_updates(ask_password=True)
            attempt, retry_failures = self._connect(config, targets)
            failures.extend(retry_failures)

        if attempt.failure is not None:
            raise attempt.failure.error
        return self._commit(config, attempt, failures, interactive=interactive)

    def attempts(
        self,
        config: Configuration,
        hosts: Sequence[HostAndPort],
    ) -> Iterator[ConnectionAttempt]:
        """Lazily try each host in order, yielding one attempt per host."""
        for target in hosts:
            yield self._attempt(config, target)

    # ------------------------------------------------------------------
    # Failover loop
    # ------------------------------------------------------------------

    def _connect(
        self,
        config: Configuration,
        hosts: Sequence[HostAndPort],
    ) -> tuple[ConnectionAttempt, list[AttemptFailure]]:
        failures: list[AttemptFailure] = []
        last: ConnectionAttempt | None = None
        for index, attempt in enumerate(self.attempts(config, hosts)):
            last = attempt
            if attempt.failure is None:
                break
            failures.append(attempt.failure)
            has_next = index + 1 < len(hosts)
            continue_failover = has_next and not attempt.failure.is_fatal
            self._emit(AttemptFailed(attempt.target, attempt.failure.error, continue_failover))
            if not continue_failover:
                break
        if last is None:
            raise ArgumentError("No hosts to connect to")
        return last, failures

    def _attempt(self, config: Configuration, target: HostAndPort) -> ConnectionAttempt:
        parameters: ConnectionParameters | None = None
        connection: Connection | None = None
        try:
            parameters = self._resolver.resolve(config, target)
            self._emit(
                Connecting(
                    host=parameters.host,
                    port=parameters.port,
                    database=parameters.default_database,
                    user=parameters.user,
                )
            )
            connection = self._connection_factory(parameters)
            if config.max_client_network_bandwidth:
                connection.set_throttler(Throttler(config.max_client_network_bandwidth))
            handshake = connection.handshake(self._client_version, parameters.default_database)
        except ChClientError as exc:
            return self._failed(target, parameters, connection, exc)
        except Exception as exc:
            LOG.debug("Unexpected error while connecting to %s", target, exc_info=True)
            return self._failed(target, parameters, connection, ChClientError(str(exc)))

        return ConnectionAttempt(
            target=target,
            parameters=parameters,
            connection=connection,
            handshake=handshake,
        )

    def _failed(
        self,
        target: HostAndPort,
        parameters: ConnectionParameters | None,
        connection: Connection | None,
        error: ChClientError,
    ) -> ConnectionAttempt:
        failure = classify_failure(target, error)
        LOG.debug("Attempt to %s failed (%s): %s", target, failure.severity.value, error)
        if connection is not None:
            connection.close()
        return ConnectionAttempt(target=target, parameters=parameters, failure=failure)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _commit(
        self,
        config: Configuration,
        attempt: ConnectionAttempt,
        failures: list[AttemptFailure],
        *,
        interactive: bool,
    ) -> BootstrapResult:
        connection = attempt.connection
        parameters = attempt.parameters
        handshake = attempt.handshake
        assert connection is not None and parameters is not None and handshake is not None

        config = config.with_updates(host=parameters.host, port=parameters.port)
        facts = self._facts(handshake, parameters)
        self._emit(Connected(facts.server_name, facts.server_version, facts.server_display_name))

        comparison = compare_versions(self._client_version, facts.server_version)
        if interactive and config.version_advisory:
            message = version_advisory(comparison, facts.server_display_name)
            if message is not None:
                self._emit(Advisory(comparison, message))

        warnings: tuple[str, ...] = ()
        if interactive and not config.no_warnings:
            warnings = self._load_warnings(connection)

        session_timezone = None
        if not config.use_client_time_zone:
            session_timezone = self._adopt_timezone(handshake.timezone)

        return BootstrapResult(
            connection=connection,
            parameters=parameters,
            facts=facts,
            configuration=config,
            failures=tuple(failures),
            version_comparison=comparison,
            session_timezone=session_timezone,
            warnings=warnings,
        )

    @staticmethod
    def _facts(handshake: ServerHandshake, parameters: ConnectionParameters) -> SessionFacts:
        return SessionFacts(
            server_name=handshake.server_name,
            server_version=handshake.server_version,
            server_revision=handshake.server_revision,
            server_display_name=handshake.display_name or parameters.host,
            server_timezone=handshake.timezone,
            settings_from_server=dict(handshake.settings),
        )

    def _load_warnings(self, connection: Connection) -> tuple[str, ...]:
        try:
            warnings = tuple(connection.server_warnings())
        except ChClientError as exc:
            LOG.debug("Could not load server warnings: %s", exc)
            return ()
        for message in warnings:
            self._emit(BootstrapWarning(message))
        return warnings

    def _adopt_timezone(self, name: str | None) -> tzinfo | None:
        """Server timezone as ``tzinfo``; ``None`` keeps the local one."""
        if not name:
            self._timezone_warning(
                TimezoneAdoptionFailure(
                    "could not determine server time zone. Proceeding with local time zone.",
                )
            )
            return None
        try:
            return self._timezone_adopter(name)
        except (KeyError, ValueError, OSError, TimezoneAdoptionFailure) as exc:
            self._timezone_warning(
                TimezoneAdoptionFailure(
                    f"could not switch to server time zone: {name}, reason: {exc}. "
                    "Proceeding with local time zone.",
                )
            )
            return None

    def _timezone_warning(self, failure: TimezoneAdoptionFailure) -> None:
        LOG.debug("Timezone adoption failed: %s", failure)
        self._emit(BootstrapWarning(str(failure), source="timezone"))

    def _emit(self, event: BootstrapEvent) -> None:
        if self._reporter is not None:
            self._reporter(event)
