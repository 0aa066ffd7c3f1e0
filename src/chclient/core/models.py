"""Domain models for chclient.

All models are **frozen** dataclasses — immutable value objects with no
behaviour beyond data access and a few derived properties.  They carry
zero I/O and remain pure across the entire bootstrap lifecycle.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta, tzinfo
from typing import TYPE_CHECKING, Union

from chclient.exceptions import ChClientError

if TYPE_CHECKING:
    from chclient.core.configuration import Configuration
    from chclient.core.protocols import Connection


# ---------------------------------------------------------------------------
# Argument tokenizer output
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class HostAndPort:
    """One failover candidate.  ``port`` is resolved later when ``None``."""

    host: str
    port: int | None = None

    def __str__(self) -> str:
        if self.port is None:
            return self.host
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class ExternalTable:
    """A temporary table shipped alongside a query (``--external`` group)."""

    file: str | None
    name: str = "_data"
    format: str = "TabSeparated"
    structure: str | None = None
    types: str | None = None

    @property
    def reads_stdin(self) -> bool:
        return self.file == "-"


@dataclass(frozen=True, slots=True)
class TokenizedArguments:
    """Normalised argument groups produced by the tokenizer."""

    common: tuple[str, ...]
    """Tokens this layer does not understand, passed through untouched."""

    external_tables: tuple[tuple[str, ...], ...]
    """One raw token group per ``--external`` marker."""

    hosts_and_ports: tuple[tuple[str, ...], ...]
    """Raw ``--host=``/``--port=`` groups in failover order."""

    query_parameters: Mapping[str, str] = field(default_factory=dict)
    """Values of ``--param_<name>`` flags."""

    used_connection_string: bool = False


# ---------------------------------------------------------------------------
# Connection parameters
# ---------------------------------------------------------------------------

class Security(enum.Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"


class Compression(enum.Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"


@dataclass(frozen=True, slots=True)
class Timeouts:
    """Per-connection timeouts.  All values are non-negative."""

    connect: timedelta
    send: timedelta
    receive: timedelta
    tcp_keep_alive: timedelta
    handshake: timedelta
    sync_request: timedelta


@dataclass(frozen=True, slots=True)
class ProtoCaps:
    """Chunked-transfer capability flags announced to the server."""

    send: str = "notchunked"
    recv: str = "notchunked"


@dataclass(frozen=True, slots=True)
class PasswordCredential:
    password: str = ""

    def __repr__(self) -> str:
        return "PasswordCredential(password=***)"


@dataclass(frozen=True, slots=True)
class SshKeyCredential:
    key_file: str
    passphrase: str = ""

    def __repr__(self) -> str:
        return f"SshKeyCredential(key_file={self.key_file!r}, passphrase=***)"


@dataclass(frozen=True, slots=True)
class JwtCredential:
    token: str

    def __repr__(self) -> str:
        return "JwtCredential(token=***)"


Credential = Union[PasswordCredential, SshKeyCredential, JwtCredential]


@dataclass(frozen=True, slots=True)
class ConnectionParameters:
    """Everything needed to open one connection to one host.

    Exactly one credential mechanism is carried in :attr:`credential`;
    the union type makes the "one of password, SSH key, JWT" rule
    structural rather than checked.
    """

    host: str
    port: int
    user: str
    credential: Credential
    default_database: str
    security: Security
    compression: Compression
    quota_key: str
    timeouts: Timeouts
    proto_caps: ProtoCaps = field(default_factory=ProtoCaps)
    bind_host: str = ""
    accept_invalid_certificate: bool = False

    @property
    def password(self) -> str | None:
        if isinstance(self.credential, PasswordCredential):
            return self.credential.password
        return None

    @property
    def ssh_key(self) -> SshKeyCredential | None:
        if isinstance(self.credential, SshKeyCredential):
            return self.credential
        return None

    @property
    def jwt(self) -> str | None:
        if isinstance(self.credential, JwtCredential):
            return self.credential.token
        return None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


# ---------------------------------------------------------------------------
# Handshake and session facts
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True, order=True)
class ServerVersion:
    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, text: str) -> ServerVersion:
        """Parse ``"24.3.1.2672"``-style strings.

        Missing or non-numeric parts become 0 in their own position.
        """
        pieces = text.strip().split(".")[:3]
        pieces += [""] * (3 - len(pieces))
        parts = [int(piece) if piece.isascii() and piece.isdigit() else 0 for piece in pieces]
        return cls(*parts)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True, slots=True)
class ServerHandshake:
    """Raw handshake response returned by a :class:`Connection`."""

    server_name: str
    server_version: ServerVersion
    server_revision: int
    settings: Mapping[str, str] = field(default_factory=dict)
    timezone: str | None = None
    display_name: str | None = None


@dataclass(frozen=True, slots=True)
class SessionFacts:
    """Facts negotiated by a successful bootstrap; owned by the session."""

    server_name: str
    server_version: ServerVersion
    server_revision: int
    server_display_name: str
    server_timezone: str | None
    settings_from_server: Mapping[str, str]


class VersionComparison(enum.Enum):
    CLIENT_OLDER = "client-older"
    SERVER_OLDER = "server-older"
    EQUAL = "equal"


# ---------------------------------------------------------------------------
# Attempt results (tagged error variant)
# ---------------------------------------------------------------------------

class Severity(enum.Enum):
    FATAL = "fatal"
    RECOVERABLE = "recoverable"


class FailureKind(enum.Enum):
    ARGUMENT = "argument"
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    PASSWORD_REQUIRED = "password-required"
    TRANSPORT = "transport"
    SERVER = "server"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class AttemptFailure:
    """Why a single host attempt failed and whether failover may continue."""

    target: HostAndPort
    severity: Severity
    kind: FailureKind
    error: ChClientError

    @property
    def is_fatal(self) -> bool:
        return self.severity is Severity.FATAL


@dataclass(frozen=True, slots=True)
class ConnectionAttempt:
    """Outcome of trying one host: either a handshake or a failure."""

    target: HostAndPort
    parameters: ConnectionParameters | None = None
    connection: Connection | None = None
    handshake: ServerHandshake | None = None
    failure: AttemptFailure | None = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None and self.handshake is not None


@dataclass(frozen=True, slots=True)
class BootstrapResult:
    """Committed connection plus everything negotiated on the way."""

    connection: Connection
    parameters: ConnectionParameters
    facts: SessionFacts
    configuration: Configuration
    failures: tuple[AttemptFailure, ...] = ()
    version_comparison: VersionComparison | None = None
    session_timezone: tzinfo | None = None
    warnings: tuple[str, ...] = ()
