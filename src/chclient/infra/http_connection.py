"""httpx-backed implementation of :class:`~chclient.core.protocols.Connection`.

Speaks the server's HTTP interface just far enough to bootstrap a
session: version, revision, timezone, display name, changed settings
and pending warnings.  It is not a query protocol implementation.

This module is the **only** place in the codebase that imports
``httpx``.  All httpx exceptions and server error responses are
re-raised as typed :class:`~chclient.exceptions.ChClientError`
subclasses; nothing raw escapes the infrastructure boundary.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from chclient.core.models import (
    Compression,
    ConnectionParameters,
    Security,
    ServerHandshake,
    ServerVersion,
)
from chclient.core.throttle import Throttler
from chclient.exceptions import (
    AuthenticationFailure,
    ChClientError,
    ErrorCodes,
    PasswordRequired,
    ServerError,
    TransportFailure,
    UnsupportedAuthenticationError,
)

LOG = logging.getLogger(__name__)

SERVER_NAME = "ClickHouse"
EXCEPTION_CODE_HEADER = "X-ClickHouse-Exception-Code"

HANDSHAKE_QUERY = "SELECT version(), revision(), timezone(), displayName() FORMAT JSONCompact"
SETTINGS_QUERY = "SELECT name, value FROM system.settings WHERE changed FORMAT JSONCompact"
WARNINGS_QUERY = "SELECT message FROM system.warnings FORMAT JSONCompact"


def build_headers(
    parameters: ConnectionParameters,
    client_version: tuple[int, int, int] | None = None,
) -> dict[str, str]:
    """Authentication and identification headers for *parameters*."""
    headers: dict[str, str] = {}
    if parameters.jwt is not None:
        headers["Authorization"] = f"Bearer {parameters.jwt}"
    else:
        headers["X-ClickHouse-User"] = parameters.user
        if parameters.password:
            headers["X-ClickHouse-Key"] = parameters.password
    if parameters.quota_key:
        headers["X-ClickHouse-Quota"] = parameters.quota_key
    if parameters.default_database:
        headers["X-ClickHouse-Database"] = parameters.default_database
    if client_version is not None:
        headers["User-Agent"] = "chclient/" + ".".join(str(part) for part in client_version)
    return headers


def exception_code(raw: str | None) -> int | None:
    """Numeric value of the exception-code header, if it carries one."""
    if raw is None:
        return None
    raw = raw.strip()
    if not (raw.isascii() and raw.isdigit()):
        return None
    return int(raw)


def base_url(parameters: ConnectionParameters) -> str:
    scheme = "https" if parameters.security is Security.ENABLED else "http"
    host = parameters.host
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"{scheme}://{host}:{parameters.port}"


class HttpConnection:
    """One session's worth of HTTP requests against a single server.

    Usage::

        connection = HttpConnection(parameters)
        handshake = connection.handshake((25, 3, 1), "default")
        connection.close()

    Satisfies :class:`~chclient.core.protocols.Connection` structurally.
    """

    def __init__(
        self,
        parameters: ConnectionParameters,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if parameters.ssh_key is not None:
            raise UnsupportedAuthenticationError(
                "SSH key authentication is not supported over the HTTP interface",
                hint="Authenticate with --password or --jwt instead.",
            )

        self._parameters = parameters
        self._throttler: Throttler | None = None
        self._closed = False

        timeouts = parameters.timeouts
        if transport is None:
            transport = httpx.HTTPTransport(
                verify=not parameters.accept_invalid_certificate,
                local_address=parameters.bind_host or None,
                limits=httpx.Limits(
                    keepalive_expiry=timeouts.tcp_keep_alive.total_seconds(),
                ),
            )
        self._client = httpx.Client(
            base_url=base_url(parameters),
            headers=build_headers(parameters),
            timeout=httpx.Timeout(
                connect=timeouts.connect.total_seconds(),
                read=timeouts.receive.total_seconds(),
                write=timeouts.send.total_seconds(),
                pool=timeouts.connect.total_seconds(),
            ),
            transport=transport,
        )
        LOG.debug("Opened HTTP connection to %s", base_url(parameters))

    # ------------------------------------------------------------------
    # Protocol methods
    # ------------------------------------------------------------------

    def set_throttler(self, throttler: Throttler) -> None:
        self._throttler = throttler

    def handshake(
        self,
        client_version: tuple[int, int, int],
        default_database: str,
    ) -> ServerHandshake:
        """Pull server identity and changed settings.

        Raises
        ------
        AuthenticationFailure
            When the server rejects the credentials.
        PasswordRequired
            When the server demands a password.
        ServerError
            For any other server-side exception.
        TransportFailure
            For network, TLS, timeout and malformed-response failures.
        """
        self._client.headers.update(build_headers(self._parameters, client_version))
        read_timeout = self._parameters.timeouts.handshake.total_seconds()

        rows = self._query(HANDSHAKE_QUERY, database=default_database, read_timeout=read_timeout)
        if not rows or len(rows[0]) < 4:
            raise TransportFailure(f"Unexpected handshake response from {self._parameters.address}")
        version, revision, timezone, display_name = rows[0][:4]
        try:
            server_revision = int(revision)
        except (TypeError, ValueError) as exc:
            raise TransportFailure(f"Unexpected server revision {revision!r}") from exc

        settings_rows = self._query(
            SETTINGS_QUERY, database=default_database, read_timeout=read_timeout
        )
        return ServerHandshake(
            server_name=SERVER_NAME,
            server_version=ServerVersion.parse(str(version)),
            server_revision=server_revision,
            settings={str(row[0]): str(row[1]) for row in settings_rows},
            timezone=str(timezone or "") or None,
            display_name=str(display_name or "") or None,
        )

    def server_warnings(self) -> list[str]:
        rows = self._query(
            WARNINGS_QUERY,
            read_timeout=self._parameters.timeouts.sync_request.total_seconds(),
        )
        return [str(row[0]) for row in rows]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._client.close()

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def _query(
        self,
        sql: str,
        *,
        database: str = "",
        read_timeout: float | None = None,
    ) -> list[list[Any]]:
        params: dict[str, str] = {}
        if database:
            params["database"] = database
        if self._parameters.compression is Compression.ENABLED:
            params["enable_http_compression"] = "1"

        body = sql.encode()
        if self._throttler is not None:
            self._throttler.add(len(body))

        timeout = self._client.timeout
        if read_timeout is not None:
            timeout = httpx.Timeout(
                connect=timeout.connect,
                read=read_timeout,
                write=timeout.write,
                pool=timeout.pool,
            )

        try:
            response = self._client.post("/", content=body, params=params, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise TransportFailure(
                f"Timeout exceeded while talking to {self._parameters.address}: {exc}",
            ) from exc
        except httpx.TransportError as exc:
            raise TransportFailure(
                f"Cannot connect to {self._parameters.address}: {exc}",
                hint="Check the host, the port and whether --secure is needed.",
            ) from exc

        if self._throttler is not None:
            self._throttler.add(len(response.content))

        if response.status_code != httpx.codes.OK:
            raise self._error_from_response(response)

        try:
            payload = response.json()
            return list(payload["data"])
        except (ValueError, KeyError, TypeError) as exc:
            raise TransportFailure(
                f"Malformed response from {self._parameters.address}",
            ) from exc

    def _error_from_response(self, response: httpx.Response) -> ChClientError:
        message = response.text.strip() or f"HTTP {response.status_code}"
        code = exception_code(response.headers.get(EXCEPTION_CODE_HEADER))

        if code == ErrorCodes.AUTHENTICATION_FAILED:
            return AuthenticationFailure(message)
        if code == ErrorCodes.REQUIRED_PASSWORD:
            return PasswordRequired(message)
        if code is None and response.status_code in (
            httpx.codes.UNAUTHORIZED,
            httpx.codes.FORBIDDEN,
        ):
            return AuthenticationFailure(message)
        return ServerError(message, code=code)


class HttpConnectionFactory:
    """Opens :class:`HttpConnection` instances.

    Parameters
    ----------
    transport:
        Optional httpx transport shared by every connection, used by
        tests to plug in ``httpx.MockTransport``.
    """

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        self._transport = transport

    def __call__(self, parameters: ConnectionParameters) -> HttpConnection:
        return HttpConnection(parameters, transport=self._transport)
