"""Protocols (interfaces) consumed by the core layer.

These define the contracts that infrastructure adapters and the CLI
layer must satisfy.  Core code depends ONLY on these protocols — never
on concrete implementations — preserving the dependency inversion
principle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from chclient.core.models import ConnectionParameters, ServerHandshake
    from chclient.core.throttle import Throttler


class SecretProvider(Protocol):
    """Source of secrets the user must type in (passwords, passphrases).

    The terminal implementation performs a masked, blocking read; tests
    substitute a fake that returns canned values.
    """

    def read_secret(self, prompt: str) -> str:
        """Return the secret entered for *prompt*.

        Raises
        ------
        PasswordRequired
            When the user cancels the prompt.
        """
        ...  # pragma: no cover


class Connection(Protocol):
    """An open (but not yet handshaken) connection to one server.

    Implementations must map all transport-specific exceptions to
    :class:`~chclient.exceptions.ChClientError` subclasses.
    """

    def set_throttler(self, throttler: Throttler) -> None:
        """Attach a bandwidth policy applied to all subsequent traffic."""
        ...  # pragma: no cover

    def handshake(
        self,
        client_version: tuple[int, int, int],
        default_database: str,
    ) -> ServerHandshake:
        """Exchange versions and pull server-pushed settings.

        Raises
        ------
        AuthenticationFailure
            When the server rejects the credentials.
        PasswordRequired
            When the server demands a password.
        TransportFailure
            For network, timeout and protocol failures.
        """
        ...  # pragma: no cover

    def server_warnings(self) -> list[str]:
        """Return the server's pending warning messages."""
        ...  # pragma: no cover

    def close(self) -> None:
        """Release the connection (idempotent)."""
        ...  # pragma: no cover


class ConnectionFactory(Protocol):
    """Opens a :class:`Connection` for resolved parameters."""

    def __call__(self, parameters: ConnectionParameters) -> Connection:
        ...  # pragma: no cover
