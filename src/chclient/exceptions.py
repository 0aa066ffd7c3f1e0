"""Custom exception hierarchy for chclient.

All exceptions that cross layer boundaries must inherit from
:class:`ChClientError`.  Raw third-party exceptions (httpx, tomllib,
pydantic, zoneinfo) must NEVER propagate beyond the layer that calls the
library — they are caught there and re-raised as a typed subclass
defined here.

Every error may carry a numeric ``code``.  The CLI error boundary turns
that code into the process exit status.

Hierarchy
---------
ChClientError
├── ArgumentError
├── ConfigurationConflict
│   ├── ProfileNotFoundError
│   └── UnsupportedAuthenticationError
├── ConfigFileError
├── AuthenticationFailure
├── PasswordRequired
├── TransportFailure
├── ServerError
├── TimezoneAdoptionFailure
└── EnvironmentError
"""

from __future__ import annotations


class ErrorCodes:
    """Numeric error codes shared with the server's error namespace."""

    BAD_ARGUMENTS: int = 36
    NO_ELEMENTS_IN_CONFIG: int = 139
    REQUIRED_PASSWORD: int = 194
    NETWORK_ERROR: int = 210
    SUPPORT_IS_DISABLED: int = 344
    AUTHENTICATION_FAILED: int = 516


class ChClientError(Exception):
    """Base exception for all chclient errors.

    Every user-visible error condition must map to a subclass of this
    exception so that the CLI error boundary can render a clean message
    without leaking internal stack traces.
    """

    default_code: int | None = None

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.hint: str | None = hint
        """Optional actionable guidance shown below the error message."""
        self.code: int | None = code if code is not None else self.default_code
        """Numeric error code, used as the process exit status."""


# --- Argument / configuration errors (reported before any network I/O) -----

class ArgumentError(ChClientError):
    """Raised for a malformed argument vector or a missing flag value."""

    default_code = ErrorCodes.BAD_ARGUMENTS


class ConfigurationConflict(ChClientError):
    """Raised when configuration values cannot be combined."""

    default_code = ErrorCodes.BAD_ARGUMENTS


class ProfileNotFoundError(ConfigurationConflict):
    """Raised when an explicitly selected connection profile does not exist."""

    default_code = ErrorCodes.NO_ELEMENTS_IN_CONFIG


class UnsupportedAuthenticationError(ConfigurationConflict):
    """Raised when the transport cannot use the configured credential."""

    default_code = ErrorCodes.SUPPORT_IS_DISABLED


class ConfigFileError(ChClientError):
    """Raised when the configuration file cannot be read or parsed."""

    default_code = ErrorCodes.BAD_ARGUMENTS


# --- Connection errors ------------------------------------------------------

class AuthenticationFailure(ChClientError):
    """Raised when the server rejects the supplied credentials."""

    default_code = ErrorCodes.AUTHENTICATION_FAILED


class PasswordRequired(ChClientError):
    """Raised when the server demands a password that was not supplied."""

    default_code = ErrorCodes.REQUIRED_PASSWORD


class TransportFailure(ChClientError):
    """Raised for DNS, connect, timeout and protocol-level failures."""

    default_code = ErrorCodes.NETWORK_ERROR


class ServerError(ChClientError):
    """Raised when the server answers a handshake query with an exception."""


class TimezoneAdoptionFailure(ChClientError):
    """Raised when the server timezone cannot be adopted (never fatal)."""


# --- Environment / tooling --------------------------------------------------

class EnvironmentError(ChClientError):
    """Raised when a required runtime dependency is not available."""
