"""Smoke tests — verify package wiring.

These tests prove that:
* The CLI entry point is importable and callable.
* The exception hierarchy is correctly structured and carries codes.
* Version is accessible.
* Exit codes are defined and derived from error codes.
"""

from __future__ import annotations

import pytest

from chclient import __version__
from chclient.cli import exit_codes
from chclient.cli.app import main
from chclient.exceptions import (
    ArgumentError,
    AuthenticationFailure,
    ChClientError,
    ConfigFileError,
    ConfigurationConflict,
    EnvironmentError,
    PasswordRequired,
    ProfileNotFoundError,
    ServerError,
    TimezoneAdoptionFailure,
    TransportFailure,
    UnsupportedAuthenticationError,
)
from chclient.version import VERSION_TUPLE


# ---------------------------------------------------------------------------
# Version
# ---------------------------------------------------------------------------

class TestVersion:
    def test_version_is_string(self) -> None:
        assert isinstance(__version__, str)

    def test_version_is_semver_like(self) -> None:
        parts = __version__.split(".")
        assert len(parts) == 3
        assert all(part.isdigit() for part in parts)

    def test_version_tuple_matches(self) -> None:
        assert ".".join(str(part) for part in VERSION_TUPLE) == __version__


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------

class TestExceptions:
    @pytest.mark.parametrize(
        "exc_class",
        [
            ArgumentError,
            ConfigurationConflict,
            ProfileNotFoundError,
            UnsupportedAuthenticationError,
            ConfigFileError,
            AuthenticationFailure,
            PasswordRequired,
            TransportFailure,
            ServerError,
            TimezoneAdoptionFailure,
            EnvironmentError,
        ],
    )
    def test_all_exceptions_inherit_from_base(
        self, exc_class: type[ChClientError]
    ) -> None:
        assert issubclass(exc_class, ChClientError)

    @pytest.mark.parametrize(
        ("exc_class", "code"),
        [
            (ArgumentError, 36),
            (ConfigurationConflict, 36),
            (ProfileNotFoundError, 139),
            (UnsupportedAuthenticationError, 344),
            (AuthenticationFailure, 516),
            (PasswordRequired, 194),
            (TransportFailure, 210),
            (ServerError, None),
        ],
    )
    def test_default_codes(self, exc_class: type[ChClientError], code: int | None) -> None:
        assert exc_class("boom").code == code

    def test_explicit_code_wins(self) -> None:
        assert ServerError("boom", code=60).code == 60

    def test_hint_is_stored(self) -> None:
        err = ChClientError("boom", hint="try this")
        assert str(err) == "boom"
        assert err.hint == "try this"

    def test_hint_defaults_to_none(self) -> None:
        assert ChClientError("boom").hint is None


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

class TestExitCodes:
    def test_constants(self) -> None:
        assert exit_codes.SUCCESS == 0
        assert exit_codes.GENERAL_ERROR == 1
        assert exit_codes.UNEXPECTED_ERROR == 2
        assert exit_codes.KEYBOARD_INTERRUPT == 130

    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (ArgumentError("x"), 36),
            (AuthenticationFailure("x"), 516 % 256),
            (ServerError("x", code=512), 255),
            (ChClientError("x"), 1),
        ],
    )
    def test_from_error(self, error: ChClientError, status: int) -> None:
        assert exit_codes.from_error(error) == status


# ---------------------------------------------------------------------------
# CLI routing
# ---------------------------------------------------------------------------

class TestCLIRouting:
    def test_version_flag(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0

    def test_help_flag(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--help"])
        assert exc_info.value.code == 0
