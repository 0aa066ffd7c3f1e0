"""Tests for domain models (core/models.py)."""

from __future__ import annotations

import dataclasses
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from chclient.core.models import (
    AttemptFailure,
    Compression,
    ConnectionAttempt,
    ConnectionParameters,
    ExternalTable,
    FailureKind,
    HostAndPort,
    JwtCredential,
    PasswordCredential,
    Security,
    ServerVersion,
    Severity,
    SshKeyCredential,
    Timeouts,
)
from chclient.exceptions import TransportFailure


def _timeouts() -> Timeouts:
    second = timedelta(seconds=1)
    return Timeouts(second, second, second, second, second, second)


def _params(credential: object) -> ConnectionParameters:
    return ConnectionParameters(
        host="db",
        port=9000,
        user="u",
        credential=credential,  # type: ignore[arg-type]
        default_database="",
        security=Security.DISABLED,
        compression=Compression.DISABLED,
        quota_key="",
        timeouts=_timeouts(),
    )


# ---------------------------------------------------------------------------
# HostAndPort / ExternalTable
# ---------------------------------------------------------------------------

class TestSimpleModels:
    def test_host_and_port_str(self) -> None:
        assert str(HostAndPort("db", 9000)) == "db:9000"
        assert str(HostAndPort("db")) == "db"

    def test_frozen(self) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            HostAndPort("db").host = "x"  # type: ignore[misc]

    def test_external_table_stdin(self) -> None:
        assert ExternalTable(file="-").reads_stdin
        assert not ExternalTable(file="a.tsv").reads_stdin


# ---------------------------------------------------------------------------
# ServerVersion
# ---------------------------------------------------------------------------

class TestServerVersion:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("24.3.1.2672", ServerVersion(24, 3, 1)),
            ("24.3", ServerVersion(24, 3, 0)),
            (" 25.1.2 ", ServerVersion(25, 1, 2)),
            ("24.x.5", ServerVersion(24, 0, 5)),
            ("24.3-beta.7", ServerVersion(24, 0, 7)),
            ("24.\u00b2", ServerVersion(24, 0, 0)),
        ],
    )
    def test_parse(self, text: str, expected: ServerVersion) -> None:
        assert ServerVersion.parse(text) == expected

    def test_ordering(self) -> None:
        assert ServerVersion(24, 3, 1) < ServerVersion(24, 10, 0)
        assert ServerVersion(25, 1, 0) > ServerVersion(24, 12, 9)

    def test_str(self) -> None:
        assert str(ServerVersion(25, 3, 1)) == "25.3.1"


# ---------------------------------------------------------------------------
# ConnectionParameters
# ---------------------------------------------------------------------------

class TestConnectionParameters:
    def test_password_accessors(self) -> None:
        params = _params(PasswordCredential("pw"))
        assert params.password == "pw"
        assert params.ssh_key is None
        assert params.jwt is None
        assert params.address == "db:9000"

    def test_ssh_accessors(self) -> None:
        params = _params(SshKeyCredential("/key", "pp"))
        assert params.ssh_key == SshKeyCredential("/key", "pp")
        assert params.password is None

    def test_jwt_accessors(self) -> None:
        params = _params(JwtCredential("tok"))
        assert params.jwt == "tok"
        assert params.password is None

    @pytest.mark.parametrize(
        "credential",
        [PasswordCredential("secret"), SshKeyCredential("/k", "secret"), JwtCredential("secret")],
    )
    def test_secrets_masked(self, credential: object) -> None:
        assert "secret" not in repr(credential)


# ---------------------------------------------------------------------------
# Attempts
# ---------------------------------------------------------------------------

class TestAttempts:
    def test_failed_attempt(self) -> None:
        failure = AttemptFailure(
            HostAndPort("db"), Severity.RECOVERABLE, FailureKind.TRANSPORT, TransportFailure("x")
        )
        attempt = ConnectionAttempt(target=HostAndPort("db"), failure=failure)
        assert not attempt.succeeded
        assert not failure.is_fatal

    def test_successful_attempt(self) -> None:
        attempt = ConnectionAttempt(
            target=HostAndPort("db"), connection=MagicMock(), handshake=MagicMock()
        )
        assert attempt.succeeded
