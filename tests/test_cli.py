"""Tests for the CLI layer (cli/app.py, cli/reporter.py, cli/password_prompt.py).

``main`` is driven end to end with a fake connection factory and an
explicit, empty environment; the error boundary ``cli`` is exercised by
monkeypatching ``main``.
"""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from chclient.cli import app, exit_codes
from chclient.cli.app import main
from chclient.cli.password_prompt import QuestionarySecretProvider
from chclient.cli.reporter import ConsoleBootstrapReporter
from chclient.core.bootstrap import (
    Advisory,
    AttemptFailed,
    BootstrapWarning,
    Connected,
    Connecting,
)
from chclient.core.models import (
    ConnectionParameters,
    HostAndPort,
    ServerHandshake,
    ServerVersion,
    VersionComparison,
)
from chclient.exceptions import (
    ArgumentError,
    AuthenticationFailure,
    ConfigFileError,
    ConfigurationConflict,
    PasswordRequired,
    ProfileNotFoundError,
    TransportFailure,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _handshake(display_name: str | None = "srv") -> ServerHandshake:
    return ServerHandshake(
        server_name="ClickHouse",
        server_version=ServerVersion(25, 3, 1),
        server_revision=54477,
        settings={"max_threads": "4"},
        timezone="UTC",
        display_name=display_name,
    )


def _factory(*results: ServerHandshake | Exception) -> MagicMock:
    """Factory handing out one mock connection per result, in order."""
    connections = []
    for result in results or (_handshake(),):
        connection = MagicMock()
        if isinstance(result, Exception):
            connection.handshake.side_effect = result
        else:
            connection.handshake.return_value = result
        connections.append(connection)
    return MagicMock(side_effect=connections)


def _run(argv: list[str], factory: MagicMock, **kwargs: object) -> int:
    kwargs.setdefault("environ", {})
    kwargs.setdefault("interactive", False)
    return main(argv, connection_factory=factory, **kwargs)  # type: ignore[arg-type]


def _parameters(factory: MagicMock, index: int = 0) -> ConnectionParameters:
    return factory.call_args_list[index].args[0]


# ---------------------------------------------------------------------------
# main(): successful bootstraps
# ---------------------------------------------------------------------------

@pytest.mark.usefixtures("isolated_cwd")
class TestMain:
    def test_defaults_connect_to_localhost(self, capsys: pytest.CaptureFixture[str]) -> None:
        factory = _factory()
        assert _run([], factory) == exit_codes.SUCCESS

        params = _parameters(factory)
        assert (params.host, params.port, params.user) == ("localhost", 8123, "default")
        assert capsys.readouterr().out == "srv :) \n"

    def test_explicit_host_port_user(self) -> None:
        factory = _factory()
        _run(["--host", "127.0.0.1", "--port", "9100", "--user", "alice", "--password", "pw"], factory)

        params = _parameters(factory)
        assert (params.host, params.port, params.user) == ("127.0.0.1", 9100, "alice")
        assert params.password == "pw"

    def test_connection_string(self) -> None:
        factory = _factory()
        _run(["clickhouse://alice@127.0.0.1:9100/analytics"], factory)

        params = _parameters(factory)
        assert (params.host, params.port, params.user) == ("127.0.0.1", 9100, "alice")
        assert params.default_database == "analytics"

    def test_environment_user(self) -> None:
        factory = _factory()
        _run([], factory, environ={"CLICKHOUSE_USER": "bob", "CLICKHOUSE_PASSWORD": "pw"})

        params = _parameters(factory)
        assert params.user == "bob"
        assert params.password == "pw"

    def test_command_line_beats_environment(self) -> None:
        factory = _factory()
        _run(["--user", "alice"], factory, environ={"CLICKHOUSE_USER": "bob"})
        assert _parameters(factory).user == "alice"

    def test_failover_to_second_host(self) -> None:
        factory = _factory(TransportFailure("refused"), _handshake())
        assert _run(["--host", "127.0.0.2", "--host", "127.0.0.1"], factory) == 0

        assert factory.call_count == 2
        assert _parameters(factory, 1).host == "127.0.0.1"

    def test_bare_password_prompts(self) -> None:
        provider = MagicMock()
        provider.read_secret.return_value = "typed"
        factory = _factory()

        _run(["--password", "--host", "127.0.0.1"], factory, secret_provider=provider)

        provider.read_secret.assert_called_once_with("Password for user (default): ")
        assert _parameters(factory).password == "typed"

    def test_explicit_prompt(self, capsys: pytest.CaptureFixture[str]) -> None:
        _run(["--prompt", "{user}@{host}"], _factory())
        assert capsys.readouterr().out == "default@localhost :) \n"

    def test_jwt_with_environment_user(self) -> None:
        factory = _factory()
        _run(["--jwt", "token"], factory, environ={"CLICKHOUSE_USER": "bob"})

        params = _parameters(factory)
        assert params.jwt == "token"
        assert params.user == ""

    def test_unknown_option_is_ignored(self) -> None:
        factory = _factory()
        assert _run(["--max_threads=4"], factory) == exit_codes.SUCCESS

    def test_query_parameters_and_external_tables_are_accepted(self) -> None:
        factory = _factory()
        argv = ["--param_id=7", "--external", "--file=data.tsv", "--name=t", "--types=UInt8"]
        assert _run(argv, factory) == exit_codes.SUCCESS


# ---------------------------------------------------------------------------
# main(): configuration files and profiles
# ---------------------------------------------------------------------------

class TestConfigFile:
    def test_profile_from_config_file(
        self, isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        (isolated_cwd / "clickhouse-client.toml").write_text(
            "[[connections_credentials]]\n"
            'name = "prod"\n'
            'hostname = "127.0.0.1"\n'
            "port = 9200\n"
            'user = "carol"\n'
            'prompt = "prod"\n'
        )
        factory = _factory()
        _run(["--connection", "prod"], factory)

        params = _parameters(factory)
        assert (params.host, params.port, params.user) == ("127.0.0.1", 9200, "carol")
        assert capsys.readouterr().out == "prod :) \n"

    def test_unknown_profile(self, isolated_cwd: Path) -> None:
        (isolated_cwd / "clickhouse-client.toml").write_text('user = "carol"\n')
        with pytest.raises(ProfileNotFoundError):
            _run(["--connection", "missing"], _factory())

    def test_connection_without_config_file(self, isolated_cwd: Path) -> None:
        with pytest.raises(ArgumentError, match="config does not exist"):
            _run(["--connection", "prod"], _factory())

    def test_explicit_missing_config(self, isolated_cwd: Path) -> None:
        with pytest.raises(ConfigFileError, match="does not exist"):
            _run(["--config", str(isolated_cwd / "nope.toml")], _factory())

    def test_file_values_are_overridden_by_flags(self, isolated_cwd: Path) -> None:
        config = isolated_cwd / "custom.toml"
        config.write_text('user = "carol"\ndatabase = "logs"\n')
        factory = _factory()
        _run(["-c", str(config), "--user", "alice"], factory)

        params = _parameters(factory)
        assert params.user == "alice"
        assert params.default_database == "logs"


# ---------------------------------------------------------------------------
# main(): failures
# ---------------------------------------------------------------------------

@pytest.mark.usefixtures("isolated_cwd")
class TestMainFailures:
    def test_bad_timeout_type(self) -> None:
        with pytest.raises(ArgumentError):
            _run(["--connect_timeout", "soon"], _factory())

    def test_negative_timeout(self) -> None:
        with pytest.raises(ArgumentError, match="non-negative"):
            _run(["--connect_timeout", "-1"], _factory())

    def test_bad_port(self) -> None:
        with pytest.raises(ArgumentError, match="Invalid port"):
            _run(["--port", "http"], _factory())

    def test_jwt_with_user_flag(self) -> None:
        factory = _factory()
        with pytest.raises(ConfigurationConflict, match="JWT"):
            _run(["--jwt", "token", "--user", "bob"], factory)
        factory.assert_not_called()

    def test_authentication_failure_is_raised(self) -> None:
        factory = _factory(AuthenticationFailure("bad password"))
        with pytest.raises(AuthenticationFailure):
            _run([], factory)

    def test_all_hosts_failing_raises_last_error(self) -> None:
        factory = _factory(TransportFailure("first"), TransportFailure("second"))
        with pytest.raises(TransportFailure, match="second"):
            _run(["--host", "127.0.0.2", "--host", "127.0.0.3"], factory)


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------

@pytest.mark.usefixtures("isolated_cwd")
class TestConnectionLifecycle:
    def test_committed_connection_is_closed(self) -> None:
        connection = MagicMock()
        connection.handshake.return_value = _handshake()
        factory = MagicMock(return_value=connection)

        _run([], factory)

        connection.close.assert_called_once_with()

    def test_failed_connection_is_closed(self) -> None:
        failed = MagicMock()
        failed.handshake.side_effect = TransportFailure("refused")
        ok = MagicMock()
        ok.handshake.return_value = _handshake()
        factory = MagicMock(side_effect=[failed, ok])

        _run(["--host", "127.0.0.2", "--host", "127.0.0.1"], factory)

        failed.close.assert_called_once_with()
        ok.close.assert_called_once_with()


# ---------------------------------------------------------------------------
# cli(): error boundary
# ---------------------------------------------------------------------------

class TestErrorBoundary:
    def _cli_with(self, monkeypatch: pytest.MonkeyPatch, error: BaseException) -> int:
        def _raise() -> int:
            raise error

        monkeypatch.setattr(app, "main", _raise)
        with pytest.raises(SystemExit) as exc_info:
            app.cli()
        return exc_info.value.code  # type: ignore[return-value]

    def test_success_exit_code(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(app, "main", lambda: exit_codes.SUCCESS)
        with pytest.raises(SystemExit) as exc_info:
            app.cli()
        assert exc_info.value.code == 0

    def test_chclient_error(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code = self._cli_with(monkeypatch, AuthenticationFailure("denied", hint="check it"))
        assert code == 516 % 256
        err = capsys.readouterr().err
        assert "denied" in err
        assert "check it" in err

    def test_keyboard_interrupt(self, monkeypatch: pytest.MonkeyPatch) -> None:
        assert self._cli_with(monkeypatch, KeyboardInterrupt()) == exit_codes.KEYBOARD_INTERRUPT

    def test_unexpected_error(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert self._cli_with(monkeypatch, RuntimeError("kaboom")) == exit_codes.UNEXPECTED_ERROR
        assert "RuntimeError: kaboom" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Reporter
# ---------------------------------------------------------------------------

class TestReporter:
    @pytest.fixture
    def printed(self, monkeypatch: pytest.MonkeyPatch) -> MagicMock:
        fake = MagicMock()
        monkeypatch.setattr("chclient.cli.reporter.console", fake)
        return fake

    def _lines(self, printed: MagicMock) -> list[str]:
        return [str(call.args[0]) for call in printed.print.call_args_list]

    def test_connecting_is_interactive_only(self, printed: MagicMock) -> None:
        event = Connecting(host="db", port=8123, database="logs", user="alice")

        ConsoleBootstrapReporter(interactive=False)(event)
        assert printed.print.call_count == 0

        ConsoleBootstrapReporter(interactive=True)(event)
        assert self._lines(printed) == ["Connecting to database logs at db:8123 as user alice."]

    def test_connecting_without_user(self, printed: MagicMock) -> None:
        ConsoleBootstrapReporter(interactive=True)(
            Connecting(host="db", port=8123, database="", user="")
        )
        assert self._lines(printed) == ["Connecting to db:8123."]

    def test_attempt_failed_always_shown(self, printed: MagicMock) -> None:
        reporter = ConsoleBootstrapReporter(interactive=False)
        reporter(AttemptFailed(HostAndPort("db"), TransportFailure("refused"), next_host=True))

        lines = self._lines(printed)
        assert "refused" in lines[0]
        assert "next host" in lines[1]

    def test_last_failure_does_not_mention_next_host(self, printed: MagicMock) -> None:
        reporter = ConsoleBootstrapReporter(interactive=False)
        reporter(AttemptFailed(HostAndPort("db"), TransportFailure("refused"), next_host=False))
        assert printed.print.call_count == 1

    def test_connected_and_advisory(self, printed: MagicMock) -> None:
        reporter = ConsoleBootstrapReporter(interactive=True)
        reporter(Connected("ClickHouse", ServerVersion(25, 3, 1), "srv"))
        reporter(Advisory(VersionComparison.CLIENT_OLDER, "upgrade me"))

        lines = self._lines(printed)
        assert "ClickHouse server version 25.3.1" in lines[0]
        assert "upgrade me" in lines[1]

    def test_warning(self, printed: MagicMock) -> None:
        ConsoleBootstrapReporter(interactive=False)(BootstrapWarning("disk almost full"))
        assert "disk almost full" in self._lines(printed)[0]


# ---------------------------------------------------------------------------
# Password prompt
# ---------------------------------------------------------------------------

class TestQuestionarySecretProvider:
    def _fake_questionary(self, monkeypatch: pytest.MonkeyPatch, answer: str | None) -> MagicMock:
        fake = MagicMock()
        fake.password.return_value.ask.return_value = answer
        monkeypatch.setitem(sys.modules, "questionary", fake)
        return fake

    def test_returns_entered_secret(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = self._fake_questionary(monkeypatch, "pw")

        assert QuestionarySecretProvider().read_secret("Password: ") == "pw"
        fake.password.assert_called_once_with("Password: ", qmark="")

    def test_cancelled_prompt(self, monkeypatch: pytest.MonkeyPatch) -> None:
        self._fake_questionary(monkeypatch, None)

        with pytest.raises(PasswordRequired):
            QuestionarySecretProvider().read_secret("Password: ")
