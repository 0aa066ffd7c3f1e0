"""CLI application entry point for chclient.

This module is the **sole error boundary** for the entire application.
It catches :class:`~chclient.exceptions.ChClientError`, ``KeyboardInterrupt``,
and any unexpected ``Exception``, rendering user-friendly messages via Rich
and returning well-defined exit codes.

Architecture notes
------------------
* No business logic lives here — all work is delegated to the core and
  infrastructure layers.
* ``print()`` is forbidden outside the CLI layer; the console proxy is
  used exclusively.
* This module is the only place that translates between the domain world
  and the OS process exit code.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from typing import Any

from chclient.cli import exit_codes
from chclient.cli.console import configure_logging, console
from chclient.core.protocols import ConnectionFactory, SecretProvider
from chclient.exceptions import ArgumentError, ChClientError
from chclient.version import __version__

LOG = logging.getLogger(__name__)

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

class _Parser(argparse.ArgumentParser):
    """``ArgumentParser`` that raises instead of exiting on bad input."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ArgumentError(message, hint=f"Run '{self.prog} --help' for usage.")


def _parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {text!r}")


def _build_parser() -> argparse.ArgumentParser:
    """Construct the parser for common (non host/port) options.

    ``--host``/``--port``, ``--external`` groups and ``--param_*`` flags
    are split off by the tokenizer before this parser runs; host and port
    are declared here only so ``--help`` documents them.
    """
    parser = _Parser(
        prog="chclient",
        description="Connect to a ClickHouse server and bootstrap a session.",
        add_help=False,
        allow_abbrev=False,
        epilog=(
            "Repeat --host/--port for failover. External tables: --external "
            "--file F [--name N] [--format F] [--structure S | --types T]. "
            "Query parameters: --param_<name>=<value>."
        ),
    )
    parser.add_argument("--help", action="help", help="Show this message and exit.")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    target = parser.add_argument_group("target")
    target.add_argument("-h", "--host", dest="_host", metavar="HOST",
                        help="Server host; repeat for failover.")
    target.add_argument("--port", dest="_port", metavar="PORT",
                        help="Server port; pairs with the nearest --host.")
    target.add_argument("-d", "--database", "--dbname", dest="database")
    target.add_argument("--connection", help="Name of a connections_credentials profile.")
    target.add_argument("-c", "--config", "--config-file", dest="config_file",
                        help="Path to the TOML configuration file.")
    target.add_argument("--bind_host", help="Local address to connect from.")

    auth = parser.add_argument_group("authentication")
    auth.add_argument("-u", "--user")
    auth.add_argument("--password", help="Password; a bare --password prompts for it.")
    auth.add_argument("--ask-password", dest="ask_password", action="store_true", default=None)
    auth.add_argument("--ssh-key-file", dest="ssh_key_file")
    auth.add_argument("--ssh-key-passphrase", dest="ssh_key_passphrase")
    auth.add_argument("--jwt")
    auth.add_argument("--quota_key", "--quota-key", dest="quota_key")

    transport = parser.add_argument_group("transport")
    transport.add_argument("-s", "--secure", action="store_true", default=None)
    transport.add_argument("--no-secure", dest="no_secure", action="store_true", default=None)
    transport.add_argument("--accept-invalid-certificate", dest="accept_invalid_certificate",
                           action="store_true", default=None)
    transport.add_argument("--compression", type=_parse_bool, metavar="BOOL")
    transport.add_argument("--max_client_network_bandwidth", type=int, metavar="BYTES")
    transport.add_argument("--connect_timeout", type=float, metavar="SEC")
    transport.add_argument("--send_timeout", type=float, metavar="SEC")
    transport.add_argument("--receive_timeout", type=float, metavar="SEC")
    transport.add_argument("--handshake_timeout_ms", type=float, metavar="MS")

    session = parser.add_argument_group("session")
    session.add_argument("--prompt")
    session.add_argument("--history_file")
    session.add_argument("--use_client_time_zone", action="store_true", default=None)
    session.add_argument("--no-warnings", dest="no_warnings", action="store_true", default=None)
    session.add_argument("--log-level", dest="log_level", default="WARNING",
                         choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                         type=str.upper)
    return parser


def _cli_layer(args: argparse.Namespace) -> dict[str, Any]:
    """Configuration layer from parsed options (``None`` means unset)."""
    layer = {
        key: value
        for key, value in vars(args).items()
        if not key.startswith("_") and key != "log_level" and value is not None
    }
    if args.user is not None:
        layer["user_from_command_line"] = True
    return layer


# ---------------------------------------------------------------------------
# Session bootstrap
# ---------------------------------------------------------------------------

def _run(
    argv: Sequence[str],
    *,
    interactive: bool | None,
    environ: Mapping[str, str],
    secret_provider: SecretProvider | None,
    connection_factory: ConnectionFactory | None,
) -> int:
    from chclient.cli.password_prompt import QuestionarySecretProvider
    from chclient.cli.reporter import ConsoleBootstrapReporter
    from chclient.core.arguments import (
        parse_external_tables,
        parse_hosts_and_ports,
        tokenize_arguments,
    )
    from chclient.core.bootstrap import ConnectionBootstrapper
    from chclient.core.configuration import environment_layer, merge_layers
    from chclient.core.credentials import CredentialResolver
    from chclient.core.prompt import compose_prompt
    from chclient.infra.config_file import read_config_layer
    from chclient.infra.http_connection import HttpConnectionFactory
    from chclient.infra.network import is_local_address

    tokens = tokenize_arguments(argv)
    parser = _build_parser()
    args, unknown = parser.parse_known_args(list(tokens.common))
    configure_logging(args.log_level)
    if unknown:
        LOG.warning("Ignoring unrecognised options: %s", " ".join(unknown))

    hosts = parse_hosts_and_ports(tokens.hosts_and_ports)
    external_tables = parse_external_tables(tokens.external_tables)

    config_path, file_layer = read_config_layer(args.config_file)
    if args.connection and config_path is None:
        raise ArgumentError(
            "--connection was specified, but config does not exist",
            hint="Create clickhouse-client.toml or pass --config.",
        )
    config = merge_layers(file_layer, environment_layer(environ), _cli_layer(args))

    if interactive is None:
        interactive = config.interactive if config.interactive is not None else sys.stdin.isatty()

    resolver = CredentialResolver(
        secret_provider or QuestionarySecretProvider(),
        is_local_host=is_local_address,
    )
    bootstrapper = ConnectionBootstrapper(
        resolver,
        connection_factory or HttpConnectionFactory(),
        reporter=ConsoleBootstrapReporter(interactive=interactive),
    )
    result = bootstrapper.bootstrap(config, hosts, interactive=interactive)

    try:
        parameters = result.parameters
        facts = result.facts
        prompt = compose_prompt(
            result.configuration,
            host=parameters.host,
            port=parameters.port,
            user=parameters.user,
            display_name=facts.server_display_name,
        )
        console.out(prompt)
        LOG.info(
            "Session on %s (%s, revision %d): %d server settings, %d query parameters, "
            "%d external tables, timezone %s",
            facts.server_display_name,
            facts.server_version,
            facts.server_revision,
            len(facts.settings_from_server),
            len(tokens.query_parameters),
            len(external_tables),
            result.session_timezone or "local",
        )
    finally:
        result.connection.close()
    return exit_codes.SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(
    argv: list[str] | None = None,
    *,
    interactive: bool | None = None,
    environ: Mapping[str, str] | None = None,
    secret_provider: SecretProvider | None = None,
    connection_factory: ConnectionFactory | None = None,
) -> int:
    """Run the chclient CLI.

    Parameters
    ----------
    argv:
        Explicit argument list.  When ``None`` (default), ``sys.argv[1:]``
        is used.  Accepting *argv* enables deterministic testing without
        monkeypatching.
    interactive:
        Force interactive behaviour on or off; by default it follows the
        ``interactive`` config key, then whether stdin is a terminal.
    environ, secret_provider, connection_factory:
        Collaborator overrides for tests.

    Returns
    -------
    int
        OS process exit code.
    """
    return _run(
        sys.argv[1:] if argv is None else argv,
        interactive=interactive,
        environ=os.environ if environ is None else environ,
        secret_provider=secret_provider,
        connection_factory=connection_factory,
    )


# ---------------------------------------------------------------------------
# Script-level error boundary
# ---------------------------------------------------------------------------

def cli() -> None:
    """Top-level error boundary invoked by the console-script entry point.

    This function wraps :func:`main` and guarantees the process never
    exits with a raw stack trace during normal usage.
    """
    try:
        code = main()
        sys.exit(code)
    except ChClientError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        if exc.hint:
            console.print(f"[yellow]Hint:[/yellow] {exc.hint}")
        sys.exit(exit_codes.from_error(exc))
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted by user.[/yellow]")
        sys.exit(exit_codes.KEYBOARD_INTERRUPT)
    except Exception as exc:  # noqa: BLE001
        console.print(
            "[bold red]Unexpected error.[/bold red] "
            "Please report this issue.\n"
            f"  {type(exc).__name__}: {exc}"
        )
        sys.exit(exit_codes.UNEXPECTED_ERROR)
