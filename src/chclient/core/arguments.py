"""Command-line tokenizer — splits the argument vector into groups.

The client accepts several interleaved argument groups that a regular
option parser cannot express:

1. **Common** arguments, handed to :mod:`argparse` later.
2. **External tables**, each group introduced by ``--external`` and made
   of ``--file/--name/--format/--structure/--types`` options.
3. **Hosts and ports**, where ``--host`` and ``--port`` may appear in any
   order and are paired positionally::

       --host h1 --port 9000 --host h2       ->  (h1, 9000), (h2, -)
       --port 9000 --host h1                 ->  (h1, 9000)
       --host h1 --host h2                   ->  (h1, -), (h2, -)

4. **Query parameters** ``--param_<name>=value``.

Every function in this module is a pure transformation over strings.
"""

from __future__ import annotations

from collections.abc import Sequence

from chclient.core.connection_string import (
    check_option_allowed,
    is_connection_string,
    parse_connection_string,
)
from chclient.core.models import ExternalTable, HostAndPort, TokenizedArguments
from chclient.exceptions import ArgumentError

ASK_PASSWORD: str = "\n"
"""Sentinel value of ``--password`` meaning "prompt before connecting"."""

EXTERNAL_OPTIONS: tuple[str, ...] = ("--file", "--name", "--format", "--structure", "--types")

# ``--format`` is also a regular client option, so only these four are
# rejected outside an external group.
EXTERNAL_ONLY_OPTIONS: frozenset[str] = frozenset({"--file", "--name", "--structure", "--types"})

PARAM_PREFIXES: tuple[str, ...] = ("--param_", "--param-")

MAX_PORT: int = 65535


# ---------------------------------------------------------------------------
# Host/port pairing state
# ---------------------------------------------------------------------------

class _HostPortPairer:
    """Holds at most one unpaired host and one unpaired port."""

    def __init__(self) -> None:
        self.groups: list[tuple[str, ...]] = []
        self._pending_host: str | None = None
        self._pending_port: str | None = None

    def add_host(self, host_arg: str) -> None:
        if self._pending_port is not None:
            self.groups.append((host_arg, self._pending_port))
            self._pending_port = None
            return
        if self._pending_host is not None:
            self.groups.append((self._pending_host,))
        self._pending_host = host_arg

    def add_port(self, port_arg: str) -> None:
        if self._pending_host is not None:
            self.groups.append((self._pending_host, port_arg))
            self._pending_host = None
            return
        if self._pending_port is not None:
            self.groups.append((self._pending_port,))
        self._pending_port = port_arg

    def finish(self) -> list[tuple[str, ...]]:
        if self._pending_host is not None:
            self.groups.append((self._pending_host,))
            self._pending_host = None
        if self._pending_port is not None:
            self.groups.append((self._pending_port,))
            self._pending_port = None
        return self.groups


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

def tokenize_arguments(argv: Sequence[str]) -> TokenizedArguments:
    """Split *argv* (without the program name) into argument groups.

    Raises
    ------
    ArgumentError
        For flags missing their value, external-table options outside an
        ``--external`` group, empty parameter names, or options that
        cannot be combined with a leading connection string.
    """
    args = list(argv)
    common: list[str] = []
    pairer = _HostPortPairer()

    used_connection_string = bool(args) and is_connection_string(args[0])
    start = 0
    if used_connection_string:
        cs_common, cs_hosts = parse_connection_string(args[0])
        common.extend(cs_common)
        pairer.groups.extend(cs_hosts)
        start = 1
        for arg in args[start:]:
            check_option_allowed(arg)

    external_groups: list[list[str]] = []
    query_parameters: dict[str, str] = {}
    in_external_group = False

    i = start
    while i < len(args):
        arg = args[i]

        if arg == "--external":
            in_external_group = True
            external_groups.append([])
        elif in_external_group and arg.startswith(tuple(f"{opt}=" for opt in EXTERNAL_OPTIONS)):
            external_groups[-1].append(arg)
        elif in_external_group and arg in EXTERNAL_OPTIONS:
            value = _take_value(args, i, f"Option {arg} requires value")
            external_groups[-1].extend((arg, value))
            i += 1
        else:
            in_external_group = False
            if arg.split("=", 1)[0] in EXTERNAL_ONLY_OPTIONS:
                raise ArgumentError(
                    f"Parameter must be in external group, try add --external before {arg}",
                )

            if arg.startswith(PARAM_PREFIXES):
                name, value, consumed = _parse_param(args, i)
                query_parameters[name] = value
                i += consumed
            elif _is_host_flag(arg):
                if arg in ("--host", "-h"):
                    value = _take_value(args, i, "Host argument requires value")
                    host_arg = f"--host={value}"
                    i += 1
                else:
                    host_arg = arg
                pairer.add_host(host_arg)
            elif arg == "--port" or arg.startswith("--port="):
                if arg == "--port":
                    value = _take_value(args, i, "Port argument requires value")
                    port_arg = f"--port={value}"
                    i += 1
                else:
                    port_arg = arg
                pairer.add_port(port_arg)
            elif arg == "--password" and (i + 1 >= len(args) or args[i + 1].startswith("-")):
                common.extend((arg, ASK_PASSWORD))
            else:
                common.append(arg)
        i += 1

    return TokenizedArguments(
        common=tuple(common),
        external_tables=tuple(tuple(group) for group in external_groups),
        hosts_and_ports=tuple(pairer.finish()),
        query_parameters=query_parameters,
        used_connection_string=used_connection_string,
    )


def _is_host_flag(arg: str) -> bool:
    if arg == "--host" or arg.startswith("--host="):
        return True
    return arg.startswith("-h") and not arg.startswith("--")


def _take_value(args: Sequence[str], index: int, message: str) -> str:
    if index + 1 >= len(args):
        raise ArgumentError(message)
    return args[index + 1]


def _parse_param(args: Sequence[str], index: int) -> tuple[str, str, int]:
    """Return ``(name, value, extra_tokens_consumed)`` for a param flag."""
    continuation = args[index][len(PARAM_PREFIXES[0]):]
    name, equals, value = continuation.partition("=")
    if equals:
        if not name:
            raise ArgumentError("Parameter name cannot be empty")
        return name, value, 0
    if not name:
        raise ArgumentError("Parameter name cannot be empty")
    return name, _take_value(args, index, "Parameter requires value"), 1


# ---------------------------------------------------------------------------
# Group parsers
# ---------------------------------------------------------------------------

def parse_host_port_group(group: Sequence[str]) -> HostAndPort:
    """Convert one raw ``("--host=h", "--port=p")`` group to a model.

    A group holding only a port targets ``localhost``.
    """
    host = "localhost"
    port: int | None = None
    for token in group:
        if token.startswith("--host="):
            host = token[len("--host="):]
        elif token.startswith("-h") and not token.startswith("--"):
            host = token[2:]
        elif token.startswith("--port="):
            port = parse_port(token[len("--port="):])
        else:
            raise ArgumentError(f"Unexpected token in host/port group: {token}")
    if not host:
        raise ArgumentError("Host argument requires value")
    return HostAndPort(host=host, port=port)


def parse_hosts_and_ports(groups: Sequence[Sequence[str]]) -> list[HostAndPort]:
    return [parse_host_port_group(group) for group in groups]


def parse_port(text: str) -> int:
    """Parse a TCP port, raising :class:`ArgumentError` when invalid."""
    stripped = text.strip()
    if not (stripped.isascii() and stripped.isdigit()) or int(stripped) > MAX_PORT:
        raise ArgumentError(
            f"Invalid port: {text!r}",
            hint=f"Ports are integers between 0 and {MAX_PORT}.",
        )
    return int(stripped)


def parse_external_table(group: Sequence[str]) -> ExternalTable:
    """Parse the tokens of one ``--external`` group."""
    values: dict[str, str] = {}
    tokens = list(group)
    i = 0
    while i < len(tokens):
        token = tokens[i]
        option, equals, value = token.partition("=")
        if option not in EXTERNAL_OPTIONS:
            raise ArgumentError(f"Unknown external table option: {token}")
        if not equals:
            if i + 1 >= len(tokens):
                raise ArgumentError(f"Option {option} requires value")
            value = tokens[i + 1]
            i += 1
        values[option[2:]] = value
        i += 1

    return ExternalTable(
        file=values.get("file"),
        name=values.get("name", "_data"),
        format=values.get("format", "TabSeparated"),
        structure=values.get("structure"),
        types=values.get("types"),
    )


def parse_external_tables(groups: Sequence[Sequence[str]]) -> tuple[ExternalTable, ...]:
    """Parse every external group; at most one may read from stdin."""
    tables = tuple(parse_external_table(group) for group in groups)
    stdin_tables = [index for index, table in enumerate(tables) if table.reads_stdin]
    if len(stdin_tables) > 1:
        raise ArgumentError(
            "Two or more external tables has stdin (-) set as --file field",
            hint=f"Table №{stdin_tables[1]} is the second one reading stdin.",
        )
    return tables
