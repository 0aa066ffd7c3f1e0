"""Connection-string shorthand accepted as the first CLI argument.

Grammar::

    clickhouse://[user[:password]@][host[:port][,host[:port]...]][/database][?key=value&...]

``ch://`` is accepted as an alias scheme.  The string expands into the
same raw argument forms the tokenizer produces, so downstream code
never needs to know a connection string was used.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, unquote

from chclient.exceptions import ArgumentError

SCHEMES: tuple[str, ...] = ("clickhouse://", "ch://")

# Options that a connection string already expresses.
PROHIBITED_OPTIONS: frozenset[str] = frozenset(
    {
        "--host",
        "-h",
        "--port",
        "--user",
        "-u",
        "--password",
        "--database",
        "-d",
        "--dbname",
    }
)


def is_connection_string(arg: str) -> bool:
    return arg.startswith(SCHEMES)


def parse_connection_string(
    arg: str,
) -> tuple[list[str], list[tuple[str, ...]]]:
    """Expand *arg* into ``(common_arguments, hosts_and_ports_groups)``.

    Raises
    ------
    ArgumentError
        If the string is not a valid connection string.
    """
    scheme = next((s for s in SCHEMES if arg.startswith(s)), None)
    if scheme is None:
        raise ArgumentError(f"Not a connection string: {arg}")
    rest = arg[len(scheme):]

    rest, _, query = rest.partition("?")
    authority, slash, database = rest.partition("/")

    common: list[str] = []
    userinfo, at, hostlist = authority.rpartition("@")
    if at:
        user, colon, password = userinfo.partition(":")
        if user:
            common.append(f"--user={unquote(user)}")
        if colon:
            common.append(f"--password={unquote(password)}")
    else:
        hostlist = authority

    if slash and database:
        common.append(f"--database={unquote(database)}")

    for key, value in parse_qsl(query, keep_blank_values=True):
        if not key:
            raise ArgumentError(f"Empty parameter name in connection string: {arg}")
        common.append(f"--{key}" if value == "" else f"--{key}={value}")

    groups: list[tuple[str, ...]] = []
    if hostlist:
        for entry in hostlist.split(","):
            groups.append(_parse_host_entry(entry, arg))
    return common, groups


def check_option_allowed(arg: str) -> None:
    """Reject options that duplicate what the connection string says."""
    name = arg.split("=", 1)[0]
    if name in PROHIBITED_OPTIONS or (arg.startswith("-h") and not arg.startswith("--")):
        raise ArgumentError(
            f"Option {name} cannot be used together with a connection string",
            hint="Move the value into the connection string instead.",
        )


def _parse_host_entry(entry: str, original: str) -> tuple[str, ...]:
    if not entry:
        raise ArgumentError(f"Empty host in connection string: {original}")

    if entry.startswith("["):
        closing = entry.find("]")
        if closing == -1:
            raise ArgumentError(f"Unterminated IPv6 address in connection string: {original}")
        host = entry[1:closing]
        tail = entry[closing + 1:]
        if tail and not tail.startswith(":"):
            raise ArgumentError(f"Malformed host '{entry}' in connection string")
        port = tail[1:] if tail else ""
    else:
        host, _, port = entry.partition(":")

    group: list[str] = []
    if host:
        group.append(f"--host={unquote(host)}")
    if port:
        if not (port.isascii() and port.isdigit()):
            raise ArgumentError(f"Invalid port '{port}' in connection string: {original}")
        group.append(f"--port={port}")
    if not group:
        raise ArgumentError(f"Empty host in connection string: {original}")
    return tuple(group)
