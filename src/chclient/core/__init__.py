"""Core layer — argument tokenizing, configuration and session bootstrap.

Rules
-----
* No ``print()`` calls.
* No network I/O; transports arrive through :mod:`chclient.core.protocols`.
* No imports from ``cli`` or ``infra``.
"""

from chclient.core.arguments import tokenize_arguments
from chclient.core.bootstrap import ConnectionBootstrapper
from chclient.core.configuration import Configuration, ConnectionProfile, merge_layers
from chclient.core.credentials import CredentialResolver
from chclient.core.models import (
    BootstrapResult,
    ConnectionParameters,
    HostAndPort,
    SessionFacts,
    TokenizedArguments,
)
from chclient.core.prompt import compose_prompt
from chclient.core.protocols import Connection, ConnectionFactory, SecretProvider
from chclient.core.throttle import Throttler

__all__: list[str] = [
    "BootstrapResult",
    "Configuration",
    "Connection",
    "ConnectionBootstrapper",
    "ConnectionFactory",
    "ConnectionParameters",
    "ConnectionProfile",
    "CredentialResolver",
    "HostAndPort",
    "SecretProvider",
    "SessionFacts",
    "Throttler",
    "TokenizedArguments",
    "compose_prompt",
    "merge_layers",
    "tokenize_arguments",
]
