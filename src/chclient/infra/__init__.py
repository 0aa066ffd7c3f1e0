"""Infrastructure layer — files, sockets and the server's HTTP interface.

Every raw third-party exception must be caught here and re-raised as a
:class:`~chclient.exceptions.ChClientError` subclass.

Rules
-----
* No imports from ``cli``.
* No user-facing output.
"""

from chclient.infra.config_file import find_config_file, load_config_file
from chclient.infra.http_connection import HttpConnection, HttpConnectionFactory
from chclient.infra.network import is_local_address

__all__: list[str] = [
    "HttpConnection",
    "HttpConnectionFactory",
    "find_config_file",
    "is_local_address",
    "load_config_file",
]
