"""chclient — database command-line client bootstrap.

Turns raw process arguments and layered configuration into an
authenticated session against one of several candidate servers.
"""

from chclient.version import __version__

__all__: list[str] = ["__version__"]
