"""Allow ``python -m chclient`` invocation.

This module simply delegates to the CLI error-boundary entry point so
that ``python -m chclient`` behaves identically to the ``chclient``
console script.
"""

from __future__ import annotations

from chclient.cli.app import cli

if __name__ == "__main__":
    cli()
