"""Exit-code constants used by the CLI layer.

Centralised here so that every exit path uses a well-known, tested
value rather than magic integers scattered across the codebase.
"""

from __future__ import annotations

from chclient.exceptions import ChClientError

SUCCESS: int = 0
"""Clean exit — session bootstrapped without error."""

GENERAL_ERROR: int = 1
"""A known ChClientError without a numeric code was caught."""

UNEXPECTED_ERROR: int = 2
"""An unhandled exception escaped all known error boundaries."""

KEYBOARD_INTERRUPT: int = 130
"""User pressed Ctrl+C.  Follows POSIX convention (128 + SIGINT=2)."""


def from_error(error: ChClientError) -> int:
    """Process status for *error*: its code modulo 256, never zero."""
    if error.code is None:
        return GENERAL_ERROR
    status = error.code % 256
    return status if status != 0 else 255
