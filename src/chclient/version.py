"""Single source of truth for the chclient version."""

from __future__ import annotations

__version__: str = "25.3.1"

VERSION_TUPLE: tuple[int, int, int] = tuple(  # type: ignore[assignment]
    int(part) for part in __version__.split(".")
)
"""``(major, minor, patch)`` sent to the server during the handshake."""
