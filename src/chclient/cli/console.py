"""CLI console helpers with optional Rich support.

This module intentionally avoids module-level imports of optional UI
dependencies so bootstrap paths (``--help``, ``--version``) remain
functional even when Rich is not installed.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from chclient.exceptions import EnvironmentError

LOG_FORMAT = "%(name)s: %(message)s"


def _load_rich_console_class() -> type[Any]:
	"""Return ``rich.console.Console`` class or raise ``EnvironmentError``."""
	try:
		from rich.console import Console
	except ModuleNotFoundError as exc:
		raise EnvironmentError(
			"rich is not installed. Install with: pip install rich",
		) from exc
	return Console


def get_rich_console() -> Any:
	"""Create a Rich console instance targeting stderr."""
	console_class = _load_rich_console_class()
	return console_class(stderr=True)


class _ConsoleProxy:
	"""Minimal ``print``-compatible proxy with Rich fallback."""

	def print(self, *objects: object) -> None:
		"""Render with Rich when available, else plain stderr print."""
		try:
			rich_console = get_rich_console()
		except EnvironmentError:
			print(*objects, file=sys.stderr)
			return
		rich_console.print(*objects)

	def out(self, text: str) -> None:
		"""Write *text* verbatim to stdout (no markup, no highlighting)."""
		sys.stdout.write(text + "\n")
		sys.stdout.flush()


def configure_logging(level: str = "WARNING") -> None:
	"""Route library logging to stderr through ``RichHandler``.

	Falls back to :func:`logging.basicConfig` when Rich is missing.
	"""
	numeric = logging.getLevelName(level.upper())
	if not isinstance(numeric, int):
		numeric = logging.WARNING
	try:
		from rich.logging import RichHandler
	except ModuleNotFoundError:
		logging.basicConfig(level=numeric, format=LOG_FORMAT, stream=sys.stderr, force=True)
		return
	handler = RichHandler(console=get_rich_console(), show_path=False, markup=False)
	logging.basicConfig(level=numeric, format=LOG_FORMAT, handlers=[handler], force=True)
	logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))
	logging.getLogger("httpcore").setLevel(max(numeric, logging.WARNING))


console = _ConsoleProxy()
