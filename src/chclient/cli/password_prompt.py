"""Masked secret entry for the CLI layer.

Implements :class:`~chclient.core.protocols.SecretProvider` on top of
questionary's password prompt.  questionary is imported lazily so the
non-interactive paths work without it.
"""

from __future__ import annotations

from typing import Any

from chclient.exceptions import EnvironmentError, PasswordRequired


def _import_questionary() -> Any:
    """Import questionary lazily for interactive password entry."""
    try:
        import questionary
    except ModuleNotFoundError as exc:
        raise EnvironmentError(
            "questionary is not installed. Install with: pip install questionary",
        ) from exc
    return questionary


class QuestionarySecretProvider:
    """Reads secrets from the terminal without echoing them."""

    def read_secret(self, prompt: str) -> str:
        """Prompt for a secret.

        Raises
        ------
        KeyboardInterrupt
            If the user presses Ctrl+C during entry.
        PasswordRequired
            If the user cancels the prompt (Esc / None return).
        """
        questionary = _import_questionary()
        secret: str | None = questionary.password(prompt, qmark="").ask()
        if secret is None:
            raise PasswordRequired(
                "No password entered.",
                hint="Pass --password or set CLICKHOUSE_PASSWORD to skip the prompt.",
            )
        return secret
