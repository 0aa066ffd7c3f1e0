"""Interactive prompt composition.

Pure functions only: the prompt is computed once after a successful
bootstrap from the committed configuration and session facts.
"""

from __future__ import annotations

from chclient.core.configuration import Configuration

GENERIC_PROMPT = "{display_name}"
DEFAULT_KEY = "default"

_SIMPLE_ESCAPES: dict[str, str] = {
    "\\": "\\",
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "a": "\a",
    "v": "\v",
    "0": "\0",
    "e": "\x1b",
}

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def select_prompt_template(config: Configuration, display_name: str) -> str:
    """Pick the raw prompt template for a server display name.

    Order: explicit ``prompt``, then the first non-default key of
    ``prompt_by_server_display_name`` found inside *display_name*, then
    that table's ``default`` entry, then :data:`GENERIC_PROMPT`.
    """
    if config.prompt is not None:
        return config.prompt

    table = config.prompt_by_server_display_name
    for key, template in table.items():
        if key != DEFAULT_KEY and key in display_name:
            return template
    return table.get(DEFAULT_KEY, GENERIC_PROMPT)


def unescape_prompt(text: str) -> str:
    """Expand backslash escapes, including ``\\e`` and ``\\xHH`` colours.

    Unknown or truncated sequences are kept literally.
    """
    out: list[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if char != "\\" or i + 1 >= len(text):
            out.append(char)
            i += 1
            continue

        marker = text[i + 1]
        if marker in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[marker])
            i += 2
        elif marker == "x" and _is_hex_pair(text[i + 2:i + 4]):
            out.append(chr(int(text[i + 2:i + 4], 16)))
            i += 4
        else:
            out.append(char)
            i += 1
    return "".join(out)


def _is_hex_pair(chunk: str) -> bool:
    return len(chunk) == 2 and set(chunk) <= _HEX_DIGITS


def compose_prompt(
    config: Configuration,
    *,
    host: str,
    port: int,
    user: str,
    display_name: str,
) -> str:
    """Render the final prompt string shown before each query."""
    prompt = unescape_prompt(select_prompt_template(config, display_name))
    substitutions = {
        "host": host,
        "port": str(port),
        "user": user,
        "display_name": display_name,
    }
    for key, value in substitutions.items():
        prompt = prompt.replace("{" + key + "}", value)
    if config.prompt_decoration:
        prompt += config.prompt_suffix
    return prompt
