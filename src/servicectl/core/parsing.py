"""Tokenizer, option parser and value coercion.

Shared by the interactive evaluator and the argv routing path so both entry
points interpret ``--key value`` / ``-k value`` / ``--key=value`` identically.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "\\": "\\",
    '"': '"',
    "'": "'",
}

_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_INT_RE = re.compile(r"^[+-]?\d+$")


def tokenize(line: str, warnings: Optional[List[str]] = None) -> List[str]:
    """Split ``line`` into tokens.

    Whitespace separates tokens outside quotes. ``'`` and ``"`` open a span
    closed only by the same character; the other quote character is literal
    inside it. A backslash escapes the next character: ``\\n \\t \\r \\\\
    \\" \\'`` are substituted, anything else keeps the backslash.

    An unterminated quote is closed silently at end of input; a note is
    appended to ``warnings`` when a list is supplied.
    """
    tokens: List[str] = []
    current: List[str] = []
    quote_char: Optional[str] = None
    escaped = False

    for char in line:
        if char == "\\" and not escaped:
            escaped = True
            continue

        if char in ("'", '"') and not escaped:
            if quote_char is None:
                quote_char = char
            elif char == quote_char:
                quote_char = None
            else:
                current.append(char)
        elif char.isspace() and quote_char is None and not escaped:
            if current:
                tokens.append("".join(current))
                current = []
        elif escaped:
            current.append(_ESCAPES.get(char, "\\" + char))
        else:
            current.append(char)

        escaped = False

    if current:
        tokens.append("".join(current))

    if quote_char is not None:
        note = f"Unterminated {quote_char} quote closed at end of input"
        logger.warning(note)
        if warnings is not None:
            warnings.append(note)

    return tokens


def coerce_value(raw: str) -> Any:
    """Convert an option value: boolean, then number, then JSON, else string."""
    if raw == "true":
        return True
    if raw == "false":
        return False

    stripped = raw.strip()
    if stripped and _NUMBER_RE.match(stripped):
        if _INT_RE.match(stripped):
            return int(stripped)
        return float(stripped)

    if raw.startswith("{") or raw.startswith("["):
        try:
            return json.loads(raw)
        except ValueError:
            pass

    return raw


def _takes_value(tokens: List[str], index: int) -> bool:
    return index + 1 < len(tokens) and not tokens[index + 1].startswith("-")


def parse_options(tokens: List[str]) -> Tuple[Dict[str, Any], List[str]]:
    """Split tokens into an options map and the remaining positional tokens.

    ``--`` ends option parsing; everything after it is positional.
    """
    options: Dict[str, Any] = {}
    positionals: List[str] = []

    i = 0
    while i < len(tokens):
        token = tokens[i]

        if token == "--":
            positionals.extend(tokens[i + 1:])
            break

        if token.startswith("--"):
            key = token[2:]
            if "=" in key:
                opt_key, _, raw = key.partition("=")
                if opt_key:
                    options[opt_key] = coerce_value(raw)
            elif _takes_value(tokens, i):
                options[key] = coerce_value(tokens[i + 1])
                i += 1
            else:
                options[key] = True
        elif token.startswith("-") and len(token) == 2:
            key = token[1]
            if _takes_value(tokens, i):
                options[key] = coerce_value(tokens[i + 1])
                i += 1
            else:
                options[key] = True
        else:
            positionals.append(token)

        i += 1

    return options, positionals
