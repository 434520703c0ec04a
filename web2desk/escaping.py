"""Encoders for values embedded in generated files.

HTML and script contexts are handled by Jinja2 autoescaping and ``tojson``.
The encoders here cover TOML strings, shell words and identifiers, and are
registered as template filters where templates need them.
"""

import re
import shlex

_IDENTIFIER_INVALID = re.compile(r"[^A-Za-z0-9_]+")


def toml_string(value: str) -> str:
    """Encode a value as a TOML basic string, including the quotes."""
    out = ['"']
    for ch in value:
        if ch == "\\":
            out.append("\\\\")
        elif ch == '"':
            out.append('\\"')
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def shell_quote(value: str) -> str:
    """Quote a value as a single POSIX shell word."""
    return shlex.quote(value)


def identifier(value: str, default: str = "app") -> str:
    """Reduce a value to a safe identifier (letters, digits, underscore).

    Args:
        value: Raw text.
        default: Returned when nothing usable remains.

    Returns:
        Identifier that never starts with a digit.
    """
    ident = _IDENTIFIER_INVALID.sub("_", value).strip("_")
    if not ident:
        return default
    if ident[0].isdigit():
        ident = f"_{ident}"
    return ident


__all__ = ["identifier", "shell_quote", "toml_string"]
