"""
Domain — dotenv parsing and rendering (pure).
"""

from __future__ import annotations

import re

_KEY = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")
_ESCAPE = re.compile(r'\\(["\\])')


class DotenvError(ValueError):
    """A line that is neither blank, a comment, nor KEY=value."""


def parse_dotenv(content: str, *, strict: bool = False) -> dict[str, str]:
    """Parse .env text into a key/value dict.

    Handles:
    - KEY=value
    - KEY="value" (with \\" and \\\\ escapes)
    - KEY='value'
    - export KEY=value
    - Comments (#)
    - Empty lines

    With ``strict``, malformed lines raise ``DotenvError`` instead of
    being skipped.
    """
    result: dict[str, str] = {}

    for lineno, raw in enumerate(content.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("export "):
            line = line[7:].strip()

        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not _KEY.match(key):
            if strict:
                raise DotenvError(f"line {lineno}: expected KEY=value, got {raw!r}")
            continue

        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = _ESCAPE.sub(r"\1", value[1:-1])
        elif len(value) >= 2 and value[0] == value[-1] == "'":
            value = value[1:-1]

        result[key] = value

    return result


def _quote(value: str) -> str:
    if value == "" or re.search(r"[\s#'\"]", value):
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return value


def append_missing(content: str, values: dict[str, str]) -> str:
    """Append ``values`` whose keys are not already defined in ``content``.

    Existing lines (comments included) are kept untouched.
    """
    present = parse_dotenv(content)
    missing = [(k, v) for k, v in values.items() if k not in present]
    if not missing:
        return content
    lines = [content.rstrip("\n")] if content.strip() else []
    lines.extend(f"{k}={_quote(v)}" for k, v in missing)
    return "\n".join(lines) + "\n"
