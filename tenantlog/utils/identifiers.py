"""SQL identifier validation and slug helpers.

Identifiers (table and column names) cannot be bound as query parameters,
so every name that reaches DDL/DML text must pass ``is_valid_identifier``
first. Validated names are always embedded double-quoted.
"""

from __future__ import annotations

import re

# Postgres silently truncates identifiers longer than NAMEDATALEN - 1 bytes.
MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


class InvalidIdentifierError(ValueError):
    """Raised when a table identifier fails validation."""

    def __init__(self, name: str, *, kind: str = "table"):
        super().__init__(f"Invalid {kind} name: {name!r}")
        self.name = name
        self.kind = kind


def is_valid_identifier(name: str) -> bool:
    """True iff ``name`` matches ``^[A-Za-z_][A-Za-z0-9_]*$``.

    Examples::

        is_valid_identifier("user_table_1")  # True
        is_valid_identifier("_private")      # True
        is_valid_identifier("1table")        # False
        is_valid_identifier("drop;table")    # False
    """
    return isinstance(name, str) and _IDENTIFIER_RE.fullmatch(name) is not None


def is_storable_identifier(name: str) -> bool:
    """Valid identifier that Postgres will store without truncation."""
    return is_valid_identifier(name) and len(name) <= MAX_IDENTIFIER_LENGTH


def require_identifier(name: str, *, kind: str = "table") -> str:
    """Return ``name`` unchanged or raise InvalidIdentifierError."""
    if not is_storable_identifier(name):
        raise InvalidIdentifierError(name, kind=kind)
    return name


def quote_identifier(name: str) -> str:
    """Double-quote an already validated identifier."""
    return f'"{require_identifier(name, kind="identifier")}"'


def slugify(text: str) -> str:
    """Lowercase, collapse runs of non-alphanumerics to ``_``, trim underscores.

    Examples::

        slugify("Weather API")  # 'weather_api'
        slugify("v1.2.0")       # 'v1_2_0'
    """
    return _SLUG_RE.sub("_", str(text).lower()).strip("_")
