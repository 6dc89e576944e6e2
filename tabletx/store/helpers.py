from __future__ import annotations

import re

_IDENTIFIER = re.compile(r'^[A-Za-z][A-Za-z0-9_]*$')


def validate_table_name(name: str) -> str:
    """
    Validate that a table name is safe for SQL interpolation.

    Table names start with a letter and contain only letters, digits and
    underscores, at most 63 characters.

    Args:
        name: The table name to validate

    Returns:
        The validated name (unchanged if valid)

    Raises:
        TypeError: If name is not a string
        ValueError: If name is empty, too long or contains unsafe characters

    Example:
        >>> validate_table_name("orders")
        'orders'
        >>> validate_table_name("'; DROP TABLE--")
        ValueError: Invalid table name "'; DROP TABLE--": ...
    """
    if not isinstance(name, str):
        raise TypeError(f"table name must be a string, got {type(name).__name__}")

    if not name:
        raise ValueError("table name cannot be empty")

    if not _IDENTIFIER.match(name):
        raise ValueError(
            f"Invalid table name {name!r}: "
            "must start with a letter and contain only alphanumeric characters and underscores"
        )

    if len(name) > 63:
        raise ValueError(f"table name {name!r} exceeds the 63-character limit")

    return name
