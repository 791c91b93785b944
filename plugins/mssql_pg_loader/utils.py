"""
Utility functions for the chunk loader.

This module provides SQL identifier validation and quoting for the two
dialects the loader talks to, plus helpers for safe logging.
"""

import re
from typing import Any


def validate_sql_identifier(identifier: str, identifier_type: str = "identifier") -> str:
    """
    Validate a SQL identifier used in configuration (schema, ledger table).

    Args:
        identifier: The identifier to validate
        identifier_type: Type description for error messages (e.g., "schema")

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        ValueError: If the identifier is invalid

    Rules:
        - Non-empty
        - Max 63 characters (PostgreSQL NAMEDATALEN limit)
        - Pattern: [a-zA-Z_][a-zA-Z0-9_]*

    Examples:
        >>> validate_sql_identifier("public")
        'public'
        >>> validate_sql_identifier("_data_pool")
        '_data_pool'
        >>> validate_sql_identifier("drop; --")  # doctest: +SKIP
        ValueError: Invalid schema 'drop; --': must start with letter or underscore ...
    """
    if not identifier:
        raise ValueError(f"Invalid {identifier_type}: cannot be empty")

    if len(identifier) > 63:
        raise ValueError(
            f"Invalid {identifier_type}: exceeds maximum length of 63 characters "
            f"(got {len(identifier)} characters)"
        )

    if not re.match(r'^[a-zA-Z_][a-zA-Z0-9_]*$', identifier):
        raise ValueError(
            f"Invalid {identifier_type} '{identifier}': must start with letter or underscore "
            "and contain only alphanumeric characters and underscores"
        )

    return identifier


def quote_pg_identifier(name: str) -> str:
    """
    Double-quote a PostgreSQL identifier, doubling embedded quotes.

    Examples:
        >>> quote_pg_identifier("orders")
        '"orders"'
        >>> quote_pg_identifier('my"table')
        '"my""table"'
    """
    return '"' + name.replace('"', '""') + '"'


def quote_mssql_identifier(name: str) -> str:
    """
    Bracket-quote a SQL Server identifier, doubling closing brackets (QUOTENAME).

    Examples:
        >>> quote_mssql_identifier("Order Details")
        '[Order Details]'
        >>> quote_mssql_identifier("odd]name")
        '[odd]]name]'
    """
    return '[' + name.replace(']', ']]') + ']'


def quote_sql_literal(value: Any) -> str:
    """
    Single-quote a value for use as a SQL literal.

    Examples:
        >>> quote_sql_literal(",")
        "','"
        >>> quote_sql_literal("O'Brien")
        "'O''Brien'"
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)

    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def sanitize_table_name(table_name: str) -> str:
    """
    Sanitize a table name for use in log file names and display.

    This does NOT make the name safe for SQL queries.

    Examples:
        >>> sanitize_table_name("orders")
        'orders'
        >>> sanitize_table_name("../etc/passwd")
        '___etc_passwd'
    """
    sanitized = re.sub(r'[^a-zA-Z0-9_-]', '_', table_name)

    if len(sanitized) > 100:
        sanitized = sanitized[:97] + "..."

    return sanitized


def truncate_string(s: str, max_length: int = 4000, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length.

    Examples:
        >>> truncate_string("short")
        'short'
        >>> truncate_string("a" * 150, max_length=20)
        'aaaaaaaaaaaaaaaaa...'
    """
    if len(s) <= max_length:
        return s
    return s[:max_length - len(suffix)] + suffix
