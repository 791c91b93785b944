"""
Row Encoder Module

Converts one source row into one record of PostgreSQL's CSV COPY format.

The COPY statement names NULL '\\N' as the NULL marker. Only a real NULL is
written as the bare marker; every other value is double-quoted with
embedded quotes doubled. A quoted field never matches the NULL marker, so
the text '\\N' stays text and a lone '\\.' is not read as end-of-data.
"""

from datetime import datetime, date, time as dt_time
from decimal import Decimal
from typing import Any, Mapping
import math

from mssql_pg_loader.exceptions import EncodingError

NULL_MARKER = '\\N'
QUOTE_CHAR = '"'


def quote_field(text: str) -> str:
    """
    Quote one non-NULL field for CSV COPY.

    Examples:
        >>> quote_field('say "hi"')
        '"say ""hi""\"'
        >>> quote_field('\\\\N')
        '"\\\\N"'
    """
    return QUOTE_CHAR + text.replace(QUOTE_CHAR, QUOTE_CHAR * 2) + QUOTE_CHAR


def is_null(value: Any) -> bool:
    """True for values stored as SQL NULL (None and non-finite floats)."""
    return value is None or (isinstance(value, float) and not math.isfinite(value))


class RowEncoder:
    """Encode source rows as header-less CSV records for COPY FROM STDIN."""

    def __init__(self, delimiter: str = ','):
        """
        Args:
            delimiter: Single-character field delimiter used by the COPY statement
        """
        self.delimiter = delimiter

    def encode(self, row: Mapping[str, Any]) -> str:
        """
        Encode one row.

        Args:
            row: Ordered mapping of column name to value

        Returns:
            One CSV record terminated by a newline

        Raises:
            EncodingError: If any value cannot be represented
        """
        fields = []
        for column, value in row.items():
            try:
                text = self.normalize_value(value)
            except EncodingError as e:
                raise EncodingError(f"Column {column!r}: {e}", column=column) from e
            except Exception as e:
                raise EncodingError(f"Column {column!r}: cannot encode value: {e}", column=column) from e

            fields.append(NULL_MARKER if is_null(value) else quote_field(text))

        return self.delimiter.join(fields) + '\n'

    def normalize_value(self, value: Any) -> str:
        """
        Normalize a Python value into its unquoted COPY text form.

        Raises:
            EncodingError: For strings PostgreSQL cannot store (NUL characters)
        """
        if is_null(value):
            return NULL_MARKER

        if isinstance(value, str):
            if '\x00' in value:
                raise EncodingError("text contains a NUL (0x00) character")
            return value
        if isinstance(value, datetime):
            return value.isoformat(sep=' ')
        if isinstance(value, (date, dt_time)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, bool):
            return 't' if value else 'f'
        if isinstance(value, (bytes, bytearray, memoryview)):
            return '\\x' + bytes(value).hex()

        return str(value)
