"""
Bulk Loader Module

Streams batches of encoded CSV records into the target table with
PostgreSQL COPY FROM STDIN.

Each batch gets its own COPY channel and its own transaction: either every
record of the batch is committed or none is. The guarantee is per batch,
not per chunk: batches committed before a failing one stay committed.
"""

from io import TextIOBase
from typing import Iterable, List
import logging
import time

from mssql_pg_loader.exceptions import LoadError
from mssql_pg_loader.utils import quote_pg_identifier, quote_sql_literal

logger = logging.getLogger(__name__)


def build_copy_sql(schema: str, table_name: str, delimiter: str) -> str:
    """
    Build the COPY statement for a target table.

    Args:
        schema: Target schema
        table_name: Target table
        delimiter: CSV field delimiter

    Returns:
        COPY ... FROM STDIN statement using CSV format and the \\N NULL marker
    """
    return (
        f"COPY {quote_pg_identifier(schema)}.{quote_pg_identifier(table_name)} "
        f"FROM STDIN WITH (FORMAT CSV, DELIMITER {quote_sql_literal(delimiter)}, NULL '\\N')"
    )


class BulkLoader:
    """Load batches into one target table over one target connection."""

    def __init__(self, connection, schema: str, table_name: str, delimiter: str):
        """
        Args:
            connection: psycopg2 connection owned by the current chunk attempt
            schema: Target schema
            table_name: Target table
            delimiter: CSV field delimiter
        """
        self._connection = connection
        self.table_name = table_name
        self.copy_sql = build_copy_sql(schema, table_name, delimiter)
        self.batches_loaded = 0
        self.rows_loaded = 0
        self._failed = False

    def load(self, records: List[str]) -> int:
        """
        Load one batch through a fresh COPY channel and commit it.

        Args:
            records: Encoded CSV records of the batch

        Returns:
            Number of records committed

        Raises:
            LoadError: If the COPY or the commit fails; the batch is rolled back
        """
        if self._failed:
            raise LoadError("Bulk loader already failed; no further batches are loaded", statement=self.copy_sql)

        if not records:
            return 0

        batch_start_time = time.time()
        try:
            with self._connection.cursor() as cursor:
                cursor.copy_expert(self.copy_sql, _RecordStream(records))
            self._connection.commit()
        except Exception as e:
            self._failed = True
            self._rollback()
            raise LoadError(f"COPY into {self.table_name} failed: {e}", statement=self.copy_sql) from e

        self.batches_loaded += 1
        self.rows_loaded += len(records)

        batch_time = time.time() - batch_start_time
        rows_per_second = len(records) / batch_time if batch_time > 0 else 0
        logger.info(
            f"Batch {self.batches_loaded}: Loaded {len(records):,} rows into {self.table_name} "
            f"({self.rows_loaded:,} total) at {rows_per_second:,.0f} rows/sec"
        )
        return len(records)

    def _rollback(self) -> None:
        try:
            self._connection.rollback()
        except Exception:
            logger.exception("Exception occurred during PostgreSQL rollback after COPY failure")


class _RecordStream(TextIOBase):
    """Lazy text stream that feeds COPY FROM without joining the whole batch."""

    def __init__(self, records: Iterable[str]):
        self._iterator = iter(records)
        self._buffer = ''
        self._exhausted = False

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> str:
        while (size is None or size < 0 or len(self._buffer) < size) and not self._exhausted:
            try:
                self._buffer += next(self._iterator)
            except StopIteration:
                self._exhausted = True

        if size is None or size < 0:
            data = self._buffer
            self._buffer = ''
            return data

        data = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return data
