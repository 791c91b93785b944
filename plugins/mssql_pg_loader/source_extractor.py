"""
Source Extractor Module

Streaming, pausable read cursor over the SQL Server query for one chunk.

Rows are fetched with cursor.fetchmany() into a small read-ahead and handed
out one at a time. While paused, no row is handed out; resuming hands out
exactly the next undelivered row.

The source connection is owned by the extractor and is closed (not returned
to any pool) once the cursor is exhausted or fails: the worker does not
process further chunks on it.
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple
import logging

from mssql_pg_loader.exceptions import RetrievalError

logger = logging.getLogger(__name__)


class SourceExtractor:
    """Pull-based source cursor with flow control."""

    def __init__(self, connection, sql_retrieve: str, fetch_size: int = 1000):
        """
        Args:
            connection: Open pyodbc connection (ownership passes to the extractor)
            sql_retrieve: SELECT statement for the chunk
            fetch_size: Rows per fetchmany() round trip
        """
        self._connection = connection
        self.sql_retrieve = sql_retrieve
        self.fetch_size = fetch_size
        self._cursor = None
        self._columns: List[str] = []
        self._pending: Deque[Tuple[Any, ...]] = deque()
        self._paused = False
        self._exhausted = False
        self._closed = False
        self.rows_delivered = 0

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_exhausted(self) -> bool:
        return self._exhausted

    @property
    def columns(self) -> List[str]:
        return list(self._columns)

    def pause(self) -> None:
        """Stop delivering rows. Pausing a paused extractor is a no-op."""
        if not self._paused:
            self._paused = True
            logger.debug(f"Source extractor paused after {self.rows_delivered:,} rows")

    def resume(self) -> None:
        """Re-admit row delivery. Resuming a running extractor is a no-op."""
        if self._paused:
            self._paused = False
            logger.debug(f"Source extractor resumed at row {self.rows_delivered + 1:,}")

    def next_row(self) -> Optional[Dict[str, Any]]:
        """
        Deliver the next row.

        Returns:
            Ordered dict of column name to value, or None at end of cursor

        Raises:
            RuntimeError: If called while paused
            RetrievalError: If the source query or fetch fails
        """
        if self._paused:
            raise RuntimeError("Source extractor is paused; resume() before reading")

        if self._exhausted:
            return None

        if self._cursor is None:
            self._open()

        if not self._pending:
            self._fetch()

        if not self._pending:
            self._exhausted = True
            logger.debug(f"Source cursor exhausted after {self.rows_delivered:,} rows")
            self.close()
            return None

        values = self._pending.popleft()
        self.rows_delivered += 1
        return dict(zip(self._columns, values))

    def close(self) -> None:
        """Tear down the source connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._cursor is not None:
                self._cursor.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing source cursor: {e}")
        try:
            self._connection.close()
        except Exception as e:
            logger.warning(f"Error closing source connection: {e}")

    def _open(self) -> None:
        try:
            self._cursor = self._connection.cursor()
            self._cursor.execute(self.sql_retrieve)
            self._columns = [column[0] for column in self._cursor.description]
        except Exception as e:
            raise self._fail(e) from e

    def _fetch(self) -> None:
        try:
            rows = self._cursor.fetchmany(self.fetch_size)
        except Exception as e:
            raise self._fail(e) from e
        self._pending.extend(tuple(row) for row in rows)

    def _fail(self, error: Exception) -> RetrievalError:
        self._exhausted = True
        self._pending.clear()
        self.close()
        return RetrievalError(f"Error retrieving source rows: {error}", statement=self.sql_retrieve)
