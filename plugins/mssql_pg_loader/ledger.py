"""
Data Pool Ledger Module

The data pool is the durable ledger of pending chunks, stored in the target
PostgreSQL database. Each row holds a chunk id and its JSON metadata:

    CREATE TABLE "<schema>"."_data_pool" (
        id BIGSERIAL PRIMARY KEY,
        metadata TEXT NOT NULL
    );

The orchestrator fills it before dispatching chunks. The loader only reads
entries and deletes the entry of each chunk it processed. The table's
schema is managed by the orchestrator.
"""

from typing import List
import logging

from mssql_pg_loader.config import MigrationConfig
from mssql_pg_loader.exceptions import LedgerError
from mssql_pg_loader.migration_log import MigrationLogger
from mssql_pg_loader.models import Chunk
from mssql_pg_loader.utils import quote_pg_identifier

logger = logging.getLogger(__name__)


def get_data_pool_table_name(config: MigrationConfig) -> str:
    """Qualified, quoted name of the data pool table."""
    return f"{quote_pg_identifier(config.schema)}.{quote_pg_identifier(config.data_pool_table)}"


class LedgerStore:
    """Read and delete data pool entries."""

    def __init__(self, config: MigrationConfig, migration_log: MigrationLogger):
        self._table = get_data_pool_table_name(config)
        self._migration_log = migration_log

    def delete_entry(self, connection, chunk_id: int) -> bool:
        """
        Delete a chunk's data pool entry and commit.

        Deleting an entry that no longer exists is not an error. A failure is
        recorded and rolled back but not raised, so the caller can still
        restore the session and release the connection.

        Args:
            connection: Target psycopg2 connection (not released here)
            chunk_id: Data pool id

        Returns:
            True if the delete statement succeeded
        """
        sql = f"DELETE FROM {self._table} WHERE id = %s;"
        try:
            with connection.cursor() as cursor:
                cursor.execute(sql, (chunk_id,))
                deleted = cursor.rowcount
            connection.commit()
            logger.debug(f"Deleted data pool entry {chunk_id} ({deleted} row(s))")
            return True
        except Exception as e:
            error = LedgerError(f"Could not delete data pool entry {chunk_id}: {e}", statement=sql)
            self._migration_log.record_error(f"\t--[LedgerStore::delete_entry] {error}", sql)
            try:
                connection.rollback()
            except Exception:
                logger.exception("Exception occurred during PostgreSQL rollback")
            return False

    def pending_chunks(self, connection) -> List[Chunk]:
        """
        List every chunk still present in the data pool, in id order.

        Args:
            connection: Target psycopg2 connection (not released here)

        Returns:
            List of Chunk
        """
        sql = f"SELECT id, metadata FROM {self._table} ORDER BY id;"
        with connection.cursor() as cursor:
            cursor.execute(sql)
            rows = cursor.fetchall()
        return [Chunk.from_ledger_row(chunk_id, metadata) for chunk_id, metadata in rows]


class DataPoolConsistencyCheck:
    """
    Decide whether a chunk was already applied in an earlier run.

    A chunk counts as applied when its target table already holds data:
    with one chunk per table, a non-empty target means an earlier attempt
    committed it and the worker died before deleting the data pool entry.
    """

    def __init__(self, config: MigrationConfig, connections, migration_log: MigrationLogger):
        """
        Args:
            config: Migration configuration
            connections: ConnectionProvider for target connections
            migration_log: Logger collaborator
        """
        self._config = config
        self._connections = connections
        self._migration_log = migration_log
        self._table = get_data_pool_table_name(config)

    def was_chunk_already_applied(self, chunk_id: int) -> bool:
        """
        Args:
            chunk_id: Data pool id

        Returns:
            True if the chunk's target table already has rows
        """
        sql = f"SELECT metadata FROM {self._table} WHERE id = %s;"
        conn = None
        try:
            conn = self._connections.acquire_target_connection()
            with conn.cursor() as cursor:
                cursor.execute(sql, (chunk_id,))
                row = cursor.fetchone()
                if not row:
                    logger.warning(f"Data pool entry {chunk_id} not found; treating chunk as not applied")
                    return False

                chunk = Chunk.from_ledger_row(chunk_id, row[0])
                sql = (
                    f"SELECT 1 FROM {quote_pg_identifier(self._config.schema)}."
                    f"{quote_pg_identifier(chunk.table_name)} LIMIT 1;"
                )
                cursor.execute(sql)
                return cursor.fetchone() is not None
        except Exception as e:
            self._migration_log.record_error(
                f"\t--[DataPoolConsistencyCheck::was_chunk_already_applied] {e}", sql
            )
            return False
        finally:
            if conn is not None:
                try:
                    conn.rollback()
                except Exception:
                    logger.exception("Exception occurred during PostgreSQL connection rollback")
                self._connections.release_target_connection(conn)
