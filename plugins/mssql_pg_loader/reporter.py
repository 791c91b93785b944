"""
Outcome Reporter Module

Terminal step of every chunk-processing attempt. Whatever the path
(recovery, success, failure), cleanup runs in the same order:

1. delete the chunk's data pool entry
2. restore the session's integrity mode (last statement on the connection)
3. release the target connection, closing it if the restore failed
4. send the transfer outcome to the orchestrator

Steps 2-4 run even if an earlier step fails.
"""

from typing import List, Optional, Protocol
import logging

from mssql_pg_loader.connections import TargetLease
from mssql_pg_loader.exceptions import ChunkTransferError
from mssql_pg_loader.integrity import IntegritySuspension
from mssql_pg_loader.ledger import LedgerStore
from mssql_pg_loader.migration_log import MigrationLogger
from mssql_pg_loader.models import Chunk, TransferOutcome

logger = logging.getLogger(__name__)


class OutcomeChannel(Protocol):
    """Outbound notification to the orchestrator, one per chunk attempt."""

    def send(self, outcome: TransferOutcome) -> None:
        ...


class CollectingOutcomeChannel:
    """Keeps every outcome it receives, in order."""

    def __init__(self):
        self.outcomes: List[TransferOutcome] = []

    def send(self, outcome: TransferOutcome) -> None:
        self.outcomes.append(outcome)


class OutcomeReporter:
    """Ledger cleanup and outcome reporting for one chunk attempt."""

    def __init__(self, ledger: LedgerStore, channel: OutcomeChannel, migration_log: MigrationLogger):
        self._ledger = ledger
        self._channel = channel
        self._migration_log = migration_log

    def finish_recovery(self, chunk: Chunk, lease: TargetLease) -> TransferOutcome:
        """Clean up a chunk that was already applied; nothing is loaded."""
        return self._finish(chunk, lease, None, rows_loaded=0)

    def finish_success(
        self,
        chunk: Chunk,
        lease: TargetLease,
        suspension: Optional[IntegritySuspension],
        rows_loaded: int,
    ) -> TransferOutcome:
        """Clean up a fully delivered chunk and report its committed rows."""
        if rows_loaded != chunk.rows_count:
            logger.warning(
                f"{chunk.table_name}: loaded {rows_loaded:,} rows, "
                f"data pool expected {chunk.rows_count:,}"
            )
        return self._finish(chunk, lease, suspension, rows_loaded=rows_loaded)

    def finish_failure(
        self,
        chunk: Chunk,
        lease: TargetLease,
        suspension: Optional[IntegritySuspension],
        error: ChunkTransferError,
        sql_retrieve: str,
        rows_committed: int = 0,
    ) -> TransferOutcome:
        """
        Record a chunk-fatal error, clean up and report zero rows.

        Args:
            chunk: The failed chunk
            lease: Target connection lease
            suspension: Integrity suspension to restore, if any
            error: The fatal error
            sql_retrieve: Source SELECT of the chunk, written to the rejected-data file
            rows_committed: Rows committed by earlier batches (they stay in the target)
        """
        self._migration_log.record_error(f"\t--[load_chunk] {error}", error.statement)
        rejected_data = f"\t--[load_chunk] Error loading table data:\n{sql_retrieve}\n"
        self._migration_log.log(rejected_data, self._migration_log.table_log_path(chunk.table_name))

        if rows_committed:
            logger.warning(
                f"{chunk.table_name}: {rows_committed:,} rows from earlier batches of chunk "
                f"{chunk.chunk_id} remain committed in the target"
            )

        return self._finish(chunk, lease, suspension, rows_loaded=0)

    def _finish(
        self,
        chunk: Chunk,
        lease: TargetLease,
        suspension: Optional[IntegritySuspension],
        rows_loaded: int,
    ) -> TransferOutcome:
        try:
            self._ledger.delete_entry(lease.connection, chunk.chunk_id)
        finally:
            try:
                if suspension is not None and not suspension.restore():
                    lease.discard()
            finally:
                lease.release()

        outcome = TransferOutcome(table_name=chunk.table_name, rows_loaded=rows_loaded)
        self._channel.send(outcome)
        return outcome
