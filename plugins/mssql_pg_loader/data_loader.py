"""
Data Loader Module

Loads one data-pool chunk from SQL Server into PostgreSQL.

A chunk either takes the recovery path (already applied in an earlier run:
only the data pool entry is cleaned up) or the normal path, driven by the
ChunkRun state machine:

    EXTRACTING -> BUFFERING -> EXTRACTING ...      rows flow into the batch
    BUFFERING  -> DRAINING                         watermark hit, source paused
    DRAINING   -> EXTRACTING                       batch committed, source resumed
    EXTRACTING -> DRAINING                         end of cursor, last partial batch
    EXTRACTING/DRAINING -> RESTORING               everything delivered
    any        -> FAILED                           retrieval, encoding or load error
    RESTORING  -> DONE                             success cleanup finished

Batches are loaded one at a time on the chunk's single target connection.
Every path ends in the OutcomeReporter, which deletes the data pool entry,
restores the session's integrity mode and releases the target connection.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
import logging
import time

from mssql_pg_loader.batch_buffer import BatchBuffer
from mssql_pg_loader.bulk_loader import BulkLoader
from mssql_pg_loader.config import MigrationConfig
from mssql_pg_loader.connections import ConnectionProvider, TargetLease
from mssql_pg_loader.exceptions import ChunkTransferError, RetrievalError
from mssql_pg_loader.integrity import IntegrityController
from mssql_pg_loader.ledger import DataPoolConsistencyCheck, LedgerStore
from mssql_pg_loader.migration_log import MigrationLogger
from mssql_pg_loader.models import Chunk, TransferOutcome
from mssql_pg_loader.recovery import RecoveryGate
from mssql_pg_loader.reporter import CollectingOutcomeChannel, OutcomeReporter
from mssql_pg_loader.row_encoder import RowEncoder
from mssql_pg_loader.source_extractor import SourceExtractor
from mssql_pg_loader.table_names import TableNameResolver
from mssql_pg_loader.utils import quote_mssql_identifier, quote_pg_identifier

logger = logging.getLogger(__name__)


class LoaderState(Enum):
    EXTRACTING = 'extracting'
    BUFFERING = 'buffering'
    DRAINING = 'draining'
    RESTORING = 'restoring'
    DONE = 'done'
    FAILED = 'failed'


class ChunkRun:
    """
    State machine for the normal load path of one chunk.

    run() drives extraction, encoding, buffering and draining until every row
    is delivered (RESTORING) or a chunk-fatal error occurs (FAILED). Every
    state change is appended to `transitions`.
    """

    def __init__(
        self,
        extractor: SourceExtractor,
        encoder: RowEncoder,
        buffer: BatchBuffer,
        loader: BulkLoader,
    ):
        self.extractor = extractor
        self.encoder = encoder
        self.buffer = buffer
        self.loader = loader
        self.state = LoaderState.EXTRACTING
        self.transitions: List[LoaderState] = [LoaderState.EXTRACTING]
        self.error: Optional[ChunkTransferError] = None
        self._row: Optional[Dict[str, Any]] = None

    @property
    def rows_loaded(self) -> int:
        return self.loader.rows_loaded

    def run(self) -> LoaderState:
        """
        Run until RESTORING or FAILED.

        Returns:
            The final state
        """
        steps = {
            LoaderState.EXTRACTING: self._extract,
            LoaderState.BUFFERING: self._buffer_row,
            LoaderState.DRAINING: self._drain,
        }
        while self.state not in (LoaderState.RESTORING, LoaderState.FAILED):
            try:
                steps[self.state]()
            except ChunkTransferError as e:
                self.error = e
                self.buffer.clear()
                self._transition(LoaderState.FAILED)
        return self.state

    def complete(self) -> None:
        """Mark the success cleanup as finished."""
        if self.state is not LoaderState.RESTORING:
            raise RuntimeError(f"Cannot complete a chunk run in state {self.state.value}")
        self._transition(LoaderState.DONE)

    def _transition(self, state: LoaderState) -> None:
        logger.debug(f"Chunk run: {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    def _extract(self) -> None:
        row = self.extractor.next_row()
        if row is not None:
            self._row = row
            self._transition(LoaderState.BUFFERING)
        elif len(self.buffer):
            self._transition(LoaderState.DRAINING)
        else:
            self._transition(LoaderState.RESTORING)

    def _buffer_row(self) -> None:
        record = self.encoder.encode(self._row)
        self._row = None
        if self.buffer.append(record):
            self.extractor.pause()
            self._transition(LoaderState.DRAINING)
        else:
            self._transition(LoaderState.EXTRACTING)

    def _drain(self) -> None:
        self.loader.load(self.buffer.drain())

        if self.extractor.is_exhausted:
            self._transition(LoaderState.RESTORING)
        else:
            self.extractor.resume()
            self._transition(LoaderState.EXTRACTING)


class DataLoader:
    """Process data-pool chunks: recovery check, COPY load, cleanup, outcome."""

    def __init__(
        self,
        config: MigrationConfig,
        connections,
        consistency_check=None,
        ledger: Optional[LedgerStore] = None,
        table_names: Optional[TableNameResolver] = None,
        channel=None,
        migration_log: Optional[MigrationLogger] = None,
    ):
        """
        Args:
            config: Migration configuration
            connections: ConnectionProvider (or any object with the same methods)
            consistency_check: Object with was_chunk_already_applied(chunk_id);
                               defaults to DataPoolConsistencyCheck
            ledger: Data pool store; defaults to LedgerStore
            table_names: Rename resolver; defaults to the extra-config file rules
            channel: Outcome channel; defaults to CollectingOutcomeChannel
            migration_log: Logger collaborator; defaults to one writing to config.logs_dir
        """
        self.config = config
        self.connections = connections
        self.migration_log = migration_log or MigrationLogger(config.logs_dir)
        self.consistency_check = consistency_check or DataPoolConsistencyCheck(
            config, connections, self.migration_log
        )
        self.ledger = ledger or LedgerStore(config, self.migration_log)
        self.table_names = table_names or TableNameResolver.from_file(config.extra_config_path)
        self.channel = channel or CollectingOutcomeChannel()
        self.recovery_gate = RecoveryGate(self.consistency_check)
        self.integrity = IntegrityController(self.migration_log)
        self.reporter = OutcomeReporter(self.ledger, self.channel, self.migration_log)
        self.last_run: Optional[ChunkRun] = None

    def build_retrieve_sql(self, chunk: Chunk) -> str:
        """SELECT statement reading the chunk from the (possibly renamed) source table."""
        original_table_name = self.table_names.get_table_name(chunk.table_name, True)
        return (
            f"SELECT {chunk.select_field_list} FROM "
            f"{quote_mssql_identifier(self.config.source_schema)}.{quote_mssql_identifier(original_table_name)};"
        )

    def load_chunk(self, chunk: Chunk) -> TransferOutcome:
        """
        Process one chunk to completion.

        Exactly one of recovery cleanup, success cleanup or failure cleanup
        runs before this returns.

        Args:
            chunk: The chunk to load

        Returns:
            TransferOutcome (rows_loaded is 0 for recovered and failed chunks)
        """
        self.migration_log.log(
            f"\t--[load_chunk] Loading the data into "
            f"{quote_pg_identifier(self.config.schema)}.{quote_pg_identifier(chunk.table_name)} table..."
        )
        self.last_run = None

        if self.recovery_gate.should_recover(chunk):
            with TargetLease(self.connections, self.connections.acquire_target_connection()) as lease:
                return self.reporter.finish_recovery(chunk, lease)

        return self._populate_table(chunk)

    def _populate_table(self, chunk: Chunk) -> TransferOutcome:
        start_time = time.time()
        sql_retrieve = self.build_retrieve_sql(chunk)

        with TargetLease(self.connections, self.connections.acquire_target_connection()) as lease:
            suspension = None
            if self.config.migrate_only_data:
                suspension = self.integrity.suspend(lease.connection)

            try:
                loader = BulkLoader(lease.connection, self.config.schema, chunk.table_name, self.config.delimiter)

                try:
                    extractor = SourceExtractor(
                        self._acquire_source_connection(sql_retrieve),
                        sql_retrieve,
                        fetch_size=self.config.source_fetch_size,
                    )
                except RetrievalError as e:
                    return self.reporter.finish_failure(chunk, lease, suspension, e, sql_retrieve)

                run = ChunkRun(
                    extractor,
                    RowEncoder(self.config.delimiter),
                    BatchBuffer(self.config.streams_high_water_mark),
                    loader,
                )
                self.last_run = run
                try:
                    state = run.run()
                finally:
                    extractor.close()

                if state is LoaderState.FAILED:
                    return self.reporter.finish_failure(
                        chunk, lease, suspension, run.error, sql_retrieve, rows_committed=run.rows_loaded
                    )

                outcome = self.reporter.finish_success(chunk, lease, suspension, run.rows_loaded)
                run.complete()
            finally:
                # No-op when the reporter already restored it
                if suspension is not None and not suspension.restore():
                    lease.discard()

        elapsed_time = time.time() - start_time
        self.migration_log.log(
            f"\t--[load_chunk] Loaded {outcome.rows_loaded:,} rows into {chunk.table_name} "
            f"in {elapsed_time:.2f} seconds ({loader.batches_loaded} batch(es))"
        )
        return outcome

    def _acquire_source_connection(self, sql_retrieve: str):
        try:
            return self.connections.acquire_source_connection()
        except Exception as e:
            raise RetrievalError(f"Could not connect to the source database: {e}", statement=sql_retrieve) from e


def load_chunk(chunk_info: Dict[str, Any], config: Optional[MigrationConfig] = None) -> Dict[str, Any]:
    """
    Convenience function to load a single chunk with the default collaborators.

    Args:
        chunk_info: Chunk dictionary (chunk_id, table_name, select_field_list, rows_count)
        config: Migration configuration (defaults to MigrationConfig.from_env())

    Returns:
        Transfer outcome dictionary {table_name, rows_loaded}
    """
    config = config or MigrationConfig.from_env()
    loader = DataLoader(config, ConnectionProvider(config))
    outcome = loader.load_chunk(Chunk.from_dict(chunk_info))
    return outcome.as_dict()
