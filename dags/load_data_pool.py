"""
SQL Server to PostgreSQL Data Pool Load DAG

This DAG drains the data pool filled by the schema stage of a migration.
It handles:
1. Listing the chunks still pending in the data pool table
2. Loading each chunk in its own mapped task (COPY FROM STDIN, batched)
3. Summarizing the transfer outcomes

Chunks that were already applied by an interrupted run are only cleaned up.
Failed chunks report zero rows and are listed in the summary so they can be
dispatched again.
"""

from airflow.sdk import dag, task
from airflow.models.param import Param
from pendulum import datetime
from datetime import timedelta
from typing import List, Dict, Any
import logging

from mssql_pg_loader.config import MigrationConfig
from mssql_pg_loader.data_loader import load_chunk as load_data_pool_chunk
from mssql_pg_loader.ledger import LedgerStore
from mssql_pg_loader.migration_log import MigrationLogger

logger = logging.getLogger(__name__)


@dag(
    start_date=datetime(2025, 1, 1),
    schedule=None,  # Run manually or trigger via API
    catchup=False,
    max_active_runs=1,
    is_paused_upon_creation=False,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        "retries": 0,  # a failed chunk reports zero rows instead of raising
        "retry_delay": timedelta(seconds=30),
    },
    params={
        "source_conn_id": Param(
            default="mssql_source",
            type="string",
            description="SQL Server connection ID"
        ),
        "target_conn_id": Param(
            default="postgres_target",
            type="string",
            description="PostgreSQL connection ID"
        ),
        "source_schema": Param(
            default="dbo",
            type="string",
            description="Source schema in SQL Server"
        ),
        "target_schema": Param(
            default="public",
            type="string",
            description="Target schema in PostgreSQL (also holds the data pool table)"
        ),
        "delimiter": Param(
            default=",",
            type="string",
            minLength=1,
            maxLength=1,
            description="CSV field delimiter used by COPY"
        ),
        "streams_high_water_mark": Param(
            default=16384,
            type="integer",
            minimum=1,
            maximum=1000000,
            description="Number of rows per COPY batch"
        ),
        "migrate_only_data": Param(
            default=False,
            type="boolean",
            description="Suspend triggers and foreign-key checks while loading (session_replication_role = replica)"
        ),
    },
    tags=["migration", "mssql", "postgres", "data-pool"],
)
def load_data_pool():
    """
    DAG loading every pending data pool chunk.
    """

    @task
    def list_pending_chunks(**context) -> List[Dict[str, Any]]:
        """
        Read the data pool.

        Returns:
            List of chunk dictionaries, in data pool id order
        """
        config = MigrationConfig.from_params(context["params"])
        from airflow.providers.postgres.hooks.postgres import PostgresHook

        ledger = LedgerStore(config, MigrationLogger(config.logs_dir))
        conn = PostgresHook(postgres_conn_id=config.target_conn_id).get_conn()
        try:
            chunks = ledger.pending_chunks(conn)
        finally:
            conn.close()

        logger.info(f"Found {len(chunks)} pending chunk(s) in the data pool")
        return [chunk.as_dict() for chunk in chunks]

    @task
    def load_chunk(chunk_info: Dict[str, Any], **context) -> Dict[str, Any]:
        """
        Load one chunk.

        Args:
            chunk_info: Chunk dictionary from list_pending_chunks

        Returns:
            Transfer outcome {table_name, rows_loaded}
        """
        config = MigrationConfig.from_params(context["params"])
        return load_data_pool_chunk(chunk_info, config)

    @task(trigger_rule="all_done")
    def summarize_outcomes(chunks: List[Dict[str, Any]], outcomes: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Aggregate outcomes per table and flag chunks that loaded nothing.

        Returns:
            Summary dictionary
        """
        outcomes = [o for o in (outcomes or []) if o]
        rows_by_table: Dict[str, int] = {}
        for outcome in outcomes:
            rows_by_table[outcome["table_name"]] = (
                rows_by_table.get(outcome["table_name"], 0) + outcome["rows_loaded"]
            )

        zero_row_tables = sorted(t for t, rows in rows_by_table.items() if rows == 0)
        summary = {
            "chunks_pending": len(chunks or []),
            "chunks_reported": len(outcomes),
            "total_rows_loaded": sum(rows_by_table.values()),
            "rows_by_table": rows_by_table,
            "zero_row_tables": zero_row_tables,
        }

        logger.info(
            f"Loaded {summary['total_rows_loaded']:,} rows from {summary['chunks_reported']} "
            f"of {summary['chunks_pending']} chunk(s)"
        )
        if zero_row_tables:
            logger.warning(
                f"Tables with zero rows loaded (recovered, empty or failed): {', '.join(zero_row_tables)}"
            )
        return summary

    pending = list_pending_chunks()
    outcomes = load_chunk.expand(chunk_info=pending)
    summarize_outcomes(pending, outcomes)


# Instantiate the DAG
load_data_pool()
