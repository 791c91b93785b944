"""
SQL Server to PostgreSQL Chunk Loader

This package loads data-pool chunks from Microsoft SQL Server into
PostgreSQL using Apache Airflow. Each chunk is streamed through a pausable
source cursor, encoded as CSV and written with COPY FROM STDIN in
watermark-sized batches.

Modules:
- data_loader: Per-chunk coordinator (recovery gate, load loop, cleanup)
- source_extractor: Pausable SQL Server read cursor
- row_encoder: Row to CSV record conversion
- batch_buffer: Watermark-bounded record buffer
- bulk_loader: COPY FROM STDIN batches, one transaction each
- integrity: session_replication_role suspension for data-only runs
- ledger: Data pool store and consistency check
- reporter: Ledger cleanup and outcome reporting
- connections: Source/target connection provider

Performance Options:
- STREAMS_HIGH_WATER_MARK=N: Rows per COPY batch
- SOURCE_FETCH_SIZE=N: Rows per source round trip
- MAX_PG_CONNECTIONS=N: Size of the shared target connection pool
"""

__version__ = "1.0.0"

from mssql_pg_loader import config
from mssql_pg_loader import row_encoder
from mssql_pg_loader import batch_buffer
from mssql_pg_loader import source_extractor
from mssql_pg_loader import bulk_loader
from mssql_pg_loader import integrity
from mssql_pg_loader import ledger
from mssql_pg_loader import reporter
from mssql_pg_loader import connections
from mssql_pg_loader import data_loader

__all__ = [
    "config",
    "row_encoder",
    "batch_buffer",
    "source_extractor",
    "bulk_loader",
    "integrity",
    "ledger",
    "reporter",
    "connections",
    "data_loader",
]
