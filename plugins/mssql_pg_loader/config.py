"""
Loader Configuration Module

Global migration settings handed to every chunk-processing attempt:
connection ids, schemas, the COPY delimiter, the batch watermark and the
data-only migration flag.

Settings come from environment variables (the same way the transfer
module reads MAX_PG_CONNECTIONS and friends) and may be overridden by
Airflow DAG params.
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional
import logging
import os

from mssql_pg_loader.utils import validate_sql_identifier

logger = logging.getLogger(__name__)

# Characters that cannot serve as a CSV delimiter for COPY
_FORBIDDEN_DELIMITERS = {'"', '\\', '\n', '\r', '.', ' '}


def _env_bool(name: str, default: bool) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in ('true', '1', 'yes', 'on')


@dataclass(frozen=True)
class MigrationConfig:
    """Settings shared by every chunk of one migration run."""

    source_conn_id: str = 'mssql_source'
    target_conn_id: str = 'postgres_target'
    source_schema: str = 'dbo'
    schema: str = 'public'
    delimiter: str = ','
    streams_high_water_mark: int = 16384
    migrate_only_data: bool = False
    logs_dir: str = 'logs_directory'
    data_pool_table: str = '_data_pool'
    source_fetch_size: int = 1000
    extra_config_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "MigrationConfig":
        """
        Build the configuration from environment variables.

        Environment variables:
            SOURCE_CONN_ID, TARGET_CONN_ID: Airflow connection ids
            SOURCE_SCHEMA, TARGET_SCHEMA: Schema names
            COPY_DELIMITER: Single-character field delimiter
            STREAMS_HIGH_WATER_MARK: Rows per COPY batch
            MIGRATE_ONLY_DATA: Suspend triggers/FK checks while loading
            LOGS_DIR: Directory for all.log, errors-only.log and per-table logs
            DATA_POOL_TABLE: Ledger table name in the target schema
            SOURCE_FETCH_SIZE: Rows fetched per source round trip
            EXTRA_CONFIG_PATH: JSON file with table rename rules

        Returns:
            Validated MigrationConfig
        """
        config = cls(
            source_conn_id=os.environ.get('SOURCE_CONN_ID', cls.source_conn_id),
            target_conn_id=os.environ.get('TARGET_CONN_ID', cls.target_conn_id),
            source_schema=os.environ.get('SOURCE_SCHEMA', cls.source_schema),
            schema=os.environ.get('TARGET_SCHEMA', cls.schema),
            delimiter=os.environ.get('COPY_DELIMITER', cls.delimiter),
            streams_high_water_mark=int(
                os.environ.get('STREAMS_HIGH_WATER_MARK', str(cls.streams_high_water_mark))
            ),
            migrate_only_data=_env_bool('MIGRATE_ONLY_DATA', cls.migrate_only_data),
            logs_dir=os.environ.get('LOGS_DIR', cls.logs_dir),
            data_pool_table=os.environ.get('DATA_POOL_TABLE', cls.data_pool_table),
            source_fetch_size=int(os.environ.get('SOURCE_FETCH_SIZE', str(cls.source_fetch_size))),
            extra_config_path=os.environ.get('EXTRA_CONFIG_PATH') or None,
        )
        return config.validate()

    @classmethod
    def from_params(cls, params: Dict[str, Any], base: Optional["MigrationConfig"] = None) -> "MigrationConfig":
        """
        Overlay DAG params on a base configuration.

        Unknown keys are ignored so the full DAG params dict can be passed;
        'target_schema' is accepted as an alias for 'schema'.

        Args:
            params: Airflow params (or any mapping of field name to value)
            base: Configuration to start from (defaults to from_env())

        Returns:
            Validated MigrationConfig
        """
        base = base or cls.from_env()
        known = {f.name for f in fields(cls)}
        overrides = {k: v for k, v in params.items() if k in known and v is not None}
        # DAG params name the target schema explicitly
        if params.get('target_schema') and 'schema' not in overrides:
            overrides['schema'] = params['target_schema']
        return replace(base, **overrides).validate()

    def validate(self) -> "MigrationConfig":
        """
        Check the settings.

        Returns:
            self, for chaining

        Raises:
            ValueError: If any setting is invalid
        """
        validate_sql_identifier(self.schema, "schema")
        validate_sql_identifier(self.source_schema, "source schema")
        validate_sql_identifier(self.data_pool_table, "data pool table")

        if len(self.delimiter) != 1 or self.delimiter in _FORBIDDEN_DELIMITERS:
            raise ValueError(
                f"Invalid delimiter {self.delimiter!r}: must be a single character "
                "other than quote, backslash, period, space or a line break"
            )

        if self.streams_high_water_mark <= 0:
            raise ValueError(
                f"Invalid streams_high_water_mark: must be positive (got {self.streams_high_water_mark})"
            )

        if self.source_fetch_size <= 0:
            raise ValueError(f"Invalid source_fetch_size: must be positive (got {self.source_fetch_size})")

        return self
