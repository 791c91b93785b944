"""
Connection Provider Module

Hands out the connections a chunk attempt needs:

- Source: a dedicated pyodbc connection to SQL Server, built from an Airflow
  connection. It is never pooled; the extractor closes it when the chunk's
  cursor is done.
- Target: psycopg2 connections from a ThreadedConnectionPool shared per
  Airflow connection id. A chunk attempt holds its target connection through
  a TargetLease and gives it back exactly once.
"""

from typing import Dict, Optional
import logging
import os
import threading

from airflow.hooks.base import BaseHook
from psycopg2 import pool as pg_pool

from mssql_pg_loader.config import MigrationConfig

logger = logging.getLogger(__name__)


def build_odbc_config(conn) -> Dict[str, str]:
    """
    Build ODBC connection parameters from an Airflow connection.

    Args:
        conn: Airflow Connection object

    Returns:
        Dictionary of ODBC keywords
    """
    port = conn.port or 1433
    server = f"{conn.host},{port}" if port != 1433 else conn.host

    config = {
        'DRIVER': '{ODBC Driver 18 for SQL Server}',
        'SERVER': server,
        'DATABASE': conn.schema,
        'TrustServerCertificate': 'yes',
    }

    # SQL Server authentication when a login is set, Windows (Kerberos) otherwise
    if conn.login:
        config['UID'] = conn.login
        config['PWD'] = conn.password or ''
        config['Trusted_Connection'] = 'no'
    else:
        config['Trusted_Connection'] = 'yes'

    return config


def build_odbc_connection_string(config: Dict[str, str]) -> str:
    return ';'.join([f"{k}={v}" for k, v in config.items() if v])


class ConnectionProvider:
    """Source and target connections for chunk attempts."""

    # PostgreSQL connection pools (class-level, shared across instances)
    _postgres_pools: Dict[str, pg_pool.ThreadedConnectionPool] = {}
    _pg_pool_lock = threading.Lock()

    def __init__(self, config: MigrationConfig):
        self._config = config
        self._odbc_config: Optional[Dict[str, str]] = None

    def acquire_source_connection(self):
        """
        Open a new SQL Server connection.

        Returns:
            pyodbc Connection; the caller owns it and must close it
        """
        import pyodbc

        if self._odbc_config is None:
            self._odbc_config = build_odbc_config(BaseHook.get_connection(self._config.source_conn_id))
        return pyodbc.connect(build_odbc_connection_string(self._odbc_config), timeout=30)

    def acquire_target_connection(self):
        """
        Take a PostgreSQL connection from the shared pool.

        Returns:
            psycopg2 connection; give it back with release_target_connection()
        """
        return self._get_postgres_pool().getconn()

    def release_target_connection(self, conn, close: bool = False) -> None:
        """
        Give a target connection back to the shared pool.

        Args:
            conn: Connection from acquire_target_connection()
            close: Close the connection instead of keeping it for reuse
        """
        if conn is None:
            return
        pool = ConnectionProvider._postgres_pools.get(self._config.target_conn_id)
        if pool and close:
            logger.warning("Discarding PostgreSQL connection whose session state could not be reset")
            pool.putconn(conn, close=True)
        elif pool:
            pool.putconn(conn)
        else:
            conn.close()

    def close(self) -> None:
        """Close the target pool for this connection id."""
        with ConnectionProvider._pg_pool_lock:
            pool = ConnectionProvider._postgres_pools.pop(self._config.target_conn_id, None)
        if pool:
            pool.closeall()
            logger.info(f"Closed PostgreSQL pool for {self._config.target_conn_id}")

    def _get_postgres_pool(self) -> pg_pool.ThreadedConnectionPool:
        conn_id = self._config.target_conn_id
        if conn_id not in ConnectionProvider._postgres_pools:
            with ConnectionProvider._pg_pool_lock:
                # Double-check after acquiring lock
                if conn_id not in ConnectionProvider._postgres_pools:
                    pg_conn = BaseHook.get_connection(conn_id)
                    pg_max_conn = int(os.environ.get('MAX_PG_CONNECTIONS', '8'))
                    pg_min_conn = max(1, pg_max_conn // 4)
                    ConnectionProvider._postgres_pools[conn_id] = pg_pool.ThreadedConnectionPool(
                        minconn=pg_min_conn,
                        maxconn=pg_max_conn,
                        host=pg_conn.host,
                        port=pg_conn.port or 5432,
                        database=pg_conn.schema or pg_conn.login,
                        user=pg_conn.login,
                        password=pg_conn.password,
                    )
                    logger.info(f"Created PostgreSQL pool for {conn_id}: max={pg_max_conn}")
        return ConnectionProvider._postgres_pools[conn_id]


class TargetLease:
    """
    Exclusive ownership of one target connection for one chunk attempt.

    release() gives the connection back exactly once; later calls are no-ops.
    A discarded lease closes the connection instead of returning it for reuse.
    Used as a context manager, the lease is released on every exit path.
    """

    def __init__(self, provider, connection):
        """
        Args:
            provider: Object with release_target_connection(conn)
            connection: The leased connection
        """
        self._provider = provider
        self.connection = connection
        self.released = False
        self.discarded = False

    def discard(self) -> None:
        """Close the connection on release; its session state is not reusable."""
        self.discarded = True

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        if self.discarded:
            self._provider.release_target_connection(self.connection, close=True)
        else:
            self._provider.release_target_connection(self.connection)

    def __enter__(self) -> "TargetLease":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
