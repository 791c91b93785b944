"""
Tests for the Connection Provider Module

These tests validate ODBC parameter building from Airflow connections,
the shared PostgreSQL pool and the target lease.
"""

import pytest
from unittest.mock import Mock, patch

from mssql_pg_loader.config import MigrationConfig
from mssql_pg_loader.connections import (
    ConnectionProvider,
    TargetLease,
    build_odbc_config,
    build_odbc_connection_string,
)


@pytest.fixture
def mock_airflow_connection():
    """Create mock Airflow connection object."""
    conn = Mock()
    conn.host = 'localhost'
    conn.port = 1433
    conn.schema = 'TestDB'
    conn.login = 'sa'
    conn.password = 'TestPassword123'
    return conn


@pytest.fixture(autouse=True)
def reset_pools():
    ConnectionProvider._postgres_pools.clear()
    yield
    ConnectionProvider._postgres_pools.clear()


class TestOdbcConfig:

    def test_sql_auth(self, mock_airflow_connection):
        config = build_odbc_config(mock_airflow_connection)

        assert config['DRIVER'] == '{ODBC Driver 18 for SQL Server}'
        # Port 1433 is default, so not appended to server string
        assert config['SERVER'] == 'localhost'
        assert config['DATABASE'] == 'TestDB'
        assert config['UID'] == 'sa'
        assert config['PWD'] == 'TestPassword123'
        assert config['Trusted_Connection'] == 'no'
        assert config['TrustServerCertificate'] == 'yes'

    def test_windows_auth(self, mock_airflow_connection):
        mock_airflow_connection.login = None

        config = build_odbc_config(mock_airflow_connection)

        assert config['Trusted_Connection'] == 'yes'
        assert 'UID' not in config
        assert 'PWD' not in config

    def test_custom_port(self, mock_airflow_connection):
        mock_airflow_connection.port = 14330
        assert build_odbc_config(mock_airflow_connection)['SERVER'] == 'localhost,14330'

    def test_connection_string_skips_empty_values(self):
        conn_str = build_odbc_connection_string({'DRIVER': '{X}', 'SERVER': 'db', 'DATABASE': None})
        assert conn_str == 'DRIVER={X};SERVER=db'


class TestConnectionProvider:

    def test_source_connection_is_new_each_time(self, mock_airflow_connection):
        pytest.importorskip("pyodbc")
        provider = ConnectionProvider(MigrationConfig(source_conn_id='mssql_prod'))

        with patch('mssql_pg_loader.connections.BaseHook.get_connection',
                   return_value=mock_airflow_connection) as mock_get_conn, \
                patch('pyodbc.connect') as mock_connect:
            first = provider.acquire_source_connection()
            second = provider.acquire_source_connection()

        mock_get_conn.assert_called_once_with('mssql_prod')
        assert mock_connect.call_count == 2
        assert first is mock_connect.return_value
        assert second is mock_connect.return_value
        conn_str = mock_connect.call_args[0][0]
        assert 'SERVER=localhost' in conn_str
        assert 'UID=sa' in conn_str
        assert mock_connect.call_args[1] == {'timeout': 30}

    def test_target_pool_is_shared(self, mock_airflow_connection):
        mock_airflow_connection.port = 5432
        config = MigrationConfig(target_conn_id='pg_prod')

        with patch('mssql_pg_loader.connections.BaseHook.get_connection',
                   return_value=mock_airflow_connection), \
                patch('mssql_pg_loader.connections.pg_pool.ThreadedConnectionPool') as mock_pool_cls, \
                patch.dict('os.environ', {'MAX_PG_CONNECTIONS': '12'}):
            first = ConnectionProvider(config)
            second = ConnectionProvider(config)
            conn_a = first.acquire_target_connection()
            second.acquire_target_connection()

        mock_pool_cls.assert_called_once_with(
            minconn=3,
            maxconn=12,
            host='localhost',
            port=5432,
            database='TestDB',
            user='sa',
            password='TestPassword123',
        )
        assert conn_a is mock_pool_cls.return_value.getconn.return_value
        assert mock_pool_cls.return_value.getconn.call_count == 2

    def test_release_returns_connection_to_pool(self, mock_airflow_connection):
        with patch('mssql_pg_loader.connections.BaseHook.get_connection',
                   return_value=mock_airflow_connection), \
                patch('mssql_pg_loader.connections.pg_pool.ThreadedConnectionPool') as mock_pool_cls:
            provider = ConnectionProvider(MigrationConfig())
            conn = provider.acquire_target_connection()
            provider.release_target_connection(conn)

        mock_pool_cls.return_value.putconn.assert_called_once_with(conn)

    def test_release_with_close_discards_pooled_connection(self, mock_airflow_connection):
        with patch('mssql_pg_loader.connections.BaseHook.get_connection',
                   return_value=mock_airflow_connection), \
                patch('mssql_pg_loader.connections.pg_pool.ThreadedConnectionPool') as mock_pool_cls:
            provider = ConnectionProvider(MigrationConfig())
            conn = provider.acquire_target_connection()
            provider.release_target_connection(conn, close=True)

        mock_pool_cls.return_value.putconn.assert_called_once_with(conn, close=True)

    def test_release_without_pool_closes_connection(self):
        conn = Mock()

        ConnectionProvider(MigrationConfig()).release_target_connection(conn)

        conn.close.assert_called_once()

    def test_release_none_is_ignored(self):
        ConnectionProvider(MigrationConfig()).release_target_connection(None)

    def test_close_pool(self, mock_airflow_connection):
        with patch('mssql_pg_loader.connections.BaseHook.get_connection',
                   return_value=mock_airflow_connection), \
                patch('mssql_pg_loader.connections.pg_pool.ThreadedConnectionPool') as mock_pool_cls:
            provider = ConnectionProvider(MigrationConfig())
            provider.acquire_target_connection()
            provider.close()

        mock_pool_cls.return_value.closeall.assert_called_once()
        assert ConnectionProvider._postgres_pools == {}


class TestTargetLease:

    def test_release_exactly_once(self):
        provider = Mock()
        conn = Mock()
        lease = TargetLease(provider, conn)

        lease.release()
        lease.release()

        provider.release_target_connection.assert_called_once_with(conn)
        assert lease.released

    def test_context_manager_releases_on_error(self):
        provider = Mock()

        with pytest.raises(RuntimeError):
            with TargetLease(provider, Mock()) as lease:
                raise RuntimeError("boom")

        assert lease.released
        provider.release_target_connection.assert_called_once()

    def test_context_manager_after_explicit_release(self):
        provider = Mock()

        with TargetLease(provider, Mock()) as lease:
            lease.release()

        provider.release_target_connection.assert_called_once()

    def test_discarded_lease_closes_connection(self):
        provider = Mock()
        conn = Mock()

        with TargetLease(provider, conn) as lease:
            lease.discard()

        provider.release_target_connection.assert_called_once_with(conn, close=True)
