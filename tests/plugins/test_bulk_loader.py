"""
Tests for the Bulk Loader Module

These tests validate the COPY statement, per-batch transactions and the
lazy record stream handed to copy_expert.
"""

import pytest
from unittest.mock import MagicMock

from mssql_pg_loader.bulk_loader import BulkLoader, _RecordStream, build_copy_sql
from mssql_pg_loader.exceptions import LoadError

from .fakes import FakeTargetConnection


class TestBuildCopySql:

    def test_default_delimiter(self):
        assert build_copy_sql('public', 'orders', ',') == (
            'COPY "public"."orders" FROM STDIN WITH (FORMAT CSV, DELIMITER \',\', NULL \'\\N\')'
        )

    def test_quotes_identifiers(self):
        sql = build_copy_sql('sales', 'Order "Details"', '|')
        assert sql.startswith('COPY "sales"."Order ""Details""" FROM STDIN')
        assert "DELIMITER '|'" in sql


class TestBulkLoader:

    def test_batch_is_committed(self):
        conn = FakeTargetConnection()
        loader = BulkLoader(conn, 'public', 'orders', ',')

        assert loader.load(['1,a\n', '2,\\N\n']) == 2

        assert conn.committed_rows('orders') == [['1', 'a'], ['2', None]]
        assert conn.commits == 1
        assert loader.batches_loaded == 1
        assert loader.rows_loaded == 2

    def test_each_batch_uses_its_own_channel_and_transaction(self):
        conn = FakeTargetConnection()
        loader = BulkLoader(conn, 'public', 'orders', ',')

        loader.load(['1,a\n'])
        loader.load(['2,b\n', '3,c\n'])

        assert conn.copy_calls == 2
        assert conn.commits == 2
        assert loader.rows_loaded == 3
        assert [s for s in conn.statements if s == 'COMMIT'] == ['COMMIT', 'COMMIT']

    def test_empty_batch_is_skipped(self):
        conn = FakeTargetConnection()
        loader = BulkLoader(conn, 'public', 'orders', ',')

        assert loader.load([]) == 0
        assert conn.copy_calls == 0
        assert conn.commits == 0

    def test_failed_batch_is_rolled_back(self):
        conn = FakeTargetConnection()
        conn.fail_copy_calls = {2}
        loader = BulkLoader(conn, 'public', 'orders', ',')
        loader.load(['1,a\n'])

        with pytest.raises(LoadError) as exc_info:
            loader.load(['2,b\n', '3,c\n'])

        assert exc_info.value.statement == loader.copy_sql
        assert conn.rollbacks == 1
        assert conn.committed_rows('orders') == [['1', 'a']]
        assert loader.rows_loaded == 1

    def test_commit_failure_is_a_load_error(self):
        conn = FakeTargetConnection()
        conn.fail_statements = {'COMMIT': RuntimeError("connection lost")}
        loader = BulkLoader(conn, 'public', 'orders', ',')

        with pytest.raises(LoadError, match="connection lost"):
            loader.load(['1,a\n'])

        assert conn.committed_rows('orders') == []

    def test_no_batches_after_failure(self):
        conn = FakeTargetConnection()
        conn.fail_copy_calls = {1}
        loader = BulkLoader(conn, 'public', 'orders', ',')
        with pytest.raises(LoadError):
            loader.load(['1,a\n'])

        with pytest.raises(LoadError, match="already failed"):
            loader.load(['2,b\n'])

        assert conn.copy_calls == 1

    def test_rollback_failure_still_raises_load_error(self):
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value.copy_expert.side_effect = RuntimeError("COPY aborted")
        conn.rollback.side_effect = RuntimeError("connection closed")
        loader = BulkLoader(conn, 'public', 'orders', ',')

        with pytest.raises(LoadError, match="COPY aborted"):
            loader.load(['1,a\n'])

        conn.commit.assert_not_called()


class TestRecordStream:

    def test_reads_in_requested_sizes(self):
        stream = _RecordStream(['abc\n', 'de\n'])

        assert stream.read(2) == 'ab'
        assert stream.read(5) == 'c\nde\n'
        assert stream.read(5) == ''

    def test_read_all(self):
        stream = _RecordStream(['1\n', '2\n'])
        assert stream.read() == '1\n2\n'
        assert stream.read() == ''

    def test_pulls_records_lazily(self):
        pulled = []

        def records():
            for r in ['a\n', 'b\n', 'c\n']:
                pulled.append(r)
                yield r

        stream = _RecordStream(records())
        stream.read(2)

        assert pulled == ['a\n']
