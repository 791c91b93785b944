"""
Tests for identifier helpers and value types
"""

import pytest

from mssql_pg_loader.models import Chunk, TransferOutcome
from mssql_pg_loader.utils import (
    quote_mssql_identifier,
    quote_pg_identifier,
    quote_sql_literal,
    sanitize_table_name,
    truncate_string,
    validate_sql_identifier,
)


class TestValidateSqlIdentifier:

    @pytest.mark.parametrize("identifier", ['public', '_data_pool', 'Schema_2', 'a' * 63])
    def test_valid(self, identifier):
        assert validate_sql_identifier(identifier) == identifier

    @pytest.mark.parametrize("identifier,message", [
        ('', 'cannot be empty'),
        ('a' * 64, 'maximum length'),
        ('2fast', 'must start with letter'),
        ('drop; --', 'must start with letter'),
        ('my schema', 'must start with letter'),
    ])
    def test_invalid(self, identifier, message):
        with pytest.raises(ValueError, match=message):
            validate_sql_identifier(identifier, 'schema')


class TestQuoting:

    def test_pg_identifier(self):
        assert quote_pg_identifier('orders') == '"orders"'
        assert quote_pg_identifier('my"table') == '"my""table"'

    def test_mssql_identifier(self):
        assert quote_mssql_identifier('Order Details') == '[Order Details]'
        assert quote_mssql_identifier('odd]name') == '[odd]]name]'

    def test_sql_literal(self):
        assert quote_sql_literal(',') == "','"
        assert quote_sql_literal("O'Brien") == "'O''Brien'"
        assert quote_sql_literal(5) == '5'


class TestLogHelpers:

    def test_sanitize_table_name(self):
        assert sanitize_table_name('orders') == 'orders'
        assert sanitize_table_name('../etc/passwd') == '___etc_passwd'
        assert len(sanitize_table_name('x' * 200)) == 100

    def test_truncate_string(self):
        assert truncate_string('short') == 'short'
        assert truncate_string('a' * 150, max_length=20) == 'a' * 17 + '...'


class TestChunk:

    def test_from_ledger_row_json_text(self):
        chunk = Chunk.from_ledger_row(
            '7', '{"_tableName": "orders", "_selectFieldList": "[id], [name]", "_rowsCnt": 3}'
        )
        assert chunk == Chunk(7, 'orders', '[id], [name]', 3)

    def test_from_ledger_row_missing_count(self):
        chunk = Chunk.from_ledger_row(1, {'_tableName': 't', '_selectFieldList': '*'})
        assert chunk.rows_count == 0

    def test_dict_round_trip(self):
        chunk = Chunk(7, 'orders', '[id]', 3)
        assert Chunk.from_dict(chunk.as_dict()) == chunk

    def test_outcome_dict(self):
        assert TransferOutcome('orders', 3).as_dict() == {'table_name': 'orders', 'rows_loaded': 3}
