"""
Tests for the Table Name Resolver Module
"""

import json
import pytest

from mssql_pg_loader.table_names import TableNameResolver

EXTRA_CONFIG = {
    'tables': [
        {'name': {'original': 'OrderDetails', 'new': 'order_details'}},
        {'name': {'original': 'Customers'}},
        {'columns': []},
    ]
}


class TestTableNameResolver:

    def test_new_name_maps_to_original(self):
        resolver = TableNameResolver(EXTRA_CONFIG)
        assert resolver.get_table_name('order_details', True) == 'OrderDetails'

    def test_original_name_maps_to_new(self):
        resolver = TableNameResolver(EXTRA_CONFIG)
        assert resolver.get_table_name('OrderDetails', False) == 'order_details'

    def test_unknown_table_keeps_its_name(self):
        resolver = TableNameResolver(EXTRA_CONFIG)
        assert resolver.get_table_name('Customers') == 'Customers'
        assert resolver.get_table_name('products') == 'products'

    def test_no_config(self):
        assert TableNameResolver().get_table_name('orders') == 'orders'

    def test_from_file(self, tmp_path):
        path = tmp_path / 'extra_config.json'
        path.write_text(json.dumps(EXTRA_CONFIG), encoding='utf-8')

        resolver = TableNameResolver.from_file(str(path))

        assert resolver.get_table_name('order_details') == 'OrderDetails'

    def test_from_file_without_path(self):
        assert TableNameResolver.from_file(None).get_table_name('orders') == 'orders'

    def test_from_file_invalid_json(self, tmp_path):
        path = tmp_path / 'extra_config.json'
        path.write_text('{not json', encoding='utf-8')

        with pytest.raises(ValueError, match="Invalid extra config"):
            TableNameResolver.from_file(str(path))
