"""
Table Name Resolver Module

Maps target table names back to source table names when an earlier stage of
the migration renamed tables. Rename rules come from an extra-config JSON
file:

    {
        "tables": [
            {"name": {"original": "OrderDetails", "new": "order_details"}}
        ]
    }

Tables without a rule keep their name.
"""

from typing import Any, Dict, List, Optional
import json
import logging

logger = logging.getLogger(__name__)


class TableNameResolver:
    """Resolve renamed tables in either direction."""

    def __init__(self, extra_config: Optional[Dict[str, Any]] = None):
        """
        Args:
            extra_config: Parsed extra-config document (None means no renames)
        """
        self._rules: List[Dict[str, str]] = []
        for table in (extra_config or {}).get('tables', []):
            name = table.get('name') or {}
            if name.get('original') and name.get('new'):
                self._rules.append({'original': name['original'], 'new': name['new']})

    @classmethod
    def from_file(cls, path: Optional[str]) -> "TableNameResolver":
        """
        Load rename rules from a JSON file.

        Args:
            path: Path to the extra-config file, or None

        Returns:
            TableNameResolver (without rules if path is None)

        Raises:
            ValueError: If the file is not valid JSON
        """
        if not path:
            return cls()

        with open(path, 'r', encoding='utf-8') as fh:
            try:
                extra_config = json.load(fh)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid extra config file {path}: {e}") from e

        resolver = cls(extra_config)
        logger.info(f"Loaded {len(resolver._rules)} table rename rule(s) from {path}")
        return resolver

    def get_table_name(self, current_name: str, should_get_original: bool = True) -> str:
        """
        Args:
            current_name: Table name to resolve
            should_get_original: True to map a new name to the original source
                name, False to map an original name to its new name

        Returns:
            The resolved table name
        """
        source_key, result_key = ('new', 'original') if should_get_original else ('original', 'new')
        for rule in self._rules:
            if rule[source_key] == current_name:
                return rule[result_key]
        return current_name
