"""
Shared value types for the chunk loader.
"""

from dataclasses import dataclass
from typing import Any, Dict, Union
import json


@dataclass(frozen=True)
class Chunk:
    """One unit of table data assigned to a worker."""

    chunk_id: int
    table_name: str
    select_field_list: str
    rows_count: int

    @classmethod
    def from_ledger_row(cls, chunk_id: int, metadata: Union[str, Dict[str, Any]]) -> "Chunk":
        """
        Build a chunk from a data-pool row.

        Args:
            chunk_id: Data-pool row id
            metadata: JSON text (or an already decoded dict) with the
                      _tableName, _selectFieldList and _rowsCnt keys

        Returns:
            Chunk instance
        """
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        return cls(
            chunk_id=int(chunk_id),
            table_name=metadata['_tableName'],
            select_field_list=metadata['_selectFieldList'],
            rows_count=int(metadata.get('_rowsCnt') or 0),
        )

    @classmethod
    def from_dict(cls, chunk_info: Dict[str, Any]) -> "Chunk":
        """Build a chunk from a task payload dictionary."""
        return cls(
            chunk_id=int(chunk_info['chunk_id']),
            table_name=chunk_info['table_name'],
            select_field_list=chunk_info['select_field_list'],
            rows_count=int(chunk_info.get('rows_count') or 0),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            'chunk_id': self.chunk_id,
            'table_name': self.table_name,
            'select_field_list': self.select_field_list,
            'rows_count': self.rows_count,
        }


@dataclass(frozen=True)
class TransferOutcome:
    """Result of one chunk-processing attempt, sent to the orchestrator."""

    table_name: str
    rows_loaded: int

    def as_dict(self) -> Dict[str, Any]:
        return {'table_name': self.table_name, 'rows_loaded': self.rows_loaded}
