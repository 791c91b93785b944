"""
Recovery Gate

Decides whether a chunk already reached the target in an earlier,
interrupted run. Re-loading such a chunk could duplicate committed rows, so
a recovered chunk skips extraction and only gets its ledger entry cleaned
up. The decision itself belongs to the consistency check collaborator.
"""

import logging

from mssql_pg_loader.models import Chunk

logger = logging.getLogger(__name__)


class RecoveryGate:
    """Route a chunk to the recovery path or the normal load path."""

    def __init__(self, consistency_check):
        """
        Args:
            consistency_check: Object with was_chunk_already_applied(chunk_id) -> bool
        """
        self._consistency_check = consistency_check

    def should_recover(self, chunk: Chunk) -> bool:
        applied = bool(self._consistency_check.was_chunk_already_applied(chunk.chunk_id))
        if applied:
            logger.info(
                f"Chunk {chunk.chunk_id} ({chunk.table_name}) was already applied; "
                f"skipping load and cleaning up the data pool"
            )
        return applied
