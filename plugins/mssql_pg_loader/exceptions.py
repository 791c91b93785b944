"""
Chunk Loader Exceptions

Error kinds raised while loading one data-pool chunk.

Retrieval, encoding and load errors are chunk-fatal: they abort the rest of
the chunk and route it to the failure cleanup path. Integrity-control and
ledger errors are recorded and processing continues.
"""

from typing import Optional


class ChunkLoaderError(Exception):
    """Base class for chunk loader errors."""

    def __init__(self, message: str, statement: Optional[str] = None):
        super().__init__(message)
        self.statement = statement


class ChunkTransferError(ChunkLoaderError):
    """An error that aborts the remainder of the chunk."""


class RetrievalError(ChunkTransferError):
    """The source cursor failed."""


class EncodingError(ChunkTransferError):
    """A source row could not be converted into a COPY record."""

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(message)
        self.column = column


class LoadError(ChunkTransferError):
    """The target COPY channel failed; the batch was rolled back."""


class IntegrityControlError(ChunkLoaderError):
    """Reading or setting session_replication_role failed."""


class LedgerError(ChunkLoaderError):
    """Deleting the data-pool entry failed."""
