"""
Bounded Batch Buffer

Ordered sequence of encoded records that signals "batch ready" once it
holds `watermark` records. A full buffer rejects further records, so the
extractor has to be paused before the next row is pulled.
"""

from typing import List


class BatchBuffer:
    """Append-only record buffer bounded by a row-count watermark."""

    def __init__(self, watermark: int):
        if not isinstance(watermark, int) or isinstance(watermark, bool) or watermark <= 0:
            raise ValueError(f"Batch watermark must be a positive integer (got {watermark!r})")
        self.watermark = watermark
        self._records: List[str] = []

    def __len__(self) -> int:
        return len(self._records)

    @property
    def is_full(self) -> bool:
        return len(self._records) >= self.watermark

    @property
    def records(self) -> List[str]:
        """Snapshot of the buffered records."""
        return list(self._records)

    def append(self, record: str) -> bool:
        """
        Add one encoded record.

        Args:
            record: Encoded CSV record

        Returns:
            True when the buffer reached the watermark (batch ready)

        Raises:
            BufferError: If the buffer is already full
        """
        if self.is_full:
            raise BufferError(
                f"Batch buffer is full ({self.watermark} records); drain it before appending"
            )
        self._records.append(record)
        return self.is_full

    def drain(self) -> List[str]:
        """Hand out the buffered records and start an empty batch."""
        records, self._records = self._records, []
        return records

    def clear(self) -> None:
        self._records = []
