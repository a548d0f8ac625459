"""Append-only buffer of encoded capture chunks."""

import logging
from typing import List, Tuple

from ..models.audio import EncodedChunk

logger = logging.getLogger(__name__)


class ChunkBuffer:
    """Time-ordered sequence of encoded chunks for the current recording.

    Appends and snapshots both run on the event loop thread, so a snapshot can
    never observe a half-appended chunk and never blocks later appends.
    """

    def __init__(self):
        self._chunks: List[EncodedChunk] = []
        self.total_bytes = 0

    def append(self, chunk: EncodedChunk) -> None:
        """Append a chunk; insertion order is temporal order."""
        self._chunks.append(chunk)
        self.total_bytes += len(chunk.data)
        logger.debug(f"Appended chunk #{chunk.sequence_number}: {len(chunk.data)} bytes, "
                     f"buffer now has {len(self._chunks)} chunks ({self.total_bytes} bytes)")

    def snapshot(self) -> Tuple[EncodedChunk, ...]:
        """Return the chunks buffered up to this instant.

        Returns:
            Immutable shallow copy of the buffer contents (empty if nothing
            has been appended yet)
        """
        return tuple(self._chunks)

    def reset(self) -> None:
        """Clear the buffer. Only called when a new recording starts."""
        self._chunks = []
        self.total_bytes = 0
        logger.debug("Chunk buffer cleared")

    def __len__(self) -> int:
        return len(self._chunks)

    def get_buffer_stats(self) -> dict:
        """Get buffer statistics."""
        oldest = self._chunks[0].timestamp if self._chunks else None
        newest = self._chunks[-1].timestamp if self._chunks else None
        return {
            "chunk_count": len(self._chunks),
            "total_bytes": self.total_bytes,
            "oldest_timestamp": oldest,
            "newest_timestamp": newest,
            "media_type": self._chunks[0].media_type if self._chunks else None,
        }
