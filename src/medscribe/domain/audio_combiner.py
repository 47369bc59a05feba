"""Chunk naming and ordered concatenation of uploaded audio."""

import re

from .models import AudioChunk

CHUNK_PREFIX = "chunk-"
CHUNK_SUFFIX = ".wav"

_CHUNK_NAME_PATTERN = re.compile(r"^chunk-(\d+)\.wav$")


def chunk_file_name(sequence: int) -> str:
    """Builds the stored name of a chunk, zero-padded so names sort like numbers."""
    if sequence < 0:
        raise ValueError(f"Chunk sequence must be non-negative, got {sequence}")
    return f"{CHUNK_PREFIX}{sequence:06d}{CHUNK_SUFFIX}"


def parse_chunk_sequence(file_name: str) -> int | None:
    """Extracts the sequence number from a chunk name, None for foreign names."""
    match = _CHUNK_NAME_PATTERN.match(file_name)
    if not match:
        return None
    return int(match.group(1))


class AudioCombiner:
    """Concatenates audio chunks in sequence order."""

    def combine(self, chunks: list[AudioChunk]) -> bytes:
        """
        Joins chunk payloads ordered by sequence number, not arrival order.

        Args:
            chunks: Chunks of one recording in any order.

        Returns:
            The concatenated audio bytes.

        Raises:
            ValueError: If the same sequence number appears twice.
        """
        ordered = sorted(chunks, key=lambda c: c.sequence)
        for previous, current in zip(ordered, ordered[1:]):
            if previous.sequence == current.sequence:
                raise ValueError(f"Duplicate chunk sequence {current.sequence}")
        return b"".join(chunk.data for chunk in ordered)
