"""
Character-window chunker. Splits document text into overlapping windows for embedding.
"""

from typing import List, Tuple


def _validate(size: int, overlap: int) -> None:
    if size <= 0:
        raise ValueError(f"Chunk size must be > 0: {size}")
    if not 0 <= overlap < size:
        raise ValueError(f"Chunk overlap must satisfy 0 <= overlap < size: overlap={overlap}, size={size}")


def chunk_spans(text: str, size: int, overlap: int) -> List[Tuple[int, int]]:
    """Return the (start, end) offsets of every window, before trimming."""
    _validate(size, overlap)
    step = size - overlap
    return [(start, min(start + size, len(text))) for start in range(0, len(text), step)]


def chunk(text: str, size: int, overlap: int) -> List[str]:
    """
    Split text into windows of `size` characters advancing by `size - overlap`.

    Windows are whitespace-trimmed and dropped when empty. If nothing is left,
    the original text is returned as the single chunk.

    Args:
        text: Document text
        size: Window length in characters
        overlap: Characters shared by consecutive windows

    Returns:
        Ordered list of chunks
    """
    chunks = []
    for start, end in chunk_spans(text, size, overlap):
        window = text[start:end].strip()
        if window:
            chunks.append(window)

    return chunks if chunks else [text]
