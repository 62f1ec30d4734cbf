"""
Notarium Backend — Upload Chunking
====================================

What:  Splits one upload's images into groups, one stored note per group.
Why:   Keeps every note under a payload budget so note detail pages stay
       fast to load.
How:   Greedy accumulator in input order. A new chunk starts when the
       current chunk is non-empty and either adding the next item would push
       its total above max_bytes or it already holds max_items.

Guarantees:
    - Concatenating the chunks gives back the input, in order
    - Every chunk total ≤ max_bytes, except a chunk holding one item that is
      by itself larger than max_bytes
    - Every chunk holds at most max_items items, when max_items is given

Example (900 KB budget): [400 KB, 400 KB, 300 KB] → [[400, 400], [300]]
"""

from typing import Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def chunk_by_size(
    items: Sequence[T],
    size_of: Callable[[T], int],
    max_bytes: int,
    max_items: Optional[int] = None,
) -> List[List[T]]:
    if max_bytes <= 0:
        raise ValueError("max_bytes must be positive")
    if max_items is not None and max_items <= 0:
        raise ValueError("max_items must be positive")

    chunks: List[List[T]] = []
    current: List[T] = []
    current_size = 0

    for item in items:
        size = size_of(item)
        full = max_items is not None and len(current) >= max_items
        if current and (current_size + size > max_bytes or full):
            chunks.append(current)
            current, current_size = [], 0
        current.append(item)
        current_size += size

    if current:
        chunks.append(current)
    return chunks
