"""
Notarium Backend — Upload Chunking Unit Tests
===============================================

What we test:
    ✅ Greedy grouping by byte budget, in input order
    ✅ Page limit per chunk
    ✅ Oversized single items get a chunk of their own
    ✅ Empty input and invalid limits
"""

import pytest

from notarium.services.chunking import chunk_by_size


def identity(n):
    return n


class TestChunkBySize:

    def test_groups_until_budget_exceeded(self):
        chunks = chunk_by_size([400, 400, 300], identity, max_bytes=900)
        assert chunks == [[400, 400], [300]]

    def test_exact_fit_stays_in_one_chunk(self):
        assert chunk_by_size([300, 300, 300], identity, max_bytes=900) == [[300, 300, 300]]

    def test_concatenation_preserves_order(self):
        items = [120, 800, 50, 50, 700, 10, 999, 1]
        chunks = chunk_by_size(items, identity, max_bytes=900)
        assert [item for chunk in chunks for item in chunk] == items

    def test_every_chunk_within_budget_unless_single_oversized(self):
        items = [1500, 200, 300, 2000, 100]
        chunks = chunk_by_size(items, identity, max_bytes=900)
        assert chunks == [[1500], [200, 300], [2000], [100]]
        for chunk in chunks:
            assert sum(chunk) <= 900 or len(chunk) == 1

    def test_max_items_limits_pages_per_chunk(self):
        chunks = chunk_by_size([1, 1, 1, 1, 1, 1, 1], identity, max_bytes=10_000, max_items=3)
        assert chunks == [[1, 1, 1], [1, 1, 1], [1]]

    def test_size_function_applied_to_items(self):
        items = [("a.jpg", 500), ("b.jpg", 500), ("c.jpg", 100)]
        chunks = chunk_by_size(items, lambda item: item[1], max_bytes=900)
        assert [[name for name, _ in chunk] for chunk in chunks] == [["a.jpg"], ["b.jpg", "c.jpg"]]

    def test_empty_input_gives_no_chunks(self):
        assert chunk_by_size([], identity, max_bytes=900) == []

    def test_rejects_non_positive_limits(self):
        with pytest.raises(ValueError):
            chunk_by_size([1], identity, max_bytes=0)
        with pytest.raises(ValueError):
            chunk_by_size([1], identity, max_bytes=10, max_items=0)
