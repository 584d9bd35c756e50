"""
Tests for enrichkg.multimap — MultiMap container.
"""

import pytest

from enrichkg.multimap import MultiMap


class TestMultiMap:
    def test_add_is_idempotent(self):
        m = MultiMap()
        m.add("a", 1)
        m.add("a", 1)
        assert m.get("a") == {1}
        assert len(m) == 1

    def test_add_many_registers_key_even_when_empty(self):
        m = MultiMap()
        m.add_many("a", [])
        assert "a" in m
        assert m.get("a") == set()

    def test_get_returns_copy(self):
        m = MultiMap()
        m.add("a", 1)
        m.get("a").add(2)
        assert m.get("a") == {1}

    def test_get_missing_is_empty(self):
        assert MultiMap().get("missing") == set()

    def test_keys_keep_insertion_order(self):
        m = MultiMap()
        for key in ("c", "a", "b", "a"):
            m.add(key, 0)
        assert m.keys() == ["c", "a", "b"]
        assert list(m) == ["c", "a", "b"]

    def test_values_deduplicated_across_keys(self):
        m = MultiMap()
        m.add_many("a", [1, 2])
        m.add_many("b", [2, 3])
        assert m.values() == {1, 2, 3}

    def test_merge_unions_per_key(self):
        left, right = MultiMap(), MultiMap()
        left.add_many("a", [1, 2])
        right.add_many("a", [2, 3])
        right.add("b", 9)
        left.merge(right)
        assert left.get("a") == {1, 2, 3}
        assert left.get("b") == {9}
        # the source is untouched
        assert right.get("a") == {2, 3}

    def test_items_yield_copies(self):
        m = MultiMap()
        m.add("a", 1)
        for _, values in m.items():
            values.add(99)
        assert m.get("a") == {1}

    def test_none_key_rejected(self):
        with pytest.raises(TypeError):
            MultiMap().add(None, 1)

    def test_empty(self):
        m = MultiMap()
        assert m.is_empty()
        assert not m
        m.add("x", 1)
        assert not m.is_empty()
        assert m
