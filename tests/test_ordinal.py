"""Tests for ordinal key generation and comparison."""

import random

import pytest

from shaker.errors import OrdinalExhausted
from shaker.ordinal import (
    OrdinalCodec,
    child_ordinal,
    is_valid_key,
    is_within,
    local_key,
    parent_ordinal,
    subtree_range,
)


class TestKeyBetween:
    """Tests for OrdinalCodec.key_between."""

    def test_initial_key_is_midpoint(self, codec):
        assert codec.key_between(None, None) == "V"

    def test_open_ends(self, codec):
        assert codec.key_between(None, "V") == "F"
        assert codec.key_between("V", None) == "k"

    def test_adjacent_digits_extend_length(self, codec):
        assert codec.key_between("V", "W") == "VV"

    def test_key_between_prefix_and_extension(self, codec):
        """A key and its one-digit extension still have room in between."""
        key = codec.key_between("a", "a1")
        assert "a" < key < "a1"
        assert key == "a0V"

    def test_random_insertions_keep_order(self, codec):
        """Keys inserted at random positions always land between their neighbours."""
        rng = random.Random(7)
        keys: list[str] = []
        for _ in range(500):
            index = rng.randint(0, len(keys))
            low = keys[index - 1] if index > 0 else None
            high = keys[index] if index < len(keys) else None
            key = codec.key_between(low, high)
            assert is_valid_key(key)
            assert low is None or low < key
            assert high is None or key < high
            keys.insert(index, key)
        assert keys == sorted(keys)
        assert len(set(keys)) == len(keys)

    def test_taken_keys_are_skipped(self, codec):
        key = codec.key_between(None, None, taken=lambda k: k == "V")
        assert key == "k"

    def test_exhausted_at_max_length(self):
        codec = OrdinalCodec(max_length=2)
        with pytest.raises(OrdinalExhausted):
            codec.key_between("V", "V1")

    def test_rejects_inverted_bounds(self, codec):
        with pytest.raises(ValueError):
            codec.key_between("b", "a")
        with pytest.raises(ValueError):
            codec.key_between("a", "a")

    def test_rejects_malformed_bounds(self, codec):
        with pytest.raises(ValueError, match="Malformed"):
            codec.key_between("V0", None)
        with pytest.raises(ValueError, match="Malformed"):
            codec.key_between(None, "V.F")


class TestInitialKeyAt:
    """Tests for evenly spaced bulk keys."""

    def test_keys_increase_with_index(self, codec):
        keys = [codec.initial_key_at(i, 100) for i in range(100)]
        assert keys == sorted(keys)
        assert len(set(keys)) == 100
        assert all(is_valid_key(key) for key in keys)

    def test_deterministic(self, codec):
        assert codec.initial_key_at(3, 10) == codec.initial_key_at(3, 10)

    def test_spacing_uses_headroom(self, codec):
        # 5 keys 62 apart need two digits: 3844 // 6 = 640 = "AK"
        assert codec.initial_key_at(0, 5) == "AK"

    def test_bounded_layout(self, codec):
        keys = [codec.initial_key_at(i, 20, low="F", high="G") for i in range(20)]
        assert all("F" < key < "G" for key in keys)
        assert keys == sorted(keys)

    def test_index_out_of_range(self, codec):
        with pytest.raises(IndexError):
            codec.initial_key_at(5, 5)
        with pytest.raises(IndexError):
            codec.initial_key_at(-1, 5)

    def test_exhausted_when_count_does_not_fit(self):
        codec = OrdinalCodec(max_length=1)
        with pytest.raises(OrdinalExhausted):
            codec.initial_key_at(0, 100)


class TestGap:
    """Tests for measuring the room between two bounds."""

    def test_open_ends(self, codec):
        assert codec.gap(None, None) == 62**10
        assert codec.gap("V", None) == 31 * 62**9

    def test_between_keys(self, codec):
        assert codec.gap("V", "k") == 15 * 62**9
        assert OrdinalCodec(max_length=2).gap("01", "05") == 4

    def test_bounds_longer_than_max_length(self):
        assert OrdinalCodec(max_length=1).gap("V", "V1") == 1

    def test_rejects_inverted_bounds(self, codec):
        with pytest.raises(ValueError):
            codec.gap("k", "V")


class TestCompare:
    def test_byte_order(self):
        assert OrdinalCodec.compare("a", "b") == -1
        assert OrdinalCodec.compare("b", "a") == 1
        assert OrdinalCodec.compare("V", "V") == 0
        # Upper case sorts before lower case
        assert OrdinalCodec.compare("Z", "a") == -1

    def test_depth_first_order(self):
        """A parent sorts before its children, which sort before its next sibling."""
        assert OrdinalCodec.compare("V", "V.F") == -1
        assert OrdinalCodec.compare("V.F", "V.k") == -1
        assert OrdinalCodec.compare("V.zz", "W") == -1
        assert OrdinalCodec.compare("V.z", "V1") == -1


class TestOrdinalPaths:
    """Tests for ordinal path helpers."""

    def test_child_and_parent(self):
        assert child_ordinal(None, "V") == "V"
        assert child_ordinal("V.F", "k") == "V.F.k"
        assert parent_ordinal("V.F.k") == "V.F"
        assert parent_ordinal("V") is None

    def test_local_key(self):
        assert local_key("V.F.k") == "k"
        assert local_key("V") == "V"

    def test_subtree_range(self):
        start, end = subtree_range("V")
        assert start < "V.0" < "V.zzz" < end
        assert not start < "V1" < end

    def test_is_within(self):
        assert is_within("V", "V")
        assert is_within("V.F.k", "V")
        assert not is_within("VF", "V")
        assert not is_within("V", "V.F")

    def test_valid_keys(self):
        assert is_valid_key("V")
        assert is_valid_key("a0V")
        assert not is_valid_key("")
        assert not is_valid_key("V0")
        assert not is_valid_key("V-")
