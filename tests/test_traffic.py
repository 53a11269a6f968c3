"""Tests for deterministic hash allocation."""

import hashlib
import uuid

import pytest

from armsmith.ab.traffic import allocate_bucket, hash_bucket, is_included, weighted_index
from armsmith.dx.errors import InvalidConfigurationError


def _identities(count):
    return [f"user-{i}" for i in range(count)]


class TestHashBucket:
    """Test hash bucket computation."""

    def test_bucket_matches_digest_layout(self):
        """Bucket is |first four digest bytes as little-endian int32| mod 100."""
        digest = hashlib.sha256("seed:exp:user-1".encode("utf-8")).digest()
        expected = abs(int.from_bytes(digest[:4], "little", signed=True)) % 100
        assert hash_bucket("user-1", "exp", "seed") == expected

    def test_missing_seed_hashes_as_empty(self):
        """None and empty seeds are the same input."""
        assert hash_bucket("user-1", "exp") == hash_bucket("user-1", "exp", "")

    def test_bucket_range(self):
        """Buckets stay in [0, 100), including for an empty identity."""
        for identity in _identities(500) + [""]:
            assert 0 <= hash_bucket(identity, "exp") < 100


class TestIsIncluded:
    """Test percentage inclusion."""

    def test_determinism(self):
        """Same inputs always give the same answer."""
        first = is_included("user-123", "exp", 50, "seed")
        assert all(is_included("user-123", "exp", 50, "seed") == first for _ in range(1000))

    def test_boundaries(self):
        """0% includes nobody and 100% includes everybody."""
        identities = _identities(200)
        assert not any(is_included(i, "exp", 0) for i in identities)
        assert not any(is_included(i, "exp", -5) for i in identities)
        assert all(is_included(i, "exp", 100) for i in identities)
        assert all(is_included(i, "exp", 150) for i in identities)

    def test_uniformity(self):
        """About 30% of random identities are included at 30%."""
        identities = [str(uuid.UUID(int=i * 7919 + 1)) for i in range(100_000)]
        included = sum(1 for i in identities if is_included(i, "uniformity", 30))
        assert included / len(identities) == pytest.approx(0.30, abs=0.02)

    def test_independence_across_experiments(self):
        """Inclusion in experiment A says nothing about experiment B."""
        identities = _identities(10_000)
        in_a = [is_included(i, "A", 50) for i in identities]
        in_b = [is_included(i, "B", 50) for i in identities]
        both = sum(1 for a, b in zip(in_a, in_b) if a and b)
        assert both / len(identities) == pytest.approx(0.25, abs=0.02)
        assert in_a != in_b

    def test_seed_changes_allocation(self):
        """Different seeds give different allocations."""
        identities = _identities(1000)
        same = sum(
            1
            for i in identities
            if is_included(i, "exp", 50, "seed-1") == is_included(i, "exp", 50, "seed-2")
        )
        assert same < len(identities)

    def test_stickiness_when_percentage_grows(self):
        """Anyone included at 10% is still included at 50%."""
        for identity in _identities(2000):
            if is_included(identity, "rollout", 10, "s"):
                assert is_included(identity, "rollout", 50, "s")


class TestAllocateBucket:
    """Test weighted bucket allocation."""

    def test_distribution(self):
        """Equal weights spread identities across all buckets."""
        counts = {0: 0, 1: 0, 2: 0}
        for identity in _identities(1000):
            counts[allocate_bucket(identity, "rollout", [33, 34, 33])] += 1
        assert all(250 <= count <= 450 for count in counts.values())

    def test_single_weight(self):
        """A single bucket receives everyone."""
        assert all(allocate_bucket(i, "rollout", [100]) == 0 for i in _identities(100))

    def test_short_weights_fall_back_to_last_index(self):
        """Buckets beyond the weight total land in the last index."""
        for identity in _identities(300):
            bucket = hash_bucket(identity, "rollout")
            expected = 0 if bucket < 10 else 1
            assert allocate_bucket(identity, "rollout", [10, 10]) == expected

    def test_empty_weights_rejected(self):
        """Empty weights are a configuration error."""
        with pytest.raises(InvalidConfigurationError) as exc_info:
            allocate_bucket("user-1", "rollout", [])
        assert "weights" in exc_info.value.field_errors

    def test_weighted_index_matches_allocation(self):
        """Mapping a precomputed bucket agrees with hashing inside the allocation."""
        for identity in _identities(200):
            bucket = hash_bucket(identity, "rollout")
            assert weighted_index(bucket, [20, 30, 50]) == allocate_bucket(identity, "rollout", [20, 30, 50])

    def test_weighted_index_boundaries(self):
        """Each cumulative boundary starts the next index."""
        assert weighted_index(0, [20, 30, 50]) == 0
        assert weighted_index(19, [20, 30, 50]) == 0
        assert weighted_index(20, [20, 30, 50]) == 1
        assert weighted_index(50, [20, 30, 50]) == 2
        assert weighted_index(99, [20, 30, 50]) == 2
