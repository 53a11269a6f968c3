"""Deterministic hash-based traffic allocation."""

import hashlib
from typing import Optional, Sequence

from armsmith.dx.errors import InvalidConfigurationError

BUCKET_COUNT = 100


def hash_bucket(identity: str, experiment_name: str, seed: Optional[str] = None) -> int:
    """
    Deterministic hash-based bucketing.

    The same (seed, experiment, identity) triple always lands in the same
    bucket. The first four bytes of the SHA-256 digest are read as a
    little-endian signed 32-bit integer.

    Args:
        identity: Subject identity (e.g., user_id, session_id)
        experiment_name: Experiment name, so unrelated experiments don't correlate
        seed: Optional seed for an independent allocation

    Returns:
        Bucket index (0 to 99)
    """
    hash_input = f"{seed or ''}:{experiment_name}:{identity}"
    digest = hashlib.sha256(hash_input.encode("utf-8")).digest()
    value = int.from_bytes(digest[:4], "little", signed=True)
    return abs(value) % BUCKET_COUNT


def is_included(
    identity: str,
    experiment_name: str,
    percentage: int,
    seed: Optional[str] = None,
) -> bool:
    """
    Check whether an identity falls inside a percentage rollout.

    Raising the percentage never excludes an identity that was already
    included, because the bucket is fixed and the test is ``bucket < percentage``.

    Args:
        identity: Subject identity
        experiment_name: Experiment name
        percentage: Percentage of subjects to include (0-100)
        seed: Optional seed

    Returns:
        True if the identity is included
    """
    if percentage <= 0:
        return False
    if percentage >= 100:
        return True
    return hash_bucket(identity, experiment_name, seed) < percentage


def weighted_index(bucket: int, weights: Sequence[int], experiment_name: Optional[str] = None) -> int:
    """
    Map a precomputed bucket onto cumulative weights.

    Args:
        bucket: Bucket index from ``hash_bucket``
        weights: Weight per bucket, expected to sum to 100
        experiment_name: Experiment name for error context

    Returns:
        Index of the first weight whose cumulative total exceeds the bucket;
        the last index when the weights sum to less than the bucket

    Raises:
        InvalidConfigurationError: If no weights are given
    """
    if not weights:
        raise InvalidConfigurationError(
            "At least one weight is required",
            field_errors={"weights": ["must not be empty"]},
            experiment=experiment_name,
        )

    cumulative = 0
    for index, weight in enumerate(weights):
        cumulative += weight
        if bucket < cumulative:
            return index

    return len(weights) - 1


def allocate_bucket(
    identity: str,
    experiment_name: str,
    weights: Sequence[int],
    seed: Optional[str] = None,
) -> int:
    """
    Allocate an identity to one of several weighted buckets.

    Args:
        identity: Subject identity
        experiment_name: Experiment name
        weights: Weight per bucket, expected to sum to 100
        seed: Optional seed

    Returns:
        Index of the allocated bucket

    Raises:
        InvalidConfigurationError: If no weights are given
    """
    return weighted_index(hash_bucket(identity, experiment_name, seed), weights, experiment_name)
