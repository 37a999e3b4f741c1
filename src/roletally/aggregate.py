"""Merge per-source counts into report totals."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping


def merge_counts(per_source: Iterable[Mapping[str, int]]) -> Counter[str]:
    """Sum per-source count maps into a fresh grand total.

    Addition is associative and commutative, so the totals do not depend on
    the order sources finished in. Inputs are not mutated.

    Args:
        per_source: Count maps, one per scanned source.

    Returns:
        Combined counts. Zero entries are kept if present in an input.
    """
    totals: Counter[str] = Counter()
    for counts in per_source:
        totals.update(counts)
    return totals


def reindex(totals: Mapping[str, int], identities: Iterable[str]) -> dict[str, int]:
    """Project totals onto the target identities.

    Every identity appears, with 0 when it had no messages. Keys not in
    ``identities`` are dropped. Order follows ``identities``.
    """
    return {identity: totals.get(identity, 0) for identity in identities}
