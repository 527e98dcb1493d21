from __future__ import annotations

import numpy as np

from .errors import EmptyRangeError, InconsistentPartitionError
from .linkage import Dendrogram


def cut_dendrogram(dendrogram: Dendrogram, k: int) -> np.ndarray:
    """Cut ``dendrogram`` into ``k`` flat clusters.

    Keeps the first ``n - k`` merges, i.e. drops the ``k - 1`` highest
    ones. Raw cluster ids run from 1 to ``k`` in order of first
    appearance along the leaf (row) order.
    """
    n = dendrogram.n_items
    if not 1 <= k <= n:
        raise EmptyRangeError(f"cannot cut {n} items into {k} clusters", stage="partition")

    # ancestor[x] is x's parent among the kept merges, or x itself
    ancestor = np.arange(2 * n - 1)
    kept = n - k
    if kept:
        children = dendrogram.merges[:kept, :2].astype(np.int64)
        new_nodes = n + np.arange(kept)
        ancestor[children[:, 0]] = new_nodes
        ancestor[children[:, 1]] = new_nodes

    # pointer jumping: O(log depth) passes
    while True:
        jumped = ancestor[ancestor]
        if np.array_equal(jumped, ancestor):
            break
        ancestor = jumped

    roots = ancestor[:n]
    _, first_seen, inverse = np.unique(roots, return_index=True, return_inverse=True)
    rank = np.empty(first_seen.size, dtype=np.int64)
    rank[np.argsort(first_seen, kind="stable")] = np.arange(first_seen.size)
    labels = rank[inverse.ravel()] + 1

    check_partition(labels, n, expected_k=k, stage="partition")
    return labels


def check_partition(
    labels: np.ndarray,
    n_items: int,
    expected_k: int | None = None,
    stage: str = "partition",
) -> int:
    """Assert ``labels`` is an exhaustive, disjoint partition into ids 1..K.

    Returns K. Any violation is a logic defect and raises
    :class:`InconsistentPartitionError`.
    """
    labels = np.asarray(labels)
    if labels.ndim != 1 or labels.shape[0] != n_items:
        raise InconsistentPartitionError(
            f"partition covers {labels.size} item(s), expected {n_items}", stage=stage
        )
    if n_items == 0:
        raise InconsistentPartitionError("partition is empty", stage=stage)

    if labels.min() < 1:
        raise InconsistentPartitionError("partition has items without a cluster id", stage=stage)
    counts = np.bincount(labels.astype(np.int64))
    n_clusters = counts.size - 1
    empty = np.flatnonzero(counts[1:] == 0) + 1
    if empty.size:
        raise InconsistentPartitionError(f"cluster id(s) {empty.tolist()} have no members", stage=stage)
    if int(counts.sum()) != n_items:
        raise InconsistentPartitionError(
            f"cluster sizes sum to {int(counts.sum())}, expected {n_items}", stage=stage
        )
    if expected_k is not None and n_clusters != expected_k:
        raise InconsistentPartitionError(f"cut produced {n_clusters} clusters, expected {expected_k}", stage=stage)
    return n_clusters


def cluster_members(labels: np.ndarray) -> dict[int, np.ndarray]:
    """Map each cluster id to its member row indices, in row order."""
    labels = np.asarray(labels)
    order = np.argsort(labels, kind="stable")
    ids, starts = np.unique(labels[order], return_index=True)
    groups = np.split(order, starts[1:])
    return {int(cid): group for cid, group in zip(ids, groups)}


def canonical_mapping(labels: np.ndarray) -> dict[int, int]:
    """Map raw cluster ids to canonical ids 1..K.

    Clusters are ordered by descending size; equal sizes keep ascending
    raw id order.
    """
    ids, sizes = np.unique(np.asarray(labels), return_counts=True)
    order = np.lexsort((ids, -sizes))
    return {int(ids[pos]): rank + 1 for rank, pos in enumerate(order)}


def relabel(labels: np.ndarray, mapping: dict[int, int]) -> np.ndarray:
    labels = np.asarray(labels)
    lookup = np.zeros(max(mapping) + 1, dtype=np.int64)
    for raw, canonical in mapping.items():
        lookup[raw] = canonical
    relabelled = lookup[labels]
    if (relabelled == 0).any():
        raise InconsistentPartitionError("raw cluster id missing from the canonical mapping", stage="partition")
    return relabelled
