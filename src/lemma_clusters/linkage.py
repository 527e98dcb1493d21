"""Ward agglomeration over a :class:`~lemma_clusters.distance.DistanceMatrix`.

Two backends produce the same merge tree:

``scipy``
    :func:`scipy.cluster.hierarchy.linkage` with ``method="ward"``. Works
    directly on the packed distances and is the default.

``nn_chain``
    A NumPy nearest-neighbour chain. Cluster distances are updated with
    the Lance-Williams recurrence for Ward's criterion, so each merge costs
    one O(N) vector update and the whole tree O(N^2). It needs the square
    matrix in memory. Ties are resolved deterministically: the chain tip
    prefers its predecessor when that is among the nearest clusters,
    otherwise the nearest cluster with the lowest index; a merged cluster
    keeps the lower of its two indices. Merges of equal height keep the
    order in which the chain found them.

Both backends return linkage matrices in SciPy's layout: row ``i`` merges
clusters ``Z[i, 0] < Z[i, 1]`` at height ``Z[i, 2]`` into a new cluster
``n + i`` holding ``Z[i, 3]`` leaves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

import numpy as np
from scipy.cluster.hierarchy import linkage as scipy_linkage

from .distance import DistanceMatrix
from .errors import InconsistentPartitionError

logger = logging.getLogger(__name__)

LinkageBackend = Literal["scipy", "nn_chain"]


@dataclass(frozen=True)
class Dendrogram:
    """Binary merge tree over ``n_items`` leaves."""

    merges: np.ndarray
    n_items: int

    @property
    def heights(self) -> np.ndarray:
        return self.merges[:, 2]

    @property
    def n_merges(self) -> int:
        return int(self.merges.shape[0])

    def validate(self) -> "Dendrogram":
        """Check the structural invariants of a Ward tree.

        Every row must reference clusters that already exist, every
        cluster is merged at most once, leaf counts add up and heights
        never decrease from a child to its parent.
        """
        n = self.n_items
        if self.merges.shape != (n - 1, 4):
            raise InconsistentPartitionError(
                f"expected {n - 1} merges, got array of shape {self.merges.shape}",
                stage="agglomeration",
            )

        size = np.ones(2 * n - 1, dtype=np.int64)
        height = np.zeros(2 * n - 1)
        used = np.zeros(2 * n - 1, dtype=bool)
        for row, (a, b, h, count) in enumerate(self.merges):
            a, b = int(a), int(b)
            node = n + row
            if not (0 <= a < node and 0 <= b < node) or a == b:
                raise InconsistentPartitionError(f"merge {row} references invalid clusters {a}, {b}", stage="agglomeration")
            if used[a] or used[b]:
                raise InconsistentPartitionError(f"merge {row} reuses an already merged cluster", stage="agglomeration")
            if h < height[a] or h < height[b]:
                raise InconsistentPartitionError(
                    f"merge {row} at height {h:.6g} is below a child height; the tree is not monotone",
                    stage="agglomeration",
                )
            used[a] = used[b] = True
            size[node] = size[a] + size[b]
            height[node] = h
            if int(count) != size[node]:
                raise InconsistentPartitionError(
                    f"merge {row} records {int(count)} leaves, expected {size[node]}",
                    stage="agglomeration",
                )
        return self


def ward_linkage(distances: DistanceMatrix, backend: LinkageBackend = "scipy") -> Dendrogram:
    """Build the Ward dendrogram for ``distances``."""
    logger.info("Running Ward agglomeration on %d items (%s backend)", distances.n_items, backend)
    if backend == "scipy":
        merges = scipy_linkage(distances.condensed, method="ward")
    elif backend == "nn_chain":
        merges = _nn_chain_ward(distances.square)
    else:
        raise ValueError(f"Unsupported linkage backend: {backend!r}")

    dendrogram = Dendrogram(merges=np.asarray(merges, dtype=float), n_items=distances.n_items)
    return dendrogram.validate()


def _nn_chain_ward(square: np.ndarray) -> np.ndarray:
    n = square.shape[0]
    # squared distances make the Ward update linear
    d2 = np.square(square, dtype=float)
    np.fill_diagonal(d2, np.inf)
    size = np.ones(n, dtype=float)
    active = np.ones(n, dtype=bool)

    found: list[tuple[int, int, float]] = []
    chain: list[int] = []
    while len(found) < n - 1:
        if not chain:
            chain.append(int(np.flatnonzero(active)[0]))

        while True:
            tip = chain[-1]
            row = d2[tip]
            nearest = int(np.argmin(row))
            if len(chain) > 1 and row[chain[-2]] <= row[nearest]:
                nearest = chain[-2]
            if len(chain) > 1 and nearest == chain[-2]:
                break
            chain.append(nearest)

        a = chain.pop()
        b = chain.pop()
        i, j = min(a, b), max(a, b)
        dij = d2[i, j]
        found.append((i, j, float(np.sqrt(dij))))

        ni, nj = size[i], size[j]
        updated = ((ni + size) * d2[i] + (nj + size) * d2[j] - size * dij) / (ni + nj + size)
        np.maximum(updated, 0.0, out=updated)
        updated[~active] = np.inf
        updated[i] = np.inf
        updated[j] = np.inf

        d2[i, :] = updated
        d2[:, i] = updated
        d2[j, :] = np.inf
        d2[:, j] = np.inf
        active[j] = False
        size[i] = ni + nj

    return _label_merges(found, n)


def _label_merges(found: list[tuple[int, int, float]], n: int) -> np.ndarray:
    """Turn merges between representative leaves into a SciPy linkage matrix."""
    order = np.argsort([h for _, _, h in found], kind="stable")
    parent = np.arange(2 * n - 1)
    size = np.ones(2 * n - 1, dtype=np.int64)

    def find(x: int) -> int:
        root = x
        while parent[root] != root:
            root = parent[root]
        while parent[x] != root:
            parent[x], x = root, parent[x]
        return root

    merges = np.zeros((n - 1, 4))
    for row, pos in enumerate(order):
        a, b, h = found[pos]
        ra, rb = find(a), find(b)
        node = n + row
        parent[ra] = parent[rb] = node
        size[node] = size[ra] + size[rb]
        merges[row] = (min(ra, rb), max(ra, rb), h, size[node])
    return merges
