from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import Literal, Sequence

import numpy as np
from scipy.spatial.distance import pdist, squareform

from .errors import DegenerateVectorError, InvalidInputError
from .space import EmbeddingSpace

logger = logging.getLogger(__name__)

Metric = Literal["euclidean", "cosine"]


@dataclass(frozen=True)
class DistanceMatrix:
    """Symmetric pairwise distances in packed upper-triangular form.

    ``condensed`` holds the ``n * (n - 1) / 2`` distances for ``i < j`` in
    row-major order, the layout used by :func:`scipy.spatial.distance.pdist`.
    The full square matrix is only materialised on demand through
    :attr:`square` and is then cached for the lifetime of the object.
    """

    condensed: np.ndarray
    n_items: int
    metric: Metric = "euclidean"
    labels: Sequence[str] | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        expected = self.n_items * (self.n_items - 1) // 2
        if self.condensed.shape != (expected,):
            raise InvalidInputError(
                f"condensed distances have shape {self.condensed.shape}, expected ({expected},)",
                stage="distance",
            )

    def pair_index(self, i: np.ndarray | int, j: np.ndarray | int) -> np.ndarray:
        """Position of the unordered pair ``{i, j}`` in ``condensed``.

        Only meaningful for ``i != j``; works element-wise on arrays.
        """
        lo = np.minimum(i, j)
        hi = np.maximum(i, j)
        n = self.n_items
        return n * lo - lo * (lo + 1) // 2 + (hi - lo - 1)

    def distance(self, i: int, j: int) -> float:
        if i == j:
            return 0.0
        return float(self.condensed[self.pair_index(i, j)])

    def submatrix(self, indices: np.ndarray | Sequence[int]) -> np.ndarray:
        """Square distance block between the given items, in the given order."""
        idx = np.asarray(indices, dtype=np.int64)
        rows = idx[:, None]
        cols = idx[None, :]
        diagonal = rows == cols
        positions = self.pair_index(rows, cols)
        positions[diagonal] = 0
        block = self.condensed[positions]
        block[diagonal] = 0.0
        return block

    @cached_property
    def square(self) -> np.ndarray:
        """Full ``(n, n)`` matrix with a zero diagonal."""
        logger.debug("Expanding %d condensed distances to a square matrix", self.condensed.size)
        return squareform(self.condensed, checks=False)


def _as_matrix(embedding: EmbeddingSpace | np.ndarray) -> tuple[np.ndarray, list[str] | None]:
    if isinstance(embedding, EmbeddingSpace):
        return embedding.as_numpy(), embedding.lemmas
    try:
        vectors = np.asarray(embedding, dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"embedding is not a numeric matrix: {exc}", stage="distance") from exc
    return vectors, None


def compute_distances(
    embedding: EmbeddingSpace | np.ndarray,
    metric: Metric = "euclidean",
) -> DistanceMatrix:
    """Compute all pairwise distances between embedding rows.

    ``euclidean`` is the L2 norm of the difference vector. ``cosine``
    normalises every row to unit length and takes ``1 - dot product``;
    a zero-norm row raises :class:`DegenerateVectorError`.
    """
    vectors, lemmas = _as_matrix(embedding)

    if vectors.ndim != 2:
        raise InvalidInputError(f"expected a 2-D matrix, got {vectors.ndim} dimension(s)", stage="distance")
    n_items, dims = vectors.shape
    if n_items < 2:
        raise InvalidInputError(f"need at least 2 vectors, got {n_items}", stage="distance")
    if dims < 1:
        raise InvalidInputError("vectors have zero dimensions", stage="distance")
    if not np.isfinite(vectors).all():
        raise InvalidInputError("embedding contains NaN or infinite values", stage="distance")

    if metric == "euclidean":
        condensed = pdist(vectors, metric="euclidean")
    elif metric == "cosine":
        norms = np.linalg.norm(vectors, axis=1)
        zero = np.flatnonzero(norms == 0.0)
        if zero.size:
            names = [lemmas[i] for i in zero[:5]] if lemmas is not None else zero[:5].tolist()
            raise DegenerateVectorError(f"{zero.size} zero-norm vector(s) under cosine metric: {names}")
        unit = vectors / norms[:, None]
        # rounding can push 1 - dot slightly outside [0, 2]
        condensed = np.clip(pdist(unit, metric="cosine"), 0.0, 2.0)
    else:
        raise InvalidInputError(f"unsupported metric: {metric!r}", stage="distance")

    logger.info("Computed %d %s distances over %d items", condensed.size, metric, n_items)
    return DistanceMatrix(condensed=condensed, n_items=n_items, metric=metric, labels=lemmas)
