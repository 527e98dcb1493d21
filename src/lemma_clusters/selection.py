from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np
from sklearn.metrics import silhouette_samples

from .distance import DistanceMatrix
from .errors import EmptyRangeError
from .linkage import Dendrogram
from .models import KEvaluation, SelectionResult
from .partition import cut_dendrogram

logger = logging.getLogger(__name__)


def validate_k_range(k_min: int, k_max: int, n_items: int) -> range:
    """Return the candidate counts ``k_min..k_max`` if they fit ``[2, n_items - 1]``."""
    if k_min < 2:
        raise EmptyRangeError(f"k_min must be at least 2, got {k_min}")
    if k_max > n_items - 1:
        raise EmptyRangeError(f"k_max must be below the number of items ({n_items}), got {k_max}")
    if k_min > k_max:
        raise EmptyRangeError(f"empty range: k_min={k_min} > k_max={k_max}")
    return range(k_min, k_max + 1)


def mean_silhouette(square: np.ndarray, labels: np.ndarray) -> float:
    """Mean silhouette width against precomputed distances.

    Members of singleton clusters contribute 0.
    """
    return float(np.mean(silhouette_samples(square, labels, metric="precomputed")))


def within_cluster_ss(vectors: np.ndarray, labels: np.ndarray) -> float:
    """Sum of squared deviations of every item from its cluster centroid."""
    index = np.asarray(labels) - 1
    n_clusters = int(index.max()) + 1
    sums = np.zeros((n_clusters, vectors.shape[1]))
    np.add.at(sums, index, vectors)
    counts = np.bincount(index, minlength=n_clusters).astype(float)
    total = float(np.square(vectors).sum()) - float((np.square(sums).sum(axis=1) / counts).sum())
    return max(total, 0.0)


def evaluate_k(
    dendrogram: Dendrogram,
    square: np.ndarray,
    k: int,
    vectors: np.ndarray | None = None,
) -> KEvaluation:
    labels = cut_dendrogram(dendrogram, k)
    silhouette = mean_silhouette(square, labels)
    wss = within_cluster_ss(vectors, labels) if vectors is not None else None
    logger.debug("k=%d: silhouette=%.4f", k, silhouette)
    return KEvaluation(k=k, silhouette=silhouette, wss=wss)


def elbow_k(evaluations: list[KEvaluation]) -> int | None:
    """Elbow of the WSS curve: the k after the most negative second difference.

    Diagnostic only. Needs at least three evaluations with WSS.
    """
    if len(evaluations) < 3 or any(e.wss is None for e in evaluations):
        return None
    wss = np.array([e.wss for e in evaluations])
    position = int(np.argmin(np.diff(wss, n=2)))
    return evaluations[position + 1].k


def select_cluster_count(
    dendrogram: Dendrogram,
    distances: DistanceMatrix,
    k_min: int,
    k_max: int,
    vectors: np.ndarray | None = None,
    n_jobs: int = 1,
) -> SelectionResult:
    """Pick the k in ``[k_min, k_max]`` with the highest mean silhouette width.

    Every candidate is cut from the same dendrogram and scored against the
    same precomputed distances. With ``n_jobs > 1`` candidates are
    evaluated on a thread pool; each worker returns its own
    :class:`KEvaluation` and results are collected in k order. Pass
    ``vectors`` to also record the within-cluster sum of squares for the
    elbow diagnostic (meaningful for Euclidean runs only). Ties in
    silhouette go to the smaller k.
    """
    candidates = validate_k_range(k_min, k_max, distances.n_items)
    square = distances.square
    logger.info("Evaluating %d candidate cluster counts (k=%d..%d)", len(candidates), k_min, k_max)

    def run(k: int) -> KEvaluation:
        return evaluate_k(dendrogram, square, k, vectors)

    if n_jobs > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            evaluations = list(executor.map(run, candidates))
    else:
        evaluations = [run(k) for k in candidates]

    best = max(evaluations, key=lambda e: (e.silhouette, -e.k))
    elbow = elbow_k(evaluations)
    logger.info("Optimal k (silhouette): %d, score %.4f", best.k, best.silhouette)
    if elbow is not None:
        logger.info("Optimal k (elbow, diagnostic): %d", elbow)

    return SelectionResult(
        best_k=best.k,
        best_silhouette=best.silhouette,
        elbow_k=elbow,
        evaluations=evaluations,
    )
