from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy.spatial.distance import pdist, squareform
from scipy.stats import rankdata

from .errors import InconsistentPartitionError
from .models import FitScores
from .partition import check_partition, cluster_members

logger = logging.getLogger(__name__)


def fit_percentiles(vectors: np.ndarray) -> np.ndarray:
    """Closeness percentile of each row among the rows of one cluster.

    Each member's mean Euclidean distance to the others is ranked with
    competition ranking, closest first, and mapped linearly so the
    closest member scores 100 and the farthest 0. Tied members share the
    better rank. A singleton scores 100.
    """
    m = vectors.shape[0]
    if m == 0:
        raise InconsistentPartitionError("fit requested for an empty cluster", stage="fit")
    if m == 1:
        return np.array([100.0])

    mean_distance = squareform(pdist(vectors, metric="euclidean")).sum(axis=1) / (m - 1)
    rank = rankdata(mean_distance, method="min")
    return (m - rank) / (m - 1) * 100.0


def score_partition(
    labels: np.ndarray,
    vectors: np.ndarray,
    lemmas: Sequence[str],
    decimals: int = 1,
) -> FitScores:
    """Score every member's fit to its cluster.

    Always Euclidean on the raw vectors, whatever metric the clustering
    used. Member scores are rounded to ``decimals`` places; each cluster
    mean is the mean of its rounded member scores, rounded to
    ``decimals + 1`` places.
    """
    vectors = np.asarray(vectors, dtype=float)
    check_partition(labels, vectors.shape[0], stage="fit")
    if len(lemmas) != vectors.shape[0]:
        raise InconsistentPartitionError(f"{len(lemmas)} lemmas for {vectors.shape[0]} vectors", stage="fit")

    member_fit: dict[str, float] = {}
    cluster_mean: dict[int, float] = {}
    for cluster_id, members in cluster_members(labels).items():
        scores = np.round(fit_percentiles(vectors[members]), decimals)
        for row, score in zip(members, scores):
            member_fit[lemmas[int(row)]] = float(score)
        cluster_mean[cluster_id] = round(float(scores.mean()), decimals + 1)

    logger.debug("Scored %d members across %d clusters", len(member_fit), len(cluster_mean))
    return FitScores(member_fit=member_fit, cluster_mean=cluster_mean)
