from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from .distance import DistanceMatrix
from .errors import InconsistentPartitionError
from .models import Medoid
from .partition import check_partition, cluster_members

logger = logging.getLogger(__name__)


def medoid_position(block: np.ndarray) -> int:
    """Index of the row with the smallest mean distance to the other rows.

    ``block`` is a square intra-cluster distance matrix with a zero
    diagonal. The first row wins a tie.
    """
    m = block.shape[0]
    if m == 0:
        raise InconsistentPartitionError("medoid requested for an empty cluster", stage="medoids")
    if m == 1:
        return 0
    mean_distance = block.sum(axis=1) / (m - 1)
    return int(np.argmin(mean_distance))


def find_medoids(
    labels: np.ndarray,
    distances: DistanceMatrix,
    lemmas: Sequence[str],
) -> dict[int, Medoid]:
    """Find the medoid of every cluster in ``labels``.

    Uses the same distances the clustering ran on. Members are visited
    in row order, so ties go to the lemma that comes first in the
    embedding.
    """
    check_partition(labels, distances.n_items, stage="medoids")
    if len(lemmas) != distances.n_items:
        raise InconsistentPartitionError(
            f"{len(lemmas)} lemmas for {distances.n_items} distance rows", stage="medoids"
        )

    medoids: dict[int, Medoid] = {}
    for cluster_id, members in cluster_members(labels).items():
        if members.size == 1:
            best = int(members[0])
        else:
            best = int(members[medoid_position(distances.submatrix(members))])
        medoids[cluster_id] = Medoid(cluster_id=cluster_id, lemma=lemmas[best], index=best)

    logger.info("Found medoids for %d clusters", len(medoids))
    return medoids
