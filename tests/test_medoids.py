from __future__ import annotations

import numpy as np
import pytest

from lemma_clusters import InconsistentPartitionError, compute_distances
from lemma_clusters.medoids import find_medoids, medoid_position


def test_medoid_position_minimises_mean_distance():
    block = np.array(
        [
            [0.0, 1.0, 2.0],
            [1.0, 0.0, 1.0],
            [2.0, 1.0, 0.0],
        ]
    )
    assert medoid_position(block) == 1


def test_medoid_position_ties_go_to_first_row():
    block = np.array([[0.0, 3.0], [3.0, 0.0]])
    assert medoid_position(block) == 0


def test_medoid_position_singleton_and_empty():
    assert medoid_position(np.zeros((1, 1))) == 0
    with pytest.raises(InconsistentPartitionError):
        medoid_position(np.zeros((0, 0)))


class TestFindMedoids:
    def test_one_medoid_per_cluster(self):
        points = np.array([[0.0], [1.0], [2.0], [10.0], [10.5], [50.0]])
        lemmas = ["α", "β", "γ", "δ", "ε", "ζ"]
        labels = np.array([1, 1, 1, 2, 2, 3])

        medoids = find_medoids(labels, compute_distances(points), lemmas)

        assert sorted(medoids) == [1, 2, 3]
        assert medoids[1].lemma == "β"
        assert medoids[1].index == 1
        # a pair ties; the first member in row order wins
        assert medoids[2].lemma == "δ"
        assert medoids[3].lemma == "ζ"
        assert medoids[3].index == 5

    def test_uses_the_clustering_metric(self):
        # under cosine the long vector is central; under euclidean it is not
        points = np.array([[1.0, 0.05], [1.0, -0.05], [10.0, 0.0]])
        lemmas = ["a", "b", "c"]
        labels = np.array([1, 1, 1])

        cosine = find_medoids(labels, compute_distances(points, metric="cosine"), lemmas)
        euclidean = find_medoids(labels, compute_distances(points), lemmas)

        assert cosine[1].lemma == "c"
        assert euclidean[1].lemma in {"a", "b"}

    def test_rejects_partition_with_gaps(self):
        points = np.array([[0.0], [1.0], [2.0]])
        with pytest.raises(InconsistentPartitionError) as excinfo:
            find_medoids(np.array([1, 3, 3]), compute_distances(points), ["a", "b", "c"])
        assert excinfo.value.stage == "medoids"

    def test_rejects_lemma_count_mismatch(self):
        points = np.array([[0.0], [1.0], [2.0]])
        with pytest.raises(InconsistentPartitionError):
            find_medoids(np.array([1, 1, 2]), compute_distances(points), ["a", "b"])
