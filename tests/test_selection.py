from __future__ import annotations

import numpy as np
import pytest

from lemma_clusters import EmptyRangeError, KEvaluation, compute_distances, ward_linkage
from lemma_clusters.selection import (
    elbow_k,
    evaluate_k,
    mean_silhouette,
    select_cluster_count,
    validate_k_range,
    within_cluster_ss,
)


def make_blobs(per_blob: int = 8, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    centers = np.array([[0.0, 0.0], [20.0, 0.0], [0.0, 20.0]])
    return np.vstack([center + rng.normal(scale=0.5, size=(per_blob, 2)) for center in centers])


class TestRangeValidation:
    @pytest.mark.parametrize("k_min, k_max", [(1, 3), (2, 10), (5, 4), (0, 0)])
    def test_invalid_ranges(self, k_min, k_max):
        with pytest.raises(EmptyRangeError):
            validate_k_range(k_min, k_max, n_items=10)

    def test_valid_range(self):
        assert list(validate_k_range(2, 9, n_items=10)) == list(range(2, 10))
        assert list(validate_k_range(4, 4, n_items=10)) == [4]


class TestSilhouette:
    def test_singletons_contribute_zero(self):
        points = np.array([[0.0], [1.0], [10.0]])
        square = compute_distances(points).square

        score = mean_silhouette(square, np.array([1, 1, 2]))

        # a = 1 for both paired points, b = 10 and 9; the singleton adds 0
        assert score == pytest.approx((0.9 + 8.0 / 9.0) / 3.0)

    def test_true_blob_count_beats_extremes(self):
        points = make_blobs()
        distances = compute_distances(points)
        dendrogram = ward_linkage(distances)
        n = points.shape[0]

        true_k = evaluate_k(dendrogram, distances.square, 3).silhouette
        assert true_k > evaluate_k(dendrogram, distances.square, 2).silhouette
        assert true_k > evaluate_k(dendrogram, distances.square, n - 1).silhouette


class TestWithinClusterSS:
    def test_matches_direct_sum(self):
        points = np.array([[0.0, 0.0], [2.0, 0.0], [10.0, 10.0], [10.0, 12.0], [5.0, 5.0]])
        labels = np.array([1, 1, 2, 2, 3])

        # each pair is 1 away from its centroid on both members; singleton adds 0
        assert within_cluster_ss(points, labels) == pytest.approx(4.0)

    def test_single_cluster_is_total_variance(self):
        points = np.random.default_rng(1).normal(size=(12, 3))
        expected = float(np.square(points - points.mean(axis=0)).sum())
        assert within_cluster_ss(points, np.ones(12, dtype=int)) == pytest.approx(expected)


class TestElbow:
    def test_largest_bend(self):
        evaluations = [
            KEvaluation(k=k, silhouette=0.5, wss=wss) for k, wss in zip(range(2, 7), [100.0, 90.0, 30.0, 25.0, 22.0])
        ]
        # second differences: -50, 55, 2 -> first position -> k = 3
        assert elbow_k(evaluations) == 3

    def test_needs_three_points_with_wss(self):
        assert elbow_k([KEvaluation(k=2, silhouette=0.1, wss=1.0), KEvaluation(k=3, silhouette=0.1, wss=0.5)]) is None
        assert elbow_k([KEvaluation(k=k, silhouette=0.1) for k in (2, 3, 4)]) is None


class TestSelectClusterCount:
    def test_selects_true_blob_count(self):
        points = make_blobs()
        distances = compute_distances(points)
        dendrogram = ward_linkage(distances)

        result = select_cluster_count(dendrogram, distances, k_min=2, k_max=10, vectors=points)

        assert result.best_k == 3
        assert [e.k for e in result.evaluations] == list(range(2, 11))
        assert result.silhouette_series[1] == (3, result.best_silhouette)
        assert all(e.wss is not None for e in result.evaluations)
        assert result.elbow_k in range(2, 11)

    def test_without_vectors_no_wss(self):
        points = make_blobs()
        distances = compute_distances(points)

        result = select_cluster_count(ward_linkage(distances), distances, k_min=2, k_max=5)

        assert all(e.wss is None for e in result.evaluations)
        assert result.elbow_k is None

    def test_threads_give_identical_series(self):
        points = make_blobs(per_blob=10, seed=4)
        distances = compute_distances(points)
        dendrogram = ward_linkage(distances)

        serial = select_cluster_count(dendrogram, distances, 2, 20, vectors=points, n_jobs=1)
        threaded = select_cluster_count(dendrogram, distances, 2, 20, vectors=points, n_jobs=4)

        assert threaded == serial

    def test_ties_go_to_smaller_k(self):
        # four identical points per corner: several k share the same score
        points = np.repeat(np.array([[0.0, 0.0], [10.0, 0.0]]), 4, axis=0)
        distances = compute_distances(points)

        result = select_cluster_count(ward_linkage(distances), distances, 2, 4)

        assert result.best_k == 2

    def test_range_beyond_items(self):
        points = make_blobs(per_blob=2)
        distances = compute_distances(points)
        with pytest.raises(EmptyRangeError):
            select_cluster_count(ward_linkage(distances), distances, 2, points.shape[0])
