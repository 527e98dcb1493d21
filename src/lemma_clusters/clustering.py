from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Literal

import numpy as np
from pydantic import BaseModel, Field

from .distance import compute_distances
from .errors import InconsistentPartitionError, InvalidInputError
from .fit import score_partition
from .linkage import ward_linkage
from .medoids import find_medoids
from .models import ClusteringResult, ClusterRecord, MemberRecord
from .partition import canonical_mapping, check_partition, cluster_members, cut_dendrogram
from .selection import select_cluster_count
from .space import EmbeddingSpace

logger = logging.getLogger(__name__)


class ClusterConfig(BaseModel):
    """Configuration for a clustering run.

    Parameters
    ----------
    metric:
        Distance used for agglomeration, silhouette widths and medoids.
        Fit scores are always Euclidean.
    k_min, k_max:
        Admissible range of cluster counts searched by silhouette. The
        defaults bracket the 93 Louw-Nida semantic domains. The range is
        checked against the embedding size when clustering.
    n_clusters:
        If set, skip the search and use this count. It must still lie in
        ``[2, N - 1]``.
    compute_wss:
        Record within-cluster sums of squares for the elbow diagnostic.
        Ignored for the cosine metric.
    linkage_backend:
        ``"scipy"`` for the compiled Ward implementation, ``"nn_chain"``
        for the NumPy nearest-neighbour chain.
    n_jobs:
        Worker threads for the cluster-count search.
    fit_decimals:
        Decimal places kept for member fit percentages.
    """

    metric: Literal["euclidean", "cosine"] = Field(
        default="euclidean",
        description="Distance metric used for clustering",
    )
    k_min: int = Field(default=90, description="Smallest candidate cluster count")
    k_max: int = Field(default=300, description="Largest candidate cluster count")
    n_clusters: int | None = Field(
        default=None,
        description="Fixed cluster count. If None, the silhouette-optimal count in [k_min, k_max] is used.",
    )
    compute_wss: bool = Field(default=True, description="Record WSS for the elbow diagnostic")
    linkage_backend: Literal["scipy", "nn_chain"] = Field(default="scipy", description="Ward implementation")
    n_jobs: int = Field(default=1, ge=1, description="Worker threads for the k search")
    fit_decimals: int = Field(default=1, ge=0, le=6, description="Rounding of fit percentages")

    model_config = {"extra": "forbid"}

    @classmethod
    def from_file(cls, path: str | Path, **overrides: object) -> "ClusterConfig":
        """Load a JSON config; keyword overrides that are not None win."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise InvalidInputError(f"cannot read config {path}: {exc}") from exc
        data.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(data)


class Clusterer(BaseModel):
    """End-to-end clustering of an :class:`EmbeddingSpace`."""

    config: ClusterConfig = Field(default_factory=ClusterConfig)

    model_config = {"arbitrary_types_allowed": True}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cluster(self, space: EmbeddingSpace) -> ClusteringResult:
        """Cluster ``space`` and return canonically numbered cluster records."""
        cfg = self.config
        lemmas = space.lemmas
        vectors = space.as_numpy()
        n_items = space.n_items

        distances = compute_distances(space, metric=cfg.metric)
        dendrogram = ward_linkage(distances, backend=cfg.linkage_backend)

        # --- choose cluster count --------------------------------------
        if cfg.n_clusters is not None:
            k_min = k_max = cfg.n_clusters
        else:
            k_min, k_max = cfg.k_min, cfg.k_max
        wss_vectors = vectors if cfg.compute_wss and cfg.metric == "euclidean" else None
        selection = select_cluster_count(
            dendrogram,
            distances,
            k_min=k_min,
            k_max=k_max,
            vectors=wss_vectors,
            n_jobs=cfg.n_jobs,
        )

        # --- materialise and describe the partition --------------------
        raw_labels = cut_dendrogram(dendrogram, selection.best_k)
        medoids = find_medoids(raw_labels, distances, lemmas)
        fits = score_partition(raw_labels, vectors, lemmas, decimals=cfg.fit_decimals)
        mapping = canonical_mapping(raw_labels)

        clusters: list[ClusterRecord] = []
        for raw_id, members in sorted(cluster_members(raw_labels).items(), key=lambda item: mapping[item[0]]):
            member_lemmas = [lemmas[int(i)] for i in members]
            # stable sort keeps row order among equal fits
            ranked = sorted(member_lemmas, key=lambda lemma: -fits.member_fit[lemma])
            medoid = medoids[raw_id]
            clusters.append(
                ClusterRecord(
                    cluster_id=mapping[raw_id],
                    size=len(member_lemmas),
                    medoid=medoid.lemma,
                    medoid_index=medoid.index,
                    mean_fit=fits.cluster_mean[raw_id],
                    members=[MemberRecord(lemma=lemma, intra_cluster_fit=fits.member_fit[lemma]) for lemma in ranked],
                )
            )

        result = ClusteringResult(
            clusters=clusters,
            selection=selection,
            metric=cfg.metric,
            n_items=n_items,
        )
        result._raw_to_canonical = mapping
        self._check_result(result, lemmas)
        self._log_summary(result)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_result(self, result: ClusteringResult, lemmas: list[str]) -> None:
        ids = [c.cluster_id for c in result.clusters]
        if ids != list(range(1, len(ids) + 1)):
            raise InconsistentPartitionError(f"canonical ids are not contiguous: {ids[:10]}")
        sizes = [c.size for c in result.clusters]
        if any(a < b for a, b in zip(sizes, sizes[1:])):
            raise InconsistentPartitionError("canonical ids are not ordered by descending size")

        assignments = result.assignments
        if len(assignments) != sum(sizes) or set(assignments) != set(lemmas):
            raise InconsistentPartitionError(
                f"{sum(sizes)} memberships for {len(lemmas)} lemmas; some lemma is missing or duplicated"
            )
        check_partition(np.array([assignments[lemma] for lemma in lemmas]), len(lemmas))

    def _log_summary(self, result: ClusteringResult) -> None:
        sizes = [c.size for c in result.clusters]
        logger.info("Clustering results summary:")
        logger.info("  Total number of lemmas: %d", result.n_items)
        logger.info("  Number of clusters: %d", result.n_clusters)
        logger.info("  Largest cluster size: %d", max(sizes))
        logger.info("  Smallest cluster size: %d", min(sizes))
        logger.info("  Average cluster size: %.2f", float(np.mean(sizes)))
        logger.info("  Max silhouette score: %.4f", result.selection.best_silhouette)
        if result.selection.elbow_k is not None:
            logger.info("  Elbow k (WSS): %d", result.selection.elbow_k)
        for cluster in result.clusters[:10]:
            preview = ", ".join(cluster.lemmas[:5])
            more = ", ..." if cluster.size > 5 else ""
            logger.info("  Cluster %d (size: %d): %s%s", cluster.cluster_id, cluster.size, preview, more)
        logger.debug("Raw -> canonical cluster ids: %s", result._raw_to_canonical)
