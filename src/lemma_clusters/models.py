# src/lemma_clusters/models.py
from __future__ import annotations

from pydantic import BaseModel, Field, PrivateAttr, model_validator

from .errors import InconsistentPartitionError


class KEvaluation(BaseModel):
    """Quality scores for one candidate cluster count."""

    model_config = {"frozen": True}

    k: int = Field(ge=2, description="Number of clusters in the cut")
    silhouette: float = Field(ge=-1.0, le=1.0, description="Mean silhouette width over all items")
    wss: float | None = Field(
        default=None,
        description="Within-cluster sum of squared deviations (Euclidean runs only)",
    )


class SelectionResult(BaseModel):
    """Outcome of the cluster-count search."""

    model_config = {"frozen": True}

    best_k: int = Field(description="Cluster count with the highest mean silhouette")
    best_silhouette: float = Field(description="Mean silhouette at best_k")
    elbow_k: int | None = Field(
        default=None,
        description="Diagnostic elbow choice from the WSS curve, if computed",
    )
    evaluations: list[KEvaluation] = Field(
        default_factory=list,
        description="One evaluation per candidate k, ascending",
    )

    @property
    def silhouette_series(self) -> list[tuple[int, float]]:
        return [(e.k, e.silhouette) for e in self.evaluations]


class Medoid(BaseModel):
    """Representative member of one cluster."""

    model_config = {"frozen": True}

    cluster_id: int
    lemma: str
    index: int = Field(ge=0, description="Row index of the medoid in the embedding")


class FitScores(BaseModel):
    """Intra-cluster fit percentages."""

    member_fit: dict[str, float] = Field(default_factory=dict, description="Lemma -> fit percentage")
    cluster_mean: dict[int, float] = Field(default_factory=dict, description="Cluster id -> mean fit")


class MemberRecord(BaseModel):
    """A lemma's membership in its cluster."""

    lemma: str = Field(description="The lemma")
    intra_cluster_fit: float = Field(
        ge=0.0,
        le=100.0,
        description="Percentile of closeness to the other members (100 = most central)",
    )


class ClusterRecord(BaseModel):
    """A canonical cluster with its medoid and scored members."""

    cluster_id: int = Field(ge=1, description="Canonical id, 1 = largest cluster")
    size: int = Field(ge=1, description="Number of members")
    medoid: str = Field(description="Member with minimum mean distance to the others")
    medoid_index: int | None = Field(default=None, ge=0, description="Row index of the medoid")
    mean_fit: float | None = Field(default=None, description="Mean member fit percentage")
    members: list[MemberRecord] = Field(
        default_factory=list,
        description="Members sorted by descending fit",
    )

    @model_validator(mode="after")
    def _check_members(self) -> "ClusterRecord":
        if self.size != len(self.members):
            raise InconsistentPartitionError(
                f"cluster {self.cluster_id} has size {self.size} but {len(self.members)} member(s)"
            )
        if self.medoid not in {m.lemma for m in self.members}:
            raise InconsistentPartitionError(f"medoid {self.medoid!r} is not a member of cluster {self.cluster_id}")
        return self

    @property
    def lemmas(self) -> list[str]:
        return [m.lemma for m in self.members]


class ClusteringResult(BaseModel):
    """Final, canonically numbered clustering of an embedding."""

    clusters: list[ClusterRecord] = Field(
        default_factory=list,
        description="Clusters ordered by canonical id",
    )
    selection: SelectionResult = Field(description="Cluster-count search diagnostics")
    metric: str = Field(description="Distance metric used for clustering")
    n_items: int = Field(description="Number of clustered lemmas")

    _raw_to_canonical: dict[int, int] = PrivateAttr(default_factory=dict)

    @property
    def n_clusters(self) -> int:
        return len(self.clusters)

    @property
    def assignments(self) -> dict[str, int]:
        """Lemma -> canonical cluster id."""
        return {m.lemma: c.cluster_id for c in self.clusters for m in c.members}

    def get_cluster(self, cluster_id: int) -> ClusterRecord:
        for cluster in self.clusters:
            if cluster.cluster_id == cluster_id:
                return cluster
        raise KeyError(cluster_id)

    def cluster_of(self, lemma: str) -> int | None:
        """Canonical cluster id for ``lemma``, or None if it was not clustered."""
        return self.assignments.get(lemma)
