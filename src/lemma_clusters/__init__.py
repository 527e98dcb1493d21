"""Semantic clustering of lemma embeddings.

Builds a Ward dendrogram over an embedding matrix, picks the cluster
count with the best mean silhouette width, and describes every cluster
by its medoid and the fit of each member. Clusters are numbered by
descending size and exported as tables and a nested JSON document.
"""

# src/lemma_clusters/__init__.py
from lemma_clusters.clustering import ClusterConfig, Clusterer
from lemma_clusters.distance import DistanceMatrix, compute_distances
from lemma_clusters.errors import (
    DegenerateVectorError,
    EmptyRangeError,
    InconsistentPartitionError,
    InvalidInputError,
    LemmaClusterError,
)
from lemma_clusters.export import cluster_document, write_outputs
from lemma_clusters.linkage import Dendrogram, ward_linkage
from lemma_clusters.models import (
    ClusteringResult,
    ClusterRecord,
    KEvaluation,
    MemberRecord,
    SelectionResult,
)
from lemma_clusters.space import EmbeddingSpace, load_restriction_list

__all__ = [
    "EmbeddingSpace",
    "load_restriction_list",
    "DistanceMatrix",
    "compute_distances",
    "Dendrogram",
    "ward_linkage",
    "ClusterConfig",
    "Clusterer",
    "ClusteringResult",
    "ClusterRecord",
    "MemberRecord",
    "KEvaluation",
    "SelectionResult",
    "cluster_document",
    "write_outputs",
    "LemmaClusterError",
    "InvalidInputError",
    "DegenerateVectorError",
    "EmptyRangeError",
    "InconsistentPartitionError",
]
