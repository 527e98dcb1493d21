"""Serialisation of clustering results.

Four tab-separated tables and one JSON document are written:

``lemma_clusters.tsv``
    ``lemma, cluster_id, cluster_size, intra_cluster_fit``
``cluster_summary.tsv``
    ``cluster_id, size, medoid, medoid_index, mean_fit``
``cluster_breakdown.tsv``
    ``cluster_id, lemma``
``k_selection.tsv``
    ``k, silhouette, wss``
``medoid_clusters.json``
    ``{"cluster_<id>": {cluster_id, medoid, size, members: [{lemma, intra_cluster_fit}]}}``

Rows follow canonical cluster id, then member order (descending fit).
All views are checked against each other before anything is written.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import pandas as pd

from .errors import InconsistentPartitionError, InvalidInputError
from .models import ClusteringResult, ClusterRecord, SelectionResult

logger = logging.getLogger(__name__)

LEMMA_COLUMNS = ["lemma", "cluster_id", "cluster_size", "intra_cluster_fit"]
SUMMARY_COLUMNS = ["cluster_id", "size", "medoid", "medoid_index", "mean_fit"]
BREAKDOWN_COLUMNS = ["cluster_id", "lemma"]
SELECTION_COLUMNS = ["k", "silhouette", "wss"]

SILHOUETTE_DECIMALS = 6

OUTPUT_FILES = {
    "lemmas": "lemma_clusters.tsv",
    "summary": "cluster_summary.tsv",
    "breakdown": "cluster_breakdown.tsv",
    "selection": "k_selection.tsv",
    "document": "medoid_clusters.json",
}


# ----------------------------------------------------------------------
# Views
# ----------------------------------------------------------------------


def lemma_table(result: ClusteringResult) -> pd.DataFrame:
    rows = [
        (member.lemma, cluster.cluster_id, cluster.size, member.intra_cluster_fit)
        for cluster in result.clusters
        for member in cluster.members
    ]
    return pd.DataFrame(rows, columns=LEMMA_COLUMNS)


def summary_table(result: ClusteringResult) -> pd.DataFrame:
    rows = [
        (cluster.cluster_id, cluster.size, cluster.medoid, cluster.medoid_index, cluster.mean_fit)
        for cluster in result.clusters
    ]
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def breakdown_table(result: ClusteringResult) -> pd.DataFrame:
    rows = [(cluster.cluster_id, lemma) for cluster in result.clusters for lemma in cluster.lemmas]
    return pd.DataFrame(rows, columns=BREAKDOWN_COLUMNS)


def selection_table(selection: SelectionResult) -> pd.DataFrame:
    rows = [
        (e.k, round(e.silhouette, SILHOUETTE_DECIMALS), None if e.wss is None else round(e.wss, SILHOUETTE_DECIMALS))
        for e in selection.evaluations
    ]
    return pd.DataFrame(rows, columns=SELECTION_COLUMNS)


def cluster_document(result: ClusteringResult) -> dict[str, dict[str, Any]]:
    """Nested medoid -> members document keyed ``cluster_<id>``."""
    return {
        f"cluster_{cluster.cluster_id}": cluster.model_dump(include={"cluster_id", "medoid", "size", "members"})
        for cluster in result.clusters
    }


def check_consistency(result: ClusteringResult) -> None:
    """Assert the flat, summary and nested views agree on membership and size."""
    lemmas = lemma_table(result)
    summary = summary_table(result)
    document = cluster_document(result)

    if lemmas["lemma"].duplicated().any():
        dupes = lemmas.loc[lemmas["lemma"].duplicated(), "lemma"].tolist()[:5]
        raise InconsistentPartitionError(f"lemma(s) assigned to several clusters: {dupes}", stage="export")
    if len(lemmas) != result.n_items:
        raise InconsistentPartitionError(
            f"{len(lemmas)} assignments for {result.n_items} clustered lemmas", stage="export"
        )

    flat_sizes = lemmas.groupby("cluster_id").size().to_dict()
    summary_sizes = dict(zip(summary["cluster_id"], summary["size"]))
    document_sizes = {entry["cluster_id"]: len(entry["members"]) for entry in document.values()}
    if not (flat_sizes == summary_sizes == document_sizes):
        raise InconsistentPartitionError("flat, summary and nested views disagree on cluster sizes", stage="export")
    if any((lemmas["cluster_size"] != lemmas["cluster_id"].map(summary_sizes)).tolist()):
        raise InconsistentPartitionError("cluster_size column disagrees with the summary", stage="export")


# ----------------------------------------------------------------------
# Writing
# ----------------------------------------------------------------------


def _write_table(frame: pd.DataFrame, path: Path) -> None:
    frame.to_csv(path, sep="\t", index=False, lineterminator="\n", encoding="utf-8")


def write_json(document: Any, path: str | Path) -> Path:
    path = Path(path)
    path.write_text(json.dumps(document, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    return path


def write_outputs(result: ClusteringResult, out_dir: str | Path) -> dict[str, Path]:
    """Write every table and the nested document into ``out_dir``."""
    check_consistency(result)

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = {name: out_dir / filename for name, filename in OUTPUT_FILES.items()}

    _write_table(lemma_table(result), paths["lemmas"])
    _write_table(summary_table(result), paths["summary"])
    _write_table(breakdown_table(result), paths["breakdown"])
    _write_table(selection_table(result.selection), paths["selection"])
    write_json(cluster_document(result), paths["document"])

    logger.info("Wrote %d clusters for %d lemmas to %s", result.n_clusters, result.n_items, out_dir)
    return paths


# ----------------------------------------------------------------------
# Reading
# ----------------------------------------------------------------------


def read_json(path: str | Path) -> Any:
    path = Path(path)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise InvalidInputError(f"cannot read JSON document {path}: {exc}") from exc


def read_lemma_table(path: str | Path) -> pd.DataFrame:
    frame = pd.read_csv(
        path,
        sep="\t",
        keep_default_na=False,
        dtype={"lemma": str, "cluster_id": int, "cluster_size": int, "intra_cluster_fit": float},
    )
    if list(frame.columns) != LEMMA_COLUMNS:
        raise InvalidInputError(f"unexpected columns in {path}: {list(frame.columns)}")
    return frame


def read_summary_table(path: str | Path) -> pd.DataFrame:
    frame = pd.read_csv(
        path,
        sep="\t",
        keep_default_na=False,
        dtype={"cluster_id": int, "size": int, "medoid": str, "medoid_index": int, "mean_fit": float},
    )
    if list(frame.columns) != SUMMARY_COLUMNS:
        raise InvalidInputError(f"unexpected columns in {path}: {list(frame.columns)}")
    return frame


def read_cluster_document(path: str | Path) -> list[ClusterRecord]:
    """Reload ``medoid_clusters.json`` as cluster records ordered by id."""
    document = read_json(path)
    if not isinstance(document, dict):
        raise InvalidInputError(f"{path} is not a cluster document")
    records = [ClusterRecord.model_validate(entry) for entry in document.values()]
    return sorted(records, key=lambda record: record.cluster_id)
