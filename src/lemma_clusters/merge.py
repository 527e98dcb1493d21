"""Combine the cluster document with externally produced annotations.

Labelling happens outside this package: annotators group clusters into
``meta_groups`` and label them. These helpers copy cluster contents into
that annotation structure and attach per-lemma provenance rows. They
never change which lemmas belong to which cluster.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Mapping

import pandas as pd

from .errors import InvalidInputError

logger = logging.getLogger(__name__)


def _index_by_cluster_id(document: Mapping[str, Any]) -> dict[int, Mapping[str, Any]]:
    index: dict[int, Mapping[str, Any]] = {}
    for entry in document.values():
        try:
            index[int(entry["cluster_id"])] = entry
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidInputError(f"cluster document entry without a usable cluster_id: {exc}") from exc
    return index


def merge_annotations(document: Mapping[str, Any], annotations: Mapping[str, Any]) -> dict[str, Any]:
    """Copy members, size and medoid into every annotated cluster.

    ``annotations`` must hold a ``meta_groups`` list whose items carry a
    ``clusters`` list of objects with a ``cluster_id``. All annotation
    fields are kept. Cluster ids absent from ``document`` are left as
    they are and logged.
    """
    if "meta_groups" not in annotations:
        raise InvalidInputError("annotation document has no 'meta_groups'")
    meta_groups = annotations["meta_groups"]
    if not isinstance(meta_groups, list) or not all(isinstance(group, dict) for group in meta_groups):
        raise InvalidInputError("'meta_groups' must be a list of objects")

    clusters = _index_by_cluster_id(document)
    merged = copy.deepcopy(dict(annotations))
    unknown: list[Any] = []
    enriched = 0

    for meta_group in merged["meta_groups"]:
        for cluster in meta_group.get("clusters") or []:
            try:
                source = clusters.get(int(cluster["cluster_id"]))
            except (KeyError, TypeError, ValueError):
                source = None
            if source is None:
                unknown.append(cluster.get("cluster_id"))
                continue
            cluster["members"] = copy.deepcopy(source["members"])
            cluster["size"] = source["size"]
            cluster["medoid"] = source["medoid"]
            enriched += 1

    if unknown:
        logger.warning("%d annotated cluster(s) not in the cluster document: %s", len(unknown), unknown[:10])
    logger.info("Merged %d annotated clusters", enriched)
    return merged


def load_provenance(path: str | Path) -> pd.DataFrame:
    """Read a tab-separated provenance table with a ``lemma`` column."""
    path = Path(path)
    if not path.exists():
        raise InvalidInputError(f"provenance table not found: {path}")
    frame = pd.read_csv(path, sep="\t", keep_default_na=False, dtype=str)
    if "lemma" not in frame.columns:
        raise InvalidInputError(f"{path} has no 'lemma' column")
    return frame


def _iter_clusters(document: Mapping[str, Any]):
    if "meta_groups" in document:
        for meta_group in document["meta_groups"]:
            yield from meta_group.get("clusters") or []
    else:
        yield from document.values()


def attach_provenance(document: Mapping[str, Any], provenance: pd.DataFrame) -> dict[str, Any]:
    """Attach matching provenance rows to every member as ``sources``.

    Works on either a merged annotation document or a plain cluster
    document. Members without a match get an empty list.
    """
    rows_by_lemma: dict[str, list[dict[str, Any]]] = {}
    for record in provenance.to_dict(orient="records"):
        rows_by_lemma.setdefault(str(record["lemma"]), []).append(record)

    result = copy.deepcopy(dict(document))
    matched = unmatched = 0
    for cluster in _iter_clusters(result):
        for member in cluster.get("members") or []:
            sources = rows_by_lemma.get(member["lemma"], [])
            member["sources"] = copy.deepcopy(sources)
            if sources:
                matched += 1
            else:
                unmatched += 1

    logger.info("Attached provenance to %d members; %d without matches", matched, unmatched)
    return result
