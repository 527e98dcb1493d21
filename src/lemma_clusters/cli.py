"""Command line entry point.

Usage:
  lemma-clusters cluster EMBEDDING [--restrict TSV] [--out DIR] [--metric euclidean|cosine]
      [--k-min N] [--k-max N] [--k N] [--jobs N] [--backend scipy|nn_chain]
      [--config JSON] [--no-wss]
  lemma-clusters merge CLUSTERS_JSON ANNOTATIONS_JSON --out FILE
  lemma-clusters provenance DOCUMENT_JSON PROVENANCE_TSV --out FILE
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from .clustering import ClusterConfig, Clusterer
from .errors import LemmaClusterError
from .export import read_json, write_json, write_outputs
from .merge import attach_provenance, load_provenance, merge_annotations
from .space import EmbeddingSpace, load_restriction_list

logger = logging.getLogger(__name__)

DEFAULT_OUT_DIR = "out.cluster.embedding"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lemma-clusters",
        description="Ward clustering of lemma embeddings with medoids and fit scores",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("cluster", help="Cluster an embedding and export the results")
    run.add_argument("embedding", type=Path, help="Embedding file (.npz, .tsv, .txt or .vec)")
    run.add_argument("--restrict", type=Path, default=None, help="Lemmas to keep (TSV with a 'lemma' column or one per line)")
    run.add_argument("--out", type=Path, default=Path(DEFAULT_OUT_DIR), help=f"Output directory (default: {DEFAULT_OUT_DIR})")
    run.add_argument("--config", type=Path, default=None, help="JSON file with ClusterConfig fields")
    run.add_argument("--metric", choices=["euclidean", "cosine"], default=None)
    run.add_argument("--k-min", type=int, default=None, help="Smallest candidate cluster count")
    run.add_argument("--k-max", type=int, default=None, help="Largest candidate cluster count")
    run.add_argument("--k", type=int, default=None, help="Fixed cluster count (skips the silhouette search)")
    run.add_argument("--jobs", type=int, default=None, help="Worker threads for the cluster-count search")
    run.add_argument("--backend", choices=["scipy", "nn_chain"], default=None, help="Ward implementation")
    run.add_argument("--no-wss", action="store_true", help="Skip the within-cluster sum of squares diagnostic")

    merge = sub.add_parser("merge", help="Copy cluster contents into an annotation document")
    merge.add_argument("clusters", type=Path, help="medoid_clusters.json")
    merge.add_argument("annotations", type=Path, help="Annotation JSON with meta_groups")
    merge.add_argument("--out", type=Path, required=True, help="Merged JSON output")

    prov = sub.add_parser("provenance", help="Attach per-lemma provenance rows to cluster members")
    prov.add_argument("document", type=Path, help="Cluster or merged annotation JSON")
    prov.add_argument("provenance", type=Path, help="TSV with a 'lemma' column")
    prov.add_argument("--out", type=Path, required=True, help="JSON output")

    return parser


def _config_from_args(args: argparse.Namespace) -> ClusterConfig:
    overrides = {
        "metric": args.metric,
        "k_min": args.k_min,
        "k_max": args.k_max,
        "n_clusters": args.k,
        "n_jobs": args.jobs,
        "linkage_backend": args.backend,
        "compute_wss": False if args.no_wss else None,
    }
    if args.config is not None:
        return ClusterConfig.from_file(args.config, **overrides)
    return ClusterConfig(**{key: value for key, value in overrides.items() if value is not None})


def run_cluster(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    space = EmbeddingSpace.load(args.embedding)
    if args.restrict is not None:
        space = space.restrict(load_restriction_list(args.restrict))

    result = Clusterer(config=config).cluster(space)
    paths = write_outputs(result, args.out)
    for path in paths.values():
        logger.info("  Saved: %s", path)
    return 0


def run_merge(args: argparse.Namespace) -> int:
    merged = merge_annotations(read_json(args.clusters), read_json(args.annotations))
    write_json(merged, args.out)
    logger.info("  Saved: %s", args.out)
    return 0


def run_provenance(args: argparse.Namespace) -> int:
    document = attach_provenance(read_json(args.document), load_provenance(args.provenance))
    write_json(document, args.out)
    logger.info("  Saved: %s", args.out)
    return 0


COMMANDS = {
    "cluster": run_cluster,
    "merge": run_merge,
    "provenance": run_provenance,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return COMMANDS[args.command](args)
    except LemmaClusterError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except ValidationError as exc:
        print(f"error: invalid configuration: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
