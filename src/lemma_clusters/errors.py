"""Error taxonomy for the clustering pipeline.

Every error names the pipeline stage that raised it so a failed run
reports where it stopped. None of these are recovered from inside the
package: a run either completes with a consistent export or aborts.
"""

from __future__ import annotations


class LemmaClusterError(Exception):
    """Base exception for all pipeline errors."""

    stage: str = "pipeline"

    def __init__(self, message: str, stage: str | None = None) -> None:
        if stage is not None:
            self.stage = stage
        super().__init__(f"[{self.stage}] {message}")


class InvalidInputError(LemmaClusterError):
    """Malformed or missing embedding data.

    NaN or infinite values, ragged or empty matrices, duplicate lemmas,
    fewer than two rows after restriction.
    """

    stage = "input"


class DegenerateVectorError(LemmaClusterError):
    """A zero-norm row was found while computing cosine distances."""

    stage = "distance"


class EmptyRangeError(LemmaClusterError):
    """The cluster-count range is empty or falls outside ``[2, N - 1]``."""

    stage = "selection"


class InconsistentPartitionError(LemmaClusterError):
    """An internal invariant was violated.

    Raised for a non-monotone dendrogram, an empty cluster, a lemma
    assigned to zero or several clusters, or export views that disagree
    on membership. This always indicates a logic defect, never bad input.
    """

    stage = "partition"
