from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field, model_validator

from .errors import InvalidInputError

logger = logging.getLogger(__name__)


class EmbeddingSpace(BaseModel):
    """Lemma-indexed embedding matrix.

    Row identity is the lemma string, not its position: lemmas must be
    unique and every row must be a finite vector of the same length. The
    matrix is made read-only on construction so every stage downstream
    can share it without copying.
    """

    lemmas: list[str] = Field(description="Unique lemma per row, in row order")
    vectors: np.ndarray = Field(description="Float matrix of shape (n_lemmas, dimensions)")

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _coerce_vectors(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "vectors" not in data:
            return data
        try:
            vectors = np.array(data["vectors"], dtype=float)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"embedding rows are not numeric or have ragged lengths: {exc}") from exc
        return {**data, "vectors": vectors, "lemmas": [str(lemma) for lemma in data.get("lemmas", [])]}

    @model_validator(mode="after")
    def _validate(self) -> "EmbeddingSpace":
        vectors = self.vectors
        if vectors.ndim != 2:
            raise InvalidInputError(f"expected a 2-D matrix, got {vectors.ndim} dimension(s)")
        n_rows, dims = vectors.shape
        if n_rows == 0:
            raise InvalidInputError("embedding matrix is empty")
        if dims == 0:
            raise InvalidInputError("embedding vectors have zero dimensions")
        if len(self.lemmas) != n_rows:
            raise InvalidInputError(f"{len(self.lemmas)} lemmas given for {n_rows} vectors")

        bad_rows = np.flatnonzero(~np.isfinite(vectors).all(axis=1))
        if bad_rows.size:
            sample = ", ".join(repr(self.lemmas[i]) for i in bad_rows[:5])
            raise InvalidInputError(f"{bad_rows.size} row(s) contain NaN or infinite values: {sample}")

        seen: set[str] = set()
        duplicates: list[str] = []
        for lemma in self.lemmas:
            if lemma in seen:
                duplicates.append(lemma)
            seen.add(lemma)
        if duplicates:
            raise InvalidInputError(f"duplicate lemmas: {sorted(set(duplicates))[:5]}")

        vectors.flags.writeable = False
        return self

    # ------------------------------------------------------------------
    # Basic views
    # ------------------------------------------------------------------

    @property
    def n_items(self) -> int:
        return len(self.lemmas)

    @property
    def dimensions(self) -> int:
        """Return the dimensionality of the embeddings."""
        return int(self.vectors.shape[1])

    def as_numpy(self) -> np.ndarray:
        """Return embeddings as a read-only ``(n_lemmas, dimensions)`` array."""
        return self.vectors

    def index_of(self, lemma: str) -> int:
        try:
            return self.lemmas.index(lemma)
        except ValueError:
            raise KeyError(lemma) from None

    def vector(self, lemma: str) -> np.ndarray:
        return self.vectors[self.index_of(lemma)]

    # ------------------------------------------------------------------
    # Restriction
    # ------------------------------------------------------------------

    def restrict(self, keep: Iterable[str]) -> "EmbeddingSpace":
        """Return the sub-space of rows whose lemma is in ``keep``.

        Row order of the original matrix is preserved. Lemmas in ``keep``
        that have no embedding are ignored (and counted in the log).
        """
        keep_set = set(keep)
        mask = np.fromiter((lemma in keep_set for lemma in self.lemmas), dtype=bool, count=self.n_items)
        missing = len(keep_set) - int(mask.sum())
        if missing:
            logger.info("%d restriction lemma(s) have no embedding and were ignored", missing)
        if mask.sum() < 2:
            raise InvalidInputError(
                f"restriction leaves {int(mask.sum())} lemma(s); at least 2 are needed for clustering"
            )
        logger.info("Restricted embedding from %d to %d lemmas", self.n_items, int(mask.sum()))
        return EmbeddingSpace(
            lemmas=[lemma for lemma, kept in zip(self.lemmas, mask) if kept],
            vectors=self.vectors[mask],
        )

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[float]]) -> "EmbeddingSpace":
        """Build a space from ``{lemma: vector}``; insertion order is row order."""
        lemmas = list(mapping)
        rows = [list(mapping[lemma]) for lemma in lemmas]
        return cls(lemmas=lemmas, vectors=rows if rows else np.zeros((0, 0)))

    @classmethod
    def load(cls, path: str | Path) -> "EmbeddingSpace":
        """Load an embedding file, dispatching on its extension.

        ``.npz`` archives must hold ``lemmas`` and ``vectors`` arrays.
        ``.tsv`` files carry a header row with the lemma in the first
        column. ``.txt`` / ``.vec`` files use the GloVe / word2vec text
        layout, with or without the word2vec ``<count> <dims>`` header.
        """
        path = Path(path)
        if not path.exists():
            raise InvalidInputError(f"embedding file not found: {path}")

        suffix = path.suffix.lower()
        if suffix == ".npz":
            space = cls._load_npz(path)
        elif suffix == ".tsv":
            space = cls._load_tsv(path)
        elif suffix in {".txt", ".vec"}:
            space = cls._load_text(path)
        else:
            raise InvalidInputError(f"unsupported embedding format: {path.suffix!r}")

        logger.info("Loaded %d x %d embedding from %s", space.n_items, space.dimensions, path)
        return space

    @classmethod
    def _load_npz(cls, path: Path) -> "EmbeddingSpace":
        with np.load(path, allow_pickle=False) as archive:
            missing = {"lemmas", "vectors"} - set(archive.files)
            if missing:
                raise InvalidInputError(f"{path.name} lacks array(s): {sorted(missing)}")
            return cls(lemmas=archive["lemmas"].tolist(), vectors=archive["vectors"])

    @classmethod
    def _load_tsv(cls, path: Path) -> "EmbeddingSpace":
        frame = pd.read_csv(path, sep="\t", keep_default_na=False, dtype=str)
        return cls._from_frame(frame, path)

    @classmethod
    def _load_text(cls, path: Path) -> "EmbeddingSpace":
        with path.open(encoding="utf-8") as handle:
            first = handle.readline().split()
        skip = 1 if len(first) == 2 and all(tok.isdigit() for tok in first) else 0
        frame = pd.read_csv(
            path,
            sep=" ",
            header=None,
            skiprows=skip,
            quoting=csv.QUOTE_NONE,
            keep_default_na=False,
            dtype=str,
            encoding="utf-8",
        )
        return cls._from_frame(frame, path)

    @classmethod
    def _from_frame(cls, frame: pd.DataFrame, path: Path) -> "EmbeddingSpace":
        if frame.shape[1] < 2:
            raise InvalidInputError(f"{path.name} has no vector columns")
        try:
            vectors = frame.iloc[:, 1:].apply(pd.to_numeric).to_numpy(dtype=float)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"{path.name} contains non-numeric vector values: {exc}") from exc
        return cls(lemmas=frame.iloc[:, 0].astype(str).tolist(), vectors=vectors)


def load_restriction_list(path: str | Path) -> list[str]:
    """Read the lemmas to retain before clustering.

    Tabular files (``.tsv`` / ``.csv``) must have a ``lemma`` column, other
    columns are ignored. Anything else is read as one lemma per line.
    Order is preserved and duplicates are dropped.
    """
    path = Path(path)
    if not path.exists():
        raise InvalidInputError(f"restriction list not found: {path}")

    suffix = path.suffix.lower()
    if suffix in {".tsv", ".csv"}:
        frame = pd.read_csv(path, sep="\t" if suffix == ".tsv" else ",", keep_default_na=False, dtype=str)
        if "lemma" not in frame.columns:
            raise InvalidInputError(f"{path.name} has no 'lemma' column")
        lemmas = frame["lemma"].str.strip().tolist()
    else:
        lemmas = [line.strip() for line in path.read_text(encoding="utf-8").splitlines()]

    unique = list(dict.fromkeys(lemma for lemma in lemmas if lemma))
    logger.info("Read %d restriction lemmas from %s", len(unique), path)
    return unique
