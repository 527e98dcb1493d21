from __future__ import annotations

import numpy as np
import pytest

from lemma_clusters import (
    ClusterConfig,
    Clusterer,
    ClusteringResult,
    ClusterRecord,
    EmbeddingSpace,
    InconsistentPartitionError,
    InvalidInputError,
    MemberRecord,
    SelectionResult,
)
from lemma_clusters.export import (
    BREAKDOWN_COLUMNS,
    LEMMA_COLUMNS,
    OUTPUT_FILES,
    SELECTION_COLUMNS,
    SUMMARY_COLUMNS,
    breakdown_table,
    check_consistency,
    cluster_document,
    lemma_table,
    read_cluster_document,
    read_json,
    read_lemma_table,
    read_summary_table,
    selection_table,
    summary_table,
    write_outputs,
)

LEMMAS = ["λόγος", "ῥῆμα", "φωνή", "ἄρτος", "οἶνος", "ὕδωρ", "βασιλεύς"]


def make_space() -> EmbeddingSpace:
    vectors = np.array(
        [
            [0.0, 0.0],
            [0.4, 0.1],
            [0.1, 0.5],
            [10.0, 10.0],
            [10.3, 9.8],
            [9.9, 10.4],
            [30.0, -5.0],
        ]
    )
    return EmbeddingSpace(lemmas=LEMMAS, vectors=vectors)


@pytest.fixture()
def result() -> ClusteringResult:
    return Clusterer(config=ClusterConfig(k_min=2, k_max=4)).cluster(make_space())


def make_member(lemma: str) -> MemberRecord:
    return MemberRecord(lemma=lemma, intra_cluster_fit=100.0)


class TestViews:
    def test_lemma_table(self, result):
        table = lemma_table(result)

        assert list(table.columns) == LEMMA_COLUMNS
        assert sorted(table["lemma"]) == sorted(LEMMAS)
        assert table["cluster_id"].is_monotonic_increasing
        sizes = table.groupby("cluster_id").size()
        assert (table["cluster_size"] == table["cluster_id"].map(sizes)).all()

    def test_summary_table(self, result):
        table = summary_table(result)

        assert list(table.columns) == SUMMARY_COLUMNS
        assert table["cluster_id"].tolist() == list(range(1, result.n_clusters + 1))
        assert table["size"].sum() == len(LEMMAS)
        for _, row in table.iterrows():
            assert LEMMAS[row["medoid_index"]] == row["medoid"]

    def test_breakdown_table(self, result):
        table = breakdown_table(result)

        assert list(table.columns) == BREAKDOWN_COLUMNS
        assert len(table) == len(LEMMAS)

    def test_selection_table(self, result):
        table = selection_table(result.selection)

        assert list(table.columns) == SELECTION_COLUMNS
        assert table["k"].tolist() == [2, 3, 4]

    def test_cluster_document(self, result):
        document = cluster_document(result)

        assert list(document) == [f"cluster_{i}" for i in range(1, result.n_clusters + 1)]
        first = document["cluster_1"]
        assert set(first) == {"cluster_id", "medoid", "size", "members"}
        assert first["size"] == len(first["members"])
        assert set(first["members"][0]) == {"lemma", "intra_cluster_fit"}


class TestConsistency:
    def test_real_result_is_consistent(self, result):
        check_consistency(result)

    def test_duplicated_lemma(self):
        clusters = [
            ClusterRecord(cluster_id=1, size=2, medoid="a", members=[make_member("a"), make_member("b")]),
            ClusterRecord(cluster_id=2, size=2, medoid="b", members=[make_member("b"), make_member("c")]),
        ]
        tampered = ClusteringResult(
            clusters=clusters,
            selection=SelectionResult(best_k=2, best_silhouette=0.5),
            metric="euclidean",
            n_items=3,
        )

        with pytest.raises(InconsistentPartitionError) as excinfo:
            check_consistency(tampered)
        assert excinfo.value.stage == "export"

    def test_item_count_mismatch(self):
        clusters = [ClusterRecord(cluster_id=1, size=2, medoid="a", members=[make_member("a"), make_member("b")])]
        tampered = ClusteringResult(
            clusters=clusters,
            selection=SelectionResult(best_k=2, best_silhouette=0.5),
            metric="euclidean",
            n_items=3,
        )
        with pytest.raises(InconsistentPartitionError):
            check_consistency(tampered)

    def test_nothing_written_when_inconsistent(self, tmp_path):
        clusters = [ClusterRecord(cluster_id=1, size=1, medoid="a", members=[make_member("a")])]
        tampered = ClusteringResult(
            clusters=clusters,
            selection=SelectionResult(best_k=2, best_silhouette=0.5),
            metric="euclidean",
            n_items=2,
        )
        out_dir = tmp_path / "out"

        with pytest.raises(InconsistentPartitionError):
            write_outputs(tampered, out_dir)
        assert not out_dir.exists()

    def test_record_rejects_foreign_medoid(self):
        with pytest.raises(InconsistentPartitionError):
            ClusterRecord(cluster_id=1, size=1, medoid="z", members=[make_member("a")])


class TestWriteAndRead:
    def test_writes_every_file(self, result, tmp_path):
        paths = write_outputs(result, tmp_path / "out")

        assert set(paths) == set(OUTPUT_FILES)
        for name, path in paths.items():
            assert path.name == OUTPUT_FILES[name]
            assert path.exists()

    def test_round_trip(self, result, tmp_path):
        paths = write_outputs(result, tmp_path)

        lemmas = read_lemma_table(paths["lemmas"])
        summary = read_summary_table(paths["summary"])
        records = read_cluster_document(paths["document"])

        assert lemmas["lemma"].tolist() == lemma_table(result)["lemma"].tolist()
        assert lemmas["intra_cluster_fit"].tolist() == lemma_table(result)["intra_cluster_fit"].tolist()
        assert summary["medoid"].tolist() == [c.medoid for c in result.clusters]
        assert [r.lemmas for r in records] == [c.lemmas for c in result.clusters]
        assert [r.medoid for r in records] == [c.medoid for c in result.clusters]

    def test_greek_is_written_unescaped(self, result, tmp_path):
        paths = write_outputs(result, tmp_path)

        text = paths["document"].read_text(encoding="utf-8")
        assert "βασιλεύς" in text
        assert "\\u" not in text
        assert text.endswith("\n")

    def test_identical_bytes_across_pipeline_runs(self, tmp_path):
        config = ClusterConfig(k_min=2, k_max=4)
        first_result = Clusterer(config=config).cluster(make_space())
        second_result = Clusterer(config=config).cluster(make_space())

        first = write_outputs(first_result, tmp_path / "a")
        second = write_outputs(second_result, tmp_path / "b")

        for name in OUTPUT_FILES:
            assert first[name].read_bytes() == second[name].read_bytes()

    def test_bad_table_columns(self, tmp_path):
        path = tmp_path / "lemma_clusters.tsv"
        path.write_text("lemma\tcluster_id\tcluster_size\tintra_cluster_fit\tnote\nα\t1\t1\t100.0\tx\n", encoding="utf-8")
        with pytest.raises(InvalidInputError):
            read_lemma_table(path)

    def test_bad_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(InvalidInputError):
            read_json(path)
        with pytest.raises(InvalidInputError):
            read_json(tmp_path / "missing.json")
