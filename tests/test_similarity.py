"""Tests for cosine similarity and scan ranking."""

import math

import pytest

from changelog_index.search.similarity import cosine_similarity, rank, select_top
from changelog_index.vectorstore.models import SearchResult, VectorRecord
from fakes import make_entry


def _record(entry_id: int, vector: list[float]) -> VectorRecord:
    return VectorRecord.from_changelog(make_entry(entry_id), f"entry {entry_id}", vector)


def _at_similarity(similarity: float) -> list[float]:
    """A 2-d unit vector whose cosine with [1, 0] is ``similarity``."""
    return [similarity, math.sqrt(1 - similarity * similarity)]


class TestCosineSimilarity:
    """Tests for cosine_similarity."""

    def test_identical_vectors(self) -> None:
        """Identical vectors score 1."""
        assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self) -> None:
        """Orthogonal vectors score 0."""
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self) -> None:
        """Opposite vectors score -1."""
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_scale_invariant(self) -> None:
        """Scaling a vector does not change the score."""
        a = [0.2, 0.7, 0.1]
        assert cosine_similarity(a, [x * 10 for x in a]) == pytest.approx(1.0)

    def test_symmetric(self) -> None:
        """Similarity is symmetric."""
        a, b = [0.1, 0.9, 0.3], [0.5, 0.2, 0.8]
        assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_bounded(self) -> None:
        """Scores never leave [-1, 1]."""
        v = [1e-3, 1e-3, 1e-3]
        assert -1.0 <= cosine_similarity(v, v) <= 1.0

    @pytest.mark.parametrize(
        ("a", "b"),
        [
            ([1.0, 0.0], [1.0, 0.0, 0.0]),
            ([], []),
            ([0.0, 0.0], [1.0, 0.0]),
            ([float("nan"), 1.0], [1.0, 1.0]),
            ([float("inf"), 1.0], [1.0, 1.0]),
        ],
    )
    def test_degenerate_inputs_score_zero(self, a: list[float], b: list[float]) -> None:
        """Mismatched, empty, zero and non-finite vectors score 0."""
        assert cosine_similarity(a, b) == 0.0


class TestSelectTop:
    """Tests for select_top."""

    def _result(self, entry_id: int, similarity: float) -> SearchResult:
        return SearchResult.from_record(_record(entry_id, [1.0]), similarity)

    def test_threshold_is_exclusive(self) -> None:
        """A result exactly at the threshold is excluded."""
        results = [self._result(1, 0.1), self._result(2, 0.10001)]

        selected = select_top(results, limit=5, threshold=0.1)

        assert [r.id for r in selected] == ["changelog_2"]

    def test_orders_and_truncates(self) -> None:
        """Results are sorted descending and cut at the limit."""
        results = [self._result(1, 0.3), self._result(2, 0.9), self._result(3, 0.5)]

        selected = select_top(results, limit=2, threshold=0.0)

        assert [r.similarity for r in selected] == [0.9, 0.5]

    def test_ties_keep_input_order(self) -> None:
        """Equal scores keep their scan order."""
        results = [self._result(1, 0.5), self._result(2, 0.5), self._result(3, 0.5)]

        selected = select_top(results, limit=3, threshold=0.0)

        assert [r.id for r in selected] == ["changelog_1", "changelog_2", "changelog_3"]

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit(self, limit: int) -> None:
        """A limit of zero or less returns nothing."""
        assert select_top([self._result(1, 0.9)], limit=limit, threshold=0.0) == []

    def test_non_finite_scores_dropped(self) -> None:
        """NaN scores never appear in the output."""
        results = [self._result(1, float("nan")), self._result(2, 0.5)]

        selected = select_top(results, limit=5, threshold=-1.0)

        assert [r.id for r in selected] == ["changelog_2"]


class TestRank:
    """Tests for rank."""

    def test_threshold_scenario(self) -> None:
        """Only records above the threshold are returned, best first."""
        records = [
            _record(1, _at_similarity(0.15)),
            _record(2, _at_similarity(0.9)),
            _record(3, _at_similarity(0.05)),
        ]

        results = rank([1.0, 0.0], records, limit=3, threshold=0.1)

        assert [r.changelog_id for r in results] == [2, 1]
        assert results[0].similarity == pytest.approx(0.9)
        assert results[1].similarity == pytest.approx(0.15)

    def test_empty_store(self) -> None:
        """Ranking an empty snapshot returns nothing."""
        assert rank([1.0, 0.0], [], limit=3, threshold=0.1) == []

    def test_mismatched_dimension_excluded(self) -> None:
        """Records of another dimension are skipped, not scored."""
        records = [_record(1, [1.0, 0.0, 0.0]), _record(2, [1.0, 0.0])]

        results = rank([1.0, 0.0], records, limit=3, threshold=0.1)

        assert [r.changelog_id for r in results] == [2]

    def test_non_finite_record_never_matches(self) -> None:
        """A record with NaN components scores 0."""
        records = [_record(1, [float("nan"), 1.0])]

        assert rank([1.0, 0.0], records, limit=3, threshold=-0.5) != []
        assert rank([1.0, 0.0], records, limit=3, threshold=0.1) == []

    def test_all_results_within_bounds(self) -> None:
        """Every returned score is finite and within [-1, 1]."""
        records = [_record(i, [float(i), 1.0]) for i in range(1, 6)]

        results = rank([1.0, 1.0], records, limit=10, threshold=-1.0)

        assert len(results) == 5
        assert all(-1.0 <= r.similarity <= 1.0 for r in results)
        scores = [r.similarity for r in results]
        assert scores == sorted(scores, reverse=True)
