"""
Tests for annotation alignment.
"""

import pytest
from numpy.testing import assert_array_equal

from eafgeo.errors import TokenizedTierRejected
from eafgeo.models.annotation import AnnotationDocument
from eafgeo.services.aligner import AnnotationAligner, align_document


def timestamps_of(stream, indices):
    return stream.timestamps[indices].tolist()


class TestAlign:
    """Tests for AnnotationAligner.align."""

    def test_single_span_is_inclusive(self, ten_second_stream, make_tier):
        result = AnnotationAligner().align(ten_second_stream, make_tier([(3.0, 5.0, "Dayum")]))

        assert len(result.intersections) == 1
        assert timestamps_of(ten_second_stream, result.intersections[0].indices) == [3.0, 4.0, 5.0]
        assert result.marked_count == 3

    def test_descriptions_per_point(self, ten_second_stream, make_tier):
        tier = make_tier([(3.0, 5.0, "Dayum"), (7.0, 9.0, "Chcuh")])

        result = AnnotationAligner().align(ten_second_stream, tier)

        assert result.descriptions == [
            None, None, "Dayum", "Dayum", "Dayum", None, "Chcuh", "Chcuh", "Chcuh", None
        ]

    def test_unmarked_runs(self, ten_second_stream, make_tier):
        tier = make_tier([(3.0, 5.0, "Dayum"), (7.0, 9.0, "Chcuh")])

        result = AnnotationAligner().align(ten_second_stream, tier)

        assert [timestamps_of(ten_second_stream, run) for run in result.unmarked] == [
            [1.0, 2.0], [6.0], [10.0]
        ]

    def test_overlapping_spans_first_wins(self, ten_second_stream, make_tier):
        """A point inside two spans takes the text of the first one."""
        tier = make_tier([(2.0, 6.0, "long"), (5.0, 8.0, "late")])

        result = AnnotationAligner().align(ten_second_stream, tier)

        assert result.descriptions[4] == "long"
        assert result.descriptions[5] == "long"
        assert result.descriptions[6] == "late"
        # both intersections still hold their full point sets
        assert len(result.intersections[0]) == 5
        assert len(result.intersections[1]) == 4

    def test_empty_span_is_retained(self, ten_second_stream, make_tier):
        tier = make_tier([(3.2, 3.8, "between"), (20.0, 25.0, "after")])

        result = AnnotationAligner().align(ten_second_stream, tier)

        assert len(result.intersections) == 2
        assert all(i.is_empty for i in result.intersections)
        assert [s.text for s in result.empty_spans] == ["between", "after"]
        assert result.marked_count == 0
        assert len(result.unmarked) == 1

    def test_time_origin_shifts_spans(self, ten_second_stream, make_tier):
        result = AnnotationAligner().align(ten_second_stream, make_tier([(1.0, 2.0, "x")]), time_origin_s=4.0)

        assert timestamps_of(ten_second_stream, result.intersections[0].indices) == [5.0, 6.0]
        assert result.intersections[0].span.start == 5.0

    def test_tokenized_tier_rejected(self, ten_second_stream, make_tier):
        tier = make_tier([(3.0, 5.0, "tok")], tokenized=True)

        with pytest.raises(TokenizedTierRejected) as exc:
            AnnotationAligner().align(ten_second_stream, tier)

        assert exc.value.tier_id == "observations"

    def test_empty_stream(self, make_stream, make_tier):
        stream = make_stream([])

        result = AnnotationAligner().align(stream, make_tier([(0.0, 5.0, "x")]))

        assert result.intersections[0].is_empty
        assert result.unmarked == []
        assert result.descriptions == []


class TestAlignDocument:
    """Tests for align_document."""

    def test_uses_document_time_origin(self, ten_second_stream, make_tier):
        document = AnnotationDocument(path=None, tiers=[make_tier([(0.0, 1.0, "x")])], time_origin_s=2.0)

        result = align_document(ten_second_stream, document, "observations")

        assert_array_equal(result.intersections[0].indices, [1, 2])

    def test_unknown_tier(self, ten_second_stream):
        with pytest.raises(KeyError):
            align_document(ten_second_stream, AnnotationDocument(path=None), "missing")
