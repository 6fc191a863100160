"""
Tests for the detection quality metrics

Covers iou(), greedy matching in compute_validation_kpis(), base metrics and merge().
"""

import math

import pytest

from layout_gauge_core.domain.value_objects import BoundingBox, DetectedSection
from layout_gauge_core.metrics.detection import (
    compute_average_confidence,
    compute_base_metrics,
    compute_validation_kpis,
    iou,
    merge,
)


def _box(x, y, w, h):
    return {"x": x, "y": y, "width": w, "height": h}


def _section(x, y, w, h, section_type=None, confidence=None):
    section = {"bounds": _box(x, y, w, h)}
    if section_type is not None:
        section["type"] = section_type
    if confidence is not None:
        section["confidence"] = confidence
    return section


class TestIou:
    """iou() のテスト"""

    def test_identical_boxes(self):
        assert iou(_box(3, 4, 10, 20), _box(3, 4, 10, 20)) == 1.0

    def test_disjoint_boxes(self):
        assert iou(_box(0, 0, 10, 10), _box(100, 100, 10, 10)) == 0.0

    def test_touching_edges_do_not_overlap(self):
        assert iou(_box(0, 0, 10, 10), _box(10, 0, 10, 10)) == 0.0

    def test_partial_overlap(self):
        # intersection 5x10=50, union 100+100-50=150
        assert iou(_box(0, 0, 10, 10), _box(5, 0, 10, 10)) == pytest.approx(1 / 3)

    def test_contained_box(self):
        assert iou(_box(0, 0, 10, 10), _box(0, 0, 5, 5)) == pytest.approx(0.25)

    def test_symmetric(self):
        a = _box(0, 0, 7, 3)
        b = _box(2, 1, 9, 9)
        assert iou(a, b) == iou(b, a)

    def test_missing_box_returns_zero(self):
        assert iou(None, _box(0, 0, 10, 10)) == 0.0
        assert iou(_box(0, 0, 10, 10), None) == 0.0
        assert iou(None, None) == 0.0

    def test_zero_area_boxes_return_zero(self):
        assert iou(_box(0, 0, 0, 0), _box(0, 0, 0, 0)) == 0.0

    def test_negative_size_contributes_no_area(self):
        assert iou(_box(0, 0, -10, -10), _box(0, 0, 10, 10)) == 0.0

    def test_malformed_coordinates_return_zero(self):
        assert iou({"x": 0, "y": 0, "width": "wide"}, _box(0, 0, 10, 10)) == 0.0
        assert iou(_box(0, 0, float("nan"), 10), _box(0, 0, 10, 10)) == 0.0

    def test_oversized_integer_coordinates_return_zero(self):
        huge = {"x": 10**400, "y": 0, "width": 10, "height": 10}
        assert iou(huge, _box(0, 0, 10, 10)) == 0.0
        assert BoundingBox.from_dict(huge) is None

    def test_accepts_bounding_box_objects(self):
        assert iou(BoundingBox(0, 0, 10, 10), _box(0, 0, 10, 10)) == 1.0

    def test_result_within_unit_interval(self):
        value = iou(_box(0.1, 0.2, 0.3, 0.4), _box(0.15, 0.25, 0.3, 0.4))
        assert 0.0 <= value <= 1.0


class TestComputeAverageConfidence:
    """compute_average_confidence() のテスト"""

    def test_empty_returns_none(self):
        assert compute_average_confidence([]) is None

    def test_none_returns_none(self):
        assert compute_average_confidence(None) is None

    def test_mean(self):
        assert compute_average_confidence(
            [{"confidence": 0.5}, {"confidence": 0.9}]
        ) == pytest.approx(0.7)

    def test_ignores_missing_and_nan(self):
        sections = [
            {"confidence": 0.4},
            {},
            {"confidence": float("nan")},
            {"confidence": None},
            {"confidence": "high"},
            {"confidence": 0.8},
        ]
        assert compute_average_confidence(sections) == pytest.approx(0.6)

    def test_ignores_oversized_integers(self):
        assert compute_average_confidence([{"confidence": 10**400}]) is None
        assert compute_average_confidence(
            [{"confidence": 10**400}, {"confidence": 0.5}]
        ) == pytest.approx(0.5)

    def test_all_missing_returns_none(self):
        assert compute_average_confidence([{}, {"confidence": float("nan")}]) is None

    def test_zero_confidence_counts(self):
        assert compute_average_confidence([{"confidence": 0}, {"confidence": 1}]) == pytest.approx(0.5)

    def test_accepts_detected_sections(self):
        sections = [DetectedSection(confidence=0.2), DetectedSection(confidence=0.6)]
        assert compute_average_confidence(sections) == pytest.approx(0.4)


class TestComputeBaseMetrics:
    """compute_base_metrics() のテスト"""

    def test_counts_and_floors_time(self):
        metrics = compute_base_metrics([{"confidence": 0.5}, {"confidence": 0.9}], 123.7)
        assert metrics.sections_detected == 2
        assert metrics.average_confidence == pytest.approx(0.7)
        assert metrics.processing_time_ms == 123

    def test_none_sections_treated_as_empty(self):
        metrics = compute_base_metrics(None, 10)
        assert metrics.sections_detected == 0
        assert metrics.average_confidence is None

    def test_negative_time_clamped(self):
        assert compute_base_metrics([], -5.5).processing_time_ms == 0

    @pytest.mark.parametrize("value", [None, float("nan"), float("inf"), "slow", 10**400])
    def test_unusable_time_becomes_zero(self, value):
        assert compute_base_metrics([], value).processing_time_ms == 0

    def test_override_takes_precedence(self):
        metrics = compute_base_metrics(
            [{"confidence": 0.1}], 1, average_confidence_override=0.95
        )
        assert metrics.average_confidence == 0.95

    def test_tokens_and_cost_passed_through(self):
        metrics = compute_base_metrics([], 1, tokens_used=1500, estimated_cost_usd=0.0021)
        assert metrics.tokens_used == 1500
        assert metrics.estimated_cost_usd == 0.0021


class TestComputeValidationKpis:
    """compute_validation_kpis() のテスト"""

    def test_perfect_match(self):
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10)], [_section(0, 0, 10, 10)], match_threshold=0.5
        )
        assert (kpis.tp, kpis.fp, kpis.fn) == (1, 0, 0)
        assert kpis.precision == 1.0
        assert kpis.recall == 1.0
        assert kpis.f1 == 1.0
        assert kpis.avg_iou == 1.0

    def test_no_predictions(self):
        kpis = compute_validation_kpis([], [_section(0, 0, 5, 5)])
        assert (kpis.tp, kpis.fp, kpis.fn) == (0, 0, 1)
        assert kpis.precision == 0.0
        assert kpis.recall == 0.0
        assert kpis.f1 == 0.0
        assert kpis.avg_iou == 0.0

    def test_extra_prediction_is_false_positive(self):
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10), _section(100, 100, 10, 10)],
            [_section(0, 0, 10, 10)],
        )
        assert (kpis.tp, kpis.fp, kpis.fn) == (1, 1, 0)
        assert kpis.precision == 0.5
        assert kpis.recall == 1.0
        assert kpis.f1 == pytest.approx(2 / 3)

    def test_no_ground_truth(self):
        kpis = compute_validation_kpis([_section(0, 0, 10, 10)], [])
        assert (kpis.tp, kpis.fp, kpis.fn) == (0, 1, 0)
        assert kpis.recall == 0.0
        assert kpis.f1 == 0.0

    def test_none_inputs(self):
        kpis = compute_validation_kpis(None, None)
        assert (kpis.tp, kpis.fp, kpis.fn) == (0, 0, 0)
        assert kpis.precision == 0.0
        assert kpis.recall == 0.0
        assert kpis.f1 == 0.0

    def test_below_threshold_is_not_matched(self):
        # IoU 1/3
        kpis = compute_validation_kpis([_section(0, 0, 10, 10)], [_section(5, 0, 10, 10)])
        assert (kpis.tp, kpis.fp, kpis.fn) == (0, 1, 1)

    def test_threshold_is_inclusive(self):
        # IoU exactly 0.5: 10x10 inside 10x20
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10)], [_section(0, 0, 10, 20)], match_threshold=0.5
        )
        assert kpis.tp == 1

    def test_lower_threshold_allows_match(self):
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10)], [_section(5, 0, 10, 10)], match_threshold=0.3
        )
        assert kpis.tp == 1
        assert kpis.avg_iou == pytest.approx(1 / 3)

    def test_zero_threshold_never_matches_disjoint_boxes(self):
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10)], [_section(50, 50, 10, 10)], match_threshold=0.0
        )
        assert kpis.tp == 0

    def test_non_numeric_threshold_uses_default(self):
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10)], [_section(5, 0, 10, 10)], match_threshold="loose"
        )
        assert kpis.tp == 0

    def test_oversized_threshold_uses_default(self):
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10)], [_section(0, 0, 10, 10)], match_threshold=10**400
        )
        assert kpis.tp == 1

    def test_ground_truth_is_consumed_once(self):
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10), _section(0, 0, 10, 10)],
            [_section(0, 0, 10, 10)],
        )
        assert (kpis.tp, kpis.fp, kpis.fn) == (1, 1, 0)

    def test_greedy_is_order_dependent(self):
        # First prediction grabs the GT it overlaps best, leaving the second
        # prediction below threshold against the remaining GT.
        gts = [_section(0, 0, 10, 10), _section(6, 0, 10, 10)]
        preds = [_section(3, 0, 10, 10), _section(0, 0, 10, 10)]
        kpis = compute_validation_kpis(preds, gts, match_threshold=0.5)
        assert kpis.tp == 1

        kpis_reordered = compute_validation_kpis(list(reversed(preds)), gts, match_threshold=0.5)
        assert kpis_reordered.tp == 2

    def test_ties_keep_first_seen_ground_truth(self):
        # The untyped prediction ties on both GT entries and consumes "a";
        # the "a"-typed prediction is then left with only "b".
        gts = [_section(0, 0, 10, 10, "a"), _section(0, 0, 10, 10, "b")]
        preds = [_section(0, 0, 10, 10), _section(0, 0, 10, 10, "a")]
        kpis = compute_validation_kpis(preds, gts, match_by_type=True)
        assert (kpis.tp, kpis.fp, kpis.fn) == (1, 1, 1)

    def test_reordering_ground_truth_with_ties_keeps_counts(self):
        gts = [_section(0, 0, 10, 10, "a"), _section(0, 0, 10, 10, "b"), _section(50, 50, 5, 5)]
        preds = [_section(0, 0, 10, 10), _section(1, 1, 10, 10)]
        kpis = compute_validation_kpis(preds, gts)
        kpis_reordered = compute_validation_kpis(preds, list(reversed(gts)))
        assert (kpis.tp, kpis.fp, kpis.fn) == (kpis_reordered.tp, kpis_reordered.fp, kpis_reordered.fn)

    def test_match_by_type_skips_different_types(self):
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10, "hero")],
            [_section(0, 0, 10, 10, "footer")],
            match_by_type=True,
        )
        assert kpis.tp == 0

    def test_match_by_type_ignores_missing_type(self):
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10)],
            [_section(0, 0, 10, 10, "footer")],
            match_by_type=True,
        )
        assert kpis.tp == 1

    def test_type_ignored_by_default(self):
        kpis = compute_validation_kpis(
            [_section(0, 0, 10, 10, "hero")],
            [_section(0, 0, 10, 10, "footer")],
        )
        assert kpis.tp == 1

    def test_match_by_type_picks_same_type_candidate(self):
        gts = [_section(0, 0, 10, 10, "footer"), _section(1, 0, 10, 10, "hero")]
        kpis = compute_validation_kpis([_section(0, 0, 10, 10, "hero")], gts, match_by_type=True)
        assert (kpis.tp, kpis.fp, kpis.fn) == (1, 0, 1)

    def test_avg_iou_uses_best_prediction_for_matched_gt(self):
        # GT is matched by the first (weaker) prediction; avg_iou still takes
        # the best IoU against any prediction.
        gts = [_section(0, 0, 10, 10)]
        preds = [_section(2, 0, 10, 10), _section(0, 0, 10, 10)]
        kpis = compute_validation_kpis(preds, gts)
        assert kpis.tp == 1
        assert kpis.avg_iou == 1.0

    def test_sections_without_bounds_never_match(self):
        kpis = compute_validation_kpis([{"type": "hero"}], [{"type": "hero"}])
        assert (kpis.tp, kpis.fp, kpis.fn) == (0, 1, 1)

    def test_accepts_detected_sections(self):
        section = DetectedSection("hero", BoundingBox(0, 0, 10, 10), 0.9)
        kpis = compute_validation_kpis([section], [section])
        assert kpis.tp == 1

    @pytest.mark.parametrize("n_pred,n_gt", [(0, 3), (3, 0), (2, 5), (5, 2), (4, 4)])
    def test_counts_add_up(self, n_pred, n_gt):
        preds = [_section(i * 7, 0, 10, 10) for i in range(n_pred)]
        gts = [_section(i * 12, 0, 10, 10) for i in range(n_gt)]
        kpis = compute_validation_kpis(preds, gts)
        assert kpis.tp + kpis.fp == n_pred
        assert kpis.tp + kpis.fn == n_gt
        assert 0.0 <= kpis.f1 <= 1.0
        assert not math.isnan(kpis.avg_iou)


class TestMerge:
    """merge() のテスト"""

    def test_combines_base_metrics_and_kpis(self):
        base = compute_base_metrics([_section(0, 0, 10, 10, confidence=0.8)], 42)
        kpis = compute_validation_kpis([_section(0, 0, 10, 10)], [_section(0, 0, 10, 10)])
        merged = merge(base, kpis)
        assert merged["sections_detected"] == 1
        assert merged["average_confidence"] == 0.8
        assert merged["processing_time_ms"] == 42
        assert merged["f1"] == 1.0
        assert merged["tp"] == 1
        assert set(merged) == {
            "sections_detected", "average_confidence", "processing_time_ms",
            "tokens_used", "estimated_cost_usd",
            "precision", "recall", "f1", "avg_iou", "tp", "fp", "fn",
        }

    def test_later_parts_override(self):
        assert merge({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_none_parts_skipped(self):
        assert merge(None, {"a": 1}, None) == {"a": 1}

    def test_no_parts(self):
        assert merge() == {}
