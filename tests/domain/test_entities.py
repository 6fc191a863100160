"""Tests for domain entities and value objects"""

import math

import pytest

from layout_gauge_core.domain.entities import (
    AIPrompt,
    FeedbackSummary,
    PromptOptimizationRequest,
    RolloutStrategy,
    TestExecution,
)
from layout_gauge_core.domain.value_objects import (
    BaseMetrics,
    BoundingBox,
    DetectedSection,
    ModelResponse,
)


class TestBoundingBox:
    def test_area(self):
        assert BoundingBox(0, 0, 4, 5).area == 20

    def test_negative_size_has_zero_area(self):
        assert BoundingBox(0, 0, -4, 5).area == 0.0

    def test_from_dict(self):
        box = BoundingBox.from_dict({"x": "1", "y": 2, "width": 3.5, "height": 4})
        assert box == BoundingBox(1.0, 2.0, 3.5, 4.0)

    @pytest.mark.parametrize("data", [
        None,
        {"x": 0, "y": 0, "width": 10},
        {"x": 0, "y": 0, "width": 10, "height": None},
        {"x": 0, "y": 0, "width": 10, "height": "tall"},
        {"x": 0, "y": 0, "width": 10, "height": math.inf},
        {"x": 0, "y": 0, "width": True, "height": 10},
    ])
    def test_from_dict_rejects_unusable_boxes(self, data):
        assert BoundingBox.from_dict(data) is None

    def test_frozen(self):
        box = BoundingBox(0, 0, 1, 1)
        with pytest.raises(AttributeError):
            box.x = 5


class TestDetectedSection:
    def test_from_dict(self):
        section = DetectedSection.from_dict({
            "type": "hero",
            "bounds": {"x": 0, "y": 0, "width": 100, "height": 50},
            "confidence": 0.9,
        })
        assert section.type == "hero"
        assert section.bounds == BoundingBox(0, 0, 100, 50)
        assert section.confidence == 0.9

    def test_from_dict_all_optional(self):
        section = DetectedSection.from_dict({})
        assert section.type is None
        assert section.bounds is None
        assert section.confidence is None

    def test_to_dict_omits_missing_fields(self):
        section = DetectedSection(section_type="footer", bounds=BoundingBox(0, 1, 2, 3))
        assert section.to_dict() == {
            "type": "footer",
            "bounds": {"x": 0, "y": 1, "width": 2, "height": 3},
        }


class TestBaseMetrics:
    def test_defaults(self):
        metrics = BaseMetrics(sections_detected=2, average_confidence=None, processing_time_ms=10)
        assert metrics.tokens_used is None
        assert metrics.estimated_cost_usd is None


class TestModelResponse:
    def test_defaults(self):
        resp = ModelResponse(output="hello", latency_ms=100, model_name="gpt-4o-mini")
        assert resp.input_tokens == 0
        assert resp.output_tokens == 0


class TestAIPrompt:
    def test_defaults(self):
        prompt = AIPrompt(prompt_id="p1", task_id="layout", version="v1.0", text="Detect sections")
        assert prompt.is_active is False
        assert prompt.performance_score == 0.0
        assert prompt.usage_count == 0
        assert prompt.parent_prompt_id is None


class TestTestExecution:
    def test_optional_fields_default_to_none(self):
        from datetime import datetime

        execution = TestExecution(
            execution_id="exec_1",
            prompt_id="p1",
            prompt_version="v1.0",
            task_id="layout",
            case_id="case_001",
            input_data="designs/landing.png",
            ai_output=[],
            metrics={"sections_detected": 0},
            processing_time_ms=0,
            timestamp=datetime(2026, 1, 1),
        )
        assert execution.ground_truth is None
        assert execution.error is None
        assert execution.user_rating is None


class TestFeedbackSummary:
    def test_defaults(self):
        summary = FeedbackSummary()
        assert summary.average_validation_score == 0.0
        assert summary.average_generation_time == 0.0
        assert summary.success_rate == 0.0
        assert summary.total_modules_generated == 0
        assert summary.total_errors == 0
        assert summary.average_rating is None
        assert summary.average_recall is None


class TestPromptOptimizationRequest:
    def test_optional_fields(self):
        request = PromptOptimizationRequest(
            target_metric="validation_score",
            improvement_threshold=10,
            analysis_period_days=7,
        )
        assert request.focus_areas is None
        assert request.exclude_patterns is None
        assert request.task_id is None


class TestRolloutStrategy:
    def test_lists_not_shared(self):
        a = RolloutStrategy(strategy_type="gradual", rollout_percentage=25, duration_days=7)
        b = RolloutStrategy(strategy_type="gradual", rollout_percentage=25, duration_days=7)
        a.success_criteria.append("x")
        assert b.success_criteria == []
