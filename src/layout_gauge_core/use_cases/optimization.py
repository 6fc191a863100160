"""
Prompt Optimization Tracker

Records prompt optimization attempts, projects baseline vs. improved
performance, proposes rollout strategies, and derives learning insights from
aggregated execution feedback.

One optimization moves through
requested -> analyzed -> weaknesses-identified -> result-synthesized -> recorded.
An exception in any step aborts before "recorded" and leaves the history
untouched.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Protocol

from layout_gauge_core.domain.constants import LOWER_IS_BETTER_METRICS, TARGET_METRICS
from layout_gauge_core.domain.entities import (
    AIPrompt,
    AnalysisSummary,
    DataPoint,
    FeedbackSummary,
    ImprovedPrompt,
    LearningInsight,
    LearningMilestone,
    PerformanceImprovement,
    PromptEvolutionHistory,
    PromptOptimizationRequest,
    PromptOptimizationResult,
    PromptWeakness,
    RolloutStrategy,
    VersionRecord,
)
from layout_gauge_core.gauge_config import OptimizationConfig
from layout_gauge_core.prompt_store import PromptNotFoundError, PromptStore
from layout_gauge_core.use_cases.prompt_improvement import PromptImprover

logger = logging.getLogger(__name__)

_SLOW_GENERATION_MS = 30000
_MIN_PRECISION = 0.8
_MIN_RECALL = 0.8
_MIN_IOU = 0.7
_MIN_SUCCESS_RATE = 90.0
_CRITICAL_SUCCESS_RATE = 80.0
_CRITICAL_RECALL = 0.5
_MIN_RATING = 3.5
_MAX_ERROR_SHARE = 0.1


class FeedbackSource(Protocol):
    """Supplies aggregated feedback (e.g. ExecutionHistory)"""

    def feedback_summary(self, period_days: int | None = None) -> FeedbackSummary:
        ...


class StaticFeedbackSource:
    """Feedback source returning a fixed summary"""

    def __init__(self, summary: FeedbackSummary | None = None) -> None:
        self.summary = summary or FeedbackSummary()

    def feedback_summary(self, period_days: int | None = None) -> FeedbackSummary:
        return self.summary


def get_metric_value(summary: FeedbackSummary, metric: str) -> float:
    """
    Read a target metric from the feedback summary

    Detection metrics (0-1) are scaled to 0-100 and user satisfaction
    (0-5 rating) is scaled by 20, so every metric shares one scale.

    Returns:
        The metric value, or 0 for unknown metrics and missing data
    """
    if metric == "validation_score":
        return summary.average_validation_score
    if metric == "generation_time":
        return summary.average_generation_time
    if metric == "success_rate":
        return summary.success_rate
    if metric == "user_satisfaction":
        return (summary.average_rating or 0.0) * 20
    if metric == "f1":
        return summary.average_validation_score
    if metric == "precision":
        return (summary.average_precision or 0.0) * 100
    if metric == "recall":
        return (summary.average_recall or 0.0) * 100
    if metric == "avg_iou":
        return (summary.average_iou or 0.0) * 100
    logger.warning("Unknown target metric '%s' (available: %s)", metric, TARGET_METRICS)
    return 0.0


@dataclass
class PerformanceAnalysis:
    current_version: str
    baseline_performance: float
    sample_size: int
    summary: FeedbackSummary
    prompt: AIPrompt | None = None


class OptimizationTracker:
    """
    Tracks prompt optimizations for the lifetime of the process

    Owns three in-memory maps (optimization history, learning insights,
    prompt evolution history), each guarded by one lock.
    """

    def __init__(
        self,
        feedback_source: FeedbackSource,
        prompt_store: PromptStore | None = None,
        prompt_improver: PromptImprover | None = None,
        config: OptimizationConfig | None = None,
    ) -> None:
        self.feedback_source = feedback_source
        self.prompt_store = prompt_store
        self.prompt_improver = prompt_improver
        self.config = config or OptimizationConfig()

        self._optimization_history: dict[str, PromptOptimizationResult] = {}
        self._learning_insights: dict[str, LearningInsight] = {}
        self._evolution_history: dict[str, PromptEvolutionHistory] = {}
        self._applied: set[str] = set()
        self._lock = threading.Lock()

        self._stop_event = threading.Event()
        self._learning_thread: threading.Thread | None = None

    # -- Optimization --

    def optimize_prompts(self, request: PromptOptimizationRequest) -> PromptOptimizationResult:
        """
        Analyze current prompt performance and propose an improvement

        Args:
            request: Optimization parameters

        Returns:
            PromptOptimizationResult, also recorded in the optimization history

        Raises:
            PromptNotFoundError: If request.task_id has no active prompt
            Exception: Errors from the prompt improver; nothing is recorded
        """
        logger.info(
            "Starting prompt optimization: metric=%s threshold=%s period=%sd task=%s",
            request.target_metric, request.improvement_threshold,
            request.analysis_period_days, request.task_id,
        )

        try:
            analysis = self._analyze_current_performance(request)
            weaknesses = self._identify_prompt_weaknesses(request, analysis.summary)
            optimization_id = self._generate_optimization_id()
            variant = self._synthesize_variant(analysis, weaknesses)
            result = self._build_result(request, analysis, weaknesses, optimization_id, variant)
            if variant is not None:
                self._register_variant(analysis.prompt, variant, result)
        except Exception as e:
            logger.error("Prompt optimization failed: %s", e)
            raise

        with self._lock:
            self._optimization_history[optimization_id] = result
            if analysis.prompt is not None:
                self._record_evolution(analysis.prompt, result, weaknesses)

        logger.info(
            "Prompt optimization completed: id=%s improvement=%.1f%% strategy=%s",
            optimization_id,
            result.performance_improvement.improvement_percentage,
            result.recommended_rollout.strategy_type,
        )
        return result

    def implement_automatic_optimization(self, result: PromptOptimizationResult) -> bool:
        """
        Apply a recorded optimization according to its rollout strategy

        Immediate rollouts activate the improved prompt in the prompt store;
        other strategies are handed off as a logged rollout plan. Calling it
        again for an applied optimization returns True without re-applying.

        Returns:
            True when the optimization is (or already was) applied
        """
        optimization_id = result.optimization_id
        with self._lock:
            known = optimization_id in self._optimization_history
            applied = optimization_id in self._applied
        if not known:
            logger.warning("Unknown optimization %s, nothing to apply", optimization_id)
            return False
        if applied:
            return True
        if not result.success:
            logger.info("Optimization %s did not meet its threshold, not applying", optimization_id)
            return False

        rollout = result.recommended_rollout
        if (
            rollout.strategy_type == "immediate"
            and result.improved_prompt_id is not None
            and self.prompt_store is not None
        ):
            try:
                self.prompt_store.activate(result.improved_prompt_id)
            except PromptNotFoundError as e:
                logger.error("Cannot apply optimization %s: %s", optimization_id, e)
                return False
        else:
            logger.info(
                "Rollout plan for %s: %s at %.0f%% for %d days",
                optimization_id, rollout.strategy_type,
                rollout.rollout_percentage, rollout.duration_days,
            )

        with self._lock:
            self._applied.add(optimization_id)
        return True

    # -- Insights and benchmarks --

    def generate_learning_insights(self) -> list[LearningInsight]:
        """
        Derive learning insights from the current aggregated feedback

        Insights are stored by id (re-running replaces them). The optimization
        history is not touched.
        """
        summary = self.feedback_source.feedback_summary(None)
        if summary.total_modules_generated <= 0:
            logger.debug("No feedback data, skipping insight generation")
            return []

        insights: list[LearningInsight] = []

        if summary.average_validation_score < self.config.validation_score_target:
            insights.append(LearningInsight(
                insight_id="validation_improvement",
                insight_type="pattern",
                title="Validation Score Below Target",
                description=(
                    f"Average validation score {summary.average_validation_score:.1f} "
                    f"is below the target of {self.config.validation_score_target:.0f}"
                ),
                confidence=0.8,
                supporting_data=[summary],
                actionable_recommendations=["Improve prompt validation instructions"],
                priority="medium",
            ))

        if summary.success_rate < _MIN_SUCCESS_RATE:
            critical = summary.success_rate < _CRITICAL_SUCCESS_RATE
            insights.append(LearningInsight(
                insight_id="generation_failures",
                insight_type="anomaly",
                title="High Generation Failure Rate",
                description=(
                    f"{summary.total_errors} of {summary.total_modules_generated} runs failed "
                    f"(success rate {summary.success_rate:.1f}%)"
                ),
                confidence=0.9,
                supporting_data=[summary.success_rate, summary.total_errors],
                actionable_recommendations=[
                    "Inspect failed runs for malformed model output",
                    "Tighten the output format instructions of the prompt",
                ],
                priority="critical" if critical else "high",
            ))

        if summary.average_recall is not None and summary.average_recall < _CRITICAL_RECALL:
            insights.append(LearningInsight(
                insight_id="missed_sections",
                insight_type="pattern",
                title="Most Ground-Truth Sections Missed",
                description=f"Average recall is {summary.average_recall:.2f}",
                confidence=0.85,
                supporting_data=[summary.average_recall],
                actionable_recommendations=[
                    "Ask the model to enumerate every visually distinct section",
                    "Add examples of commonly missed section types",
                ],
                priority="critical",
            ))

        if summary.average_rating is not None and summary.average_rating < _MIN_RATING:
            insights.append(LearningInsight(
                insight_id="user_satisfaction",
                insight_type="trend",
                title="Low User Satisfaction",
                description=f"Average user rating is {summary.average_rating:.1f} / 5",
                confidence=0.7,
                supporting_data=[summary.average_rating],
                actionable_recommendations=["Review low-rated runs and collect their failure modes"],
                priority="high",
            ))

        error_share = summary.total_errors / summary.total_modules_generated
        if error_share > _MAX_ERROR_SHARE and summary.average_generation_time > _SLOW_GENERATION_MS:
            insights.append(LearningInsight(
                insight_id="errors_with_slow_generation",
                insight_type="correlation",
                title="Errors Coincide With Slow Generation",
                description=(
                    f"{error_share:.0%} of runs failed while average generation time is "
                    f"{summary.average_generation_time / 1000:.1f}s"
                ),
                confidence=0.6,
                supporting_data=[error_share, summary.average_generation_time],
                actionable_recommendations=["Shorten the prompt or split large designs before detection"],
                priority="medium",
            ))

        with self._lock:
            for insight in insights:
                self._learning_insights[insight.insight_id] = insight
        return insights

    @property
    def learning_insights(self) -> list[LearningInsight]:
        with self._lock:
            return list(self._learning_insights.values())

    def get_optimization_benchmarks(self) -> dict:
        """
        Aggregate the optimization history

        Returns:
            {
                "total_optimizations": int,
                "successful_optimizations": int,
                "average_improvement": float,  # mean improvement % among successes
                "best_performing_optimizations": list[PromptOptimizationResult],
                "optimization_trends": list[DataPoint],
            }
        """
        with self._lock:
            optimizations = list(self._optimization_history.values())
        successful = [o for o in optimizations if o.success]

        average_improvement = 0.0
        if successful:
            average_improvement = sum(
                o.performance_improvement.improvement_percentage for o in successful
            ) / len(successful)

        best = sorted(
            successful,
            key=lambda o: o.performance_improvement.improvement_percentage,
            reverse=True,
        )[: self.config.best_performing_limit]

        return {
            "total_optimizations": len(optimizations),
            "successful_optimizations": len(successful),
            "average_improvement": average_improvement,
            "best_performing_optimizations": best,
            "optimization_trends": [
                DataPoint(
                    timestamp=o.created_at,
                    value=o.performance_improvement.improvement_percentage,
                    label="Improvement %",
                )
                for o in optimizations
            ],
        }

    def get_optimization(self, optimization_id: str) -> PromptOptimizationResult | None:
        with self._lock:
            return self._optimization_history.get(optimization_id)

    def get_evolution_history(self, prompt_id: str) -> PromptEvolutionHistory | None:
        with self._lock:
            return self._evolution_history.get(prompt_id)

    # -- Periodic learning --

    def perform_periodic_learning(self) -> list[LearningInsight]:
        """
        Re-run insight generation and log critical insights

        Errors are logged and swallowed so the next tick still runs.

        Returns:
            Critical insights (empty on failure)
        """
        try:
            insights = self.generate_learning_insights()
        except Exception:
            logger.exception("Periodic learning failed")
            return []

        critical = [i for i in insights if i.priority == "critical"]
        if critical:
            logger.warning(
                "Critical insights detected (%d): %s",
                len(critical), ", ".join(i.title for i in critical),
            )
        return critical

    def start_learning_loop(self) -> None:
        """Run perform_periodic_learning on a daemon thread every learning_interval_seconds"""
        if self._learning_thread is not None and self._learning_thread.is_alive():
            return
        self._stop_event.clear()
        self._learning_thread = threading.Thread(
            target=self._learning_loop,
            name="prompt-learning-loop",
            daemon=True,
        )
        self._learning_thread.start()
        logger.info("Learning loop started (interval=%ss)", self.config.learning_interval_seconds)

    def stop_learning_loop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._learning_thread is not None:
            self._learning_thread.join(timeout)
            self._learning_thread = None

    def _learning_loop(self) -> None:
        while not self._stop_event.wait(self.config.learning_interval_seconds):
            self.perform_periodic_learning()

    # -- Steps --

    def _analyze_current_performance(self, request: PromptOptimizationRequest) -> PerformanceAnalysis:
        prompt = None
        current_version = "unversioned"
        if request.task_id is not None:
            if self.prompt_store is None:
                raise PromptNotFoundError(f"No prompt store configured for task: {request.task_id}")
            prompt = self.prompt_store.get_active_prompt(request.task_id)
            current_version = prompt.version

        period = request.analysis_period_days if request.analysis_period_days > 0 else None
        summary = self.feedback_source.feedback_summary(period)
        return PerformanceAnalysis(
            current_version=current_version,
            baseline_performance=get_metric_value(summary, request.target_metric),
            sample_size=summary.total_modules_generated,
            summary=summary,
            prompt=prompt,
        )

    def _identify_prompt_weaknesses(
        self,
        request: PromptOptimizationRequest,
        summary: FeedbackSummary,
    ) -> list[PromptWeakness]:
        if summary.total_modules_generated <= 0:
            return []

        weaknesses: list[PromptWeakness] = []

        if summary.average_validation_score < self.config.validation_score_floor:
            weaknesses.append(PromptWeakness(
                weakness_type="validation_errors",
                description="Low validation scores indicating the prompt produces inaccurate layouts",
                frequency=summary.total_errors,
                impact_score=(100 - summary.average_validation_score) * 2,
                affected_templates=["all"],
                suggested_improvements=[
                    "Add more specific section boundary instructions",
                    "Include examples of valid section structures",
                ],
                examples=["Sections merged together", "Missing required properties"],
            ))

        if summary.success_rate < _MIN_SUCCESS_RATE:
            weaknesses.append(PromptWeakness(
                weakness_type="generation_failures",
                description="Runs failing before producing a usable layout",
                frequency=summary.total_errors,
                impact_score=100 - summary.success_rate,
                suggested_improvements=["Specify the exact JSON output format"],
                examples=["Unparseable model output"],
            ))

        if summary.average_generation_time > _SLOW_GENERATION_MS:
            weaknesses.append(PromptWeakness(
                weakness_type="slow_generation",
                description="Slow generation suggesting an overly long prompt or output",
                frequency=summary.total_modules_generated,
                impact_score=summary.average_generation_time / 1000,
                suggested_improvements=["Remove redundant instructions", "Ask for compact output"],
            ))

        if summary.average_recall is not None and summary.average_recall < _MIN_RECALL:
            weaknesses.append(PromptWeakness(
                weakness_type="missed_sections",
                description="Ground-truth sections frequently missed by the detector",
                frequency=summary.total_modules_generated,
                impact_score=(1 - summary.average_recall) * 100,
                suggested_improvements=["Ask the model to enumerate every visually distinct section"],
                examples=["Footer not detected", "Adjacent sections merged"],
            ))

        if summary.average_precision is not None and summary.average_precision < _MIN_PRECISION:
            weaknesses.append(PromptWeakness(
                weakness_type="spurious_sections",
                description="Detector reports sections that do not exist in the design",
                frequency=summary.total_modules_generated,
                impact_score=(1 - summary.average_precision) * 100,
                suggested_improvements=["Define the minimum size and content of a section"],
                examples=["Decorative elements reported as sections"],
            ))

        if summary.average_iou is not None and summary.average_iou < _MIN_IOU:
            weaknesses.append(PromptWeakness(
                weakness_type="imprecise_bounds",
                description="Section bounds only loosely overlap the ground truth",
                frequency=summary.total_modules_generated,
                impact_score=(1 - summary.average_iou) * 100,
                suggested_improvements=["Require bounds to follow visible section edges"],
            ))

        if request.focus_areas:
            weaknesses = [w for w in weaknesses if w.weakness_type in request.focus_areas]
        if request.exclude_patterns:
            patterns = [p.lower() for p in request.exclude_patterns]
            weaknesses = [
                w for w in weaknesses
                if not any(p in w.weakness_type.lower() or p in w.description.lower() for p in patterns)
            ]
        return weaknesses

    def _synthesize_variant(
        self,
        analysis: PerformanceAnalysis,
        weaknesses: list[PromptWeakness],
    ) -> ImprovedPrompt | None:
        if self.prompt_improver is None or analysis.prompt is None or not weaknesses:
            return None
        return self.prompt_improver.improve(
            analysis.prompt.text,
            [w.description for w in weaknesses],
        )

    def _build_result(
        self,
        request: PromptOptimizationRequest,
        analysis: PerformanceAnalysis,
        weaknesses: list[PromptWeakness],
        optimization_id: str,
        variant: ImprovedPrompt | None,
    ) -> PromptOptimizationResult:
        cfg = self.config
        pct = cfg.expected_improvement_pct
        baseline = analysis.baseline_performance
        if request.target_metric in LOWER_IS_BETTER_METRICS:
            improved = baseline * (1 - pct / 100)
        else:
            improved = baseline * (1 + pct / 100)

        risk_factors = []
        if analysis.sample_size <= 0:
            risk_factors.append("No executions in the analysis period")
        elif analysis.sample_size < cfg.min_sample_size:
            risk_factors.append("Low sample size")
        if baseline == 0:
            risk_factors.append(f"No baseline data for {request.target_metric}")
        if variant is not None and not variant.modifications:
            risk_factors.append("No prompt modifications were generated")

        confidence = self._confidence_score(analysis.sample_size)

        key_improvements: list[str] = []
        for w in weaknesses:
            for suggestion in w.suggested_improvements:
                if suggestion not in key_improvements:
                    key_improvements.append(suggestion)
        if variant is not None:
            key_improvements.extend(i for i in variant.improvements if i not in key_improvements)

        if variant is not None and self.prompt_store is not None and analysis.prompt is not None:
            improved_version = self.prompt_store.next_free_version(
                analysis.prompt.task_id, analysis.current_version
            )
        elif variant is not None:
            improved_version = PromptStore.next_version(analysis.current_version)
        else:
            improved_version = f"improved_{optimization_id}"

        return PromptOptimizationResult(
            success=pct >= request.improvement_threshold,
            optimization_id=optimization_id,
            original_prompt_version=analysis.current_version,
            improved_prompt_version=improved_version,
            performance_improvement=PerformanceImprovement(
                metric=request.target_metric,
                baseline_value=baseline,
                improved_value=improved,
                improvement_percentage=pct,
                statistical_significance=cfg.statistical_significance,
                sample_size=analysis.sample_size,
            ),
            confidence_score=confidence,
            recommended_rollout=self._recommend_rollout(confidence, request),
            analysis_summary=AnalysisSummary(
                analyzed_outcomes=analysis.sample_size,
                identified_patterns=[w.description for w in weaknesses],
                key_improvements=key_improvements,
                risk_factors=risk_factors,
                recommendation_confidence=confidence,
            ),
            prompt_id=analysis.prompt.prompt_id if analysis.prompt is not None else None,
        )

    def _confidence_score(self, sample_size: int) -> float:
        cfg = self.config
        if sample_size <= 0:
            return 0.0
        if cfg.min_sample_size <= 0 or sample_size >= cfg.min_sample_size:
            return cfg.base_confidence
        return round(cfg.base_confidence * sample_size / cfg.min_sample_size, 2)

    @staticmethod
    def _recommend_rollout(confidence: float, request: PromptOptimizationRequest) -> RolloutStrategy:
        success_criteria = [f"{request.target_metric} improves by at least {request.improvement_threshold}%"]
        rollback_triggers = ["Error rate increase", f"{request.target_metric} falls below baseline"]
        if confidence >= 90:
            strategy, percentage, days = "immediate", 100.0, 1
        elif confidence >= 75:
            strategy, percentage, days = "gradual", 25.0, 7
        elif confidence >= 50:
            strategy, percentage, days = "a_b_test", 50.0, 14
        else:
            strategy, percentage, days = "manual_review", 0.0, 0
        return RolloutStrategy(
            strategy_type=strategy,
            rollout_percentage=percentage,
            duration_days=days,
            success_criteria=success_criteria,
            rollback_triggers=rollback_triggers,
        )

    def _register_variant(
        self,
        prompt: AIPrompt,
        variant: ImprovedPrompt,
        result: PromptOptimizationResult,
    ) -> None:
        if self.prompt_store is None:
            return
        child = self.prompt_store.register_prompt(
            prompt.task_id,
            result.improved_prompt_version,
            variant.improved_prompt,
            parent_prompt_id=prompt.prompt_id,
        )
        result.improved_prompt_id = child.prompt_id

    def _record_evolution(
        self,
        prompt: AIPrompt,
        result: PromptOptimizationResult,
        weaknesses: list[PromptWeakness],
    ) -> None:
        """Append to the prompt's evolution history. Caller holds the lock."""
        history = self._evolution_history.setdefault(
            prompt.prompt_id, PromptEvolutionHistory(prompt_id=prompt.prompt_id)
        )
        improvement = result.performance_improvement
        history.version_history.append(VersionRecord(
            version=result.improved_prompt_version,
            timestamp=result.created_at,
            performance_metrics={
                "metric": improvement.metric,
                "baseline_value": improvement.baseline_value,
                "improved_value": improvement.improved_value,
            },
            changes_made=list(result.analysis_summary.key_improvements),
            improvement_reason="; ".join(w.description for w in weaknesses) or "Scheduled optimization",
        ))
        if result.success:
            history.learning_milestones.append(LearningMilestone(
                milestone_id=f"ms_{uuid.uuid4().hex}",
                achievement=f"Projected {improvement.improvement_percentage:.1f}% gain in {improvement.metric}",
                impact=f"{result.recommended_rollout.strategy_type} rollout recommended",
                timestamp=result.created_at,
            ))

    @staticmethod
    def _generate_optimization_id() -> str:
        return f"opt_{uuid.uuid4().hex}"
