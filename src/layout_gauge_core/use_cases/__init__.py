"""
Use Cases Layer

Aggregates business logic and provides use cases called from the runner.
"""

from layout_gauge_core.use_cases.execution import (
    ExecutionHistory,
    record_test_execution,
    run_dataset_evaluation,
    summarize_executions,
    aggregate_executions,
)
from layout_gauge_core.use_cases.optimization import (
    FeedbackSource,
    StaticFeedbackSource,
    OptimizationTracker,
    get_metric_value,
)
from layout_gauge_core.use_cases.prompt_improvement import (
    PromptImprover,
    apply_modifications,
)

__all__ = [
    # execution
    "ExecutionHistory",
    "record_test_execution",
    "run_dataset_evaluation",
    "summarize_executions",
    "aggregate_executions",
    # optimization
    "FeedbackSource",
    "StaticFeedbackSource",
    "OptimizationTracker",
    "get_metric_value",
    # prompt_improvement
    "PromptImprover",
    "apply_modifications",
]
