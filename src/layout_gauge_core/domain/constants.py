"""
Domain Constants

Centrally manages constants shared across the metrics engine and optimization tracker.
"""

# IoU threshold for counting a prediction as a true positive
DEFAULT_MATCH_THRESHOLD = 0.5

# Metrics accepted as PromptOptimizationRequest.target_metric
TARGET_METRICS = [
    "validation_score",
    "generation_time",
    "success_rate",
    "user_satisfaction",
    "f1",
    "precision",
    "recall",
    "avg_iou",
]

# Metrics where a lower value is an improvement
LOWER_IS_BETTER_METRICS = {"generation_time"}

ROLLOUT_STRATEGIES = ["immediate", "gradual", "a_b_test", "manual_review"]

INSIGHT_TYPES = ["pattern", "trend", "anomaly", "correlation"]

INSIGHT_PRIORITIES = ["low", "medium", "high", "critical"]

# Model pricing (USD / 1M tokens)
MODEL_PRICING = {
    "gpt-4o": {"input": 2.50, "output": 10.0},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4.1": {"input": 2.0, "output": 8.0},
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
    "o4-mini": {"input": 1.10, "output": 4.40},
}

DEFAULT_MODEL = "gpt-4o-mini"
