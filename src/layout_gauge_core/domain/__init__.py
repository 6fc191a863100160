"""
Domain Layer

Defines constants, entities, and value objects that form the core of the business logic.
Has no dependencies on external libraries.
"""

from layout_gauge_core.domain.constants import (
    DEFAULT_MATCH_THRESHOLD,
    DEFAULT_MODEL,
    INSIGHT_PRIORITIES,
    INSIGHT_TYPES,
    LOWER_IS_BETTER_METRICS,
    MODEL_PRICING,
    ROLLOUT_STRATEGIES,
    TARGET_METRICS,
)
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
    PromptModification,
    PromptOptimizationRequest,
    PromptOptimizationResult,
    PromptWeakness,
    RolloutStrategy,
    TestExecution,
    VersionRecord,
)
from layout_gauge_core.domain.value_objects import (
    BaseMetrics,
    BoundingBox,
    DetectedSection,
    DetectionKpis,
    ModelResponse,
)

__all__ = [
    # constants
    "DEFAULT_MATCH_THRESHOLD",
    "DEFAULT_MODEL",
    "INSIGHT_PRIORITIES",
    "INSIGHT_TYPES",
    "LOWER_IS_BETTER_METRICS",
    "MODEL_PRICING",
    "ROLLOUT_STRATEGIES",
    "TARGET_METRICS",
    # entities
    "AIPrompt",
    "AnalysisSummary",
    "DataPoint",
    "FeedbackSummary",
    "ImprovedPrompt",
    "LearningInsight",
    "LearningMilestone",
    "PerformanceImprovement",
    "PromptEvolutionHistory",
    "PromptModification",
    "PromptOptimizationRequest",
    "PromptOptimizationResult",
    "PromptWeakness",
    "RolloutStrategy",
    "TestExecution",
    "VersionRecord",
    # value objects
    "BaseMetrics",
    "BoundingBox",
    "DetectedSection",
    "DetectionKpis",
    "ModelResponse",
]
