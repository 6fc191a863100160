"""
Domain Entities

Defines the primary data structures used for test executions, prompt
versions, and prompt optimization.
"""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class AIPrompt:
    """Versioned prompt text bound to a task"""
    prompt_id: str
    task_id: str
    version: str
    text: str
    is_active: bool = False
    performance_score: float = 0.0  # Rolling mean of recorded quality scores
    usage_count: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    parent_prompt_id: str | None = None


@dataclass(frozen=True)
class TestExecution:
    """One evaluation of a prompt version against one input"""
    __test__ = False  # Not a pytest test class

    execution_id: str
    prompt_id: str
    prompt_version: str
    task_id: str
    case_id: str
    input_data: str
    ai_output: list
    metrics: dict
    processing_time_ms: int
    timestamp: datetime
    ground_truth: list | None = None
    tokens_used: int | None = None
    estimated_cost_usd: float | None = None
    error: str | None = None
    user_rating: float | None = None


@dataclass
class FeedbackSummary:
    """Aggregated feedback over recent test executions"""
    average_validation_score: float = 0.0     # 0-100
    average_generation_time: float = 0.0      # ms
    success_rate: float = 0.0                 # 0-100
    total_modules_generated: int = 0
    total_errors: int = 0
    average_rating: float | None = None       # 0-5
    average_precision: float | None = None    # 0-1
    average_recall: float | None = None       # 0-1
    average_iou: float | None = None          # 0-1


@dataclass
class PromptOptimizationRequest:
    """Parameters of a single optimization pass"""
    target_metric: str
    improvement_threshold: float
    analysis_period_days: int
    focus_areas: list[str] | None = None
    exclude_patterns: list[str] | None = None
    task_id: str | None = None


@dataclass
class PerformanceImprovement:
    metric: str
    baseline_value: float
    improved_value: float
    improvement_percentage: float
    statistical_significance: float
    sample_size: int


@dataclass
class RolloutStrategy:
    """Plan for deploying an improved prompt"""
    strategy_type: str  # immediate / gradual / a_b_test / manual_review
    rollout_percentage: float
    duration_days: int
    success_criteria: list[str] = field(default_factory=list)
    rollback_triggers: list[str] = field(default_factory=list)


@dataclass
class AnalysisSummary:
    analyzed_outcomes: int
    identified_patterns: list[str] = field(default_factory=list)
    key_improvements: list[str] = field(default_factory=list)
    risk_factors: list[str] = field(default_factory=list)
    recommendation_confidence: float = 0.0


@dataclass
class PromptOptimizationResult:
    """Output of one optimization pass"""
    success: bool
    optimization_id: str
    original_prompt_version: str
    improved_prompt_version: str
    performance_improvement: PerformanceImprovement
    confidence_score: float
    recommended_rollout: RolloutStrategy
    analysis_summary: AnalysisSummary
    created_at: datetime = field(default_factory=datetime.now)
    prompt_id: str | None = None
    improved_prompt_id: str | None = None


@dataclass
class PromptWeakness:
    weakness_type: str
    description: str
    frequency: int
    impact_score: float
    affected_templates: list[str] = field(default_factory=list)
    suggested_improvements: list[str] = field(default_factory=list)
    examples: list[str] = field(default_factory=list)


@dataclass
class LearningInsight:
    insight_id: str
    insight_type: str  # pattern / trend / anomaly / correlation
    title: str
    description: str
    confidence: float
    supporting_data: list = field(default_factory=list)
    actionable_recommendations: list[str] = field(default_factory=list)
    priority: str = "low"  # low / medium / high / critical


@dataclass
class DataPoint:
    timestamp: datetime
    value: float
    label: str


@dataclass
class VersionRecord:
    version: str
    timestamp: datetime
    performance_metrics: dict
    changes_made: list[str]
    improvement_reason: str


@dataclass
class LearningMilestone:
    milestone_id: str
    achievement: str
    impact: str
    timestamp: datetime


@dataclass
class PromptEvolutionHistory:
    prompt_id: str
    version_history: list[VersionRecord] = field(default_factory=list)
    learning_milestones: list[LearningMilestone] = field(default_factory=list)


@dataclass
class PromptModification:
    """A single edit to a prompt suggested by the text-completion model"""
    section: str  # heading name, "append" or "prepend"
    replacement_text: str
    reason: str = ""
    original_text: str | None = None


@dataclass
class ImprovedPrompt:
    original_prompt: str
    improved_prompt: str
    improvements: list[str] = field(default_factory=list)
    modifications: list[PromptModification] = field(default_factory=list)
